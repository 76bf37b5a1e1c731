"""
Planning Agent

Checks that the agent can afford the budget, asks for a short high-level
strategy and lays out the seven-step payment plan.
"""
import logging
from typing import Optional

from ..db.repositories import AgentRepository
from ..exceptions import NotFoundError
from ..models.agents import PaymentGoal
from ..models.tasks import AgentResult, AgentTask, PlanningParams
from ..services.text_generation import GenerationOptions, TextGenerator
from .base import Capability

logger = logging.getLogger(__name__)

PLANNING_SYSTEM_PROMPT = "You are a strategic planning expert. Think at a high level before diving into details."

PLAN_STEPS = [
    ("Plan the purchase and confirm the budget", True),
    ("Discover and validate the service", True),
    ("Negotiate the price", False),
    ("Execute the payment under guardrails", True),
    ("Verify the payment on-chain", True),
    ("Reflect on the outcome", False),
    ("Record the outcome in memory", False),
]


class PlanningAgent:
    capability = Capability.PLANNING

    def __init__(self, agents: AgentRepository, text_generator: Optional[TextGenerator] = None):
        self.agents = agents
        self.text_generator = text_generator

    async def _strategy(self, objective: str) -> str:
        if self.text_generator is None:
            return "Confirm the service, negotiate below list price, pay once and verify on-chain."
        prompt = (
            f"Task: {objective}\n\n"
            "Step back and consider the fundamental goal, the key constraints, the best "
            "high-level approach and the main risks. Provide a strategic overview "
            "(2-3 sentences):"
        )
        return await self.text_generator.generate(
            prompt,
            GenerationOptions(temperature=0.7, max_tokens=300, system_prompt=PLANNING_SYSTEM_PROMPT)
        )

    async def run(self, task: AgentTask) -> AgentResult:
        params = task.require(PlanningParams)
        agent = await self.agents.get_by_id(params.agent_id)
        if agent is None:
            raise NotFoundError(f"Agent not found: {params.agent_id}", {"agent_id": params.agent_id})

        goal = PaymentGoal(
            description=task.objective,
            service_id=params.service_id,
            max_budget=params.budget_limit,
        )
        # Raises InsufficientBalanceError straight to the orchestrator
        plan = agent.create_payment_plan(goal, params.budget_limit)
        plan.strategy = await self._strategy(task.objective)
        for description, is_critical in PLAN_STEPS:
            plan.add_step(description, is_critical)

        logger.info(f"Plan {plan.id} created for agent {agent.id}: {len(plan.steps)} steps")
        return AgentResult(
            success=True,
            output=plan,
            reasoning=f"Strategy: {plan.strategy}",
            tools_used=["text_generation"] if self.text_generator else [],
            confidence_score=0.8,
            details={"steps": len(plan.steps)},
        )
