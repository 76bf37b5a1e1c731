"""
Payment Session Orchestrator

Runs one purchase through seven steps, each delegated to a role capability:

    Planning -> Discovery -> Negotiation -> Execution -> Verification
    -> Reflection -> Memory-write

Every step runs under a deadline; idempotent steps are retried on
ExternalCapabilityError. Each step is logged on the PaymentSession and on
the WorkflowResult. Faults end the session with a readable failure reason;
only DomainInvariantError (e.g. insufficient balance) propagates.
"""
import asyncio
import logging
import time
from typing import Any, Dict, Optional

from ..config import settings
from ..db.repositories import AgentRepository, PaymentSessionRepository, ServiceRepository, TransactionRepository
from ..exceptions import (
    AgentPayError,
    AgentUnavailableError,
    DomainInvariantError,
    ExternalCapabilityError,
    InvalidParameterError,
    NotFoundError,
    StepTimeoutError,
)
from ..models.agents import Agent, AgentReflection, AgentStatus
from ..models.policy import GuardrailsPolicy
from ..models.sessions import PaymentSession, PaymentSessionStatus, PaymentStepType
from ..models.tasks import (
    AgentResult,
    AgentTask,
    DiscoveryParams,
    ExecutionParams,
    MemoryWriteParams,
    NegotiationParams,
    PlanningParams,
    ReflectionParams,
    VerificationParams,
    WorkflowResult,
)
from ..models.values import to_mnee
from ..services.chain_service import ChainClient
from ..services.text_generation import TextGenerator
from .base import IDEMPOTENT_CAPABILITIES, Capability, RoleCapability
from .discovery import DiscoveryAgent
from .execution import ExecutionAgent
from .memory import BoundedMemoryStore, MemoryAgent, memory_key
from .negotiation import NegotiationAgent
from .planning import PlanningAgent
from .reflection import ReflectionAgent
from .verification import VerificationAgent

logger = logging.getLogger(__name__)

UNAVAILABLE_STATUSES = (AgentStatus.INACTIVE, AgentStatus.SUSPENDED)


class PaymentSessionOrchestrator:
    """
    Composes the role capabilities into the payment workflow.

    Sessions share nothing but the repositories and the memory store, so
    several sessions for different agents may run concurrently.
    """

    def __init__(
        self,
        agents: AgentRepository,
        services: ServiceRepository,
        transactions: TransactionRepository,
        sessions: PaymentSessionRepository,
        chain: ChainClient,
        memory_store: BoundedMemoryStore,
        text_generator: Optional[TextGenerator] = None,
        policy: Optional[GuardrailsPolicy] = None,
        roles: Optional[Dict[Capability, RoleCapability]] = None,
        step_timeout: float = settings.step_timeout_seconds,
        max_retries: int = settings.step_max_retries,
        negotiation_max_rounds: int = settings.negotiation_max_rounds,
    ):
        self.agents = agents
        self.sessions = sessions
        self.memory_store = memory_store
        self.step_timeout = step_timeout
        self.max_retries = max_retries
        self.negotiation_max_rounds = negotiation_max_rounds

        policy = policy or GuardrailsPolicy.from_settings(settings)
        self.roles: Dict[Capability, RoleCapability] = {
            Capability.PLANNING: PlanningAgent(agents, text_generator),
            Capability.DISCOVERY: DiscoveryAgent(services),
            Capability.NEGOTIATION: NegotiationAgent(text_generator),
            Capability.EXECUTION: ExecutionAgent(agents, transactions, chain, policy),
            Capability.VERIFICATION: VerificationAgent(transactions, chain),
            Capability.REFLECTION: ReflectionAgent(text_generator),
            Capability.MEMORY: MemoryAgent(memory_store),
        }
        self.roles.update(roles or {})

    # ========================================================================
    # Public entry point
    # ========================================================================

    async def execute_payment_workflow(
        self,
        agent_id: str,
        service_id: str,
        budget_limit: Any,
        objective: Optional[str] = None
    ) -> WorkflowResult:
        """
        Run the full purchase workflow for one agent and one service.

        Args:
            agent_id: Paying agent
            service_id: Service to buy
            budget_limit: Most the agent will pay (MNEE)
            objective: Free-text goal, defaults to a generated one

        Returns:
            WorkflowResult; success is True only when the payment verified

        Raises:
            InvalidParameterError: budget is not a positive MNEE amount
            NotFoundError: unknown agent
            AgentUnavailableError: agent is inactive or suspended
            DomainInvariantError: e.g. balance below budget
        """
        budget = to_mnee(budget_limit)
        if budget <= 0:
            raise InvalidParameterError("Budget must be positive", {"budget_limit": str(budget)})

        agent = await self.agents.get_by_id(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent not found: {agent_id}", {"agent_id": agent_id})
        if agent.status in UNAVAILABLE_STATUSES:
            raise AgentUnavailableError(
                f"Agent {agent.name} is {agent.status.value}",
                {"agent_id": agent_id, "status": agent.status.value}
            )

        objective = objective or f"Purchase service {service_id} within {budget} MNEE"
        agent.start_session(objective)
        await self.agents.update(agent)

        session = PaymentSession.start(agent.id, service_id, budget)
        result = WorkflowResult(agent_id=agent.id, service_id=service_id, session_id=session.id)
        await self.sessions.save(session)
        logger.info(f"Session {session.id} started: agent={agent.id}, service={service_id}, budget={budget}")

        try:
            await self._run_workflow(agent, session, result, objective)
        except DomainInvariantError as e:
            self._fail(session, result, e.message)
            await self._finish(session, result)
            raise
        except StepTimeoutError as e:
            logger.error(f"Session {session.id}: {e.message}")
            self._fail(session, result, e.message)
        except Exception as e:
            logger.error(f"Session {session.id} failed: {e}", exc_info=True)
            self._fail(session, result, str(e) or type(e).__name__)

        await self._finish(session, result)
        return result

    # ========================================================================
    # Workflow
    # ========================================================================

    async def _run_workflow(self, agent: Agent, session: PaymentSession, result: WorkflowResult, objective: str) -> None:
        budget = session.budget_limit

        # 1. Planning
        session.set_status(PaymentSessionStatus.PLANNING)
        planned = await self._run_step(
            "Planning", result,
            self._task(objective, PlanningParams(agent_id=agent.id, service_id=session.service_id, budget_limit=budget)),
        )
        plan = planned.output
        session.add_step(PaymentStepType.PLANNING, planned.reasoning, {
            "plan_id": plan.id if plan else None,
            "steps": [s.description for s in plan.steps] if plan else [],
        })
        if not planned.success:
            self._fail(session, result, planned.error_message or "Planning failed")
            return

        # 2. Discovery
        session.set_status(PaymentSessionStatus.DISCOVERING)
        discovered = await self._run_step(
            "Discovery", result,
            self._task(
                f"Discover service {session.service_id}",
                DiscoveryParams(
                    service_id=session.service_id,
                    allowed_categories=agent.capabilities.allowed_categories,
                ),
            ),
        )
        service = discovered.output
        session.add_step(
            PaymentStepType.DISCOVERY,
            discovered.reasoning or discovered.error_message or "",
            discovered.details,
        )
        if not discovered.success:
            self._fail(session, result, discovered.error_message or "Service discovery failed")
            return

        # 3. Negotiation (non-acceptance falls back to list price)
        session.set_status(PaymentSessionStatus.NEGOTIATING)
        if agent.capabilities.can_negotiate:
            negotiated = await self._run_step(
                "Negotiation", result,
                self._task(
                    f"Negotiate the price of {service.name}",
                    NegotiationParams(
                        service_id=service.id,
                        listed_price=service.price,
                        budget_limit=budget,
                        max_rounds=self.negotiation_max_rounds,
                    ),
                ),
            )
            outcome = negotiated.output
            final_price = outcome.final_price
            rounds = len(outcome.rounds)
            accepted = outcome.accepted
            session.add_step(PaymentStepType.NEGOTIATION, negotiated.reasoning, {
                "accepted": accepted,
                "final_price": str(final_price),
                "rounds": [r.model_dump(mode="json") for r in outcome.rounds],
            })
        else:
            final_price, rounds, accepted = service.price, 0, False
            result.add_step("Negotiation", True, "Negotiation disabled; paying list price")
            session.add_step(PaymentStepType.NEGOTIATION, "Negotiation disabled; paying list price", {
                "final_price": str(final_price),
            })
        session.set_negotiated_price(final_price)
        result.final_price = session.negotiated_price

        # 4. Execution (never retried)
        session.set_status(PaymentSessionStatus.EXECUTING)
        executed = await self._run_step(
            "Execution", result,
            self._task(
                f"Pay {final_price} MNEE for {service.name}",
                ExecutionParams(
                    agent_id=agent.id,
                    service_id=service.id,
                    to_address=service.provider_address,
                    amount=final_price,
                    budget_limit=budget,
                    reasoning=f"Purchase of {service.name} at negotiated price {final_price} MNEE",
                ),
                max_retries=0,
            ),
        )
        transaction = executed.output
        if transaction is not None:
            result.transaction_id = transaction.id
            check = transaction.guardrails_check
            if check is not None:
                session.add_step(
                    PaymentStepType.GUARDRAILS,
                    "Guardrails passed" if check.passed else f"Guardrails blocked: {check.failure_reason}",
                    check.model_dump(mode="json"),
                )
        if not executed.success:
            if executed.details.get("blocked"):
                logger.warning(f"Session {session.id}: payment blocked by guardrails")
            self._fail(session, result, executed.error_message or "Execution failed")
            return
        result.transaction_hash = transaction.transaction_hash
        session.add_step(PaymentStepType.EXECUTION, executed.reasoning, {
            "transaction_id": transaction.id,
            "transaction_hash": transaction.transaction_hash,
        })

        # 5. Verification
        session.set_status(PaymentSessionStatus.VERIFYING)
        verified = await self._run_step(
            "Verification", result,
            self._task(
                f"Verify transaction {transaction.id}",
                VerificationParams(
                    transaction_id=transaction.id,
                    expected_amount=transaction.amount,
                    expected_recipient=transaction.to_address,
                ),
            ),
        )
        verification = verified.output
        session.add_step(PaymentStepType.VERIFICATION, verified.reasoning, {
            "is_verified": verification.is_verified,
            "confidence": verification.confidence,
            "checks": [c.model_dump() for c in verification.checks],
        })

        # 6. Reflection
        if agent.capabilities.can_reflect:
            reflected = await self._run_step(
                "Reflection", result,
                self._task(
                    f"Reflect on the purchase of {service.name}",
                    ReflectionParams(
                        agent_id=agent.id,
                        service_id=service.id,
                        original_price=service.price,
                        final_price=final_price,
                        negotiation_accepted=accepted,
                        rounds=rounds,
                        payment_verified=verified.success,
                        failure_reason=verification.failure_reason,
                    ),
                ),
            )
            reflection = reflected.output
            agent.reflect_on_action(AgentReflection(
                action_type="payment",
                description=f"Purchase of {service.name}",
                success=verified.success,
                insights="; ".join(reflection.insights),
                learnings=reflection.learnings,
            ))
            session.add_step(PaymentStepType.REFLECTION, reflected.reasoning, reflection.model_dump(mode="json"))

        # 7. Memory-write
        key = memory_key(service.id)
        await self._run_step(
            "Memory", result,
            self._task(
                f"Remember the outcome of {service.name}",
                MemoryWriteParams(key=key, value={
                    "service_id": service.id,
                    "final_price": str(final_price),
                    "original_price": str(service.price),
                    "success": verified.success,
                }),
            ),
        )
        session.add_step(PaymentStepType.MEMORY, f"Stored {key}", {"key": key})

        if verified.success:
            session.complete()
            result.success = True
        else:
            self._fail(session, result, verification.failure_reason or "Verification failed")

    # ========================================================================
    # Step execution
    # ========================================================================

    def _task(self, objective: str, parameters, max_retries: Optional[int] = None) -> AgentTask:
        return AgentTask(
            objective=objective,
            parameters=parameters,
            timeout=self.step_timeout,
            max_retries=self.max_retries if max_retries is None else max_retries,
        )

    async def _run_step(self, name: str, result: WorkflowResult, task: AgentTask) -> AgentResult:
        """
        Run one role capability under the task deadline.

        A step that raises is still recorded on the result, as failed with the
        error message, before the exception propagates.

        Raises:
            StepTimeoutError: the deadline passed
            ExternalCapabilityError: still failing after max_retries extra attempts
        """
        role = self.roles[Capability(task.parameters.kind)]
        retries = task.max_retries if role.capability in IDEMPOTENT_CAPABILITIES else 0

        logger.info(f"Step {name} started")
        started = time.perf_counter()
        attempt = 0
        while True:
            attempt += 1
            try:
                agent_result = await asyncio.wait_for(role.run(task), timeout=task.timeout)
                break
            except asyncio.TimeoutError:
                error = StepTimeoutError(
                    f"timeout: {name} exceeded {task.timeout:g}s",
                    {"step": name, "timeout": task.timeout}
                )
                result.add_step(name, False, error.message, time.perf_counter() - started)
                raise error
            except ExternalCapabilityError as e:
                if attempt <= retries:
                    logger.warning(f"Step {name} attempt {attempt} failed ({e.message}); retrying")
                    continue
                result.add_step(name, False, e.message, time.perf_counter() - started)
                raise
            except Exception as e:
                message = e.message if isinstance(e, AgentPayError) else (str(e) or type(e).__name__)
                result.add_step(name, False, message, time.perf_counter() - started)
                raise

        elapsed = time.perf_counter() - started
        agent_result.execution_time = elapsed
        result.add_step(
            name,
            agent_result.success,
            agent_result.reasoning if agent_result.success else (agent_result.error_message or ""),
            elapsed,
        )
        logger.info(f"Step {name} finished: success={agent_result.success} ({elapsed:.3f}s)")
        return agent_result

    def _fail(self, session: PaymentSession, result: WorkflowResult, reason: str) -> None:
        session.add_step(PaymentStepType.ERROR, reason)
        session.fail(reason)
        result.success = False
        result.failure_reason = reason

    async def _finish(self, session: PaymentSession, result: WorkflowResult) -> None:
        result.completed_at = session.completed_at
        await self.sessions.save(session)
        logger.info(
            f"Session {session.id} finished: status={session.status.value}, "
            f"final_price={result.final_price}, reason={result.failure_reason}"
        )
