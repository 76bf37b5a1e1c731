"""
Reflection Agent

Derives insights, improvements and learnings from how a session went. The
rules are deterministic; a text generator, when present, adds a one-line
summary insight.
"""
import logging
from decimal import Decimal
from typing import Optional

from ..models.tasks import AgentResult, AgentTask, ReflectionOutcome, ReflectionParams
from ..services.text_generation import GenerationOptions, TextGenerator
from .base import Capability

logger = logging.getLogger(__name__)

AGGRESSIVE_SAVINGS_THRESHOLD = Decimal("10")


def reflect(params: ReflectionParams) -> ReflectionOutcome:
    savings_percent = Decimal("0")
    if params.original_price > 0:
        savings_percent = ((params.original_price - params.final_price) / params.original_price * 100).quantize(
            Decimal("0.01")
        )

    insights = []
    improvements = []
    if params.negotiation_accepted:
        insights.append(f"Achieved {savings_percent}% savings in {params.rounds} rounds")
        if savings_percent < AGGRESSIVE_SAVINGS_THRESHOLD:
            improvements.append("Be more aggressive in initial offer")
        else:
            improvements.append("Strategy was effective")
    else:
        insights.append(f"Seller did not accept within {params.rounds} rounds; paid list price")
        improvements.extend(["Adjust initial offer", "Be more flexible"])

    if params.payment_verified:
        insights.append("Payment verified on-chain")
    else:
        insights.append(f"Payment not verified: {params.failure_reason or 'unknown reason'}")
        improvements.append("Investigate the payment failure before buying from this provider again")

    learnings = [
        "effective_opening_offer: 70-75% of asking price",
        f"rounds_needed: {params.rounds}",
    ]
    return ReflectionOutcome(
        insights=insights,
        improvements=improvements,
        learnings=learnings,
        savings_percent=savings_percent,
    )


class ReflectionAgent:
    capability = Capability.REFLECTION

    def __init__(self, text_generator: Optional[TextGenerator] = None):
        self.text_generator = text_generator

    async def run(self, task: AgentTask) -> AgentResult:
        params = task.require(ReflectionParams)
        outcome = reflect(params)

        if self.text_generator is not None:
            summary = await self.text_generator.generate(
                "Summarize in one sentence what an autonomous buyer should learn from this purchase:\n"
                + "\n".join(outcome.insights),
                GenerationOptions(temperature=0.7, max_tokens=100),
            )
            outcome.insights.append(summary.strip())

        logger.debug(f"Reflection for {params.service_id}: {outcome.insights}")
        return AgentResult(
            success=True,
            output=outcome,
            reasoning="; ".join(outcome.insights),
            tools_used=["text_generation"] if self.text_generator else [],
            confidence_score=0.8,
            details={"improvements": outcome.improvements},
        )
