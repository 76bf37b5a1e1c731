"""
Negotiation Protocol

Bounded-round price negotiation between a buyer offer generator and a seller.

Algorithm (listed price P, budget B, max rounds R):
1. Opening offer O = 0.70 x B
2. Each round: produce strategy text (audit only), derive our offer X from
   the counter-offer reply (a bare amount, capped at P; fallback
   min(O x 1.10, P)), then ask the seller
3. Seller accepts X >= 0.85P; below 0.70P it counters 0.90P; otherwise it
   counters the midpoint (X + P) / 2
4. Accepted -> final price X. Rejected -> next O = seller counter if any
5. Rounds exhausted -> final price P, accepted = False

All computed amounts are quantized to 8 decimal places.
"""
import logging
import re
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.tasks import AgentResult, AgentTask, NegotiationParams
from ..models.values import quantize_mnee
from ..services.text_generation import GenerationOptions, TextGenerator
from .base import Capability

logger = logging.getLogger(__name__)

OPENING_OFFER_RATIO = Decimal("0.70")
FALLBACK_INCREMENT = Decimal("1.10")
SELLER_ACCEPT_RATIO = Decimal("0.85")
SELLER_FLOOR_RATIO = Decimal("0.70")
SELLER_COUNTER_RATIO = Decimal("0.90")
ACCEPTED_CONFIDENCE = 0.9
REJECTED_CONFIDENCE = 0.5

STRATEGY_OPTIONS = GenerationOptions(temperature=0.6, max_tokens=200)
COUNTER_OFFER_OPTIONS = GenerationOptions(temperature=0.3, max_tokens=50)

_OFFER_REPLY_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(?:\s*MNEE)?", re.IGNORECASE)


# ============================================================================
# Records
# ============================================================================

class SellerResponse(BaseModel):
    accepted: bool
    message: str
    counter_offer: Optional[Decimal] = None


class NegotiationRound(BaseModel):
    model_config = ConfigDict(frozen=True)

    round: int
    our_offer: Decimal
    seller_response: str
    seller_counter_offer: Optional[Decimal] = None
    reasoning: str = ""


class NegotiationOutcome(BaseModel):
    accepted: bool
    final_price: Decimal
    original_price: Decimal
    budget: Decimal
    rounds: List[NegotiationRound] = Field(default_factory=list)

    @property
    def savings(self) -> Decimal:
        return self.original_price - self.final_price

    @property
    def savings_percent(self) -> Decimal:
        if self.original_price == 0:
            return Decimal("0")
        return (self.savings / self.original_price * 100).quantize(Decimal("0.01"))

    @property
    def confidence(self) -> float:
        return ACCEPTED_CONFIDENCE if self.accepted else REJECTED_CONFIDENCE


# (budget, current_offer, round) -> strategy text
StrategySource = Callable[[Decimal, Decimal, int], Awaitable[str]]
# (strategy, listed_price, current_offer) -> counter-offer text
CounterOfferSource = Callable[[str, Decimal, Decimal], Awaitable[str]]
# (our_offer, listed_price, round) -> seller response
Seller = Callable[[Decimal, Decimal, int], SellerResponse]


# ============================================================================
# Deterministic defaults
# ============================================================================

def simulate_seller_response(offer: Decimal, listed_price: Decimal, round_number: int = 1) -> SellerResponse:
    """Rule-based seller used when no real counterparty is wired in."""
    if offer >= listed_price * SELLER_ACCEPT_RATIO:
        return SellerResponse(accepted=True, message="Offer accepted", counter_offer=offer)
    if offer < listed_price * SELLER_FLOOR_RATIO:
        return SellerResponse(
            accepted=False,
            message="Offer too low, here's my counteroffer",
            counter_offer=quantize_mnee(listed_price * SELLER_COUNTER_RATIO),
        )
    return SellerResponse(
        accepted=False,
        message="Let's meet in the middle",
        counter_offer=quantize_mnee((offer + listed_price) / 2),
    )


def parse_counter_offer(text: str, current_offer: Decimal, listed_price: Decimal) -> Decimal:
    """
    Read a counter-offer reply that is just an amount, e.g. "86" or "86.5 MNEE".

    Returns the amount capped at the listed price, or min(O x 1.10, P) when
    the reply is anything else, including prose that mentions numbers.
    """
    match = _OFFER_REPLY_PATTERN.fullmatch((text or "").strip())
    if match:
        value = Decimal(match.group(1))
        if value > 0:
            return quantize_mnee(min(value, listed_price))
    return quantize_mnee(min(current_offer * FALLBACK_INCREMENT, listed_price))


async def default_strategy(budget: Decimal, current_offer: Decimal, round_number: int) -> str:
    return f"Round {round_number}: hold at {current_offer} MNEE against a budget of {budget} MNEE"


async def hold_current_offer(strategy: str, listed_price: Decimal, current_offer: Decimal) -> str:
    """Counter-offer source that repeats the current offer."""
    return str(current_offer)


# ============================================================================
# Protocol
# ============================================================================

class NegotiationProtocol:
    """
    Runs the bounded negotiation loop.

    Strategy, counter-offer and seller are injectable; the defaults are
    deterministic, so two runs with the same inputs produce the same rounds.
    """

    def __init__(
        self,
        strategy_source: StrategySource = default_strategy,
        counter_offer_source: CounterOfferSource = hold_current_offer,
        seller: Seller = simulate_seller_response,
    ):
        self.strategy_source = strategy_source
        self.counter_offer_source = counter_offer_source
        self.seller = seller

    async def negotiate(self, listed_price: Decimal, budget: Decimal, max_rounds: int = 5) -> NegotiationOutcome:
        """
        Negotiate a price for one service.

        Args:
            listed_price: Seller's asking price P
            budget: Buyer budget B
            max_rounds: Upper bound on rounds R

        Returns:
            NegotiationOutcome with every round recorded in order
        """
        rounds: List[NegotiationRound] = []
        current_offer = quantize_mnee(budget * OPENING_OFFER_RATIO)
        accepted = False

        for round_number in range(1, max_rounds + 1):
            strategy = await self.strategy_source(budget, current_offer, round_number)
            counter_text = await self.counter_offer_source(strategy, listed_price, current_offer)
            our_offer = parse_counter_offer(counter_text, current_offer, listed_price)

            response = self.seller(our_offer, listed_price, round_number)
            rounds.append(NegotiationRound(
                round=round_number,
                our_offer=our_offer,
                seller_response=response.message,
                seller_counter_offer=response.counter_offer,
                reasoning=strategy,
            ))
            logger.debug(
                f"Negotiation round {round_number}: offer={our_offer}, "
                f"accepted={response.accepted}, counter={response.counter_offer}"
            )

            if response.accepted:
                accepted = True
                current_offer = our_offer
                break
            if response.counter_offer is not None:
                current_offer = response.counter_offer

        final_price = current_offer if accepted else listed_price
        return NegotiationOutcome(
            accepted=accepted,
            final_price=final_price,
            original_price=listed_price,
            budget=budget,
            rounds=rounds,
        )


# ============================================================================
# Negotiator role
# ============================================================================

class NegotiationAgent:
    """
    Negotiator role capability.

    With a text generator, strategy and counter-offer text come from the
    model; without one, the deterministic protocol defaults are used.
    """

    capability = Capability.NEGOTIATION

    def __init__(
        self,
        text_generator: Optional[TextGenerator] = None,
        seller: Seller = simulate_seller_response,
    ):
        self.text_generator = text_generator
        if text_generator is None:
            self.protocol = NegotiationProtocol(seller=seller)
        else:
            self.protocol = NegotiationProtocol(
                strategy_source=self._generate_strategy,
                counter_offer_source=self._generate_counter_offer,
                seller=seller,
            )

    async def _generate_strategy(self, budget: Decimal, current_offer: Decimal, round_number: int) -> str:
        prompt = (
            "You are negotiating the price of a service on behalf of an autonomous agent.\n"
            f"- Budget: {budget} MNEE\n"
            f"- Current offer: {current_offer} MNEE\n"
            f"- Negotiation round: {round_number}\n\n"
            "Describe a brief negotiation strategy for this round."
        )
        return await self.text_generator.generate(prompt, STRATEGY_OPTIONS)

    async def _generate_counter_offer(self, strategy: str, listed_price: Decimal, current_offer: Decimal) -> str:
        prompt = (
            f"Based on this strategy:\n{strategy}\n\n"
            f"Service price: {listed_price} MNEE\n"
            f"Current offer: {current_offer} MNEE\n\n"
            "What should our next counter-offer be? Be reasonable but firm and stay near budget.\n"
            "Respond with just a number (the offer amount):"
        )
        return await self.text_generator.generate(prompt, COUNTER_OFFER_OPTIONS)

    async def run(self, task: AgentTask) -> AgentResult:
        params = task.require(NegotiationParams)
        outcome = await self.protocol.negotiate(params.listed_price, params.budget_limit, params.max_rounds)

        logger.info(
            f"Negotiation for {params.service_id}: accepted={outcome.accepted}, "
            f"final={outcome.final_price}, rounds={len(outcome.rounds)}"
        )
        return AgentResult(
            success=True,
            output=outcome,
            reasoning=(
                f"Negotiation completed in {len(outcome.rounds)} rounds. "
                f"Achieved {outcome.savings_percent}% savings."
            ),
            tools_used=["text_generation"] if self.text_generator else [],
            confidence_score=outcome.confidence,
            details={
                "accepted": outcome.accepted,
                "final_price": str(outcome.final_price),
                "savings_percent": str(outcome.savings_percent),
            },
        )
