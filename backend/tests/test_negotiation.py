"""
Tests for the Negotiation Protocol
==================================
"""
from decimal import Decimal

import pytest
from pydantic import ValidationError

from agentpay.agents.negotiation import (
    NegotiationAgent,
    NegotiationProtocol,
    NegotiationRound,
    SellerResponse,
    parse_counter_offer,
    simulate_seller_response,
)
from agentpay.models.tasks import AgentTask, NegotiationParams

from .conftest import ScriptedTextGenerator


def never_accepts(offer, listed_price, round_number):
    return SellerResponse(accepted=False, message="No deal")


class TestSellerSimulation:
    """Seller rules for P = 100."""

    def test_accepts_at_85_percent(self):
        """Offers at or above 0.85P are accepted at the offer."""
        response = simulate_seller_response(Decimal("85"), Decimal("100"))
        assert response.accepted is True
        assert response.counter_offer == Decimal("85")

    def test_low_offer_countered_at_90_percent(self):
        """Offers below 0.70P get a 0.90P counter."""
        response = simulate_seller_response(Decimal("60"), Decimal("100"))
        assert response.accepted is False
        assert response.counter_offer == Decimal("90")

    def test_middle_offer_countered_at_midpoint(self):
        """Offers between 0.70P and 0.85P get the midpoint."""
        response = simulate_seller_response(Decimal("75"), Decimal("100"))
        assert response.accepted is False
        assert response.counter_offer == Decimal("87.5")

    def test_seventy_percent_is_not_lowball(self):
        """Exactly 0.70P is countered at the midpoint, not 0.90P."""
        response = simulate_seller_response(Decimal("70"), Decimal("100"))
        assert response.counter_offer == Decimal("85")


class TestCounterOfferParsing:
    """Counter-offer text handling."""

    def test_bare_amount(self):
        assert parse_counter_offer("  72.5\n", Decimal("63"), Decimal("100")) == Decimal("72.5")
        assert parse_counter_offer("72.5 mnee", Decimal("63"), Decimal("100")) == Decimal("72.5")

    def test_prose_with_numbers_falls_back(self):
        """A reply that is more than an amount is not read as one."""
        assert parse_counter_offer("Round 2 offer: 80", Decimal("63"), Decimal("100")) == Decimal("69.3")
        assert parse_counter_offer("I suggest 72.5 MNEE", Decimal("63"), Decimal("100")) == Decimal("69.3")

    def test_capped_at_listed_price(self):
        assert parse_counter_offer("150", Decimal("63"), Decimal("100")) == Decimal("100")

    def test_fallback_increment(self):
        """No number: min(O x 1.10, P)."""
        assert parse_counter_offer("raise a little", Decimal("63"), Decimal("100")) == Decimal("69.3")

    def test_fallback_capped(self):
        assert parse_counter_offer("", Decimal("95"), Decimal("100")) == Decimal("100")

    def test_zero_is_not_an_offer(self):
        assert parse_counter_offer("0", Decimal("50"), Decimal("100")) == Decimal("55")


class TestProtocol:
    """Bounded-round negotiation loop."""

    async def test_opening_offer_is_70_percent_of_budget(self):
        """P=100, B=90 opens at 63."""
        outcome = await NegotiationProtocol().negotiate(Decimal("100"), Decimal("90"))
        assert outcome.rounds[0].our_offer == Decimal("63")

    async def test_converges_on_seller_counter(self):
        """63 is countered at 90, and 90 is then accepted."""
        outcome = await NegotiationProtocol().negotiate(Decimal("100"), Decimal("90"))
        assert outcome.accepted is True
        assert [r.our_offer for r in outcome.rounds] == [Decimal("63"), Decimal("90")]
        assert outcome.final_price == Decimal("90")
        assert outcome.savings_percent == Decimal("10.00")
        assert outcome.confidence == 0.9

    async def test_bounded_rounds(self):
        """A seller that never accepts runs exactly R rounds and pays list price."""
        protocol = NegotiationProtocol(seller=never_accepts)
        outcome = await protocol.negotiate(Decimal("100"), Decimal("90"), max_rounds=4)
        assert len(outcome.rounds) == 4
        assert outcome.accepted is False
        assert outcome.final_price == Decimal("100")
        assert outcome.savings == Decimal("0")
        assert outcome.confidence == 0.5

    async def test_deterministic(self):
        """Same inputs, same rounds."""
        first = await NegotiationProtocol().negotiate(Decimal("100"), Decimal("100"))
        second = await NegotiationProtocol().negotiate(Decimal("100"), Decimal("100"))
        assert first.rounds == second.rounds
        assert first.final_price == second.final_price == Decimal("85")

    async def test_rounds_are_immutable(self):
        outcome = await NegotiationProtocol().negotiate(Decimal("100"), Decimal("90"))
        with pytest.raises(ValidationError):
            outcome.rounds[0].our_offer = Decimal("1")

    async def test_round_records_seller_reply(self):
        outcome = await NegotiationProtocol().negotiate(Decimal("100"), Decimal("90"))
        first: NegotiationRound = outcome.rounds[0]
        assert first.round == 1
        assert first.seller_counter_offer == Decimal("90")
        assert first.seller_response == "Offer too low, here's my counteroffer"


class TestNegotiationAgent:
    """Negotiator driven by text generation."""

    async def test_uses_generated_counter_offer(self):
        """Strategy and counter-offer come from the generator with their own settings."""
        generator = ScriptedTextGenerator(replies=["anchor low", "86"])
        agent = NegotiationAgent(generator)
        task = AgentTask(
            objective="negotiate",
            parameters=NegotiationParams(
                service_id="svc_1", listed_price=Decimal("100"), budget_limit=Decimal("100")
            ),
        )
        result = await agent.run(task)

        assert result.success is True
        assert result.output.accepted is True
        assert result.output.final_price == Decimal("86")
        strategy_options = generator.calls[0][1]
        counter_options = generator.calls[1][1]
        assert (strategy_options.temperature, strategy_options.max_tokens) == (0.6, 200)
        assert (counter_options.temperature, counter_options.max_tokens) == (0.3, 50)

    async def test_malformed_reply_falls_back(self):
        """Non-numeric counter-offer text uses the 10% increment."""
        generator = ScriptedTextGenerator(default="let's see")
        agent = NegotiationAgent(generator)
        task = AgentTask(
            objective="negotiate",
            parameters=NegotiationParams(
                service_id="svc_1", listed_price=Decimal("100"), budget_limit=Decimal("100")
            ),
        )
        result = await agent.run(task)
        assert result.output.rounds[0].our_offer == Decimal("77")
        assert result.output.accepted is True
