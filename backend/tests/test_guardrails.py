"""
Tests for the Guardrails Policy
===============================
"""
from decimal import Decimal

from agentpay.models.agents import Agent, AgentCapabilities, AgentRole
from agentpay.models.policy import GuardrailsPolicy
from agentpay.models.transactions import Transaction, TransactionStatus

AGENT_WALLET = "0x" + "a" * 40
PROVIDER_WALLET = "0x" + "b" * 40
OTHER_WALLET = "0x" + "c" * 40


def make_transaction(amount="100", to_address=PROVIDER_WALLET):
    return Transaction.initiate(
        agent_id="agt_1",
        service_id="svc_1",
        amount=Decimal(amount),
        from_address=AGENT_WALLET,
        to_address=to_address,
        reasoning="test",
    )


class TestAmountLimit:
    """Single-transfer cap."""

    def test_amount_at_limit_passes(self):
        """The cap is inclusive."""
        policy = GuardrailsPolicy(max_transaction_amount="1000")
        assert policy.evaluate(make_transaction("1000")).passed

    def test_amount_one_unit_over_fails(self):
        policy = GuardrailsPolicy(max_transaction_amount="1000")
        result = policy.evaluate(make_transaction("1000.00000001"))
        assert not result.passed
        assert result.checks[0].name == "Amount Limit"
        assert "exceeds limit" in result.checks[0].reason


class TestWhitelist:
    """Recipient allowlist."""

    def test_empty_whitelist_allows_any_recipient(self):
        assert GuardrailsPolicy().evaluate(make_transaction(to_address=OTHER_WALLET)).passed

    def test_listed_recipient_passes(self):
        policy = GuardrailsPolicy(whitelisted_addresses=[PROVIDER_WALLET])
        assert policy.evaluate(make_transaction()).passed

    def test_unlisted_recipient_fails(self):
        policy = GuardrailsPolicy(whitelisted_addresses=[PROVIDER_WALLET])
        result = policy.evaluate(make_transaction(to_address=OTHER_WALLET))
        assert not result.passed
        assert result.checks[1].name == "Whitelist"
        assert not result.checks[1].passed

    def test_comparison_ignores_case(self):
        """Checksummed and lowercase forms of an address match."""
        policy = GuardrailsPolicy(whitelisted_addresses=["0x" + "B" * 40])
        assert policy.evaluate(make_transaction(to_address=PROVIDER_WALLET)).passed


class TestDailyLimit:
    """Cumulative spend per UTC day."""

    def test_reaching_limit_exactly_passes(self):
        policy = GuardrailsPolicy(daily_limit="5000")
        assert policy.evaluate(make_transaction("100"), spent_today=Decimal("4900")).passed

    def test_exceeding_limit_fails(self):
        policy = GuardrailsPolicy(daily_limit="5000")
        result = policy.evaluate(make_transaction("100.00000001"), spent_today=Decimal("4900"))
        assert not result.passed
        assert result.checks[2].name == "Daily Limit"
        assert "spent today" in result.checks[2].reason


class TestEvaluation:
    """Whole-policy behaviour."""

    def test_all_checks_always_run(self):
        """Failures do not short-circuit later checks."""
        policy = GuardrailsPolicy(
            max_transaction_amount="50",
            daily_limit="60",
            whitelisted_addresses=[OTHER_WALLET],
        )
        result = policy.evaluate(make_transaction("100"))

        assert [c.name for c in result.checks] == ["Amount Limit", "Whitelist", "Daily Limit", "Pattern Check"]
        assert [c.passed for c in result.checks] == [False, False, False, True]
        assert result.failure_reason.count("; ") == 2

    def test_pattern_check_hook(self):
        """A pattern predicate can block with its own reason."""
        def no_repeat(transaction, history):
            if any(h.to_address == transaction.to_address for h in history):
                return "Repeated recipient"
            return None

        policy = GuardrailsPolicy(pattern_check=no_repeat)
        previous = make_transaction("10")
        result = policy.evaluate(make_transaction("10"), history=[previous])
        assert not result.passed
        assert result.failure_reason == "Repeated recipient"
        assert policy.evaluate(make_transaction("10")).passed

    def test_evaluation_is_pure(self):
        """Evaluating twice gives the same verdicts and leaves the transaction pending."""
        policy = GuardrailsPolicy(max_transaction_amount="50")
        transaction = make_transaction("100")
        first = policy.evaluate(transaction)
        second = policy.evaluate(transaction)
        assert first.checks == second.checks
        assert transaction.status == TransactionStatus.PENDING

    def test_for_agent_narrows_cap(self):
        """An agent's own lower cap takes effect."""
        agent = Agent.create(
            "buyer",
            AgentRole.EXECUTOR,
            AGENT_WALLET,
            capabilities=AgentCapabilities(max_transaction_amount="25"),
        )
        policy = GuardrailsPolicy(max_transaction_amount="1000").for_agent(agent)
        assert policy.max_transaction_amount == Decimal("25")
        assert not policy.evaluate(make_transaction("30")).passed

    def test_for_agent_keeps_lower_policy_cap(self):
        agent = Agent.create("buyer", AgentRole.EXECUTOR, AGENT_WALLET)
        policy = GuardrailsPolicy(max_transaction_amount="10").for_agent(agent)
        assert policy.max_transaction_amount == Decimal("10")
