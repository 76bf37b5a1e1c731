"""
Tests for the Repositories
==========================

Run against a temporary SQLite database.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from agentpay.exceptions import InsufficientBalanceError, NotFoundError
from agentpay.models.agents import Agent, AgentRole, AgentStatus
from agentpay.models.policy import GuardrailsPolicy
from agentpay.models.services import Service, ServiceCategory
from agentpay.models.sessions import PaymentSession, PaymentStepType
from agentpay.models.transactions import Transaction, TransactionStatus

AGENT_WALLET = "0x" + "a" * 40
PROVIDER_WALLET = "0x" + "b" * 40


def make_transaction(agent, amount, **fields):
    return Transaction(
        agent_id=agent.id,
        service_id="svc_1",
        amount=Decimal(amount),
        from_address=agent.wallet_address,
        to_address=PROVIDER_WALLET,
        **fields,
    )


class TestAgentRepository:
    """Agent persistence."""

    async def test_round_trip(self, agent_repo, funded_agent):
        loaded = await agent_repo.get_by_id(funded_agent.id)
        assert loaded.balance == Decimal("200")
        assert loaded.capabilities == funded_agent.capabilities
        assert loaded.status == funded_agent.status

    async def test_missing_agent(self, agent_repo):
        assert await agent_repo.get_by_id("nope") is None
        with pytest.raises(NotFoundError):
            await agent_repo.update(Agent.create("ghost", AgentRole.PLANNER, AGENT_WALLET))

    async def test_active_and_role_queries(self, agent_repo, funded_agent):
        idle = Agent.create("idle", AgentRole.PLANNER, AGENT_WALLET)
        await agent_repo.create(idle)

        assert [a.id for a in await agent_repo.get_active()] == [funded_agent.id]
        assert [a.id for a in await agent_repo.get_by_role(AgentRole.PLANNER)] == [idle.id]

    async def test_status_update_keeps_debited_balance(self, agent_repo, transaction_repo, funded_agent):
        """A stale snapshot written back after a debit does not restore the old balance."""
        stale = await agent_repo.get_by_id(funded_agent.id)
        await transaction_repo.create_with_debit(make_transaction(funded_agent, "85"))

        stale.deactivate()
        updated = await agent_repo.update(stale)

        assert updated.balance == Decimal("115")
        stored = await agent_repo.get_by_id(funded_agent.id)
        assert stored.balance == Decimal("115")
        assert stored.status == AgentStatus.INACTIVE

    async def test_set_balance(self, agent_repo, funded_agent):
        assert await agent_repo.set_balance(funded_agent.id, Decimal("180")) is True
        assert (await agent_repo.get_by_id(funded_agent.id)).balance == Decimal("180")

    async def test_set_balance_expected_mismatch(self, agent_repo, funded_agent):
        """A conditional write is skipped once the stored balance has moved."""
        assert await agent_repo.set_balance(funded_agent.id, Decimal("10"), expected=Decimal("150")) is False
        assert (await agent_repo.get_by_id(funded_agent.id)).balance == Decimal("200")

        assert await agent_repo.set_balance(funded_agent.id, Decimal("10"), expected=Decimal("200")) is True
        assert (await agent_repo.get_by_id(funded_agent.id)).balance == Decimal("10")

    async def test_set_balance_unknown_agent(self, agent_repo):
        with pytest.raises(NotFoundError):
            await agent_repo.set_balance("missing", Decimal("1"))


class TestServiceRepository:
    async def test_category_query_skips_inactive(self, service_repo, data_service):
        retired = Service(
            name="Old Feed",
            provider_address=PROVIDER_WALLET,
            price=Decimal("5"),
            category=ServiceCategory.DATA_API,
            is_active=False,
        )
        await service_repo.create(retired)

        found = await service_repo.get_by_category(ServiceCategory.DATA_API)
        assert [s.id for s in found] == [data_service.id]
        assert (await service_repo.get_by_id(retired.id)).is_active is False


class TestDebit:
    """Atomic debit and refund."""

    async def test_debit_returns_remaining_balance(self, agent_repo, transaction_repo, funded_agent):
        remaining = await transaction_repo.create_with_debit(make_transaction(funded_agent, "150"))
        assert remaining == Decimal("50")
        assert (await agent_repo.get_by_id(funded_agent.id)).balance == Decimal("50")

    async def test_second_debit_cannot_overdraw(self, agent_repo, transaction_repo, funded_agent):
        """Two 150 debits against 200: the second raises and inserts nothing."""
        await transaction_repo.create_with_debit(make_transaction(funded_agent, "150"))
        second = make_transaction(funded_agent, "150")
        with pytest.raises(InsufficientBalanceError):
            await transaction_repo.create_with_debit(second)

        assert (await agent_repo.get_by_id(funded_agent.id)).balance == Decimal("50")
        assert await transaction_repo.get_by_id(second.id) is None

    async def test_refund_happens_once(self, agent_repo, transaction_repo, funded_agent):
        transaction = make_transaction(funded_agent, "80")
        await transaction_repo.create_with_debit(transaction)
        transaction.fail("Transfer failed: node down")

        assert await transaction_repo.fail_with_refund(transaction) is True
        assert await transaction_repo.fail_with_refund(transaction) is False

        assert (await agent_repo.get_by_id(funded_agent.id)).balance == Decimal("200")
        stored = await transaction_repo.get_by_id(transaction.id)
        assert stored.status == TransactionStatus.FAILED
        assert stored.failure_reason == "Transfer failed: node down"


class TestTransactionQueries:
    async def test_daily_spend_counts_only_todays_spending(self, transaction_repo, funded_agent):
        """Blocked, failed and yesterday's transactions are excluded."""
        yesterday = datetime.utcnow() - timedelta(days=1)
        for amount, status, initiated_at in [
            ("10", TransactionStatus.COMPLETED, None),
            ("20", TransactionStatus.SUBMITTED, None),
            ("40", TransactionStatus.BLOCKED, None),
            ("80", TransactionStatus.FAILED, None),
            ("160", TransactionStatus.COMPLETED, yesterday),
        ]:
            fields = {"status": status}
            if initiated_at:
                fields["initiated_at"] = initiated_at
            await transaction_repo.create(make_transaction(funded_agent, amount, **fields))

        assert await transaction_repo.get_daily_spend(funded_agent.id) == Decimal("30")
        assert await transaction_repo.get_daily_spend(funded_agent.id, yesterday) == Decimal("160")

    async def test_pending_lists_open_transactions(self, transaction_repo, funded_agent):
        open_tx = make_transaction(funded_agent, "1", status=TransactionStatus.SUBMITTED)
        await transaction_repo.create(open_tx)
        await transaction_repo.create(make_transaction(funded_agent, "1", status=TransactionStatus.COMPLETED))

        assert [t.id for t in await transaction_repo.get_pending()] == [open_tx.id]

    async def test_guardrails_check_survives_storage(self, transaction_repo, funded_agent):
        transaction = make_transaction(funded_agent, "100")
        transaction.apply_guardrails(GuardrailsPolicy(max_transaction_amount="50"))
        await transaction_repo.create(transaction)

        stored = await transaction_repo.get_by_id(transaction.id)
        assert stored.status == TransactionStatus.BLOCKED
        assert stored.guardrails_check.checks[0].name == "Amount Limit"
        assert stored.guardrails_check.passed is False

    async def test_agent_history_newest_first(self, transaction_repo, funded_agent):
        older = make_transaction(funded_agent, "1", initiated_at=datetime.utcnow() - timedelta(hours=1))
        newer = make_transaction(funded_agent, "2")
        await transaction_repo.create(older)
        await transaction_repo.create(newer)

        history = await transaction_repo.get_by_agent_id(funded_agent.id)
        assert [t.id for t in history] == [newer.id, older.id]
        assert len(await transaction_repo.get_by_agent_id(funded_agent.id, limit=1, offset=1)) == 1


class TestPaymentSessionRepository:
    async def test_save_and_reload(self, session_repo):
        session = PaymentSession.start("agt_1", "svc_1", Decimal("100"))
        session.add_step(PaymentStepType.PLANNING, "Plan created", {"steps": 7})
        await session_repo.save(session)

        session.set_negotiated_price(Decimal("85"))
        session.complete()
        await session_repo.save(session)

        loaded = await session_repo.get_by_id(session.id)
        assert loaded.status == session.status
        assert loaded.negotiated_price == Decimal("85")
        assert loaded.steps[0].payload() == {"steps": 7}
        assert loaded.completed_at is not None

    async def test_missing_session(self, session_repo):
        assert await session_repo.get_by_id("ses_missing") is None
