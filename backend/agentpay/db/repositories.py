"""
Repositories

Translate between domain models and ORM rows. Each call opens its own
session from the injected factory and commits before returning.
"""
import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..exceptions import InsufficientBalanceError, NotFoundError
from ..models.agents import Agent, AgentCapabilities, AgentRole, AgentStatus
from ..models.policy import GuardrailsCheck
from ..models.services import Service, ServiceCategory
from ..models.sessions import PaymentSession, PaymentSessionStatus, PaymentStep
from ..models.transactions import Transaction, TransactionStatus, VerificationResult
from ..models.values import from_units, to_units
from .models import AgentModel, PaymentSessionModel, ServiceModel, TransactionModel

logger = logging.getLogger(__name__)

SPENDING_STATUSES = (TransactionStatus.SUBMITTED.value, TransactionStatus.COMPLETED.value)
OPEN_STATUSES = (TransactionStatus.PENDING.value, TransactionStatus.SUBMITTED.value)


def _utc_day_bounds(day: Optional[datetime] = None):
    day = day or datetime.utcnow()
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)


# ============================================================================
# Agents
# ============================================================================

def _agent_to_row(agent: Agent) -> AgentModel:
    return AgentModel(
        id=agent.id,
        name=agent.name,
        role=agent.role.value,
        wallet_address=agent.wallet_address,
        status=agent.status.value,
        balance_units=to_units(agent.balance),
        capabilities=agent.capabilities.model_dump_json(),
        created_at=agent.created_at,
        last_active_at=agent.last_active_at,
    )


def _agent_from_row(row: AgentModel) -> Agent:
    return Agent(
        id=row.id,
        name=row.name,
        role=AgentRole(row.role),
        wallet_address=row.wallet_address,
        status=AgentStatus(row.status),
        balance=from_units(row.balance_units),
        capabilities=AgentCapabilities.model_validate_json(row.capabilities),
        created_at=row.created_at,
        last_active_at=row.last_active_at,
    )


class AgentRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_by_id(self, agent_id: str) -> Optional[Agent]:
        async with self.session_factory() as db:
            row = await db.get(AgentModel, agent_id)
            return _agent_from_row(row) if row else None

    async def create(self, agent: Agent) -> Agent:
        async with self.session_factory() as db:
            db.add(_agent_to_row(agent))
            await db.commit()
        logger.info(f"Created agent {agent.id} ({agent.name}, role={agent.role.value})")
        return agent

    async def update(self, agent: Agent) -> Agent:
        """
        Persist name, status, capabilities and last activity.

        The balance is never written from the in-memory snapshot; debits and
        refunds land through conditional UPDATEs. The returned agent carries
        the stored balance.
        """
        async with self.session_factory() as db:
            row = await db.get(AgentModel, agent.id)
            if row is None:
                raise NotFoundError(f"Agent not found: {agent.id}", {"agent_id": agent.id})
            row.name = agent.name
            row.status = agent.status.value
            row.capabilities = agent.capabilities.model_dump_json()
            row.last_active_at = agent.last_active_at
            await db.commit()
            agent.balance = from_units(row.balance_units)
        return agent

    async def set_balance(self, agent_id: str, balance: Decimal, expected: Optional[Decimal] = None) -> bool:
        """
        Overwrite the stored balance with a targeted UPDATE.

        Args:
            agent_id: Agent to update
            balance: New balance
            expected: When given, only write while the stored balance still
                equals this value

        Returns:
            True if the balance was written, False if `expected` no longer matched

        Raises:
            NotFoundError: unknown agent
        """
        statement = update(AgentModel).where(AgentModel.id == agent_id)
        if expected is not None:
            statement = statement.where(AgentModel.balance_units == to_units(expected))
        async with self.session_factory() as db:
            async with db.begin():
                result = await db.execute(statement.values(balance_units=to_units(balance)))
                if result.rowcount == 1:
                    return True
                exists = await db.scalar(select(AgentModel.id).where(AgentModel.id == agent_id))
        if exists is None:
            raise NotFoundError(f"Agent not found: {agent_id}", {"agent_id": agent_id})
        return False

    async def get_active(self) -> List[Agent]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(AgentModel).where(AgentModel.status == AgentStatus.ACTIVE.value)
            )
            return [_agent_from_row(r) for r in result.scalars().all()]

    async def get_by_role(self, role: AgentRole) -> List[Agent]:
        async with self.session_factory() as db:
            result = await db.execute(select(AgentModel).where(AgentModel.role == role.value))
            return [_agent_from_row(r) for r in result.scalars().all()]


# ============================================================================
# Services
# ============================================================================

def _service_from_row(row: ServiceModel) -> Service:
    return Service(
        id=row.id,
        name=row.name,
        description=row.description,
        provider_address=row.provider_address,
        price=from_units(row.price_units),
        category=ServiceCategory(row.category),
        is_active=row.is_active,
        created_at=row.created_at,
    )


class ServiceRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_by_id(self, service_id: str) -> Optional[Service]:
        async with self.session_factory() as db:
            row = await db.get(ServiceModel, service_id)
            return _service_from_row(row) if row else None

    async def create(self, service: Service) -> Service:
        async with self.session_factory() as db:
            db.add(ServiceModel(
                id=service.id,
                name=service.name,
                description=service.description,
                provider_address=service.provider_address,
                price_units=to_units(service.price),
                category=service.category.value,
                is_active=service.is_active,
                created_at=service.created_at,
            ))
            await db.commit()
        logger.info(f"Created service {service.id} ({service.name}, price={service.price})")
        return service

    async def get_active(self) -> List[Service]:
        async with self.session_factory() as db:
            result = await db.execute(select(ServiceModel).where(ServiceModel.is_active.is_(True)))
            return [_service_from_row(r) for r in result.scalars().all()]

    async def get_by_category(self, category: ServiceCategory) -> List[Service]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ServiceModel).where(
                    ServiceModel.category == category.value,
                    ServiceModel.is_active.is_(True)
                )
            )
            return [_service_from_row(r) for r in result.scalars().all()]


# ============================================================================
# Transactions
# ============================================================================

def _apply_transaction(row: TransactionModel, tx: Transaction) -> None:
    row.status = tx.status.value
    row.transaction_hash = tx.transaction_hash
    row.guardrails_check = tx.guardrails_check.model_dump_json() if tx.guardrails_check else None
    row.verification = tx.verification.model_dump_json() if tx.verification else None
    row.failure_reason = tx.failure_reason
    row.gas_used = tx.gas_used
    row.gas_price_gwei = str(tx.gas_price_gwei) if tx.gas_price_gwei is not None else None
    row.completed_at = tx.completed_at
    row.failed_at = tx.failed_at


def _transaction_to_row(tx: Transaction) -> TransactionModel:
    row = TransactionModel(
        id=tx.id,
        agent_id=tx.agent_id,
        service_id=tx.service_id,
        amount_units=to_units(tx.amount),
        from_address=tx.from_address,
        to_address=tx.to_address,
        reasoning=tx.reasoning,
        initiated_at=tx.initiated_at,
    )
    _apply_transaction(row, tx)
    return row


def _transaction_from_row(row: TransactionModel) -> Transaction:
    return Transaction(
        id=row.id,
        agent_id=row.agent_id,
        service_id=row.service_id,
        amount=from_units(row.amount_units),
        from_address=row.from_address,
        to_address=row.to_address,
        reasoning=row.reasoning,
        status=TransactionStatus(row.status),
        transaction_hash=row.transaction_hash,
        guardrails_check=GuardrailsCheck.model_validate_json(row.guardrails_check) if row.guardrails_check else None,
        verification=VerificationResult.model_validate_json(row.verification) if row.verification else None,
        failure_reason=row.failure_reason,
        gas_used=row.gas_used,
        gas_price_gwei=Decimal(row.gas_price_gwei) if row.gas_price_gwei is not None else None,
        initiated_at=row.initiated_at,
        completed_at=row.completed_at,
        failed_at=row.failed_at,
    )


class TransactionRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        async with self.session_factory() as db:
            row = await db.get(TransactionModel, transaction_id)
            return _transaction_from_row(row) if row else None

    async def create(self, transaction: Transaction) -> Transaction:
        """Persist a transaction without touching balances (blocked records)."""
        async with self.session_factory() as db:
            db.add(_transaction_to_row(transaction))
            await db.commit()
        return transaction

    async def update(self, transaction: Transaction) -> Transaction:
        async with self.session_factory() as db:
            row = await db.get(TransactionModel, transaction.id)
            if row is None:
                raise NotFoundError(
                    f"Transaction not found: {transaction.id}",
                    {"transaction_id": transaction.id}
                )
            _apply_transaction(row, transaction)
            await db.commit()
        return transaction

    async def get_by_agent_id(self, agent_id: str, limit: int = 50, offset: int = 0) -> List[Transaction]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(TransactionModel)
                .where(TransactionModel.agent_id == agent_id)
                .order_by(TransactionModel.initiated_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return [_transaction_from_row(r) for r in result.scalars().all()]

    async def get_pending(self) -> List[Transaction]:
        """Transactions not yet settled (pending or submitted)."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(TransactionModel)
                .where(TransactionModel.status.in_(OPEN_STATUSES))
                .order_by(TransactionModel.initiated_at)
            )
            return [_transaction_from_row(r) for r in result.scalars().all()]

    async def get_daily_spend(self, agent_id: str, day: Optional[datetime] = None) -> Decimal:
        """Sum of submitted and completed amounts initiated on the given UTC day."""
        start, end = _utc_day_bounds(day)
        async with self.session_factory() as db:
            result = await db.execute(
                select(func.coalesce(func.sum(TransactionModel.amount_units), 0)).where(
                    TransactionModel.agent_id == agent_id,
                    TransactionModel.status.in_(SPENDING_STATUSES),
                    TransactionModel.initiated_at >= start,
                    TransactionModel.initiated_at < end,
                )
            )
            return from_units(result.scalar_one())

    async def create_with_debit(self, transaction: Transaction) -> Decimal:
        """
        Debit the agent and insert the transaction in one database transaction.

        The debit is a conditional UPDATE, so two sessions racing for the
        same balance cannot both succeed.

        Returns:
            The agent's balance after the debit

        Raises:
            InsufficientBalanceError: balance does not cover the amount
        """
        units = to_units(transaction.amount)
        async with self.session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    update(AgentModel)
                    .where(AgentModel.id == transaction.agent_id, AgentModel.balance_units >= units)
                    .values(balance_units=AgentModel.balance_units - units)
                )
                if result.rowcount != 1:
                    raise InsufficientBalanceError(
                        f"Agent {transaction.agent_id} cannot cover {transaction.amount} MNEE",
                        {"agent_id": transaction.agent_id, "amount": str(transaction.amount)}
                    )
                db.add(_transaction_to_row(transaction))
                remaining = await db.scalar(
                    select(AgentModel.balance_units).where(AgentModel.id == transaction.agent_id)
                )
        logger.info(f"Debited {transaction.amount} MNEE from agent {transaction.agent_id} for {transaction.id}")
        return from_units(remaining)

    async def fail_with_refund(self, transaction: Transaction) -> bool:
        """
        Record a failed transaction and return its amount to the agent.

        The refund only happens while the stored row is still open, so a
        second call refunds nothing.

        Returns:
            True if the agent was refunded
        """
        units = to_units(transaction.amount)
        async with self.session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    update(TransactionModel)
                    .where(TransactionModel.id == transaction.id, TransactionModel.status.in_(OPEN_STATUSES))
                    .values(
                        status=TransactionStatus.FAILED.value,
                        failure_reason=transaction.failure_reason,
                        failed_at=transaction.failed_at or datetime.utcnow(),
                    )
                )
                if result.rowcount != 1:
                    return False
                await db.execute(
                    update(AgentModel)
                    .where(AgentModel.id == transaction.agent_id)
                    .values(balance_units=AgentModel.balance_units + units)
                )
        logger.info(f"Refunded {transaction.amount} MNEE to agent {transaction.agent_id} for {transaction.id}")
        return True


# ============================================================================
# Payment sessions
# ============================================================================

class PaymentSessionRepository:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def save(self, session: PaymentSession) -> PaymentSession:
        async with self.session_factory() as db:
            await db.merge(PaymentSessionModel(
                id=session.id,
                agent_id=session.agent_id,
                service_id=session.service_id,
                status=session.status.value,
                budget_limit_units=to_units(session.budget_limit),
                negotiated_price_units=(
                    to_units(session.negotiated_price) if session.negotiated_price is not None else None
                ),
                steps=json.dumps([s.model_dump(mode="json") for s in session.steps]),
                failure_reason=session.failure_reason,
                started_at=session.started_at,
                completed_at=session.completed_at,
            ))
            await db.commit()
        return session

    async def get_by_id(self, session_id: str) -> Optional[PaymentSession]:
        async with self.session_factory() as db:
            row = await db.get(PaymentSessionModel, session_id)
            if row is None:
                return None
            return PaymentSession(
                id=row.id,
                agent_id=row.agent_id,
                service_id=row.service_id,
                status=PaymentSessionStatus(row.status),
                budget_limit=from_units(row.budget_limit_units),
                negotiated_price=(
                    from_units(row.negotiated_price_units) if row.negotiated_price_units is not None else None
                ),
                steps=[PaymentStep.model_validate(s) for s in json.loads(row.steps)],
                failure_reason=row.failure_reason,
                started_at=row.started_at,
                completed_at=row.completed_at,
            )
