"""
SQLAlchemy ORM Models for AgentPay

Amounts are stored as integer MNEE base units (1 MNEE = 10^8 units) in
*_units columns. Structured payloads (capabilities, guardrail checks,
verification results, session steps) are JSON blobs in Text columns.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, BigInteger, Boolean, DateTime, ForeignKey, Text, CheckConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AgentModel(Base):
    """
    ORM model for agents table.

    Agents are never deleted; deactivation only flips status.
    """
    __tablename__ = "agents"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False, index=True)
    wallet_address = Column(String, nullable=False)
    status = Column(String, nullable=False, index=True)
    balance_units = Column(BigInteger, nullable=False, default=0)
    capabilities = Column(Text, nullable=False)  # JSON blob
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_active_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint("balance_units >= 0", name="agent_balance_non_negative"),
    )


class ServiceModel(Base):
    """ORM model for services table."""
    __tablename__ = "services"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    provider_address = Column(String, nullable=False)
    price_units = Column(BigInteger, nullable=False)
    category = Column(String, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class TransactionModel(Base):
    """
    ORM model for transactions table.

    Rows are created in the same database transaction as the agent debit.
    """
    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    agent_id = Column(String, ForeignKey("agents.id"), nullable=False, index=True)
    service_id = Column(String, nullable=False, index=True)
    amount_units = Column(BigInteger, nullable=False)
    from_address = Column(String, nullable=False)
    to_address = Column(String, nullable=False)
    reasoning = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, index=True)
    transaction_hash = Column(String, index=True)
    guardrails_check = Column(Text)  # JSON blob
    verification = Column(Text)  # JSON blob
    failure_reason = Column(Text)
    gas_used = Column(Integer)
    gas_price_gwei = Column(String)
    initiated_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime)
    failed_at = Column(DateTime)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'submitted', 'completed', 'failed', 'blocked')",
            name="transaction_status_check"
        ),
    )


class PaymentSessionModel(Base):
    """ORM model for payment_sessions table (one row per orchestrated purchase)."""
    __tablename__ = "payment_sessions"

    id = Column(String, primary_key=True)
    agent_id = Column(String, ForeignKey("agents.id"), nullable=False, index=True)
    service_id = Column(String, nullable=False)
    status = Column(String, nullable=False, index=True)
    budget_limit_units = Column(BigInteger, nullable=False)
    negotiated_price_units = Column(BigInteger)
    steps = Column(Text, nullable=False, default="[]")  # JSON blob
    failure_reason = Column(Text)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime)
