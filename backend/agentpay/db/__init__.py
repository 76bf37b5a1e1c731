"""
Database package for AgentPay.

Exports engine setup, ORM models and repositories.
"""
from .init_db import (
    configure_database,
    create_engine,
    create_session_factory,
    dispose_database,
    get_engine,
    get_session_factory,
    initialize_database,
)
from .models import Base, AgentModel, ServiceModel, TransactionModel, PaymentSessionModel
from .repositories import (
    AgentRepository,
    PaymentSessionRepository,
    ServiceRepository,
    TransactionRepository,
)

__all__ = [
    "configure_database",
    "create_engine",
    "create_session_factory",
    "dispose_database",
    "get_engine",
    "get_session_factory",
    "initialize_database",
    "Base",
    "AgentModel",
    "ServiceModel",
    "TransactionModel",
    "PaymentSessionModel",
    "AgentRepository",
    "PaymentSessionRepository",
    "ServiceRepository",
    "TransactionRepository",
]
