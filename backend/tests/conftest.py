"""
Shared fixtures: a temporary SQLite database, repositories, a simulated
chain and a scripted text generator.
"""
from decimal import Decimal
from typing import List, Optional, Tuple

import pytest

from agentpay.agents.memory import BoundedMemoryStore
from agentpay.db.init_db import create_engine, create_session_factory, initialize_database
from agentpay.db.repositories import (
    AgentRepository,
    PaymentSessionRepository,
    ServiceRepository,
    TransactionRepository,
)
from agentpay.mocks.chain import SimulatedChain
from agentpay.models.agents import Agent, AgentRole
from agentpay.models.services import Service, ServiceCategory
from agentpay.services.text_generation import GenerationOptions

AGENT_WALLET = "0x" + "a" * 40
PROVIDER_WALLET = "0x" + "b" * 40
OTHER_WALLET = "0x" + "c" * 40


class ScriptedTextGenerator:
    """TextGenerator returning queued replies (or a default) and recording calls."""

    def __init__(self, replies: Optional[List[str]] = None, default: str = "ok"):
        self.replies = list(replies or [])
        self.default = default
        self.calls: List[Tuple[str, Optional[GenerationOptions]]] = []

    async def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        self.calls.append((prompt, options))
        return self.replies.pop(0) if self.replies else self.default


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_engine(str(tmp_path / "agentpay_test.db"))
    await initialize_database(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def agent_repo(session_factory):
    return AgentRepository(session_factory)


@pytest.fixture
def service_repo(session_factory):
    return ServiceRepository(session_factory)


@pytest.fixture
def transaction_repo(session_factory):
    return TransactionRepository(session_factory)


@pytest.fixture
def session_repo(session_factory):
    return PaymentSessionRepository(session_factory)


@pytest.fixture
def chain():
    return SimulatedChain()


@pytest.fixture
def memory_store():
    return BoundedMemoryStore(capacity=10)


@pytest.fixture
async def funded_agent(agent_repo):
    """Active executor agent holding 200 MNEE."""
    agent = Agent.create("buyer-1", AgentRole.EXECUTOR, AGENT_WALLET)
    agent.update_balance(Decimal("200"))
    agent.activate()
    await agent_repo.create(agent)
    return agent


@pytest.fixture
async def data_service(service_repo):
    """Active data API listed at 100 MNEE."""
    service = Service(
        name="Market Data Feed",
        description="Real-time market data",
        provider_address=PROVIDER_WALLET,
        price=Decimal("100"),
        category=ServiceCategory.DATA_API,
    )
    await service_repo.create(service)
    return service
