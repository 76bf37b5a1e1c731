"""
API Dependencies

Holds the repositories, chain client, memory store and orchestrator the
routers share. Configured once in the application lifespan.
"""
import logging
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker
from strands import Agent

from ..agents.base import Capability, RoleCapability
from ..agents.coordinator import PaymentSessionOrchestrator
from ..agents.discovery import StrandsDiscoveryAgent
from ..agents.memory import BoundedMemoryStore
from ..config import settings
from ..db.repositories import AgentRepository, PaymentSessionRepository, ServiceRepository, TransactionRepository
from ..services.chain_service import ChainClient
from ..services.text_generation import TextGenerator

logger = logging.getLogger(__name__)


class AppServices:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        chain: ChainClient,
        text_generator: Optional[TextGenerator] = None,
        use_strands_discovery: bool = False,
        discovery_agent: Optional[Agent] = None,
    ):
        """
        Args:
            session_factory: Async session factory for the repositories
            chain: Ledger the payments settle on
            text_generator: Model behind planning, negotiation and reflection
            use_strands_discovery: Let a Strands agent decide discovery
            discovery_agent: Prebuilt Strands agent; implies use_strands_discovery
        """
        self.agents = AgentRepository(session_factory)
        self.services = ServiceRepository(session_factory)
        self.transactions = TransactionRepository(session_factory)
        self.sessions = PaymentSessionRepository(session_factory)
        self.chain = chain
        self.memory_store = BoundedMemoryStore(settings.memory_capacity)

        roles: Dict[Capability, RoleCapability] = {}
        if use_strands_discovery or discovery_agent is not None:
            roles[Capability.DISCOVERY] = StrandsDiscoveryAgent(self.services, discovery_agent)
            logger.info("Discovery delegated to the Strands agent")

        self.orchestrator = PaymentSessionOrchestrator(
            agents=self.agents,
            services=self.services,
            transactions=self.transactions,
            sessions=self.sessions,
            chain=chain,
            memory_store=self.memory_store,
            text_generator=text_generator,
            roles=roles,
        )


_services: Optional[AppServices] = None


def configure_services(
    session_factory: async_sessionmaker,
    chain: ChainClient,
    text_generator: Optional[TextGenerator] = None,
    use_strands_discovery: bool = False,
) -> AppServices:
    global _services
    _services = AppServices(session_factory, chain, text_generator, use_strands_discovery)
    return _services


def get_services() -> AppServices:
    """FastAPI dependency returning the configured services."""
    if _services is None:
        raise RuntimeError("Services not configured. Call configure_services() first.")
    return _services
