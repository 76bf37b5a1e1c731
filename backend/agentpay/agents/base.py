"""
Role Capability Interface

Every role (planner, discovery, negotiator, executor, verifier, reflector,
memory writer) is a plain object exposing `capability` and `run(task)`.
The orchestrator only depends on this protocol.
"""
from enum import Enum
from typing import Protocol

from ..models.tasks import AgentResult, AgentTask


class Capability(str, Enum):
    PLANNING = "planning"
    DISCOVERY = "discovery"
    NEGOTIATION = "negotiation"
    EXECUTION = "execution"
    VERIFICATION = "verification"
    REFLECTION = "reflection"
    MEMORY = "memory"


# Steps that may run twice without side effects on balances or the chain
IDEMPOTENT_CAPABILITIES = frozenset({
    Capability.PLANNING,
    Capability.DISCOVERY,
    Capability.NEGOTIATION,
    Capability.VERIFICATION,
    Capability.REFLECTION,
    Capability.MEMORY,
})


class RoleCapability(Protocol):
    capability: Capability

    async def run(self, task: AgentTask) -> AgentResult:
        """
        Perform one task.

        Expected negative outcomes come back as AgentResult(success=False).
        External faults raise ExternalCapabilityError; precondition
        violations raise DomainInvariantError.
        """
        ...
