"""
Agent Domain Model

An agent is an autonomous economic actor with a wallet, an MNEE balance and
a capability set. Agents are created once and only ever soft-deactivated.
"""
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..exceptions import InsufficientBalanceError
from .values import to_mnee, validate_wallet_address, format_mnee


ACTIVITY_WINDOW = timedelta(hours=24)


class AgentRole(str, Enum):
    PLANNER = "planner"
    NEGOTIATOR = "negotiator"
    EXECUTOR = "executor"
    VERIFIER = "verifier"
    REFLECTOR = "reflector"
    COORDINATOR = "coordinator"


class AgentStatus(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    INACTIVE = "inactive"
    DEGRADED = "degraded"
    SUSPENDED = "suspended"


class AgentCapabilities(BaseModel):
    """What an agent is allowed to do."""
    can_negotiate: bool = True
    can_plan: bool = True
    can_reflect: bool = True
    max_transaction_amount: Decimal = Decimal("1000")
    allowed_categories: List[str] = Field(default_factory=list)
    enabled_tools: List[str] = Field(default_factory=list)

    @field_validator("max_transaction_amount", mode="before")
    @classmethod
    def parse_amount(cls, v):
        return to_mnee(v)

    def is_valid(self) -> bool:
        return self.max_transaction_amount > 0 and len(self.enabled_tools) > 0

    @classmethod
    def create_default(cls) -> "AgentCapabilities":
        return cls(
            can_negotiate=True,
            can_plan=True,
            can_reflect=True,
            max_transaction_amount=Decimal("1000"),
            allowed_categories=["data_api", "ai_model"],
            enabled_tools=["web_search", "blockchain_query", "price_check"],
        )


# ============================================================================
# Agent Memory (bounded)
# ============================================================================

class ThoughtEntry(BaseModel):
    thought: str
    reasoning: str
    timestamp: datetime


class AgentReflection(BaseModel):
    """Outcome of reflecting on one action."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action_type: str
    description: str
    success: bool
    insights: str = ""
    learnings: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class AgentMemory(BaseModel):
    """
    Per-agent thought and reflection log.

    Both lists keep at most `capacity` entries; the oldest entry is dropped
    first when the capacity is reached.
    """
    capacity: int = Field(default=100, ge=1)
    thoughts: List[ThoughtEntry] = Field(default_factory=list)
    reflections: List[AgentReflection] = Field(default_factory=list)

    def add_thought(self, thought: str, reasoning: str) -> None:
        self.thoughts.append(ThoughtEntry(thought=thought, reasoning=reasoning, timestamp=datetime.utcnow()))
        del self.thoughts[:-self.capacity]

    def add_reflection(self, reflection: AgentReflection) -> None:
        self.reflections.append(reflection)
        del self.reflections[:-self.capacity]

    def recent_thoughts(self, count: int = 10) -> List[ThoughtEntry]:
        return list(reversed(self.thoughts[-count:]))


# ============================================================================
# Self-Check
# ============================================================================

class Check(BaseModel):
    name: str
    passed: bool
    message: str


class SelfCheckResult(BaseModel):
    """Health record produced by Agent.perform_self_check()."""
    agent_id: str
    checks: List[Check]
    performed_at: datetime

    @property
    def is_healthy(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def failed_checks(self) -> List[str]:
        return [c.name for c in self.checks if not c.passed]


class PaymentGoal(BaseModel):
    description: str
    service_id: str
    max_budget: Decimal


class PlanStep(BaseModel):
    order: int
    description: str
    is_critical: bool = True


class AgentPlan(BaseModel):
    """Ordered payment plan produced before a session runs."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    agent_id: str
    goal: PaymentGoal
    budget_limit: Decimal
    strategy: str = ""
    steps: List[PlanStep] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def add_step(self, description: str, is_critical: bool = True) -> None:
        self.steps.append(PlanStep(order=len(self.steps) + 1, description=description, is_critical=is_critical))


# ============================================================================
# Agent
# ============================================================================

class Agent(BaseModel):
    """
    Autonomous payment agent.

    Invariants:
    - balance is never negative
    - status changes only through the lifecycle methods below
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(min_length=1)
    role: AgentRole
    wallet_address: str
    status: AgentStatus = AgentStatus.INITIALIZING
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities.create_default)
    balance: Decimal = Decimal("0")
    memory: Optional[AgentMemory] = Field(default_factory=AgentMemory)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_active_at: Optional[datetime] = None

    @field_validator("wallet_address")
    @classmethod
    def check_address(cls, v: str) -> str:
        return validate_wallet_address(v)

    @field_validator("balance", mode="before")
    @classmethod
    def parse_balance(cls, v):
        return to_mnee(v)

    @classmethod
    def create(
        cls,
        name: str,
        role: AgentRole,
        wallet_address: str,
        capabilities: Optional[AgentCapabilities] = None
    ) -> "Agent":
        return cls(
            name=name,
            role=role,
            wallet_address=wallet_address,
            capabilities=capabilities or AgentCapabilities.create_default(),
        )

    @property
    def can_transact(self) -> bool:
        return self.status in (AgentStatus.ACTIVE, AgentStatus.DEGRADED)

    def update_balance(self, new_balance: Any) -> Decimal:
        """Replace the balance; returns the previous balance."""
        old_balance = self.balance
        self.balance = to_mnee(new_balance)
        return old_balance

    def activate(self) -> None:
        self.status = AgentStatus.ACTIVE
        self.last_active_at = datetime.utcnow()

    def deactivate(self) -> None:
        self.status = AgentStatus.INACTIVE

    def suspend(self) -> None:
        self.status = AgentStatus.SUSPENDED

    def start_session(self, purpose: str) -> None:
        self.activate()
        self.record_thought(f"Session started: {purpose}", "session")

    def create_payment_plan(self, goal: PaymentGoal, budget_limit: Decimal) -> AgentPlan:
        if self.balance < budget_limit:
            raise InsufficientBalanceError(
                f"Agent {self.name} has insufficient balance",
                {"balance": str(self.balance), "budget_limit": str(budget_limit)}
            )
        return AgentPlan(agent_id=self.id, goal=goal, budget_limit=budget_limit)

    def record_thought(self, thought: str, reasoning: str) -> None:
        if self.memory is not None:
            self.memory.add_thought(thought, reasoning)

    def reflect_on_action(self, reflection: AgentReflection) -> None:
        if self.memory is not None:
            self.memory.add_reflection(reflection)

    def perform_self_check(self, now: Optional[datetime] = None) -> SelfCheckResult:
        """
        Run the four health checks and degrade the agent if any fails.

        Checks:
        - Balance: balance >= 0
        - Capabilities: max_transaction_amount > 0 and at least one enabled tool
        - Memory: memory store initialized
        - Activity: never active, or active within the last 24 hours
        """
        now = now or datetime.utcnow()
        last_active = self.last_active_at.isoformat() if self.last_active_at else "Never"

        checks = [
            Check(name="Balance", passed=self.balance >= 0, message=f"Balance: {format_mnee(self.balance)}"),
            Check(
                name="Capabilities",
                passed=self.capabilities is not None and self.capabilities.is_valid(),
                message="Capabilities OK" if self.capabilities and self.capabilities.is_valid()
                else "Capabilities invalid: need max_transaction_amount > 0 and an enabled tool",
            ),
            Check(
                name="Memory",
                passed=self.memory is not None,
                message="Memory initialized" if self.memory is not None else "Memory not initialized",
            ),
            Check(
                name="Activity",
                passed=self.last_active_at is None or (now - self.last_active_at) < ACTIVITY_WINDOW,
                message=f"Last active: {last_active}",
            ),
        ]

        result = SelfCheckResult(agent_id=self.id, checks=checks, performed_at=now)
        if not result.is_healthy:
            self.status = AgentStatus.DEGRADED
        return result

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "wallet_address": self.wallet_address,
            "status": self.status.value,
            "balance": str(self.balance),
            "capabilities": self.capabilities.model_dump(mode="json"),
            "created_at": self.created_at.isoformat(),
            "last_active_at": self.last_active_at.isoformat() if self.last_active_at else None,
        }
