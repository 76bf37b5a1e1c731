"""
Agent Task Contracts

Each role capability receives an AgentTask whose parameters are one of the
tagged structs below and answers with an AgentResult. The orchestrator
collects one WorkflowStep per role into the WorkflowResult.
"""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field

from ..exceptions import InvalidParameterError


# ============================================================================
# Tagged parameter structs
# ============================================================================

class PlanningParams(BaseModel):
    kind: Literal["planning"] = "planning"
    agent_id: str
    service_id: str
    budget_limit: Decimal


class DiscoveryParams(BaseModel):
    kind: Literal["discovery"] = "discovery"
    service_id: str
    allowed_categories: List[str] = Field(default_factory=list)


class NegotiationParams(BaseModel):
    kind: Literal["negotiation"] = "negotiation"
    service_id: str
    listed_price: Decimal
    budget_limit: Decimal
    max_rounds: int = 5


class ExecutionParams(BaseModel):
    kind: Literal["execution"] = "execution"
    agent_id: str
    service_id: str
    to_address: str
    amount: Decimal
    budget_limit: Decimal
    reasoning: str = ""


class VerificationParams(BaseModel):
    kind: Literal["verification"] = "verification"
    transaction_id: str
    expected_amount: Decimal
    expected_recipient: str


class ReflectionParams(BaseModel):
    kind: Literal["reflection"] = "reflection"
    agent_id: str
    service_id: str
    original_price: Decimal
    final_price: Decimal
    negotiation_accepted: bool
    rounds: int = 0
    payment_verified: bool = False
    failure_reason: Optional[str] = None


class MemoryWriteParams(BaseModel):
    kind: Literal["memory"] = "memory"
    key: str
    value: Dict[str, Any]


TaskParameters = Annotated[
    Union[
        PlanningParams,
        DiscoveryParams,
        NegotiationParams,
        ExecutionParams,
        VerificationParams,
        ReflectionParams,
        MemoryWriteParams,
    ],
    Field(discriminator="kind"),
]

P = TypeVar("P", bound=BaseModel)


class AgentTask(BaseModel):
    """
    Unit of work handed to one role capability.

    Attributes:
        objective: Human-readable goal, used in prompts and logs
        parameters: Tagged struct matching the receiving role
        timeout: Seconds before the orchestrator abandons the step
        max_retries: Extra attempts on ExternalCapabilityError
    """
    objective: str
    parameters: TaskParameters
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=1, ge=0)

    def require(self, params_type: Type[P]) -> P:
        """Return the parameters if they are of the expected kind."""
        if not isinstance(self.parameters, params_type):
            raise InvalidParameterError(
                f"Expected {params_type.__name__}, got {type(self.parameters).__name__}",
                {"objective": self.objective, "kind": self.parameters.kind}
            )
        return self.parameters


class AgentResult(BaseModel):
    success: bool
    output: Any = None
    reasoning: str = ""
    tools_used: List[str] = Field(default_factory=list)
    confidence_score: float = 0.0
    error_message: Optional[str] = None
    execution_time: float = 0.0
    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def failed(cls, error_message: str, reasoning: str = "", **details: Any) -> "AgentResult":
        return cls(success=False, error_message=error_message, reasoning=reasoning, details=details)


class ReflectionOutcome(BaseModel):
    insights: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    learnings: List[str] = Field(default_factory=list)
    savings_percent: Decimal = Decimal("0")


# ============================================================================
# Workflow result
# ============================================================================

class WorkflowStep(BaseModel):
    name: str
    success: bool
    output: str = ""
    execution_time: float = 0.0


class WorkflowResult(BaseModel):
    agent_id: str
    service_id: str
    session_id: Optional[str] = None
    success: bool = False
    final_price: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    transaction_hash: Optional[str] = None
    steps: List[WorkflowStep] = Field(default_factory=list)
    failure_reason: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def add_step(self, name: str, success: bool, output: str = "", execution_time: float = 0.0) -> None:
        self.steps.append(WorkflowStep(name=name, success=success, output=output, execution_time=execution_time))
