"""
Payment Session Model

Audit record of one orchestrated purchase: status, negotiated price and an
append-only step log.
"""
import json
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .values import quantize_mnee


class PaymentSessionStatus(str, Enum):
    PLANNING = "planning"
    DISCOVERING = "discovering"
    NEGOTIATING = "negotiating"
    NEGOTIATED = "negotiated"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentStepType(str, Enum):
    PLANNING = "planning"
    DISCOVERY = "discovery"
    NEGOTIATION = "negotiation"
    GUARDRAILS = "guardrails"
    EXECUTION = "execution"
    VERIFICATION = "verification"
    REFLECTION = "reflection"
    MEMORY = "memory"
    ERROR = "error"


class PaymentStep(BaseModel):
    type: PaymentStepType
    description: str
    data: str = "{}"  # JSON text
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def payload(self) -> Dict[str, Any]:
        return json.loads(self.data)


class PaymentSession(BaseModel):
    id: str = Field(default_factory=lambda: f"ses_{uuid.uuid4().hex[:16]}")
    agent_id: str
    service_id: str
    status: PaymentSessionStatus = PaymentSessionStatus.PLANNING
    budget_limit: Decimal
    negotiated_price: Optional[Decimal] = None
    steps: List[PaymentStep] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @classmethod
    def start(cls, agent_id: str, service_id: str, budget_limit: Decimal) -> "PaymentSession":
        return cls(agent_id=agent_id, service_id=service_id, budget_limit=budget_limit)

    @property
    def is_finished(self) -> bool:
        return self.status in (PaymentSessionStatus.COMPLETED, PaymentSessionStatus.FAILED)

    def add_step(self, step_type: PaymentStepType, description: str, data: Optional[Dict[str, Any]] = None) -> PaymentStep:
        step = PaymentStep(type=step_type, description=description, data=json.dumps(data or {}, default=str))
        self.steps.append(step)
        return step

    def set_status(self, status: PaymentSessionStatus) -> None:
        self.status = status

    def set_negotiated_price(self, price: Decimal) -> None:
        self.negotiated_price = quantize_mnee(price)
        self.status = PaymentSessionStatus.NEGOTIATED

    def complete(self) -> None:
        self.status = PaymentSessionStatus.COMPLETED
        self.completed_at = datetime.utcnow()

    def fail(self, reason: str) -> None:
        self.status = PaymentSessionStatus.FAILED
        self.failure_reason = reason
        self.completed_at = datetime.utcnow()
