"""
Transaction State Machine

A transaction moves through:

    pending -> blocked | submitted | failed
    submitted -> completed | failed

completed, failed and blocked are terminal. Illegal transitions raise
InvalidStateError and leave the transaction untouched.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from ..exceptions import InvalidParameterError, InvalidStateError
from .policy import GuardrailCheck, GuardrailsCheck, GuardrailsPolicy
from .values import to_mnee, validate_transaction_hash, validate_wallet_address

__all__ = [
    "TransactionStatus",
    "TRANSITIONS",
    "GuardrailCheck",
    "GuardrailsCheck",
    "VerificationCheck",
    "VerificationResult",
    "Transaction",
]


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"


TRANSITIONS: Dict[TransactionStatus, FrozenSet[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({
        TransactionStatus.BLOCKED,
        TransactionStatus.SUBMITTED,
        TransactionStatus.FAILED,
    }),
    TransactionStatus.SUBMITTED: frozenset({
        TransactionStatus.COMPLETED,
        TransactionStatus.FAILED,
    }),
    TransactionStatus.COMPLETED: frozenset(),
    TransactionStatus.FAILED: frozenset(),
    TransactionStatus.BLOCKED: frozenset(),
}


class VerificationCheck(BaseModel):
    name: str
    passed: bool
    message: str
    confidence: float = 1.0


class VerificationResult(BaseModel):
    """Outcome of verifying a submitted transfer against the chain."""
    transaction_hash: str
    is_verified: bool
    checks: List[VerificationCheck] = Field(default_factory=list)
    confirmations: int = 0
    gas_used: int = 0
    gas_price_gwei: Decimal = Decimal("0")
    verified_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def confidence(self) -> float:
        if not self.checks:
            return 0.0
        return sum(c.confidence for c in self.checks) / len(self.checks)

    @property
    def failure_reason(self) -> Optional[str]:
        for check in self.checks:
            if not check.passed:
                return check.message
        return None


class Transaction(BaseModel):
    """
    One MNEE transfer from an agent wallet to a service provider.

    Only the methods below change `status`.
    """
    id: str = Field(default_factory=lambda: f"txn_{uuid.uuid4().hex[:16]}")
    agent_id: str
    service_id: str
    amount: Decimal
    from_address: str
    to_address: str
    reasoning: str = ""
    status: TransactionStatus = TransactionStatus.PENDING
    transaction_hash: Optional[str] = None
    guardrails_check: Optional[GuardrailsCheck] = None
    verification: Optional[VerificationResult] = None
    failure_reason: Optional[str] = None
    gas_used: Optional[int] = None
    gas_price_gwei: Optional[Decimal] = None
    initiated_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    @field_validator("amount", mode="before")
    @classmethod
    def parse_amount(cls, v):
        amount = to_mnee(v)
        if amount <= 0:
            raise InvalidParameterError("Transaction amount must be positive", {"amount": str(amount)})
        return amount

    @field_validator("from_address", "to_address")
    @classmethod
    def check_address(cls, v: str) -> str:
        return validate_wallet_address(v)

    @classmethod
    def initiate(
        cls,
        agent_id: str,
        service_id: str,
        amount: Decimal,
        from_address: str,
        to_address: str,
        reasoning: str
    ) -> "Transaction":
        return cls(
            agent_id=agent_id,
            service_id=service_id,
            amount=amount,
            from_address=from_address,
            to_address=to_address,
            reasoning=reasoning,
        )

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.status]

    def _require_transition(self, target: TransactionStatus) -> None:
        if target not in TRANSITIONS[self.status]:
            raise InvalidStateError(
                f"Cannot move transaction from {self.status.value} to {target.value}",
                {"transaction_id": self.id, "status": self.status.value, "target": target.value}
            )

    def apply_guardrails(
        self,
        policy: GuardrailsPolicy,
        spent_today: Decimal = Decimal("0"),
        history: Sequence["Transaction"] = ()
    ) -> GuardrailsCheck:
        """
        Evaluate the policy; a failing check blocks the transaction.

        Raises:
            InvalidStateError: transaction is not pending
        """
        if self.status != TransactionStatus.PENDING:
            raise InvalidStateError(
                "Guardrails can only be applied to pending transactions",
                {"transaction_id": self.id, "status": self.status.value}
            )

        check = policy.evaluate(self, spent_today, history)
        self.guardrails_check = check
        if not check.passed:
            self.status = TransactionStatus.BLOCKED
            self.failure_reason = check.failure_reason
            self.failed_at = datetime.utcnow()
        return check

    def mark_submitted(self, transaction_hash: str) -> None:
        self._require_transition(TransactionStatus.SUBMITTED)
        if self.guardrails_check is None or not self.guardrails_check.passed:
            raise InvalidStateError(
                "Transaction cannot be submitted before guardrails pass",
                {"transaction_id": self.id}
            )
        self.transaction_hash = validate_transaction_hash(transaction_hash)
        self.status = TransactionStatus.SUBMITTED

    def complete(
        self,
        verification: VerificationResult,
        gas_used: int,
        gas_price_gwei: Decimal
    ) -> None:
        """
        Settle a submitted transaction from its verification result.

        Verified -> completed; otherwise failed with the first failing
        check's message.
        """
        if self.status != TransactionStatus.SUBMITTED:
            raise InvalidStateError(
                f"Only submitted transactions can be completed (status: {self.status.value})",
                {"transaction_id": self.id, "status": self.status.value}
            )

        self.verification = verification
        self.gas_used = gas_used
        self.gas_price_gwei = gas_price_gwei
        now = datetime.utcnow()
        if verification.is_verified:
            self.status = TransactionStatus.COMPLETED
            self.completed_at = now
        else:
            self.status = TransactionStatus.FAILED
            self.failure_reason = verification.failure_reason or "Verification failed"
            self.failed_at = now

    def fail(self, reason: str) -> None:
        self._require_transition(TransactionStatus.FAILED)
        self.status = TransactionStatus.FAILED
        self.failure_reason = reason
        self.failed_at = datetime.utcnow()
