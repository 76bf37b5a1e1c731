"""
Guardrails Policy

Pure evaluator deciding whether a proposed transfer may leave the agent's
wallet. Every check runs; nothing short-circuits, so the caller always sees
the full list of reasons.
"""
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .values import to_mnee, format_mnee

if TYPE_CHECKING:
    from .agents import Agent
    from .transactions import Transaction
    from ..config import Settings


# (transaction, history) -> block reason or None
PatternCheck = Callable[..., Optional[str]]


def allow_all_patterns(transaction, history) -> Optional[str]:
    """Default pattern check: never objects."""
    return None


class GuardrailCheck(BaseModel):
    name: str
    passed: bool
    reason: Optional[str] = None


class GuardrailsCheck(BaseModel):
    """Ordered result of one policy evaluation."""
    checks: List[GuardrailCheck] = Field(default_factory=list)
    checked_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def failure_reason(self) -> Optional[str]:
        reasons = [c.reason for c in self.checks if not c.passed and c.reason]
        return "; ".join(reasons) if reasons else None


class GuardrailsPolicy(BaseModel):
    """
    Spending limits applied before any transfer.

    Attributes:
        max_transaction_amount: Largest single transfer allowed (inclusive)
        daily_limit: Cap on spent_today + amount (inclusive)
        whitelisted_addresses: Allowed recipients; empty means any recipient
        pattern_check: Optional predicate returning a block reason or None
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_transaction_amount: Decimal = Decimal("1000")
    daily_limit: Decimal = Decimal("5000")
    whitelisted_addresses: List[str] = Field(default_factory=list)
    pattern_check: PatternCheck = Field(default=allow_all_patterns, exclude=True)

    @field_validator("max_transaction_amount", "daily_limit", mode="before")
    @classmethod
    def parse_amount(cls, v):
        return to_mnee(v)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "GuardrailsPolicy":
        return cls(
            max_transaction_amount=settings.max_transaction_amount,
            daily_limit=settings.daily_limit,
            whitelisted_addresses=list(settings.address_whitelist),
        )

    def for_agent(self, agent: "Agent") -> "GuardrailsPolicy":
        """Narrow the per-transaction cap to the agent's own limit when lower."""
        cap = min(self.max_transaction_amount, agent.capabilities.max_transaction_amount)
        return self.model_copy(update={"max_transaction_amount": cap})

    def evaluate(
        self,
        transaction: "Transaction",
        spent_today: Decimal = Decimal("0"),
        history: Sequence["Transaction"] = ()
    ) -> GuardrailsCheck:
        """
        Run all four checks against a proposed transfer.

        Args:
            transaction: Proposed transfer (amount, to_address are read)
            spent_today: Sum already spent by the agent on the current UTC day
            history: Prior transactions handed to the pattern check

        Returns:
            GuardrailsCheck with Amount Limit, Whitelist, Daily Limit,
            Pattern Check in that order
        """
        amount = transaction.amount
        checks = []

        if amount > self.max_transaction_amount:
            checks.append(GuardrailCheck(
                name="Amount Limit",
                passed=False,
                reason=f"Amount {format_mnee(amount)} exceeds limit {format_mnee(self.max_transaction_amount)}",
            ))
        else:
            checks.append(GuardrailCheck(name="Amount Limit", passed=True))

        allowed = {a.lower() for a in self.whitelisted_addresses}
        if allowed and transaction.to_address.lower() not in allowed:
            checks.append(GuardrailCheck(
                name="Whitelist",
                passed=False,
                reason=f"Recipient {transaction.to_address} is not whitelisted",
            ))
        else:
            checks.append(GuardrailCheck(name="Whitelist", passed=True))

        if spent_today + amount > self.daily_limit:
            checks.append(GuardrailCheck(
                name="Daily Limit",
                passed=False,
                reason=f"Daily limit {format_mnee(self.daily_limit)} would be exceeded "
                       f"(spent today: {format_mnee(spent_today)})",
            ))
        else:
            checks.append(GuardrailCheck(name="Daily Limit", passed=True))

        pattern_reason = self.pattern_check(transaction, list(history))
        checks.append(GuardrailCheck(
            name="Pattern Check",
            passed=pattern_reason is None,
            reason=pattern_reason,
        ))

        return GuardrailsCheck(checks=checks)
