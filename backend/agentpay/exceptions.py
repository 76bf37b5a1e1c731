"""
AgentPay Exception Hierarchy

Coded errors shared by the domain model, the orchestrator and the HTTP layer.
Expected outcomes (guardrail blocks, rejected negotiations, failed
verification) are NOT exceptions; they are recorded on the transaction and
the session instead.
"""
from typing import Any, Dict, Optional


class AgentPayError(Exception):
    """
    Base exception for all AgentPay errors.

    Every error carries a stable error code so API clients can branch on it
    without parsing messages.
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Body returned by the HTTP error handlers."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class InvalidParameterError(AgentPayError):
    """
    Malformed or missing input.

    Examples:
    - Wallet address without 0x prefix
    - Negative amount or more than 8 fractional digits
    - Task parameters of the wrong kind for a role
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("agentpay:validation:invalid_parameter", message, details)


class NotFoundError(AgentPayError):
    """Requested agent, service, transaction or session does not exist."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("agentpay:resource:not_found", message, details)


class AgentUnavailableError(AgentPayError):
    """
    Agent cannot start a payment session.

    Example:
    - Agent is inactive or suspended
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("agentpay:agent:unavailable", message, details)


class InvalidStateError(AgentPayError):
    """
    Illegal transaction state transition.

    Examples:
    - complete() on a transaction that is already completed
    - mark_submitted() before guardrails passed
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("agentpay:transaction:invalid_state", message, details)


class DomainInvariantError(AgentPayError):
    """
    Precondition violated by the caller.

    The orchestrator lets these propagate instead of converting them into a
    failed session.
    """


class InsufficientBalanceError(DomainInvariantError):
    """Agent balance does not cover the requested budget or payment."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("agentpay:agent:insufficient_balance", message, details)


class StepTimeoutError(AgentPayError):
    """A workflow step exceeded its deadline."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("agentpay:session:timeout", message, details)


class ExternalCapabilityError(AgentPayError):
    """
    Text generation or chain call failed.

    Examples:
    - Bedrock ClientError
    - Transfer rejected by the node
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("agentpay:external:capability_failed", message, details)
