"""AgentPay: autonomous agent payment orchestration with MNEE."""

__version__ = "0.1.0"
