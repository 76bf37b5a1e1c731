"""
AgentPay Configuration Module

Loads environment variables for the payment orchestration backend.
"""
from decimal import Decimal
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Notes:
    - Guardrail defaults apply to every agent unless narrowed by its capabilities
    - Demo mode swaps Bedrock for a canned text generator and the chain for a simulator
    """

    # AWS Bedrock Configuration
    aws_region: str = "us-east-1"
    aws_bedrock_model_id: str = "us.anthropic.claude-sonnet-4-20250514-v1:0"
    bedrock_timeout_seconds: float = 30.0

    # Demo Configuration
    demo_mode: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Guardrails (MNEE)
    max_transaction_amount: Decimal = Decimal("1000")
    daily_limit: Decimal = Decimal("5000")
    address_whitelist: List[str] = []

    # Negotiation
    negotiation_max_rounds: int = 5

    # Verification
    min_confirmations: int = 6
    max_reasonable_gas: int = 100000

    # Orchestration
    step_timeout_seconds: float = 30.0
    step_max_retries: int = 1
    memory_capacity: int = 1000

    # Maintenance jobs
    maintenance_interval_minutes: float = 15

    # Database
    database_path: str = "./agentpay.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


# Global settings instance
settings = Settings()
