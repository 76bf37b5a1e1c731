"""
Service Catalogue Entity

A purchasable third-party service with a listed MNEE price and the provider
wallet that receives payment.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from ..exceptions import InvalidParameterError
from .values import to_mnee, validate_wallet_address


class ServiceCategory(str, Enum):
    DATA_API = "data_api"
    COMPUTE_RESOURCE = "compute_resource"
    AI_MODEL = "ai_model"
    STORAGE = "storage"
    ANALYTICS = "analytics"
    OTHER = "other"


class Service(BaseModel):
    id: str = Field(default_factory=lambda: f"svc_{uuid.uuid4().hex[:12]}")
    name: str = Field(min_length=1)
    description: str = ""
    provider_address: str
    price: Decimal
    category: ServiceCategory = ServiceCategory.OTHER
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("provider_address")
    @classmethod
    def check_address(cls, v: str) -> str:
        return validate_wallet_address(v)

    @field_validator("price", mode="before")
    @classmethod
    def parse_price(cls, v):
        price = to_mnee(v)
        if price <= 0:
            raise InvalidParameterError("Service price must be positive", {"price": str(price)})
        return price

    def deactivate(self) -> None:
        self.is_active = False
