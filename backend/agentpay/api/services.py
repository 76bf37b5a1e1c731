"""
Services API Endpoints

Register purchasable services and browse the catalogue.
"""
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..models.services import Service, ServiceCategory
from .dependencies import AppServices, get_services

router = APIRouter()


class CreateServiceRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    provider_address: str
    price: Decimal
    category: ServiceCategory = ServiceCategory.OTHER


@router.post("", status_code=201)
async def create_service_endpoint(
    request: CreateServiceRequest,
    services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    service = Service(**request.model_dump())
    await services.services.create(service)
    return service.model_dump(mode="json")


@router.get("")
async def list_services_endpoint(
    category: Optional[ServiceCategory] = Query(None, description="Filter by category"),
    services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    List active services.

    Example:
        GET /api/services?category=data_api
    """
    if category is None:
        found = await services.services.get_active()
    else:
        found = await services.services.get_by_category(category)
    return {"count": len(found), "services": [s.model_dump(mode="json") for s in found]}
