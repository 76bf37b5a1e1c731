"""
Payment Sessions API Endpoints

Start the payment workflow for an agent and read back the session log.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..exceptions import NotFoundError
from .dependencies import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


class StartSessionRequest(BaseModel):
    agent_id: str
    service_id: str
    budget_limit: Decimal
    objective: Optional[str] = None


@router.post("", status_code=201)
async def start_payment_session_endpoint(
    request: StartSessionRequest,
    services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Run the full workflow (planning through memory-write) and return its result.

    A failed payment still returns 201 with success=false and a
    failure_reason; only invalid requests and domain invariant violations
    produce error responses.
    """
    logger.info(f"Payment session requested: agent={request.agent_id}, service={request.service_id}")
    result = await services.orchestrator.execute_payment_workflow(
        agent_id=request.agent_id,
        service_id=request.service_id,
        budget_limit=request.budget_limit,
        objective=request.objective,
    )
    return result.model_dump(mode="json")


@router.get("/{session_id}")
async def get_payment_session_endpoint(
    session_id: str,
    services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    session = await services.sessions.get_by_id(session_id)
    if session is None:
        raise NotFoundError(f"No payment session found with ID: {session_id}", {"session_id": session_id})
    return session.model_dump(mode="json")
