"""
Agents API Endpoints

Create agents, drive their lifecycle and run self-checks.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..exceptions import NotFoundError
from ..models.agents import Agent, AgentCapabilities, AgentRole
from .dependencies import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateAgentRequest(BaseModel):
    name: str = Field(min_length=1)
    role: AgentRole
    wallet_address: str
    capabilities: Optional[AgentCapabilities] = None
    initial_balance: Decimal = Decimal("0")


class UpdateBalanceRequest(BaseModel):
    balance: Decimal


async def _load_agent(services: AppServices, agent_id: str) -> Agent:
    agent = await services.agents.get_by_id(agent_id)
    if agent is None:
        raise NotFoundError(f"No agent found with ID: {agent_id}", {"agent_id": agent_id})
    return agent


@router.post("", status_code=201)
async def create_agent_endpoint(
    request: CreateAgentRequest,
    services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Create an agent in the initializing state.

    Example:
        POST /api/agents
        {"name": "buyer", "role": "executor", "wallet_address": "0x...", "initial_balance": "200"}
    """
    agent = Agent.create(request.name, request.role, request.wallet_address, request.capabilities)
    agent.update_balance(request.initial_balance)
    await services.agents.create(agent)
    return agent.summary()


@router.get("/{agent_id}")
async def get_agent_endpoint(agent_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    return (await _load_agent(services, agent_id)).summary()


@router.post("/{agent_id}/activate")
async def activate_agent_endpoint(agent_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    agent = await _load_agent(services, agent_id)
    agent.activate()
    await services.agents.update(agent)
    logger.info(f"Agent {agent_id} activated")
    return agent.summary()


@router.post("/{agent_id}/deactivate")
async def deactivate_agent_endpoint(agent_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    agent = await _load_agent(services, agent_id)
    agent.deactivate()
    await services.agents.update(agent)
    logger.info(f"Agent {agent_id} deactivated")
    return agent.summary()


@router.post("/{agent_id}/self-check")
async def self_check_endpoint(agent_id: str, services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    """Run the four health checks; an unhealthy agent is degraded and persisted."""
    agent = await _load_agent(services, agent_id)
    result = agent.perform_self_check()
    if not result.is_healthy:
        await services.agents.update(agent)
    return {
        "agent_id": agent_id,
        "is_healthy": result.is_healthy,
        "failed_checks": result.failed_checks,
        "checks": [c.model_dump() for c in result.checks],
        "status": agent.status.value,
        "performed_at": result.performed_at.isoformat(),
    }


@router.put("/{agent_id}/balance")
async def update_balance_endpoint(
    agent_id: str,
    request: UpdateBalanceRequest,
    services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    agent = await _load_agent(services, agent_id)
    old_balance = agent.update_balance(request.balance)
    await services.agents.set_balance(agent_id, agent.balance)
    logger.info(f"Agent {agent_id} balance {old_balance} -> {agent.balance}")
    return {"agent_id": agent_id, "old_balance": str(old_balance), "balance": str(agent.balance)}
