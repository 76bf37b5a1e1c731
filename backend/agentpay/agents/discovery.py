"""
Discovery Agent

Loads the requested service and checks that the agent may buy it. Two
implementations share the same role capability:

- DiscoveryAgent: direct repository lookup (default, deterministic)
- StrandsDiscoveryAgent: a Strands Agent on Bedrock that calls the
  `lookup_service` and `list_services_in_category` tools and returns a JSON
  verdict
"""
import json
import logging
from typing import Any, Dict, List, Optional

from strands import Agent, tool
from strands.models import BedrockModel

from ..db.repositories import ServiceRepository
from ..exceptions import ExternalCapabilityError, NotFoundError
from ..models.services import Service, ServiceCategory
from ..models.tasks import AgentResult, AgentTask, DiscoveryParams
from .base import Capability

logger = logging.getLogger(__name__)


def evaluate_service(service: Service, allowed_categories: List[str]) -> Optional[str]:
    """Return the reason a service may not be bought, or None."""
    if not service.is_active:
        return f"Service {service.id} is not active"
    if allowed_categories and service.category.value not in allowed_categories:
        return (
            f"Service category {service.category.value} is not allowed "
            f"(allowed: {', '.join(allowed_categories)})"
        )
    return None


def _service_summary(service: Service) -> Dict[str, Any]:
    return {
        "id": service.id,
        "name": service.name,
        "description": service.description,
        "price": str(service.price),
        "category": service.category.value,
        "is_active": service.is_active,
        "provider_address": service.provider_address,
    }


class DiscoveryAgent:
    capability = Capability.DISCOVERY

    def __init__(self, services: ServiceRepository):
        self.services = services

    async def run(self, task: AgentTask) -> AgentResult:
        params = task.require(DiscoveryParams)
        service = await self.services.get_by_id(params.service_id)
        if service is None:
            raise NotFoundError(f"Service not found: {params.service_id}", {"service_id": params.service_id})

        rejection = evaluate_service(service, params.allowed_categories)
        if rejection:
            logger.info(f"Discovery rejected {service.id}: {rejection}")
            return AgentResult(success=False, output=service, error_message=rejection, tools_used=["service_lookup"])

        return AgentResult(
            success=True,
            output=service,
            reasoning=f"Service {service.name} is active and priced at {service.price} MNEE",
            tools_used=["service_lookup"],
            confidence_score=1.0,
            details=_service_summary(service),
        )


# ============================================================================
# Strands-backed discovery
# ============================================================================

DISCOVERY_SYSTEM_PROMPT = """You are AgentPay's service discovery specialist. An autonomous agent wants to pay for a third-party service with MNEE tokens.

## Tools Available

- `lookup_service(service_id)` - Fetch one service by id
- `list_services_in_category(category)` - List active services in a category (for alternatives)

## Rules

- Always call `lookup_service` first.
- Approve only active services whose category is in the allowed list (an empty list allows every category).
- Never invent services or prices.

Respond with a single JSON object: {"service_id": str, "approved": bool, "reason": str}
"""


def create_discovery_agent(
    services: ServiceRepository,
    model_id: Optional[str] = None,
    region_name: Optional[str] = None,
    temperature: float = 0.2
) -> Agent:
    """
    Create the Strands discovery agent.

    Args:
        services: Repository the tools read from
        model_id: Bedrock model ID (defaults to settings.aws_bedrock_model_id)
        region_name: AWS region (defaults to settings.aws_region)
        temperature: LLM temperature

    Returns:
        Strands Agent with the two catalogue tools
    """
    from ..config import settings

    @tool
    async def lookup_service(service_id: str) -> str:
        """
        Look up a service in the catalogue.

        Args:
            service_id: Service identifier (svc_*)

        Returns:
            JSON string with the service, or an error
        """
        service = await services.get_by_id(service_id)
        if service is None:
            return json.dumps({"error": f"Service not found: {service_id}"})
        return json.dumps(_service_summary(service))

    @tool
    async def list_services_in_category(category: str) -> str:
        """
        List active services in a category.

        Args:
            category: One of data_api, compute_resource, ai_model, storage, analytics, other

        Returns:
            JSON string with matching services
        """
        try:
            parsed = ServiceCategory(category)
        except ValueError:
            return json.dumps({"error": f"Unknown category: {category}"})
        matches = await services.get_by_category(parsed)
        return json.dumps({"services": [_service_summary(s) for s in matches]})

    bedrock_model = BedrockModel(
        model_id=model_id or settings.aws_bedrock_model_id,
        region_name=region_name or settings.aws_region,
        temperature=temperature
    )

    return Agent(
        model=bedrock_model,
        tools=[lookup_service, list_services_in_category],
        system_prompt=DISCOVERY_SYSTEM_PROMPT,
    )


def extract_json_object(response_text: str) -> Dict[str, Any]:
    """Parse the outermost {...} block of a model reply."""
    json_start = response_text.find("{")
    json_end = response_text.rfind("}") + 1
    if json_start < 0 or json_end <= json_start:
        raise ExternalCapabilityError("Discovery agent returned no JSON", {"response": response_text[:500]})
    try:
        return json.loads(response_text[json_start:json_end])
    except json.JSONDecodeError as e:
        raise ExternalCapabilityError(f"Discovery agent returned invalid JSON: {e}", {"response": response_text[:500]})


class StrandsDiscoveryAgent:
    """Discovery role capability that delegates the decision to a Strands agent."""

    capability = Capability.DISCOVERY

    def __init__(self, services: ServiceRepository, agent: Optional[Agent] = None):
        self.services = services
        self.agent = agent or create_discovery_agent(services)

    async def run(self, task: AgentTask) -> AgentResult:
        params = task.require(DiscoveryParams)
        prompt = (
            f"{task.objective}\n\n"
            f"Service id: {params.service_id}\n"
            f"Allowed categories: {json.dumps(params.allowed_categories)}"
        )
        try:
            result = await self.agent.invoke_async(prompt)
        except Exception as e:
            logger.error(f"Strands discovery agent failed: {e}")
            raise ExternalCapabilityError(f"Discovery agent failed: {e}")

        verdict = extract_json_object(str(result))
        service = await self.services.get_by_id(params.service_id)
        if service is None:
            raise NotFoundError(f"Service not found: {params.service_id}", {"service_id": params.service_id})

        # The model's approval never overrides the catalogue rules
        rejection = evaluate_service(service, params.allowed_categories)
        if rejection is None and not verdict.get("approved", False):
            rejection = verdict.get("reason") or "Discovery agent did not approve the service"
        if rejection:
            return AgentResult(success=False, output=service, error_message=rejection, tools_used=["strands_agent"])

        return AgentResult(
            success=True,
            output=service,
            reasoning=verdict.get("reason", ""),
            tools_used=["strands_agent", "lookup_service"],
            confidence_score=0.8,
            details=_service_summary(service),
        )
