"""
Tests for the External Capability Adapters
==========================================

Bedrock text generation with a stubbed boto3 client, Strands-backed
discovery with a stubbed agent, and the demo text generator.
"""
import json
from decimal import Decimal

import pytest
from botocore.exceptions import ClientError

from agentpay.agents.base import Capability
from agentpay.agents.discovery import DiscoveryAgent, StrandsDiscoveryAgent, extract_json_object
from agentpay.api.dependencies import AppServices
from agentpay.exceptions import ExternalCapabilityError
from agentpay.mocks.chain import SimulatedChain
from agentpay.mocks.text_generator import CannedTextGenerator
from agentpay.models.tasks import AgentTask, DiscoveryParams
from agentpay.services.bedrock_service import BedrockService
from agentpay.services.text_generation import GenerationOptions


class StubBedrockClient:
    def __init__(self, text="Hello", error=None):
        self.text = text
        self.error = error
        self.requests = []

    def converse(self, **kwargs):
        self.requests.append(kwargs)
        if self.error:
            raise self.error
        return {
            "output": {"message": {"role": "assistant", "content": [{"text": self.text}]}},
            "stopReason": "end_turn",
            "usage": {"inputTokens": 10, "outputTokens": 2},
        }


class StubStrandsAgent:
    def __init__(self, reply):
        self.reply = reply
        self.prompts = []

    async def invoke_async(self, prompt):
        self.prompts.append(prompt)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


def discovery_task(service_id, categories=("data_api",)):
    return AgentTask(
        objective="Find the feed",
        parameters=DiscoveryParams(service_id=service_id, allowed_categories=list(categories)),
    )


class TestBedrockService:
    """TextGenerator over a stubbed bedrock-runtime client."""

    async def test_generate_returns_text(self):
        client = StubBedrockClient(text="72")
        service = BedrockService(client=client, model_id="test-model")

        text = await service.generate("price?", GenerationOptions(temperature=0.3, max_tokens=50))

        assert text == "72"
        request = client.requests[0]
        assert request["modelId"] == "test-model"
        assert request["messages"] == [{"role": "user", "content": [{"text": "price?"}]}]
        assert request["inferenceConfig"] == {"maxTokens": 50, "temperature": 0.3}
        assert "system" not in request

    async def test_json_format_adds_instruction(self):
        client = StubBedrockClient(text="{}")
        service = BedrockService(client=client)

        await service.generate("list", GenerationOptions(response_format="json", system_prompt="Be brief."))

        system = client.requests[0]["system"][0]["text"]
        assert system.startswith("Be brief.")
        assert "JSON" in system

    async def test_client_error_is_external_failure(self):
        error = ClientError({"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, "Converse")
        service = BedrockService(client=StubBedrockClient(error=error))

        with pytest.raises(ExternalCapabilityError) as exc_info:
            await service.generate("hi")
        assert exc_info.value.details["error_code"] == "ThrottlingException"

    def test_response_text_skips_non_text_blocks(self):
        response = {"output": {"message": {"content": [{"text": "a"}, {"toolUse": {}}, {"text": "b"}]}}}
        assert BedrockService.response_text(response) == "ab"


class TestStrandsDiscovery:
    """Discovery decided by a Strands agent, checked against the catalogue."""

    def test_extract_json_object(self):
        assert extract_json_object('Sure: {"approved": true} done') == {"approved": True}
        with pytest.raises(ExternalCapabilityError):
            extract_json_object("no json here")
        with pytest.raises(ExternalCapabilityError):
            extract_json_object("{broken")

    async def test_approved_service(self, service_repo, data_service):
        agent = StubStrandsAgent(json.dumps({"service_id": data_service.id, "approved": True, "reason": "Fits"}))
        result = await StrandsDiscoveryAgent(service_repo, agent).run(discovery_task(data_service.id))

        assert result.success is True
        assert result.output.id == data_service.id
        assert data_service.id in agent.prompts[0]

    async def test_model_rejection(self, service_repo, data_service):
        agent = StubStrandsAgent('{"approved": false, "reason": "Too expensive"}')
        result = await StrandsDiscoveryAgent(service_repo, agent).run(discovery_task(data_service.id))

        assert result.success is False
        assert result.error_message == "Too expensive"

    async def test_catalogue_rules_win(self, service_repo, data_service):
        """A model approval cannot override a disallowed category."""
        agent = StubStrandsAgent('{"approved": true, "reason": "ok"}')
        result = await StrandsDiscoveryAgent(service_repo, agent).run(
            discovery_task(data_service.id, categories=["storage"])
        )
        assert result.success is False
        assert "not allowed" in result.error_message

    async def test_agent_failure_is_external(self, service_repo, data_service):
        agent = StubStrandsAgent(RuntimeError("bedrock down"))
        with pytest.raises(ExternalCapabilityError):
            await StrandsDiscoveryAgent(service_repo, agent).run(discovery_task(data_service.id))


class TestAppServicesDiscovery:
    """Which discovery role the application wires into the orchestrator."""

    async def test_catalogue_discovery_by_default(self, session_factory):
        services = AppServices(session_factory, SimulatedChain())
        assert isinstance(services.orchestrator.roles[Capability.DISCOVERY], DiscoveryAgent)

    async def test_strands_discovery_drives_workflow(self, session_factory, funded_agent, data_service):
        agent = StubStrandsAgent(json.dumps({"service_id": data_service.id, "approved": True, "reason": "Fits"}))
        services = AppServices(session_factory, SimulatedChain(), discovery_agent=agent)

        assert isinstance(services.orchestrator.roles[Capability.DISCOVERY], StrandsDiscoveryAgent)
        result = await services.orchestrator.execute_payment_workflow(funded_agent.id, data_service.id, "100")

        assert result.success is True
        assert data_service.id in agent.prompts[0]
        assert result.steps[1].output == "Fits"


class TestCannedTextGenerator:
    async def test_counter_offer_has_no_number(self):
        generator = CannedTextGenerator()
        reply = await generator.generate("What should our next counter-offer be?")
        assert not any(ch.isdigit() for ch in reply)

    async def test_strategy_anchors_on_current_offer(self):
        generator = CannedTextGenerator()
        reply = await generator.generate(f"Pick a negotiation strategy.\n- Current offer: {Decimal('70')} MNEE")
        assert "70" in reply
        assert generator.prompts == ["Pick a negotiation strategy.\n- Current offer: 70 MNEE"]

    async def test_json_request(self):
        reply = await CannedTextGenerator().generate("list things", GenerationOptions(response_format="json"))
        assert reply == "{}"
