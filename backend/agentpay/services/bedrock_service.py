"""
Bedrock Text Generation

TextGenerator backed by the Bedrock Converse API. boto3 is synchronous, so
each call runs in the default executor under `bedrock_timeout_seconds`.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import settings
from ..exceptions import ExternalCapabilityError
from .text_generation import GenerationOptions

logger = logging.getLogger(__name__)

JSON_INSTRUCTION = "Respond with a single JSON object and nothing else."


class BedrockService:
    """
    Converse-based TextGenerator.

    Every boto3 failure and every timeout surfaces as ExternalCapabilityError,
    which the orchestrator treats as retryable for idempotent steps.
    """

    def __init__(self, client=None, model_id: Optional[str] = None, timeout: Optional[float] = None):
        """
        Args:
            client: bedrock-runtime client; built from settings when omitted
            model_id: Overrides settings.aws_bedrock_model_id
            timeout: Seconds per call, defaults to settings.bedrock_timeout_seconds

        Raises:
            ExternalCapabilityError: the client could not be created
        """
        self.model_id = model_id or settings.aws_bedrock_model_id
        self.timeout = timeout or settings.bedrock_timeout_seconds
        if client is not None:
            self.client = client
            return
        try:
            self.client = boto3.client("bedrock-runtime", region_name=settings.aws_region)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Could not create bedrock-runtime client in {settings.aws_region}: {e}")
            raise ExternalCapabilityError(f"Bedrock initialization failed: {e}")
        logger.info(f"Bedrock text generation ready: region={settings.aws_region}, model={self.model_id}")

    def converse(self, prompt: str, options: GenerationOptions) -> Dict[str, Any]:
        """
        Send one user turn and return the raw Converse response.

        Raises:
            ExternalCapabilityError: Bedrock rejected the call or was unreachable
        """
        request: Dict[str, Any] = {
            "modelId": self.model_id,
            "messages": [{"role": "user", "content": [{"text": prompt}]}],
            "inferenceConfig": {
                "maxTokens": options.max_tokens,
                "temperature": options.temperature,
            },
        }
        system = options.system_prompt
        if options.response_format == "json":
            system = f"{system}\n\n{JSON_INSTRUCTION}" if system else JSON_INSTRUCTION
        if system:
            request["system"] = [{"text": system}]

        try:
            return self.client.converse(**request)
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code", "Unknown")
            logger.error(f"Converse failed for {self.model_id}: {code} {error.get('Message', '')}")
            raise ExternalCapabilityError(
                f"Model invocation failed: {code}",
                {"error_code": code, "model_id": self.model_id}
            )
        except BotoCoreError as e:
            logger.error(f"Converse transport error for {self.model_id}: {e}")
            raise ExternalCapabilityError(f"Bedrock communication error: {e}")

    async def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        options = options or GenerationOptions()
        loop = asyncio.get_running_loop()
        try:
            response = await asyncio.wait_for(
                loop.run_in_executor(None, self.converse, prompt, options),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Converse call exceeded {self.timeout}s")
            raise ExternalCapabilityError(
                f"Bedrock API call timed out after {self.timeout}s",
                {"timeout": self.timeout}
            )

        usage = response.get("usage", {})
        logger.debug(f"Converse usage: in={usage.get('inputTokens')}, out={usage.get('outputTokens')}")
        return self.response_text(response)

    @staticmethod
    def response_text(response: Dict[str, Any]) -> str:
        """Join the text blocks of the assistant message; other block types are ignored."""
        content: List[Dict[str, Any]] = response.get("output", {}).get("message", {}).get("content", [])
        return "".join(block["text"] for block in content if "text" in block)


_bedrock_service: Optional[BedrockService] = None


def get_bedrock_service() -> BedrockService:
    """Lazily build the process-wide BedrockService."""
    global _bedrock_service
    if _bedrock_service is None:
        _bedrock_service = BedrockService()
    return _bedrock_service
