"""
Text Generation Capability

The only contract agents have with a language model: prompt in, text out.
"""
from typing import Literal, Optional, Protocol

from pydantic import BaseModel, Field


class GenerationOptions(BaseModel):
    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(default=500, gt=0)
    response_format: Literal["text", "json"] = "text"
    system_prompt: Optional[str] = None


class TextGenerator(Protocol):
    async def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        """
        Generate a completion.

        Raises:
            ExternalCapabilityError: the backing model could not be reached
        """
        ...
