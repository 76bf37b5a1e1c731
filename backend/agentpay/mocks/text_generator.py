"""
Canned Text Generator

Template responses used in demo mode when Bedrock is not configured. The
replies are shaped like what the prompts ask for, so downstream parsing
runs exactly as it would against a real model.
"""
import logging
import re
from typing import List, Optional

from ..services.text_generation import GenerationOptions

logger = logging.getLogger(__name__)

_OFFER_PATTERN = re.compile(r"current offer[^0-9]*([0-9]+(?:\.[0-9]+)?)", re.IGNORECASE)


class CannedTextGenerator:
    """TextGenerator that never calls out; records prompts for inspection."""

    def __init__(self):
        self.prompts: List[str] = []

    async def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        self.prompts.append(prompt)
        lowered = prompt.lower()

        if "counter-offer" in lowered or "counter offer" in lowered:
            # Echo no number so the protocol falls back to its own increment
            return "Propose a modest increase over the previous offer."
        if "negotiation strategy" in lowered:
            match = _OFFER_PATTERN.search(prompt)
            anchor = match.group(1) if match else "the current offer"
            return f"Anchor low at {anchor}, concede in small steps, stay within budget."
        if "payment plan" in lowered or "strategy" in lowered:
            return "Verify the service, negotiate below list price, pay once, verify on-chain."
        if options is not None and options.response_format == "json":
            return "{}"
        return "Acknowledged."
