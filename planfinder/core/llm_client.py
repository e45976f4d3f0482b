"""
Anthropic client wrapper for the two AI features: PDF plan analysis and the
conversational plan assistant.
"""

import base64
import os
from typing import Dict, List, Optional
from loguru import logger

from .plan_analysis import ANALYSIS_PROMPT


DEFAULT_MODEL = os.getenv("PLANFINDER_LLM_MODEL", "claude-sonnet-4-5-20250929")


class LLMNotConfiguredError(RuntimeError):
    """Raised when no API key is available."""


class AnthropicClient:
    """Thin async wrapper over the Anthropic messages API."""

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_MODEL):
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key or not api_key.strip():
            raise LLMNotConfiguredError("ANTHROPIC_API_KEY is not set")

        import anthropic

        self.client = anthropic.AsyncAnthropic(api_key=api_key.strip())
        self.model = model

    @staticmethod
    def _text(response) -> str:
        for block in response.content:
            if getattr(block, "type", None) == "text":
                return block.text
        return ""

    async def complete(self, system: str, messages: List[Dict[str, str]], max_tokens: int = 2000) -> str:
        """Run a chat completion and return the reply text."""
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system,
            messages=messages,
        )
        return self._text(response)

    async def analyze_pdf(self, data: bytes, max_tokens: int = 4096) -> str:
        """Send a plan PDF with the analysis prompt and return the raw reply."""
        logger.info(f"Requesting plan analysis for PDF ({len(data)} bytes)")
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=[{
                "role": "user",
                "content": [
                    {
                        "type": "document",
                        "source": {
                            "type": "base64",
                            "media_type": "application/pdf",
                            "data": base64.b64encode(data).decode("ascii"),
                        },
                    },
                    {"type": "text", "text": ANALYSIS_PROMPT},
                ],
            }],
        )
        return self._text(response)
