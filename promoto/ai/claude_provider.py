"""Promoto — Anthropic Claude Provider."""

from anthropic import AsyncAnthropic

from promoto.ai.base_provider import AIProvider
from promoto.config import settings
from promoto.core.logging import get_logger

logger = get_logger("ai.claude")

MODEL = "claude-3-5-haiku-20241022"


class ClaudeProvider(AIProvider):
    """Anthropic Claude provider."""

    name = "claude"

    def __init__(self):
        self.client = (
            AsyncAnthropic(api_key=settings.anthropic_api_key)
            if settings.anthropic_api_key
            else None
        )

    def is_available(self) -> bool:
        return self.client is not None and bool(settings.anthropic_api_key)

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        if not self.is_available():
            raise RuntimeError("Claude provider not configured")

        try:
            response = await self.client.messages.create(
                model=MODEL,
                max_tokens=500,
                temperature=0.1,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": user_prompt},
                ],
            )
            return response.content[0].text if response.content else ""
        except Exception as e:
            logger.error(f"Claude completion failed: {e}")
            raise
