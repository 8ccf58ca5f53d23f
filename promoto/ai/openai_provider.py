"""Promoto — OpenAI Provider."""

from openai import AsyncOpenAI

from promoto.ai.base_provider import AIProvider
from promoto.config import settings
from promoto.core.logging import get_logger

logger = get_logger("ai.openai")

MODEL = "gpt-4o-mini"


class OpenAIProvider(AIProvider):
    """OpenAI chat completions provider."""

    name = "openai"

    def __init__(self):
        self.client = (
            AsyncOpenAI(api_key=settings.openai_api_key)
            if settings.openai_api_key
            else None
        )

    def is_available(self) -> bool:
        return self.client is not None and bool(settings.openai_api_key)

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        if not self.is_available():
            raise RuntimeError("OpenAI provider not configured")

        try:
            response = await self.client.chat.completions.create(
                model=MODEL,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=0.1,
                max_tokens=500,
                response_format={"type": "json_object"},
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"OpenAI completion failed: {e}")
            raise
