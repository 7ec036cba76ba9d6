"""
AI backend - Chat completion access used to supplement sparse structured extraction
"""

import asyncio
from typing import Optional, Protocol

import openai
import structlog
from openai import AsyncOpenAI

from permit_agent.core.config import Settings
from permit_agent.core.exceptions import AIUnavailableError

logger = structlog.get_logger(__name__)


class AIBackend(Protocol):
    """Anything that turns a prompt into a completion string"""

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float
    ) -> str:
        ...


class OpenAIBackend:
    """AIBackend over the OpenAI chat completions API, in JSON mode"""

    def __init__(self, api_key: str, base_url: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float
    ) -> str:
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=temperature,
                    max_tokens=max_tokens,
                    response_format={"type": "json_object"},
                ),
                timeout,
            )
        except asyncio.TimeoutError as exc:
            raise AIUnavailableError(
                f"AI completion timed out after {timeout}s",
                error_code="AI_TIMEOUT",
            ) from exc
        except openai.OpenAIError as exc:
            raise AIUnavailableError(
                "AI completion failed",
                error_code="AI_UNAVAILABLE",
                details={"error_type": type(exc).__name__},
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AIUnavailableError("AI returned an empty completion", error_code="AI_EMPTY_RESPONSE")
        return content

    async def aclose(self) -> None:
        await self._client.close()


def build_ai_backend(settings: Settings) -> Optional[OpenAIBackend]:
    """OpenAI backend when an API key is configured, otherwise None"""
    if not settings.ai_enabled:
        logger.info("AI supplementation disabled, no API key configured")
        return None
    return OpenAIBackend(
        api_key=settings.OPENAI_API_KEY.get_secret_value(),
        base_url=settings.OPENAI_BASE_URL,
    )
