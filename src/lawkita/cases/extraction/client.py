"""Extraction service clients.

The language model is consumed as a black box: a request goes in, a
string that should contain JSON comes out. Keeping the boundary this
narrow lets the rest of the pipeline run against canned responses.
"""

import logging
from abc import ABC, abstractmethod

import anthropic
import openai
from pydantic import BaseModel

from ...config import Settings, get_settings
from ..errors import ExtractionTransportError, JobFatalError
from .prompts import render_user_prompt

logger = logging.getLogger(__name__)


class ExtractionRequest(BaseModel):
    """What is sent to the extraction service for one document."""

    system_instructions: str
    document_title: str
    document_source: str
    document_content: str
    published_at: str | None = None

    def user_prompt(self) -> str:
        return render_user_prompt(
            title=self.document_title,
            source=self.document_source,
            content=self.document_content,
            published=self.published_at,
        )


class ExtractionClient(ABC):
    """Narrow interface to a text-in / JSON-out extraction service."""

    provider: str = "unknown"

    @abstractmethod
    async def complete(self, request: ExtractionRequest) -> str:
        """Send a request and return the raw response text.

        Raises:
            ExtractionTransportError: On network, auth or provider errors
        """
        ...

    async def close(self) -> None:
        """Release any underlying connections."""
        return None


class OpenAIExtractionClient(ExtractionClient):
    """Extraction client backed by the OpenAI chat completions API."""

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        max_tokens: int = 2000,
        timeout: float = 60.0,
    ):
        if not api_key:
            raise JobFatalError("OpenAI API key not configured")
        self.model = model
        self.max_tokens = max_tokens
        self._client = openai.AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def complete(self, request: ExtractionRequest) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": request.system_instructions},
                    {"role": "user", "content": request.user_prompt()},
                ],
                temperature=0,
                max_tokens=self.max_tokens,
            )
        except openai.APIError as e:
            raise ExtractionTransportError(f"OpenAI request failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        return content or ""

    async def close(self) -> None:
        await self._client.close()


class AnthropicExtractionClient(ExtractionClient):
    """Extraction client backed by the Anthropic messages API."""

    provider = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-haiku-latest",
        max_tokens: int = 2000,
        timeout: float = 60.0,
    ):
        if not api_key:
            raise JobFatalError("Anthropic API key not configured")
        self.model = model
        self.max_tokens = max_tokens
        self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)

    async def complete(self, request: ExtractionRequest) -> str:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0,
                system=request.system_instructions,
                messages=[{"role": "user", "content": request.user_prompt()}],
            )
        except anthropic.APIError as e:
            raise ExtractionTransportError(f"Anthropic request failed: {e}") from e

        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )

    async def close(self) -> None:
        await self._client.close()


def get_extraction_client(settings: Settings | None = None) -> ExtractionClient:
    """Build the extraction client for the configured provider.

    Raises:
        JobFatalError: If the provider's API key is missing
    """
    settings = settings or get_settings()

    if settings.llm_provider == "anthropic":
        return AnthropicExtractionClient(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout_seconds,
        )

    return OpenAIExtractionClient(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout_seconds,
    )
