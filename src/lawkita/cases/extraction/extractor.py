"""Structured case extraction from raw documents.

Wraps an ExtractionClient with the pieces the pipeline needs around a
model call: content truncation, a ceiling on simultaneous calls,
bounded retries on transport errors, and defensive response parsing.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from pydantic import BaseModel, ConfigDict

from ...config import Settings, get_settings
from ..errors import ExtractionMalformedError, ExtractionTransportError
from ..models import ExtractedCase, RawDocument
from ..retry import RetryConfig, with_retry
from .client import ExtractionClient, ExtractionRequest, get_extraction_client
from .parsing import parse_extraction_response
from .prompts import SYSTEM_INSTRUCTIONS

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n...[truncated]..."


class ExtractionOutcome(BaseModel):
    """Result of extracting one document.

    Exactly one of the following holds:
    - `case` is set (a legal case was extracted)
    - `has_legal_case` is False and `error` is None (no case, not an error)
    - `error` is set (transport failure or malformed response)
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    document_id: str
    case: ExtractedCase | None = None
    has_legal_case: bool = False
    error: str | None = None
    error_code: str | None = None
    raw_response: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def truncate_content(content: str, char_budget: int) -> str:
    """Cut content to the character budget, marker included."""
    if char_budget <= 0 or len(content) <= char_budget:
        return content
    keep = char_budget - len(TRUNCATION_MARKER)
    if keep <= 0:
        return content[:char_budget]
    return content[:keep] + TRUNCATION_MARKER


class StructuredExtractor:
    """Turns a RawDocument into at most one ExtractedCase."""

    def __init__(
        self,
        client: ExtractionClient,
        char_budget: int = 8000,
        concurrency: int = 2,
        retry_config: RetryConfig | None = None,
        system_instructions: str = SYSTEM_INSTRUCTIONS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.char_budget = char_budget
        self.retry_config = retry_config or RetryConfig()
        self.system_instructions = system_instructions
        self._semaphore = asyncio.Semaphore(max(concurrency, 1))
        self._sleep = sleep

    def build_request(self, document: RawDocument) -> ExtractionRequest:
        return ExtractionRequest(
            system_instructions=self.system_instructions,
            document_title=document.title,
            document_source=document.source_name or document.url,
            document_content=truncate_content(document.content, self.char_budget),
            published_at=document.published_at.date().isoformat() if document.published_at else None,
        )

    async def _call(self, request: ExtractionRequest) -> str:
        async with self._semaphore:
            return await self.client.complete(request)

    async def extract(self, document: RawDocument) -> ExtractionOutcome:
        """Extract a case from the document.

        Transport errors are retried with backoff; malformed responses are
        not, since the same prompt tends to produce the same shape.
        Neither propagates: both come back as a failed outcome.
        """
        request = self.build_request(document)

        try:
            raw = await with_retry(
                lambda: self._call(request),
                config=self.retry_config,
                logger=logger,
                retry_on=(ExtractionTransportError,),
                sleep=self._sleep,
            )
        except ExtractionTransportError as e:
            return ExtractionOutcome(
                document_id=document.source_id,
                error=str(e),
                error_code=e.error_code,
            )

        try:
            case = parse_extraction_response(raw, document.source_id)
        except ExtractionMalformedError as e:
            logger.warning(
                f"Malformed extraction for {document.source_id}: {e}",
                extra={"document_id": document.source_id, "raw_response": raw[:2000]},
            )
            return ExtractionOutcome(
                document_id=document.source_id,
                error=str(e),
                error_code=e.error_code,
                raw_response=raw,
            )

        return ExtractionOutcome(
            document_id=document.source_id,
            case=case,
            has_legal_case=case is not None,
            raw_response=raw,
        )

    async def close(self) -> None:
        await self.client.close()


def get_structured_extractor(
    settings: Settings | None = None,
    client: ExtractionClient | None = None,
) -> StructuredExtractor:
    """Build an extractor from settings.

    Raises:
        JobFatalError: If no client is given and the provider key is missing
    """
    settings = settings or get_settings()
    return StructuredExtractor(
        client=client or get_extraction_client(settings),
        char_budget=settings.extraction_char_budget,
        concurrency=settings.extraction_concurrency,
        retry_config=RetryConfig(
            max_attempts=settings.extraction_max_attempts,
            base_delay=settings.extraction_retry_base_delay,
            max_delay=settings.extraction_retry_max_delay,
        ),
    )
