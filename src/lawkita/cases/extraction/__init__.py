"""Structured case extraction.

Components:
- ExtractionClient: Text-in / JSON-out boundary to the language model
- parsing: Fence stripping, JSON location and schema validation
- StructuredExtractor: Truncation, rate limiting and retry around the client
"""

from .client import (
    AnthropicExtractionClient,
    ExtractionClient,
    ExtractionRequest,
    OpenAIExtractionClient,
    get_extraction_client,
)
from .extractor import (
    ExtractionOutcome,
    StructuredExtractor,
    get_structured_extractor,
    truncate_content,
)
from .parsing import parse_extraction_response
from .prompts import SYSTEM_INSTRUCTIONS

__all__ = [
    "AnthropicExtractionClient",
    "ExtractionClient",
    "ExtractionRequest",
    "OpenAIExtractionClient",
    "get_extraction_client",
    "ExtractionOutcome",
    "StructuredExtractor",
    "get_structured_extractor",
    "truncate_content",
    "parse_extraction_response",
    "SYSTEM_INSTRUCTIONS",
]
