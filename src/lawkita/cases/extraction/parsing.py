"""Defensive parsing of extraction service responses.

Model output is untrusted: it may be wrapped in Markdown fences, carry
prose around the JSON, or drift from the requested schema. Responses
that cannot be validated are rejected rather than persisted.
"""

import json
import logging
import re
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from ..errors import ExtractionMalformedError
from ..models import (
    CaseCategory,
    CaseStatus,
    ExtractedCase,
    KeyDate,
    LawyerAssociation,
    LawyerRole,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)

# Spellings the model uses for the closed role set
ROLE_SYNONYMS: dict[str, LawyerRole] = {
    "prosecution": LawyerRole.PROSECUTION,
    "prosecutor": LawyerRole.PROSECUTION,
    "deputy public prosecutor": LawyerRole.PROSECUTION,
    "dpp": LawyerRole.PROSECUTION,
    "defense": LawyerRole.DEFENSE,
    "defence": LawyerRole.DEFENSE,
    "defense counsel": LawyerRole.DEFENSE,
    "defence counsel": LawyerRole.DEFENSE,
    "judge": LawyerRole.JUDGE,
    "justice": LawyerRole.JUDGE,
    "other": LawyerRole.OTHER,
}


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text unchanged."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1)
    return text


def find_first_json_object(text: str) -> str | None:
    """Locate the first balanced {...} object in text.

    String literals are tracked so braces inside quoted values do not
    affect nesting depth.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            char = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:idx + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def coerce_role(value: Any) -> LawyerRole:
    """Map a role value onto the closed role set, falling back to other."""
    if isinstance(value, LawyerRole):
        return value
    normalized = str(value or "").strip().lower()
    role = ROLE_SYNONYMS.get(normalized)
    if role is None:
        if normalized:
            logger.warning(f"Coercing unknown lawyer role {value!r} to 'other'")
        return LawyerRole.OTHER
    return role


def _clamp_confidence(value: Any, upper: float = 100.0) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return max(0.0, min(upper, number))


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("expected a list")
    items: list[str] = []
    for item in value:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            items.append(text)
    return items


class WireLawyer(BaseModel):
    """A lawyer entry as returned by the model."""

    model_config = ConfigDict(extra="ignore")

    lawyer_name: str = Field(validation_alias=AliasChoices("lawyerName", "name"))
    role: LawyerRole = LawyerRole.OTHER
    role_description: str | None = Field(
        default=None, validation_alias=AliasChoices("roleDescription", "role_description")
    )
    confidence: float = 0.0

    @field_validator("lawyer_name", mode="before")
    @classmethod
    def _require_name(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("lawyer name is required")
        return text

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, value: Any) -> LawyerRole:
        return coerce_role(value)

    @field_validator("role_description", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        text = str(value).strip() if value is not None else ""
        return text or None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return _clamp_confidence(value)


class WireKeyDate(BaseModel):
    """A timeline entry as returned by the model."""

    model_config = ConfigDict(extra="ignore")

    date: str
    event: str

    @field_validator("date", "event", mode="before")
    @classmethod
    def _require_text(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("date and event are required")
        return text


class WireCase(BaseModel):
    """The caseData object as returned by the model."""

    model_config = ConfigDict(extra="ignore")

    case_name: str = Field(validation_alias=AliasChoices("caseName", "case_name"))
    alternative_names: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("alternativeNames", "alternative_names"),
    )
    category: CaseCategory = CaseCategory.OTHER
    status: CaseStatus = CaseStatus.ONGOING
    court: str = ""
    judges: list[str] = Field(default_factory=list)
    lawyers: list[WireLawyer] = Field(default_factory=list)
    key_dates: list[WireKeyDate] = Field(
        default_factory=list, validation_alias=AliasChoices("keyDates", "key_dates")
    )
    charges: list[str] = Field(default_factory=list)
    verdict: str | None = None
    summary: str = ""
    confidence: int = 0

    @field_validator("case_name", mode="before")
    @classmethod
    def _require_case_name(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("caseName is required")
        return text

    @field_validator("alternative_names", "judges", "charges", mode="before")
    @classmethod
    def _strings(cls, value: Any) -> list[str]:
        return _string_list(value)

    @field_validator("lawyers", "key_dates", mode="before")
    @classmethod
    def _objects(cls, value: Any) -> list[Any]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("expected a list")
        return value

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: Any) -> CaseCategory:
        try:
            return CaseCategory(str(value or "").strip().lower())
        except ValueError:
            return CaseCategory.OTHER

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> CaseStatus:
        try:
            return CaseStatus(str(value or "").strip().lower())
        except ValueError:
            return CaseStatus.ONGOING

    @field_validator("court", "summary", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return str(value).strip() if value is not None else ""

    @field_validator("verdict", mode="before")
    @classmethod
    def _blank_verdict(cls, value: Any) -> str | None:
        text = str(value).strip() if value is not None else ""
        return text or None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> int:
        return int(round(_clamp_confidence(value)))

    def to_extracted_case(self, source_document_id: str) -> ExtractedCase:
        return ExtractedCase(
            case_name=self.case_name,
            alternative_names=[n for n in self.alternative_names if n != self.case_name],
            category=self.category,
            status=self.status,
            court=self.court,
            judges=self.judges,
            lawyers=[
                LawyerAssociation(
                    extracted_name=lawyer.lawyer_name,
                    role=lawyer.role,
                    role_description=lawyer.role_description,
                    confidence=lawyer.confidence,
                )
                for lawyer in self.lawyers
            ],
            key_dates=[KeyDate(date=d.date, event=d.event) for d in self.key_dates],
            charges=self.charges,
            verdict=self.verdict,
            summary=self.summary,
            confidence=self.confidence,
            source_document_id=source_document_id,
        )


def load_response_json(raw: str) -> dict[str, Any]:
    """Pull the first JSON object out of a raw model response.

    Raises:
        ExtractionMalformedError: If no parseable object is present
    """
    if not raw or not raw.strip():
        raise ExtractionMalformedError("Empty response from extraction service", raw)

    body = strip_code_fences(raw.strip())
    candidate = find_first_json_object(body)
    if candidate is None:
        raise ExtractionMalformedError("No JSON object in response", raw)

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ExtractionMalformedError(f"Invalid JSON in response: {e}", raw) from e

    if not isinstance(data, dict):
        raise ExtractionMalformedError("Response JSON is not an object", raw)
    return data


def parse_extraction_response(raw: str, source_document_id: str) -> ExtractedCase | None:
    """Parse and validate a raw extraction response.

    Args:
        raw: Response text from the extraction service
        source_document_id: ID of the document the response describes

    Returns:
        The extracted case, or None when the model reports no legal case

    Raises:
        ExtractionMalformedError: If the response fails validation
    """
    data = load_response_json(raw)

    if "hasLegalCase" in data or "caseData" in data:
        if not data.get("hasLegalCase"):
            return None
        case_data = data.get("caseData")
        if case_data is None:
            raise ExtractionMalformedError("hasLegalCase is true but caseData is missing", raw)
    else:
        # Bare case object without the envelope
        case_data = data

    if not isinstance(case_data, dict):
        raise ExtractionMalformedError("caseData is not an object", raw)

    try:
        wire = WireCase.model_validate(case_data)
    except ValidationError as e:
        raise ExtractionMalformedError(
            f"Response failed schema validation: {e.error_count()} error(s): "
            + "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ),
            raw,
        ) from e

    return wire.to_extracted_case(source_document_id)
