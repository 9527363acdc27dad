"""Pydantic models for the legal-case pipeline.

This module defines the domain models that flow through the pipeline:
raw documents from source adapters, per-document case extractions,
registry match results, merged canonical cases and job summaries.
"""

import hashlib
import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enumerations
# =============================================================================


class SourceType(str, Enum):
    """Kinds of external source a document can come from."""

    NEWS = "news"
    JUDGMENTS = "judgments"
    DIRECTORY = "directory"


class CaseCategory(str, Enum):
    """Categories a case can be filed under."""

    CORRUPTION = "corruption"
    POLITICAL = "political"
    CORPORATE = "corporate"
    CRIMINAL = "criminal"
    CONSTITUTIONAL = "constitutional"
    OTHER = "other"


class CaseStatus(str, Enum):
    """Procedural status of a case."""

    ONGOING = "ongoing"
    CONCLUDED = "concluded"
    APPEAL = "appeal"


class LawyerRole(str, Enum):
    """Role of a legal professional in a case."""

    PROSECUTION = "prosecution"
    DEFENSE = "defense"
    JUDGE = "judge"
    OTHER = "other"


class PublicationState(str, Enum):
    """Publication state assigned by the confidence gate."""

    PUBLISHED = "published"  # Auto-published
    FLAGGED = "flagged"  # Persisted unpublished, awaiting manual review
    PENDING = "pending"  # Draft, not surfaced publicly


class UpsertAction(str, Enum):
    """What persisting a merged case did to storage."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


class DocumentStage(str, Enum):
    """Pipeline stages a document moves through."""

    FETCHED = "fetched"
    FILTERED = "filtered"
    EXTRACTED = "extracted"
    RESOLVED = "resolved"
    MERGED = "merged"
    GATED = "gated"
    PERSISTED = "persisted"


# =============================================================================
# Helpers
# =============================================================================


def make_document_id(source_type: SourceType | str, url: str) -> str:
    """Build a stable document identifier from its source type and URL."""
    source_value = source_type.value if isinstance(source_type, SourceType) else source_type
    digest = hashlib.sha1(url.strip().encode("utf-8")).hexdigest()[:16]
    return f"{source_value}:{digest}"


def case_key(name: str) -> str:
    """Normalize a case name into its canonical storage key.

    Lower-cases, collapses every run of non-alphanumerics to a single
    hyphen and trims to 100 characters, so "PP v. Najib Razak" and
    "pp v najib razak" share a key.
    """
    key = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return key[:100]


def parse_event_date(value: str) -> date | None:
    """Parse a key-date string, accepting YYYY-MM-DD, YYYY-MM and YYYY."""
    value = (value or "").strip()
    for fmt in ("%Y-%m-%d", "%Y-%m", "%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def naive_utc(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC.

    Every timestamp column is `timestamp without time zone`.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Source models
# =============================================================================


class SourceDescriptor(BaseModel):
    """Describes one external source to crawl."""

    name: str
    url: str
    source_type: SourceType
    trust_score: float = Field(default=1.0, ge=0.0, le=1.0)
    max_depth: int = Field(default=2, ge=1)
    page_limit: int = Field(default=30, ge=1)
    include_paths: list[str] = Field(default_factory=list)
    exclude_paths: list[str] = Field(default_factory=list)
    fallback_paths: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)


class RawDocument(BaseModel):
    """A fetched document normalized to plain text.

    Immutable once fetched.
    """

    model_config = ConfigDict(frozen=True)

    source_id: str = Field(..., description="Stable document identifier")
    url: str
    title: str
    content: str = Field(..., description="Plain text or markdown body")
    published_at: datetime | None = None
    fetched_at: datetime = Field(default_factory=datetime.utcnow)
    source_name: str = ""
    source_type: SourceType = SourceType.NEWS
    trust_score: float = Field(default=1.0, ge=0.0, le=1.0)

    @field_validator("published_at")
    @classmethod
    def _published_as_naive_utc(cls, value: datetime | None) -> datetime | None:
        return naive_utc(value)


class FetchResult(BaseModel):
    """Documents returned by a source adapter plus the pages it lost."""

    source_name: str
    documents: list[RawDocument] = Field(default_factory=list)
    unavailable: int = 0


# =============================================================================
# Extraction models
# =============================================================================


class MatchResult(BaseModel):
    """Outcome of resolving one extracted name against the registry."""

    model_config = ConfigDict(frozen=True)

    extracted_name: str
    resolved_entity_id: str | None = None
    resolved_name: str | None = None
    match_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    strategy: str = "token_overlap"

    @property
    def is_resolved(self) -> bool:
        return self.resolved_entity_id is not None


class LawyerAssociation(BaseModel):
    """A person named in a case together with their role."""

    model_config = ConfigDict(frozen=True)

    extracted_name: str
    role: LawyerRole = LawyerRole.OTHER
    role_description: str | None = None
    confidence: float = 0.0
    match: MatchResult | None = None

    @property
    def name_key(self) -> str:
        return self.extracted_name.strip().lower()


class KeyDate(BaseModel):
    """A dated event in a case timeline."""

    model_config = ConfigDict(frozen=True)

    date: str
    event: str

    @property
    def dedup_key(self) -> str:
        return f"{self.date}-{self.event[:20]}"


class ExtractedCase(BaseModel):
    """Structured case data extracted from one document.

    Never mutated; combined into a new MergedCase instead.
    """

    model_config = ConfigDict(frozen=True)

    case_name: str
    alternative_names: list[str] = Field(default_factory=list)
    category: CaseCategory = CaseCategory.OTHER
    status: CaseStatus = CaseStatus.ONGOING
    court: str = ""
    judges: list[str] = Field(default_factory=list)
    lawyers: list[LawyerAssociation] = Field(default_factory=list)
    key_dates: list[KeyDate] = Field(default_factory=list)
    charges: list[str] = Field(default_factory=list)
    verdict: str | None = None
    summary: str = ""
    confidence: int = Field(default=0, ge=0, le=100)
    source_document_id: str = ""

    @property
    def all_names(self) -> list[str]:
        return [self.case_name, *self.alternative_names]


class MediaReference(BaseModel):
    """A source document that contributed to a merged case."""

    model_config = ConfigDict(frozen=True)

    source_document_id: str
    source_name: str = ""
    url: str = ""
    title: str = ""
    published_at: datetime | None = None

    @field_validator("published_at")
    @classmethod
    def _published_as_naive_utc(cls, value: datetime | None) -> datetime | None:
        return naive_utc(value)


class MergedCase(BaseModel):
    """Canonical case built from one or more extractions.

    This is the unit committed to storage.
    """

    canonical_name: str
    canonical_key: str
    alternative_names: list[str] = Field(default_factory=list)
    category: CaseCategory = CaseCategory.OTHER
    status: CaseStatus = CaseStatus.ONGOING
    court: str = ""
    judges: list[str] = Field(default_factory=list)
    lawyers: list[LawyerAssociation] = Field(default_factory=list)
    key_dates: list[KeyDate] = Field(default_factory=list)
    charges: list[str] = Field(default_factory=list)
    verdict: str | None = None
    summary: str = ""
    confidence: int = Field(default=0, ge=0, le=100)
    base_confidence: int = Field(default=0, ge=0, le=100)
    source_document_ids: list[str] = Field(default_factory=list)
    sources: list[MediaReference] = Field(default_factory=list)
    version: int = 0

    @property
    def all_names(self) -> list[str]:
        return [self.canonical_name, *self.alternative_names]

    @property
    def all_keys(self) -> list[str]:
        """Canonical key followed by the keys of every alternative name."""
        keys = [self.canonical_key]
        for name in self.alternative_names:
            key = case_key(name)
            if key and key not in keys:
                keys.append(key)
        return keys


# =============================================================================
# Job models
# =============================================================================


class DocumentOutcome(BaseModel):
    """Where a single document ended up."""

    document_id: str
    url: str = ""
    stage: DocumentStage = DocumentStage.FETCHED
    action: str = "skipped"  # created, updated, skipped, failed
    case_key: str | None = None
    publication_state: PublicationState | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.action != "failed"


class JobResult(BaseModel):
    """Summary of one pipeline run."""

    total_processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    error_count: int = 0
    duration_ms: int = 0
    published: int = 0
    flagged: int = 0
    pending: int = 0
    lawyer_associations: int = 0
    unresolved_lawyers: int = 0
    cancelled: bool = False
    dry_run: bool = False
    outcomes: list[DocumentOutcome] = Field(default_factory=list)

    def record_error(self, message: str, limit: int) -> None:
        """Count an error, keeping only the first `limit` messages."""
        self.error_count += 1
        if len(self.errors) < limit:
            self.errors.append(message)

    def stats(self) -> dict[str, Any]:
        """Counts exposed to the job trigger caller."""
        return {
            "processed": self.total_processed,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "error_count": self.error_count,
            "duration_ms": self.duration_ms,
        }
