"""News-derived legal case pipeline.

Turns news articles, court judgments and directory pages into canonical
case records with lawyer associations:

    adapters -> relevance -> extraction -> resolution -> merging -> publication

Jobs (`lawkita.cases.jobs`) wire the stages together for one crawl.
"""

from .errors import (
    EmptyMergeError,
    ExtractionMalformedError,
    ExtractionTransportError,
    JobFatalError,
    PersistenceConflictError,
    PipelineError,
    SourceUnavailableError,
)
from .models import (
    CaseCategory,
    CaseStatus,
    ExtractedCase,
    JobResult,
    LawyerAssociation,
    LawyerRole,
    MatchResult,
    MergedCase,
    PublicationState,
    RawDocument,
    SourceDescriptor,
    SourceType,
    case_key,
    make_document_id,
)

__all__ = [
    "CaseCategory",
    "CaseStatus",
    "EmptyMergeError",
    "ExtractedCase",
    "ExtractionMalformedError",
    "ExtractionTransportError",
    "JobFatalError",
    "JobResult",
    "LawyerAssociation",
    "LawyerRole",
    "MatchResult",
    "MergedCase",
    "PersistenceConflictError",
    "PipelineError",
    "PublicationState",
    "RawDocument",
    "SourceDescriptor",
    "SourceType",
    "SourceUnavailableError",
    "case_key",
    "make_document_id",
]
