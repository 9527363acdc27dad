"""Publication gate, case persistence and pipeline orchestration."""

from .gate import PublicationGate
from .locks import KeyedLock
from .orchestrator import PipelineConfig, PipelineOrchestrator
from .store import (
    CaseRepository,
    DryRunCaseRepository,
    InMemoryCaseRepository,
    SqlCaseRepository,
    UpsertResult,
)

__all__ = [
    "PublicationGate",
    "KeyedLock",
    "PipelineConfig",
    "PipelineOrchestrator",
    "CaseRepository",
    "DryRunCaseRepository",
    "InMemoryCaseRepository",
    "SqlCaseRepository",
    "UpsertResult",
]
