"""Pipeline orchestration.

Drives a batch of raw documents through the pipeline:

    fetched -> filtered -> extracted -> resolved -> merged -> gated -> persisted

Documents are filtered, extracted and resolved concurrently up to a
worker ceiling. Their extractions are then grouped by case, merged, gated
and persisted, with writes to the same case serialized by a per-key lock.
A failure in one document is recorded in the job result and never stops
the others; only JobFatalError aborts a run.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from ...config import Settings, get_settings
from ...logging import get_context_logger, log_document_outcome
from ..errors import JobFatalError, PersistenceConflictError
from ..extraction import StructuredExtractor
from ..merging import (
    ExactOrSubstringPredicate,
    SameCasePredicate,
    group_extractions,
    merge,
    remerge,
)
from ..models import (
    DocumentOutcome,
    DocumentStage,
    ExtractedCase,
    JobResult,
    MediaReference,
    MergedCase,
    PublicationState,
    RawDocument,
    UpsertAction,
    case_key,
)
from ..relevance import RelevanceFilter
from ..resolution import CandidateLookup, EntityResolver
from .gate import PublicationGate
from .locks import KeyedLock
from .store import CaseRepository, DryRunCaseRepository

logger = get_context_logger(__name__)


class PipelineConfig(BaseModel):
    """Bounds and thresholds for one orchestrator."""

    max_workers: int = Field(default=4, ge=1)
    min_keywords: int = Field(default=3, ge=1)
    match_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    publish_threshold: int = Field(default=90, ge=0, le=100)
    review_threshold: int = Field(default=70, ge=0, le=100)
    persistence_max_attempts: int = Field(default=3, ge=1)
    max_error_entries: int = Field(default=50, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PipelineConfig":
        settings = settings or get_settings()
        return cls(
            max_workers=settings.pipeline_max_workers,
            min_keywords=settings.relevance_min_keywords,
            match_threshold=settings.match_threshold,
            publish_threshold=settings.publish_threshold,
            review_threshold=settings.review_threshold,
            persistence_max_attempts=settings.persistence_max_attempts,
            max_error_entries=settings.max_error_entries,
        )


@dataclass
class _DocumentState:
    """A document's progress through the per-document stages."""

    document: RawDocument
    outcome: DocumentOutcome
    case: ExtractedCase | None = None
    error: str | None = None


@dataclass
class _GroupResult:
    action: UpsertAction | None = None
    state: PublicationState | None = None
    merged: MergedCase | None = None
    error: str | None = None
    document_ids: set[str] = field(default_factory=set)


class PipelineOrchestrator:
    """Runs batches of documents through the pipeline."""

    def __init__(
        self,
        extractor: StructuredExtractor,
        repository: CaseRepository,
        candidate_lookup: CandidateLookup,
        resolver: EntityResolver | None = None,
        gate: PublicationGate | None = None,
        relevance: RelevanceFilter | None = None,
        predicate: SameCasePredicate | None = None,
        config: PipelineConfig | None = None,
    ):
        self.config = config or PipelineConfig()
        self.extractor = extractor
        self.repository = repository
        self.candidate_lookup = candidate_lookup
        self.resolver = resolver or EntityResolver(threshold=self.config.match_threshold)
        self.gate = gate or PublicationGate(
            publish_threshold=self.config.publish_threshold,
            review_threshold=self.config.review_threshold,
        )
        self.relevance = relevance or RelevanceFilter(min_keywords=self.config.min_keywords)
        self.predicate = predicate or ExactOrSubstringPredicate()
        self._locks = KeyedLock()

    async def run(
        self,
        batch: list[RawDocument],
        dry_run: bool = False,
        cancel_event: asyncio.Event | None = None,
        deadline: datetime | None = None,
        run_id: str | None = None,
    ) -> JobResult:
        """Process a batch of documents.

        Args:
            batch: Documents to process
            dry_run: Run every stage but capture writes instead of storing them
            cancel_event: Once set, no further documents are dispatched
            deadline: Once passed, no further documents are dispatched
            run_id: Identifier for log correlation

        Returns:
            JobResult for the documents that were dispatched

        Raises:
            JobFatalError: On configuration or credential failures
        """
        run_id = run_id or uuid4().hex[:12]
        started = time.monotonic()
        result = JobResult(dry_run=dry_run)
        repository: CaseRepository = (
            DryRunCaseRepository(self.repository) if dry_run else self.repository
        )

        log = get_context_logger(__name__, run_id=run_id, dry_run=dry_run)
        log.info(f"Processing batch of {len(batch)} documents")

        states, cancelled = await self._run_documents(batch, cancel_event, deadline, run_id)
        result.cancelled = cancelled
        result.total_processed = len(states)

        for state in states:
            if state.error:
                result.record_error(state.error, self.config.max_error_entries)
            elif state.case is None:
                result.skipped += 1

        await self._persist_cases(states, repository, result, run_id)

        result.outcomes = [s.outcome for s in states]
        for outcome in result.outcomes:
            log_document_outcome(
                run_id=run_id,
                document_id=outcome.document_id,
                stage=outcome.stage.value,
                action=outcome.action,
                case_key=outcome.case_key,
            )

        result.duration_ms = int((time.monotonic() - started) * 1000)
        log.info(
            f"Batch complete: {result.created} created, {result.updated} updated, "
            f"{result.skipped} skipped, {result.error_count} errors"
            + (" (cancelled)" if result.cancelled else "")
        )
        return result

    # =========================
    # Per-document stages
    # =========================

    @staticmethod
    def _should_stop(cancel_event: asyncio.Event | None, deadline: datetime | None) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return True
        if deadline is not None and datetime.now(deadline.tzinfo) >= deadline:
            return True
        return False

    async def _run_documents(
        self,
        batch: list[RawDocument],
        cancel_event: asyncio.Event | None,
        deadline: datetime | None,
        run_id: str,
    ) -> tuple[list[_DocumentState], bool]:
        semaphore = asyncio.Semaphore(self.config.max_workers)
        tasks: list[asyncio.Task] = []
        cancelled = False

        async def guarded(document: RawDocument) -> _DocumentState:
            try:
                return await self._process_document(document, run_id)
            finally:
                semaphore.release()

        try:
            for document in batch:
                await semaphore.acquire()
                if self._should_stop(cancel_event, deadline):
                    semaphore.release()
                    cancelled = True
                    logger.warning(
                        f"Run {run_id} cancelled; {len(batch) - len(tasks)} documents not dispatched"
                    )
                    break
                tasks.append(asyncio.create_task(guarded(document)))

            states = await asyncio.gather(*tasks)
        except JobFatalError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return list(states), cancelled

    async def _process_document(self, document: RawDocument, run_id: str) -> _DocumentState:
        outcome = DocumentOutcome(
            document_id=document.source_id,
            url=document.url,
            stage=DocumentStage.FETCHED,
        )
        state = _DocumentState(document=document, outcome=outcome)

        try:
            if not self.relevance.is_relevant(document):
                outcome.stage = DocumentStage.FILTERED
                outcome.action = UpsertAction.SKIPPED.value
                return state
            outcome.stage = DocumentStage.FILTERED

            extraction = await self.extractor.extract(document)
            outcome.stage = DocumentStage.EXTRACTED
            if extraction.failed:
                return self._fail(state, extraction.error or "extraction failed")
            if extraction.case is None:
                outcome.action = UpsertAction.SKIPPED.value
                return state

            lawyers = await self.resolver.resolve_associations(
                extraction.case.lawyers, self.candidate_lookup
            )
            state.case = extraction.case.model_copy(update={"lawyers": lawyers})
            outcome.stage = DocumentStage.RESOLVED
            return state

        except JobFatalError:
            raise
        except Exception as e:
            logger.exception(f"Run {run_id}: unexpected error on {document.url}")
            return self._fail(state, str(e) or type(e).__name__)

    @staticmethod
    def _fail(state: _DocumentState, error: str) -> _DocumentState:
        state.outcome.action = "failed"
        state.outcome.error = error
        state.error = f"{state.document.url}: {error}"
        state.case = None
        return state

    # =========================
    # Merge, gate, persist
    # =========================

    async def _persist_cases(
        self,
        states: list[_DocumentState],
        repository: CaseRepository,
        result: JobResult,
        run_id: str,
    ) -> None:
        extracted = [s for s in states if s.case is not None]
        if not extracted:
            return

        by_document = {s.document.source_id: s for s in extracted}
        references = {
            s.document.source_id: MediaReference(
                source_document_id=s.document.source_id,
                source_name=s.document.source_name,
                url=s.document.url,
                title=s.document.title,
                published_at=s.document.published_at,
            )
            for s in extracted
        }

        groups = group_extractions([s.case for s in extracted], self.predicate)
        semaphore = asyncio.Semaphore(self.config.max_workers)

        async def persist(group: list[ExtractedCase]) -> _GroupResult:
            async with semaphore:
                return await self._persist_group(group, references, repository, run_id)

        group_results = await asyncio.gather(*(persist(g) for g in groups))

        for group_result in group_results:
            members = [by_document[doc_id] for doc_id in group_result.document_ids]

            if group_result.error:
                for member in members:
                    member.outcome.stage = DocumentStage.MERGED
                    self._fail(member, group_result.error)
                    result.record_error(member.error, self.config.max_error_entries)
                continue

            merged = group_result.merged
            action = group_result.action
            if action == UpsertAction.CREATED:
                result.created += 1
            elif action == UpsertAction.UPDATED:
                result.updated += 1
            else:
                result.skipped += 1

            if action != UpsertAction.SKIPPED:
                if group_result.state == PublicationState.PUBLISHED:
                    result.published += 1
                elif group_result.state == PublicationState.FLAGGED:
                    result.flagged += 1
                else:
                    result.pending += 1
                result.lawyer_associations += len(merged.lawyers)
                result.unresolved_lawyers += sum(
                    1 for a in merged.lawyers if not (a.match and a.match.is_resolved)
                )

            for member in members:
                member.outcome.stage = DocumentStage.PERSISTED
                member.outcome.action = action.value
                member.outcome.case_key = merged.canonical_key
                member.outcome.publication_state = group_result.state

    async def _find_same_case(
        self,
        group: list[ExtractedCase],
        keys: list[str],
        repository: CaseRepository,
    ) -> MergedCase | None:
        """Stored case the predicate deems the same as this group, if any.

        Applies the predicate that grouped the batch, so reports of one case
        end up together whether they arrive in one run or several.
        """
        names = [name for e in group for name in e.all_names]
        for stored in await repository.find_similar(keys):
            if self.predicate.same_names(names, stored.all_names):
                return stored
        return None

    async def _persist_group(
        self,
        group: list[ExtractedCase],
        references: dict[str, MediaReference],
        repository: CaseRepository,
        run_id: str,
    ) -> _GroupResult:
        group_result = _GroupResult(document_ids={e.source_document_id for e in group})

        try:
            fresh = merge(group, references)
            keys = list(dict.fromkeys(
                [fresh.canonical_key, *(case_key(name) for e in group for name in e.all_names)]
            ))

            async with self._locks.hold(*keys):
                attempts = self.config.persistence_max_attempts
                for attempt in range(attempts):
                    existing = await repository.find_any(keys)
                    if existing is None:
                        existing = await self._find_same_case(group, keys, repository)
                    if existing is None:
                        candidate, expected_version = fresh, None
                    else:
                        candidate = remerge(existing, group, references)
                        if candidate is existing:
                            group_result.action = UpsertAction.SKIPPED
                            group_result.state = self.gate.decide(existing.confidence)
                            group_result.merged = existing
                            return group_result
                        expected_version = existing.version

                    state = self.gate.evaluate(candidate)
                    try:
                        upsert = await repository.upsert(candidate, state, expected_version)
                    except PersistenceConflictError as e:
                        if attempt + 1 >= attempts:
                            raise
                        logger.warning(f"Run {run_id}: {e}; re-reading (attempt {attempt + 1})")
                        continue

                    group_result.action = upsert.action
                    group_result.state = state
                    group_result.merged = candidate
                    return group_result

        except JobFatalError:
            raise
        except Exception as e:
            logger.exception(f"Run {run_id}: failed to persist case group")
            group_result.error = str(e) or type(e).__name__

        return group_result

