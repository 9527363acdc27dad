"""Crawl jobs.

A crawl job fetches one source type, runs every fetched document through
the pipeline and reports counts back to whoever triggered it: the admin
API, the CLI or the Celery beat schedule.
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, Field, field_validator

from ..config import Settings, get_settings
from ..logging import get_context_logger, log_job_complete, log_job_error, log_job_start
from ..worker import app as celery_app
from .adapters import MALAYSIAN_STATES, BaseSourceAdapter, get_adapter, get_sources, state_code
from .errors import JobFatalError, SourceUnavailableError
from .extraction import StructuredExtractor, get_structured_extractor
from .models import JobResult, RawDocument, SourceDescriptor, SourceType
from .publication import CaseRepository, PipelineConfig, PipelineOrchestrator, SqlCaseRepository
from .resolution import CandidateLookup, SqlLawyerRegistry
from .run_log import JobRunLog, JobRunRecord, SqlJobRunLog, finish_record, job_status

logger = get_context_logger(__name__)


# =========================
# Request / Response Models
# =========================


class JobTriggerRequest(BaseModel):
    """Parameters of a crawl job."""

    source: SourceType
    states: list[str] | None = None
    max_pages: int | None = Field(
        default=None,
        ge=1,
        le=100,
        validation_alias=AliasChoices("max_pages", "maxPages"),
    )
    dry_run: bool = Field(default=False, validation_alias=AliasChoices("dry_run", "dryRun"))

    @field_validator("states")
    @classmethod
    def _known_states(cls, value: list[str] | None) -> list[str] | None:
        if not value:
            return None
        for state in value:
            state_code(state)
        return value


class JobStats(BaseModel):
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    error_count: int = 0
    duration_ms: int = 0


class JobTriggerResponse(BaseModel):
    """What a crawl job reports back."""

    success: bool
    message: str
    stats: JobStats = Field(default_factory=JobStats)
    errors: list[str] = Field(default_factory=list)
    run_id: str
    dry_run: bool = False
    published: int = 0
    flagged: int = 0
    pending: int = 0
    cancelled: bool = False


# =========================
# Job
# =========================


class CrawlJob:
    """Fetch, process and record one crawl.

    Collaborators default to the database-backed implementations; tests
    inject in-memory ones.
    """

    def __init__(
        self,
        adapter_factory: Callable[..., BaseSourceAdapter] = get_adapter,
        extractor: StructuredExtractor | None = None,
        repository: CaseRepository | None = None,
        candidate_lookup: CandidateLookup | None = None,
        run_log: JobRunLog | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.adapter_factory = adapter_factory
        self.extractor = extractor
        self.repository = repository
        self.candidate_lookup = candidate_lookup
        self.run_log = run_log

    def _source_limit(self, request: JobTriggerRequest, source: SourceDescriptor) -> int:
        if request.source == SourceType.DIRECTORY:
            states = source.states or MALAYSIAN_STATES
            return len(states) * (request.max_pages or 1)
        return request.max_pages or self.settings.articles_per_source

    def _adapter_kwargs(self, request: JobTriggerRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"settings": self.settings}
        if request.source == SourceType.DIRECTORY:
            kwargs["max_pages"] = request.max_pages or 1
        return kwargs

    async def fetch_documents(
        self,
        request: JobTriggerRequest,
        errors: list[str],
    ) -> list[RawDocument]:
        """Fetch every source of the requested type concurrently.

        A source that fails outright adds one error; the others still
        contribute. Documents seen twice (same URL) are kept once.
        """
        adapter = self.adapter_factory(request.source, **self._adapter_kwargs(request))
        sources = get_sources(request.source, request.states)

        fetched = await asyncio.gather(
            *(adapter.fetch(source, self._source_limit(request, source)) for source in sources),
            return_exceptions=True,
        )

        documents: dict[str, RawDocument] = {}
        for source, outcome in zip(sources, fetched):
            if isinstance(outcome, SourceUnavailableError):
                logger.warning(str(outcome))
                errors.append(str(outcome))
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            for document in outcome.documents:
                documents.setdefault(document.source_id, document)

        return list(documents.values())

    async def run(
        self,
        request: JobTriggerRequest,
        cancel_event: asyncio.Event | None = None,
        deadline: datetime | None = None,
    ) -> JobTriggerResponse:
        """Run the crawl.

        Job-fatal problems (missing credentials, bad configuration) come
        back as success=False rather than raising.
        """
        run_id = str(uuid4())
        source = request.source.value
        started = time.monotonic()
        log = get_context_logger(__name__, run_id=run_id, source=source)

        record = JobRunRecord(run_id=run_id, source=source)
        run_log = None if request.dry_run else (self.run_log or SqlJobRunLog())
        if run_log is not None:
            await run_log.start(record)

        log_job_start(source, run_id, request.dry_run)

        source_errors: list[str] = []
        result: JobResult | None = None
        fatal_error: str | None = None
        extractor = self.extractor

        try:
            if extractor is None:
                extractor = get_structured_extractor(self.settings)

            documents = await self.fetch_documents(request, source_errors)
            log.info(f"Fetched {len(documents)} unique documents")

            orchestrator = PipelineOrchestrator(
                extractor=extractor,
                repository=self.repository or SqlCaseRepository(),
                candidate_lookup=self.candidate_lookup or SqlLawyerRegistry().search,
                config=PipelineConfig.from_settings(self.settings),
            )
            result = await orchestrator.run(
                documents,
                dry_run=request.dry_run,
                cancel_event=cancel_event,
                deadline=deadline,
                run_id=run_id,
            )

        except JobFatalError as e:
            fatal_error = str(e)
            log_job_error(source, run_id, fatal_error)

        except Exception as e:
            log_job_error(source, run_id, str(e))
            if run_log is not None:
                await run_log.finish(
                    finish_record(record, None, "failed", [str(e)], self.settings.max_error_entries)
                )
            raise

        finally:
            if extractor is not None and self.extractor is None:
                await extractor.close()

        duration_ms = int((time.monotonic() - started) * 1000)
        errors = source_errors + (result.errors if result else [])
        if fatal_error:
            errors.insert(0, fatal_error)
        error_count = len(source_errors) + (result.error_count if result else 0) + (1 if fatal_error else 0)

        if run_log is not None:
            if result is not None:
                result.error_count = error_count
                result.duration_ms = duration_ms
            status = job_status(result, fatal=fatal_error is not None)
            await run_log.finish(
                finish_record(record, result, status, errors, self.settings.max_error_entries)
            )

        if fatal_error:
            return JobTriggerResponse(
                success=False,
                message=f"{source} job failed: {fatal_error}",
                stats=JobStats(error_count=error_count, duration_ms=duration_ms),
                errors=errors[: self.settings.response_error_limit],
                run_id=run_id,
                dry_run=request.dry_run,
            )

        stats = JobStats(**{**result.stats(), "error_count": error_count, "duration_ms": duration_ms})
        log_job_complete(source, run_id, stats.processed, duration_ms)

        return JobTriggerResponse(
            success=True,
            message=(
                f"{source} job {'dry run ' if request.dry_run else ''}completed: "
                f"{stats.processed} processed, {stats.created} created, "
                f"{stats.updated} updated, {stats.error_count} errors"
            ),
            stats=stats,
            errors=errors[: self.settings.response_error_limit],
            run_id=run_id,
            dry_run=request.dry_run,
            published=result.published,
            flagged=result.flagged,
            pending=result.pending,
            cancelled=result.cancelled,
        )


async def run_crawl_job(
    request: JobTriggerRequest,
    cancel_event: asyncio.Event | None = None,
    deadline: datetime | None = None,
    **kwargs: Any,
) -> JobTriggerResponse:
    """Run a crawl job with default collaborators.

    Args:
        request: What to crawl
        cancel_event: Stops dispatch of further documents once set
        deadline: Stops dispatch of further documents once passed
        **kwargs: Collaborator overrides passed to CrawlJob
    """
    return await CrawlJob(**kwargs).run(request, cancel_event=cancel_event, deadline=deadline)


# =========================
# Celery Task
# =========================


@celery_app.task(bind=True)
def run_crawl_job_task(
    self,
    source: str = "news",
    states: list[str] | None = None,
    max_pages: int | None = None,
    dry_run: bool = False,
    enabled: bool = True,
) -> dict[str, Any]:
    """Celery task for a crawl job.

    Args:
        source: news, judgments or directory
        states: Directory states to crawl
        max_pages: Pages per source (or per state for the directory)
        dry_run: Process without writing
        enabled: Scheduled runs pass the feature flag here

    Returns:
        JobTriggerResponse as a dictionary
    """
    if not enabled:
        return {"success": True, "message": f"{source} crawl disabled", "skipped": True}

    request = JobTriggerRequest(source=source, states=states, max_pages=max_pages, dry_run=dry_run)

    async def run():
        return await run_crawl_job(request)

    return asyncio.run(run()).model_dump(mode="json")
