"""Unit tests for crawl jobs and the Celery task.

Adapters, extraction, storage and the run log are all replaced with
in-memory fakes.

Run with: pytest tests/unit/cases/test_jobs.py -v
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError

from lawkita.cases.adapters import BaseSourceAdapter
from lawkita.cases.errors import SourceUnavailableError
from lawkita.cases.jobs import (
    CrawlJob,
    JobTriggerRequest,
    JobTriggerResponse,
    run_crawl_job_task,
)
from lawkita.cases.models import FetchResult, JobResult, SourceType
from lawkita.cases.run_log import InMemoryJobRunLog, JobRunRecord, job_status
from lawkita.config import Settings
from tests.fixtures import ScriptedExtractionClient, case_response, make_document


class StaticAdapter(BaseSourceAdapter):
    """Serves preset documents (or raises preset errors) per source name."""

    source_type = SourceType.NEWS

    def __init__(self, pages: dict, max_pages: int = 1, **kwargs):
        super().__init__(**kwargs)
        self.pages = pages
        self.max_pages = max_pages
        self.limits: dict[str, int] = {}

    async def _fetch(self, source, limit):
        self.limits[source.name] = limit
        outcome = self.pages.get(source.name, [])
        if isinstance(outcome, BaseException):
            raise outcome
        return FetchResult(source_name=source.name, documents=list(outcome))


@pytest.fixture
def run_log():
    return InMemoryJobRunLog()


@pytest.fixture
def crawl_job(settings, make_extractor, repository, registry, run_log):
    """Factory for a CrawlJob serving the given pages."""
    created = {}

    def factory(pages: dict, script: dict | None = None, **overrides) -> CrawlJob:
        def adapter_factory(source_type, **kwargs):
            created["kwargs"] = kwargs
            created["adapter"] = StaticAdapter(pages, **kwargs)
            return created["adapter"]

        options = dict(
            adapter_factory=adapter_factory,
            extractor=make_extractor(ScriptedExtractionClient(script or {})),
            repository=repository,
            candidate_lookup=registry.search,
            run_log=run_log,
            settings=settings,
        )
        options.update(overrides)
        job = CrawlJob(**options)
        job.created = created
        return job

    return factory


def _news_batch():
    documents = [make_document(i) for i in range(2)]
    script = {
        documents[0].title: case_response("PP v Najib Razak", confidence=95),
        documents[1].title: case_response("PP v Rosmah Mansor", confidence=75),
    }
    return documents, script


class TestJobTriggerRequest:
    """Tests for request validation."""

    def test_camel_case_aliases(self):
        request = JobTriggerRequest.model_validate({"source": "news", "maxPages": 5, "dryRun": True})
        assert request.max_pages == 5
        assert request.dry_run is True

    def test_unknown_source_rejected(self):
        with pytest.raises(ValidationError):
            JobTriggerRequest(source="twitter")

    def test_max_pages_bounds(self):
        with pytest.raises(ValidationError):
            JobTriggerRequest(source="news", max_pages=0)
        with pytest.raises(ValidationError):
            JobTriggerRequest(source="news", max_pages=101)

    def test_unknown_state_rejected(self):
        with pytest.raises(ValidationError):
            JobTriggerRequest(source="directory", states=["Sabah"])

    def test_empty_states_mean_all(self):
        assert JobTriggerRequest(source="directory", states=[]).states is None


class TestCrawlJob:
    """Tests for CrawlJob.run."""

    @pytest.mark.asyncio
    async def test_successful_run(self, crawl_job, repository, run_log):
        documents, script = _news_batch()
        job = crawl_job({"The Star": documents}, script)

        response = await job.run(JobTriggerRequest(source="news"))

        assert response.success is True
        assert response.stats.processed == 2
        assert response.stats.created == 2
        assert response.published == 1
        assert response.flagged == 1
        assert response.errors == []
        assert len(repository.cases) == 2

        record = run_log.records[response.run_id]
        assert record.status == "completed"
        assert record.records_created == 2
        assert record.metadata["published"] == 1

    @pytest.mark.asyncio
    async def test_duplicate_urls_processed_once(self, crawl_job):
        """Test that the same article from two sources counts once."""
        documents, script = _news_batch()
        job = crawl_job({"The Star": documents, "Malay Mail": documents[:1]}, script)

        response = await job.run(JobTriggerRequest(source="news"))

        assert response.stats.processed == 2

    @pytest.mark.asyncio
    async def test_unavailable_source_is_partial(self, crawl_job, run_log):
        """Test that a dead source adds one error and the rest still run."""
        documents, script = _news_batch()
        job = crawl_job(
            {"The Star": documents, "Bernama": SourceUnavailableError("Bernama", "HTTP 503")},
            script,
        )

        response = await job.run(JobTriggerRequest(source="news"))

        assert response.success is True
        assert response.stats.created == 2
        assert response.stats.error_count == 1
        assert "Bernama" in response.errors[0]
        assert run_log.records[response.run_id].status == "partial"

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_job(self, crawl_job, run_log):
        """Test that a missing provider key returns success=False."""
        settings = Settings(llm_provider="openai", openai_api_key="", firecrawl_api_key="key")
        job = crawl_job({}, extractor=None, settings=settings)

        response = await job.run(JobTriggerRequest(source="news"))

        assert response.success is False
        assert response.errors[0] == "OpenAI API key not configured"
        assert response.stats.error_count == 1
        assert run_log.records[response.run_id].status == "failed"

    @pytest.mark.asyncio
    async def test_unexpected_error_recorded_then_raised(self, crawl_job, run_log):
        job = crawl_job({"The Star": RuntimeError("adapter bug")})

        with pytest.raises(RuntimeError):
            await job.run(JobTriggerRequest(source="news"))

        [record] = run_log.records.values()
        assert record.status == "failed"
        assert record.errors == ["adapter bug"]

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, crawl_job, repository, run_log):
        documents, script = _news_batch()
        job = crawl_job({"The Star": documents}, script)

        response = await job.run(JobTriggerRequest(source="news", dry_run=True))

        assert response.dry_run is True
        assert response.stats.created == 2
        assert repository.cases == {}
        assert run_log.records == {}

    @pytest.mark.asyncio
    async def test_cancelled_before_dispatch(self, crawl_job):
        documents, script = _news_batch()
        job = crawl_job({"The Star": documents}, script)
        cancel = asyncio.Event()
        cancel.set()

        response = await job.run(JobTriggerRequest(source="news"), cancel_event=cancel)

        assert response.cancelled is True
        assert response.stats.processed == 0

    @pytest.mark.asyncio
    async def test_news_limit_from_max_pages(self, crawl_job, settings):
        job = crawl_job({})

        await job.run(JobTriggerRequest(source="news", max_pages=7))
        assert job.created["adapter"].limits["The Star"] == 7

        await job.run(JobTriggerRequest(source="news"))

        assert job.created["adapter"].limits["The Star"] == settings.articles_per_source

    @pytest.mark.asyncio
    async def test_directory_limit_per_state(self, crawl_job):
        """Test that directory jobs fetch max_pages for each state."""
        job = crawl_job({})

        await job.run(JobTriggerRequest(source="directory", states=["Selangor", "Penang"], max_pages=3))

        assert job.created["kwargs"]["max_pages"] == 3
        assert job.created["adapter"].limits["Malaysian Bar Legal Directory"] == 6


class TestCrawlTask:
    """Tests for the Celery task wrapper."""

    def test_disabled_task_skips(self):
        result = run_crawl_job_task(source="news", enabled=False)

        assert result["success"] is True
        assert result["skipped"] is True

    def test_task_runs_job(self):
        response = JobTriggerResponse(success=True, message="judgments job completed", run_id="run-1")

        with patch("lawkita.cases.jobs.run_crawl_job", AsyncMock(return_value=response)) as mock_run:
            result = run_crawl_job_task(source="judgments", max_pages=5)

        request = mock_run.await_args.args[0]
        assert request.source == SourceType.JUDGMENTS
        assert request.max_pages == 5
        assert result["run_id"] == "run-1"
        assert result["success"] is True


class TestJobRunLog:
    """Tests for run records and the in-memory run log."""

    @pytest.mark.asyncio
    async def test_abandon_running(self, run_log):
        """Test that only runs still marked running are failed."""
        await run_log.start(JobRunRecord(run_id="stuck", source="news"))
        await run_log.start(JobRunRecord(run_id="done", source="news", status="completed"))

        abandoned = await run_log.abandon_running("Server restarted")

        assert abandoned == 1
        assert run_log.records["stuck"].status == "failed"
        assert run_log.records["stuck"].errors == ["Server restarted"]
        assert run_log.records["done"].status == "completed"

    def test_status_rules(self):
        assert job_status(None) == "failed"
        assert job_status(JobResult(), fatal=True) == "failed"
        assert job_status(JobResult(error_count=2)) == "partial"
        assert job_status(JobResult()) == "completed"
