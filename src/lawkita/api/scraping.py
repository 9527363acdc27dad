"""Admin scraping endpoints.

POST runs a crawl job and waits for its summary; GET lists recent runs.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..cases.jobs import CrawlJob, JobTriggerRequest, JobTriggerResponse
from ..cases.run_log import JobRunLog, JobRunRecord, SqlJobRunLog
from . import ErrorDetail, JobFailedError

router = APIRouter(prefix="/admin/scraping")


def get_crawl_job() -> CrawlJob:
    return CrawlJob()


def get_run_log() -> JobRunLog:
    return SqlJobRunLog()


class JobRunListResponse(BaseModel):
    """Recent crawl job runs."""

    runs: list[JobRunRecord]
    total: int


@router.post("", response_model=JobTriggerResponse)
async def trigger_scraping(
    request: JobTriggerRequest,
    job: CrawlJob = Depends(get_crawl_job),
) -> JobTriggerResponse:
    """Run a crawl job for one source type.

    The response carries processed/created/updated counts and the first
    errors. A job that cannot start (for example a missing API key)
    returns an error response instead.
    """
    response = await job.run(request)
    if not response.success:
        raise JobFailedError(
            response.message,
            details=[ErrorDetail(code="JOB_ERROR", message=e) for e in response.errors],
        )
    return response


@router.get("", response_model=JobRunListResponse)
async def list_scraping_runs(
    limit: int = Query(default=20, ge=1, le=100),
    run_log: JobRunLog = Depends(get_run_log),
) -> JobRunListResponse:
    """List recent crawl job runs, newest first."""
    runs = await run_log.recent(limit)
    return JobRunListResponse(runs=runs, total=len(runs))
