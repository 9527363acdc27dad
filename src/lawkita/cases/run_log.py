"""Job run records.

Each non-dry crawl job leaves one row in scraping_logs: its status,
counts, the first errors and its duration. The admin API lists these.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import get_session_factory
from .models import JobResult


class JobRunRecord(BaseModel):
    """One crawl job run."""

    run_id: str
    source: str
    status: str = "running"  # running, completed, partial, failed
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    error_count: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


def job_status(result: JobResult | None, fatal: bool = False) -> str:
    """Final status for a run: failed, partial or completed."""
    if fatal or result is None:
        return "failed"
    return "partial" if result.error_count else "completed"


def finish_record(
    record: JobRunRecord,
    result: JobResult | None,
    status: str,
    errors: list[str],
    max_errors: int,
) -> JobRunRecord:
    """Fill a run record from the job outcome."""
    record.status = status
    record.completed_at = datetime.utcnow()
    record.errors = errors[:max_errors]
    if result is not None:
        record.records_processed = result.total_processed
        record.records_created = result.created
        record.records_updated = result.updated
        record.records_skipped = result.skipped
        record.error_count = result.error_count
        record.duration_ms = result.duration_ms
        record.metadata = {
            "published": result.published,
            "flagged": result.flagged,
            "pending": result.pending,
            "lawyer_associations": result.lawyer_associations,
            "unresolved_lawyers": result.unresolved_lawyers,
            "cancelled": result.cancelled,
        }
    else:
        record.error_count = len(errors)
        record.duration_ms = int((record.completed_at - record.started_at).total_seconds() * 1000)
    return record


class JobRunLog(ABC):
    """Where run records are kept."""

    @abstractmethod
    async def start(self, record: JobRunRecord) -> None:
        ...

    @abstractmethod
    async def finish(self, record: JobRunRecord) -> None:
        ...

    @abstractmethod
    async def recent(self, limit: int = 20) -> list[JobRunRecord]:
        ...

    @abstractmethod
    async def abandon_running(self, reason: str) -> int:
        """Mark runs still `running` as failed; returns how many."""
        ...


class InMemoryJobRunLog(JobRunLog):
    """Run log kept in memory (tests)."""

    def __init__(self):
        self.records: dict[str, JobRunRecord] = {}

    async def start(self, record: JobRunRecord) -> None:
        self.records[record.run_id] = record.model_copy()

    async def finish(self, record: JobRunRecord) -> None:
        self.records[record.run_id] = record.model_copy()

    async def recent(self, limit: int = 20) -> list[JobRunRecord]:
        ordered = sorted(self.records.values(), key=lambda r: r.started_at, reverse=True)
        return ordered[:limit]

    async def abandon_running(self, reason: str) -> int:
        orphaned = [r for r in self.records.values() if r.status == "running"]
        for record in orphaned:
            record.status = "failed"
            record.completed_at = datetime.utcnow()
            record.errors = [*record.errors, reason]
        return len(orphaned)


class SqlJobRunLog(JobRunLog):
    """Run log stored in the scraping_logs table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def start(self, record: JobRunRecord) -> None:
        async with self.session_factory() as session:
            await session.execute(
                text("""
                INSERT INTO scraping_logs (
                    id, job_type, source_type, status, started_at
                ) VALUES (
                    :id, :job_type, :source_type, :status, :started_at
                )
                """),
                {
                    "id": record.run_id,
                    "job_type": f"{record.source}_extraction",
                    "source_type": record.source,
                    "status": record.status,
                    "started_at": record.started_at,
                },
            )
            await session.commit()

    async def finish(self, record: JobRunRecord) -> None:
        async with self.session_factory() as session:
            await session.execute(
                text("""
                UPDATE scraping_logs SET
                    status = :status,
                    records_processed = :records_processed,
                    records_created = :records_created,
                    records_updated = :records_updated,
                    records_skipped = :records_skipped,
                    error_count = :error_count,
                    errors = CAST(:errors AS jsonb),
                    completed_at = :completed_at,
                    duration_ms = :duration_ms,
                    metadata = CAST(:metadata AS jsonb)
                WHERE id = :id
                """),
                {
                    "id": record.run_id,
                    "status": record.status,
                    "records_processed": record.records_processed,
                    "records_created": record.records_created,
                    "records_updated": record.records_updated,
                    "records_skipped": record.records_skipped,
                    "error_count": record.error_count,
                    "errors": json.dumps([{"message": e} for e in record.errors]),
                    "completed_at": record.completed_at,
                    "duration_ms": record.duration_ms,
                    "metadata": json.dumps(record.metadata),
                },
            )
            await session.commit()

    async def recent(self, limit: int = 20) -> list[JobRunRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                text("""
                SELECT id, source_type, status, started_at, completed_at,
                       records_processed, records_created, records_updated,
                       records_skipped, error_count, errors, duration_ms, metadata
                FROM scraping_logs
                ORDER BY started_at DESC
                LIMIT :limit
                """),
                {"limit": limit},
            )
            rows = result.mappings().fetchall()

        return [
            JobRunRecord(
                run_id=str(row["id"]),
                source=row["source_type"],
                status=row["status"],
                started_at=row["started_at"],
                completed_at=row["completed_at"],
                records_processed=row["records_processed"] or 0,
                records_created=row["records_created"] or 0,
                records_updated=row["records_updated"] or 0,
                records_skipped=row["records_skipped"] or 0,
                error_count=row["error_count"] or 0,
                errors=[e.get("message", "") for e in (row["errors"] or [])],
                duration_ms=row["duration_ms"] or 0,
                metadata=row["metadata"] or {},
            )
            for row in rows
        ]

    async def abandon_running(self, reason: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                text("""
                UPDATE scraping_logs
                SET status = 'failed',
                    completed_at = :now,
                    errors = COALESCE(errors, CAST('[]' AS jsonb)) || CAST(:error AS jsonb)
                WHERE status = 'running'
                """),
                {"now": datetime.utcnow(), "error": json.dumps([{"message": reason}])},
            )
            await session.commit()
        return result.rowcount
