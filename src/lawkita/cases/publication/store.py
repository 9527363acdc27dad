"""Case persistence.

Cases are keyed by their normalized name (the canonical key) and can
also be found through alias keys derived from their alternative names.
Every stored case carries a version number; an update must name the
version it read, and a stale version raises PersistenceConflictError so
the caller can re-read, re-merge and retry.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...db import get_session_factory
from ..errors import PersistenceConflictError
from ..merging.grouping import MIN_SUBSTRING_LENGTH
from ..models import (
    CaseCategory,
    CaseStatus,
    KeyDate,
    LawyerAssociation,
    LawyerRole,
    MatchResult,
    MediaReference,
    MergedCase,
    PublicationState,
    UpsertAction,
    parse_event_date,
)

logger = logging.getLogger(__name__)


class UpsertResult(BaseModel):
    """What an upsert did."""

    action: UpsertAction
    case_id: str
    version: int


class CaseRepository(ABC):
    """Storage boundary for merged cases."""

    @abstractmethod
    async def find(self, key: str) -> MergedCase | None:
        """Find a case by canonical key or alias key."""
        ...

    @abstractmethod
    async def upsert(
        self,
        case: MergedCase,
        state: PublicationState,
        expected_version: int | None,
    ) -> UpsertResult:
        """Create or update a case.

        Args:
            case: The merged case to write
            state: Publication state from the gate
            expected_version: None to create, else the version that was read

        Raises:
            PersistenceConflictError: If the stored version moved on, or a
                create finds the key already taken
        """
        ...

    @abstractmethod
    async def find_similar(self, keys: Iterable[str], limit: int = 20) -> list[MergedCase]:
        """Stored cases whose canonical or alias key contains, or is contained in, a key.

        A candidate lookup only: the caller decides which candidate, if any,
        is the same case. Keys shorter than MIN_SUBSTRING_LENGTH are ignored.
        Most recently updated first.
        """
        ...

    async def find_any(self, keys: Iterable[str]) -> MergedCase | None:
        """Find the first stored case matching any of the keys."""
        for key in keys:
            if not key:
                continue
            found = await self.find(key)
            if found is not None:
                return found
        return None

    async def close(self) -> None:
        return None


def _check_version(
    current: MergedCase | None,
    case: MergedCase,
    expected_version: int | None,
) -> tuple[UpsertAction, int]:
    if expected_version is None:
        if current is not None:
            raise PersistenceConflictError(case.canonical_key, expected_version)
        return UpsertAction.CREATED, 1
    if current is None or current.version != expected_version:
        raise PersistenceConflictError(case.canonical_key, expected_version)
    return UpsertAction.UPDATED, expected_version + 1


def _similar_keys(keys: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(k for k in keys if k and len(k) >= MIN_SUBSTRING_LENGTH))


def _contains_either_way(key: str, other: str) -> bool:
    return len(other) >= MIN_SUBSTRING_LENGTH and (key in other or other in key)


# =========================
# In-memory implementations
# =========================


class InMemoryCaseRepository(CaseRepository):
    """Dictionary-backed repository for tests and dry runs."""

    def __init__(self):
        self.cases: dict[str, MergedCase] = {}
        self.states: dict[str, PublicationState] = {}
        self.ids: dict[str, str] = {}
        self.aliases: dict[str, str] = {}
        self._writes = 0
        self._last_write: dict[str, int] = {}

    async def find(self, key: str) -> MergedCase | None:
        canonical = key if key in self.cases else self.aliases.get(key)
        if canonical is None:
            return None
        return self.cases[canonical].model_copy(deep=True)

    async def find_similar(self, keys: Iterable[str], limit: int = 20) -> list[MergedCase]:
        wanted = _similar_keys(keys)
        if not wanted:
            return []

        stored_keys: dict[str, list[str]] = {key: [key] for key in self.cases}
        for alias, canonical in self.aliases.items():
            stored_keys[canonical].append(alias)

        newest_first = sorted(self.cases, key=lambda k: self._last_write.get(k, 0), reverse=True)
        return [
            self.cases[canonical].model_copy(deep=True)
            for canonical in newest_first
            if any(
                _contains_either_way(key, stored)
                for key in wanted
                for stored in stored_keys[canonical]
            )
        ][:limit]

    async def upsert(
        self,
        case: MergedCase,
        state: PublicationState,
        expected_version: int | None,
    ) -> UpsertResult:
        current = await self.find(case.canonical_key)
        action, version = _check_version(current, case, expected_version)
        self._store(case, state, version)
        return UpsertResult(action=action, case_id=self.ids[case.canonical_key], version=version)

    def _store(self, case: MergedCase, state: PublicationState, version: int) -> None:
        key = case.canonical_key
        self.cases[key] = case.model_copy(update={"version": version}, deep=True)
        self.states[key] = state
        self.ids.setdefault(key, str(uuid4()))
        self._writes += 1
        self._last_write[key] = self._writes
        for alias in case.all_keys[1:]:
            # First writer owns an alias
            if alias not in self.cases:
                self.aliases.setdefault(alias, key)


class DryRunCaseRepository(InMemoryCaseRepository):
    """Write-capturing overlay over another repository.

    Reads fall through to the backing repository; writes land in the
    overlay and are never forwarded, so a dry run sees exactly what a
    real run would without touching storage.
    """

    def __init__(self, backing: CaseRepository):
        super().__init__()
        self.backing = backing
        self.captured: list[tuple[UpsertAction, MergedCase, PublicationState]] = []

    async def find(self, key: str) -> MergedCase | None:
        overlay = await super().find(key)
        if overlay is not None:
            return overlay
        return await self.backing.find(key)

    async def find_similar(self, keys: Iterable[str], limit: int = 20) -> list[MergedCase]:
        keys = list(keys)
        overlay = await super().find_similar(keys, limit)
        seen = {case.canonical_key for case in overlay}
        backing = [
            case for case in await self.backing.find_similar(keys, limit)
            if case.canonical_key not in seen
        ]
        return (overlay + backing)[:limit]

    async def upsert(
        self,
        case: MergedCase,
        state: PublicationState,
        expected_version: int | None,
    ) -> UpsertResult:
        result = await super().upsert(case, state, expected_version)
        self.captured.append((result.action, self.cases[case.canonical_key], state))
        return result


# =========================
# SQL implementation
# =========================


def _jsonb(value: Any) -> str:
    return json.dumps(value)


class SqlCaseRepository(CaseRepository):
    """PostgreSQL repository over the cases tables.

    A case row plus its aliases, lawyers, timeline and media references
    are written in one transaction. Child rows are replaced wholesale
    since the merged case always carries the full set.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def find(self, key: str) -> MergedCase | None:
        async with self.session_factory() as session:
            result = await session.execute(
                text("""
                SELECT c.* FROM cases c
                WHERE c.slug = :key
                UNION ALL
                SELECT c.* FROM cases c
                JOIN case_aliases a ON a.case_id = c.id
                WHERE a.alias_key = :key AND c.slug <> :key
                LIMIT 1
                """),
                {"key": key},
            )
            row = result.mappings().fetchone()
            if row is None:
                return None
            return await self._load(session, row)

    async def find_similar(self, keys: Iterable[str], limit: int = 20) -> list[MergedCase]:
        wanted = _similar_keys(keys)
        if not wanted:
            return []

        async with self.session_factory() as session:
            result = await session.execute(
                text("""
                WITH wanted(key) AS (SELECT unnest(CAST(:keys AS text[]))),
                stored(case_id, key) AS (
                    SELECT id, slug FROM cases
                    UNION ALL
                    SELECT case_id, alias_key FROM case_aliases
                )
                SELECT c.* FROM cases c
                WHERE c.id IN (
                    SELECT s.case_id FROM stored s, wanted w
                    WHERE length(s.key) >= :min_length
                      AND (position(w.key IN s.key) > 0 OR position(s.key IN w.key) > 0)
                )
                ORDER BY c.updated_at DESC
                LIMIT :limit
                """),
                {"keys": wanted, "min_length": MIN_SUBSTRING_LENGTH, "limit": limit},
            )
            rows = result.mappings().fetchall()
            return [await self._load(session, row) for row in rows]

    async def _load(self, session: AsyncSession, row: Any) -> MergedCase:
        case_id = row["id"]

        lawyer_rows = await session.execute(
            text("""
            SELECT extracted_name, role, role_description, confidence,
                   lawyer_id, resolved_name, match_confidence, match_strategy
            FROM case_lawyers WHERE case_id = :id ORDER BY position
            """),
            {"id": case_id},
        )
        timeline_rows = await session.execute(
            text("SELECT event_date, event FROM case_timeline WHERE case_id = :id ORDER BY position"),
            {"id": case_id},
        )
        reference_rows = await session.execute(
            text("""
            SELECT source_document_id, source_name, url, title, published_at
            FROM case_media_references WHERE case_id = :id ORDER BY position
            """),
            {"id": case_id},
        )

        lawyers = []
        for lr in lawyer_rows.mappings():
            match = None
            if lr["match_strategy"] is not None:
                match = MatchResult(
                    extracted_name=lr["extracted_name"],
                    resolved_entity_id=str(lr["lawyer_id"]) if lr["lawyer_id"] else None,
                    resolved_name=lr["resolved_name"],
                    match_confidence=lr["match_confidence"] or 0.0,
                    strategy=lr["match_strategy"],
                )
            lawyers.append(
                LawyerAssociation(
                    extracted_name=lr["extracted_name"],
                    role=LawyerRole(lr["role"]),
                    role_description=lr["role_description"],
                    confidence=lr["confidence"] or 0.0,
                    match=match,
                )
            )

        return MergedCase(
            canonical_name=row["title"],
            canonical_key=row["slug"],
            alternative_names=list(row["alternative_names"] or []),
            category=CaseCategory(row["category"]),
            status=CaseStatus(row["status"]),
            court=row["court"] or "",
            judges=list(row["judges"] or []),
            lawyers=lawyers,
            key_dates=[KeyDate(date=t["event_date"], event=t["event"]) for t in timeline_rows.mappings()],
            charges=list(row["charges"] or []),
            verdict=row["verdict"],
            summary=row["summary"] or "",
            confidence=row["confidence"],
            base_confidence=row["base_confidence"],
            source_document_ids=list(row["source_document_ids"] or []),
            sources=[MediaReference(**r) for r in reference_rows.mappings()],
            version=row["version"],
        )

    async def upsert(
        self,
        case: MergedCase,
        state: PublicationState,
        expected_version: int | None,
    ) -> UpsertResult:
        now = datetime.utcnow()
        params = {
            "slug": case.canonical_key,
            "title": case.canonical_name,
            "alternative_names": _jsonb(case.alternative_names),
            "category": case.category.value,
            "status": case.status.value,
            "court": case.court,
            "judges": _jsonb(case.judges),
            "charges": _jsonb(case.charges),
            "verdict": case.verdict,
            "summary": case.summary,
            "confidence": case.confidence,
            "base_confidence": case.base_confidence,
            "publication_state": state.value,
            "is_published": state == PublicationState.PUBLISHED,
            "needs_review": state == PublicationState.FLAGGED,
            "source_document_ids": _jsonb(case.source_document_ids),
            "now": now,
        }

        async with self.session_factory() as session:
            async with session.begin():
                if expected_version is None:
                    result = await session.execute(
                        text("""
                        INSERT INTO cases (
                            id, slug, title, alternative_names, category, status, court,
                            judges, charges, verdict, summary, confidence, base_confidence,
                            publication_state, is_published, needs_review,
                            source_document_ids, version, created_at, updated_at
                        ) VALUES (
                            :id, :slug, :title, CAST(:alternative_names AS jsonb), :category,
                            :status, :court, CAST(:judges AS jsonb), CAST(:charges AS jsonb),
                            :verdict, :summary, :confidence, :base_confidence,
                            :publication_state, :is_published, :needs_review,
                            CAST(:source_document_ids AS jsonb), 1, :now, :now
                        )
                        ON CONFLICT (slug) DO NOTHING
                        RETURNING id, version
                        """),
                        {**params, "id": str(uuid4())},
                    )
                    action = UpsertAction.CREATED
                else:
                    result = await session.execute(
                        text("""
                        UPDATE cases SET
                            title = :title,
                            alternative_names = CAST(:alternative_names AS jsonb),
                            category = :category,
                            status = :status,
                            court = :court,
                            judges = CAST(:judges AS jsonb),
                            charges = CAST(:charges AS jsonb),
                            verdict = :verdict,
                            summary = :summary,
                            confidence = :confidence,
                            base_confidence = :base_confidence,
                            publication_state = :publication_state,
                            is_published = :is_published,
                            needs_review = :needs_review,
                            source_document_ids = CAST(:source_document_ids AS jsonb),
                            version = version + 1,
                            updated_at = :now
                        WHERE slug = :slug AND version = :expected_version
                        RETURNING id, version
                        """),
                        {**params, "expected_version": expected_version},
                    )
                    action = UpsertAction.UPDATED

                row = result.fetchone()
                if row is None:
                    raise PersistenceConflictError(case.canonical_key, expected_version)

                case_id, version = row.id, row.version
                await self._write_children(session, case_id, case)

        logger.debug(f"{action.value} case {case.canonical_key} at version {version}")
        return UpsertResult(action=action, case_id=str(case_id), version=version)

    async def _write_children(self, session: AsyncSession, case_id: Any, case: MergedCase) -> None:
        for alias in case.all_keys[1:]:
            await session.execute(
                text("""
                INSERT INTO case_aliases (alias_key, case_id)
                VALUES (:alias_key, :case_id)
                ON CONFLICT (alias_key) DO NOTHING
                """),
                {"alias_key": alias, "case_id": case_id},
            )

        for table in ("case_lawyers", "case_timeline", "case_media_references"):
            await session.execute(
                text(f"DELETE FROM {table} WHERE case_id = :case_id"), {"case_id": case_id}
            )

        for position, lawyer in enumerate(case.lawyers):
            match = lawyer.match
            await session.execute(
                text("""
                INSERT INTO case_lawyers (
                    id, case_id, position, extracted_name, role, role_description,
                    confidence, lawyer_id, resolved_name, match_confidence,
                    match_strategy, is_verified
                ) VALUES (
                    :id, :case_id, :position, :extracted_name, :role, :role_description,
                    :confidence, :lawyer_id, :resolved_name, :match_confidence,
                    :match_strategy, false
                )
                """),
                {
                    "id": str(uuid4()),
                    "case_id": case_id,
                    "position": position,
                    "extracted_name": lawyer.extracted_name,
                    "role": lawyer.role.value,
                    "role_description": lawyer.role_description,
                    "confidence": lawyer.confidence,
                    "lawyer_id": match.resolved_entity_id if match else None,
                    "resolved_name": match.resolved_name if match else None,
                    "match_confidence": match.match_confidence if match else None,
                    "match_strategy": match.strategy if match else None,
                },
            )

        for position, item in enumerate(case.key_dates):
            await session.execute(
                text("""
                INSERT INTO case_timeline (id, case_id, position, event_date, event_on, event)
                VALUES (:id, :case_id, :position, :event_date, :event_on, :event)
                """),
                {
                    "id": str(uuid4()),
                    "case_id": case_id,
                    "position": position,
                    "event_date": item.date,
                    "event_on": parse_event_date(item.date),
                    "event": item.event,
                },
            )

        for position, ref in enumerate(case.sources):
            await session.execute(
                text("""
                INSERT INTO case_media_references (
                    id, case_id, position, source_document_id, source_name, url,
                    title, published_at
                ) VALUES (
                    :id, :case_id, :position, :source_document_id, :source_name, :url,
                    :title, :published_at
                )
                """),
                {
                    "id": str(uuid4()),
                    "case_id": case_id,
                    "position": position,
                    **ref.model_dump(),
                },
            )
