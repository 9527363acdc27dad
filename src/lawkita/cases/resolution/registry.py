"""Lawyer registry lookups backed by PostgreSQL."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...db import get_session_factory
from .resolver import RegistryCandidate
from .strategies import core_name_tokens

MIN_FRAGMENT_LENGTH = 3


class InMemoryLawyerRegistry:
    """Registry lookup over a fixed list of lawyers (tests, dry runs)."""

    def __init__(self, lawyers: list[RegistryCandidate | dict] | None = None, limit: int = 5):
        self.lawyers = [
            lawyer if isinstance(lawyer, RegistryCandidate) else RegistryCandidate(**lawyer)
            for lawyer in (lawyers or [])
        ]
        self.limit = limit

    async def search(self, name_fragment: str) -> list[RegistryCandidate]:
        fragments = [t for t in core_name_tokens(name_fragment) if len(t) >= MIN_FRAGMENT_LENGTH]
        if not fragments:
            return []

        scored = []
        for lawyer in self.lawyers:
            lowered = lawyer.name.lower()
            hits = sum(1 for f in fragments if f in lowered)
            if hits:
                scored.append((hits, lawyer))

        scored.sort(key=lambda pair: (-pair[0], pair[1].name))
        return [lawyer for _, lawyer in scored[: self.limit]]


class SqlLawyerRegistry:
    """Searches the lawyers table with ILIKE on each core name token.

    Rows matching more tokens rank first; at most `limit` rows return.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        limit: int = 5,
        table: str = "lawyers",
    ):
        self._session_factory = session_factory
        self.limit = limit
        self.table = table

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def search(self, name_fragment: str) -> list[RegistryCandidate]:
        patterns = [
            f"%{t}%" for t in core_name_tokens(name_fragment) if len(t) >= MIN_FRAGMENT_LENGTH
        ]
        if not patterns:
            return []

        query = text(f"""
            SELECT id, name
            FROM {self.table}
            WHERE name ILIKE ANY(CAST(:patterns AS text[]))
            ORDER BY (
                SELECT count(*) FROM unnest(CAST(:patterns AS text[])) AS p
                WHERE name ILIKE p
            ) DESC, name
            LIMIT :limit
        """)

        async with self.session_factory() as session:
            result = await session.execute(query, {"patterns": patterns, "limit": self.limit})
            rows = result.fetchall()

        return [RegistryCandidate(id=str(row.id), name=row.name) for row in rows]
