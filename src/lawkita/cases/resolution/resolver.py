"""Lawyer entity resolution.

Matches person names extracted from documents against the canonical
lawyer registry. The resolver never talks to storage directly: callers
hand it a candidate lookup, an async function returning `{id, name}`
candidates for a name fragment.
"""

from typing import Any, Awaitable, Callable, Iterable

from pydantic import BaseModel

from ...logging import get_context_logger, log_resolution_event
from ..models import LawyerAssociation, MatchResult
from .strategies import NameSimilarityStrategy, TokenOverlapStrategy

logger = get_context_logger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.7


class RegistryCandidate(BaseModel):
    """A registry entry returned by a candidate lookup."""

    id: str
    name: str


CandidateLookup = Callable[[str], Awaitable[Iterable[RegistryCandidate | dict[str, Any]]]]


def _as_candidate(item: RegistryCandidate | dict[str, Any]) -> RegistryCandidate:
    if isinstance(item, RegistryCandidate):
        return item
    return RegistryCandidate(id=str(item["id"]), name=str(item["name"]))


class EntityResolver:
    """Resolves extracted lawyer names to registry entities.

    Thresholds:
    - >= threshold: Resolved to the best-scoring candidate
    - < threshold: Unresolved, best score kept for audit
    """

    def __init__(
        self,
        strategy: NameSimilarityStrategy | None = None,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ):
        self.strategy = strategy or TokenOverlapStrategy()
        self.threshold = threshold

    async def resolve(self, lawyer_name: str, candidate_lookup: CandidateLookup) -> MatchResult:
        """Resolve one name.

        Args:
            lawyer_name: Name as extracted from a document
            candidate_lookup: Registry search function

        Returns:
            MatchResult, with resolved_entity_id set only when the best
            similarity reaches the threshold
        """
        candidates = [_as_candidate(c) for c in await candidate_lookup(lawyer_name)]

        best: RegistryCandidate | None = None
        best_score = 0.0
        for candidate in candidates:
            score = self.strategy.similarity(lawyer_name, candidate.name)
            if best is None or score > best_score:
                best = candidate
                best_score = score

        is_match = best is not None and best_score >= self.threshold
        log_resolution_event(
            strategy=self.strategy.name,
            source_name=lawyer_name,
            matched_entity=best.id if is_match else None,
            confidence=best_score,
            is_match=is_match,
        )

        return MatchResult(
            extracted_name=lawyer_name,
            resolved_entity_id=best.id if is_match else None,
            resolved_name=best.name if is_match else None,
            match_confidence=round(min(max(best_score, 0.0), 1.0), 4),
            strategy=self.strategy.name,
        )

    async def resolve_associations(
        self,
        associations: list[LawyerAssociation],
        candidate_lookup: CandidateLookup,
    ) -> list[LawyerAssociation]:
        """Attach a MatchResult to each association.

        Returns new association objects; the inputs are not modified.
        Names repeated within the list are looked up once.
        """
        cache: dict[str, MatchResult] = {}
        resolved: list[LawyerAssociation] = []

        for association in associations:
            key = association.name_key
            if key not in cache:
                cache[key] = await self.resolve(association.extracted_name, candidate_lookup)
            resolved.append(association.model_copy(update={"match": cache[key]}))

        unresolved = sum(1 for a in resolved if a.match and not a.match.is_resolved)
        if unresolved:
            logger.debug(f"{unresolved} of {len(resolved)} lawyer names left unresolved")

        return resolved
