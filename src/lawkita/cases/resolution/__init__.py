"""Lawyer entity resolution against the canonical registry."""

from .registry import InMemoryLawyerRegistry, SqlLawyerRegistry
from .resolver import (
    DEFAULT_MATCH_THRESHOLD,
    CandidateLookup,
    EntityResolver,
    RegistryCandidate,
)
from .strategies import (
    FuzzyTokenStrategy,
    NameSimilarityStrategy,
    TokenOverlapStrategy,
    core_name_tokens,
    get_strategy,
)

__all__ = [
    "InMemoryLawyerRegistry",
    "SqlLawyerRegistry",
    "DEFAULT_MATCH_THRESHOLD",
    "CandidateLookup",
    "EntityResolver",
    "RegistryCandidate",
    "FuzzyTokenStrategy",
    "NameSimilarityStrategy",
    "TokenOverlapStrategy",
    "core_name_tokens",
    "get_strategy",
]
