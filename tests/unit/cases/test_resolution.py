"""Unit tests for lawyer name resolution.

Tests similarity strategies, threshold routing and registry lookups
without requiring database connections.

Run with: pytest tests/unit/cases/test_resolution.py -v
"""

import pytest
from unittest.mock import AsyncMock

from lawkita.cases.models import LawyerAssociation, LawyerRole
from lawkita.cases.resolution import (
    EntityResolver,
    FuzzyTokenStrategy,
    RegistryCandidate,
    TokenOverlapStrategy,
    core_name_tokens,
    get_strategy,
)


class TestCoreNameTokens:
    """Tests for honorific and patronymic stripping."""

    def test_strips_dato_and_bin(self):
        assert core_name_tokens("Dato' Ahmad Zaki Bin Hassan") == ["ahmad", "zaki", "hassan"]

    def test_strips_tan_sri(self):
        assert core_name_tokens("Tan Sri Muhyiddin Yassin") == ["muhyiddin", "yassin"]

    def test_keeps_tan_as_surname(self):
        """Test that Tan without Sri is a surname, not a title."""
        assert core_name_tokens("Tan Hock Chuan") == ["tan", "hock", "chuan"]

    def test_strips_indian_patronymic(self):
        assert core_name_tokens("Gobind Singh a/l Karpal Singh") == ["gobind", "singh", "karpal", "singh"]

    def test_title_only_falls_back_to_raw_tokens(self):
        assert core_name_tokens("Dato'") == ["dato"]


class TestTokenOverlapStrategy:
    """Tests for the token hit ratio."""

    def test_identical_names(self):
        assert TokenOverlapStrategy().similarity("Ahmad Zaki Hassan", "ahmad zaki hassan") == 1.0

    def test_honorifics_ignored(self):
        """Test that titles and bin do not dilute the score."""
        score = TokenOverlapStrategy().similarity("Dato' Ahmad Zaki Bin Hassan", "Ahmad Zaki Hassan")
        assert score == 1.0

    def test_raw_tokens_when_stripping_disabled(self):
        """Test the plain whitespace-token variant."""
        score = TokenOverlapStrategy(strip_honorifics=False).similarity(
            "Dato' Ahmad Zaki Bin Hassan", "Ahmad Zaki Hassan"
        )
        assert score == pytest.approx(0.6)

    def test_containment_counts_as_hit(self):
        """Test that one token containing the other is a hit."""
        score = TokenOverlapStrategy().similarity("Shafee Abdullah", "Muhammad Shafee Abdullah")
        assert score == pytest.approx(2 / 3)

    def test_unrelated_names(self):
        assert TokenOverlapStrategy().similarity("John Smith", "Ahmad Zaki Hassan") == 0.0

    def test_empty_name(self):
        assert TokenOverlapStrategy().similarity("", "Ahmad Zaki Hassan") == 0.0


class TestFuzzyTokenStrategy:
    """Tests for the RapidFuzz strategy."""

    def test_reordered_names(self):
        assert FuzzyTokenStrategy().similarity("Hassan Ahmad Zaki", "Ahmad Zaki Hassan") == 1.0

    def test_unrelated_names_score_low(self):
        assert FuzzyTokenStrategy().similarity("John Smith", "Ahmad Zaki Hassan") < 0.5

    def test_get_strategy(self):
        assert isinstance(get_strategy("fuzzy_token"), FuzzyTokenStrategy)
        with pytest.raises(ValueError):
            get_strategy("soundex")


class TestEntityResolver:
    """Tests for threshold routing in EntityResolver."""

    @pytest.mark.asyncio
    async def test_honorific_name_resolves(self):
        """Test that a titled name resolves to the registry entry."""
        lookup = AsyncMock(return_value=[{"id": "1", "name": "Ahmad Zaki Hassan"}])

        result = await EntityResolver().resolve("Dato' Ahmad Zaki Bin Hassan", lookup)

        assert result.match_confidence >= 0.7
        assert result.resolved_entity_id == "1"
        assert result.resolved_name == "Ahmad Zaki Hassan"

    @pytest.mark.asyncio
    async def test_unrelated_name_stays_unresolved(self):
        """Test that a low score is reported but not matched."""
        lookup = AsyncMock(return_value=[{"id": "2", "name": "Ahmad Zaki Hassan"}])

        result = await EntityResolver().resolve("John Smith", lookup)

        assert result.match_confidence < 0.7
        assert result.resolved_entity_id is None
        assert result.is_resolved is False

    @pytest.mark.asyncio
    async def test_no_candidates_is_unresolved_not_error(self):
        """Test that an empty lookup yields confidence 0."""
        result = await EntityResolver().resolve("Ahmad Zaki", AsyncMock(return_value=[]))

        assert result.resolved_entity_id is None
        assert result.match_confidence == 0.0

    @pytest.mark.asyncio
    async def test_below_threshold_keeps_best_score(self):
        """Test that the best sub-threshold score is retained for audit."""
        lookup = AsyncMock(return_value=[
            RegistryCandidate(id="a", name="Shafee Abdullah Muhammad Yusof"),
            RegistryCandidate(id="b", name="Rahman Abdullah"),
        ])

        result = await EntityResolver().resolve("Muhammad Shafee", lookup)

        assert result.resolved_entity_id is None
        assert result.match_confidence == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_best_candidate_selected(self):
        """Test that the highest-scoring candidate wins."""
        lookup = AsyncMock(return_value=[
            {"id": "a", "name": "Ahmad Hassan"},
            {"id": "b", "name": "Ahmad Zaki Hassan"},
        ])

        result = await EntityResolver().resolve("Ahmad Zaki Hassan", lookup)

        assert result.resolved_entity_id == "b"

    @pytest.mark.asyncio
    async def test_configurable_threshold(self):
        """Test that a stricter threshold rejects a partial match."""
        lookup = AsyncMock(return_value=[{"id": "1", "name": "Muhammad Shafee Abdullah"}])

        loose = await EntityResolver(threshold=0.6).resolve("Shafee Abdullah", lookup)
        strict = await EntityResolver(threshold=0.9).resolve("Shafee Abdullah", lookup)

        assert loose.is_resolved is True
        assert strict.is_resolved is False

    @pytest.mark.asyncio
    async def test_resolve_associations_returns_copies(self):
        """Test that associations gain matches without mutating inputs."""
        lookup = AsyncMock(return_value=[{"id": "1", "name": "Ahmad Zaki Hassan"}])
        associations = [
            LawyerAssociation(extracted_name="Ahmad Zaki Hassan", role=LawyerRole.DEFENSE),
            LawyerAssociation(extracted_name="ahmad zaki hassan", role=LawyerRole.OTHER),
        ]

        resolved = await EntityResolver().resolve_associations(associations, lookup)

        assert all(a.match.resolved_entity_id == "1" for a in resolved)
        assert associations[0].match is None
        # Repeated names are looked up once
        assert lookup.await_count == 1


class TestInMemoryLawyerRegistry:
    """Tests for the in-memory registry lookup."""

    @pytest.mark.asyncio
    async def test_search_ranks_by_token_hits(self, registry):
        results = await registry.search("Dato' Ahmad Zaki")
        assert results[0].id == "lawyer-1"

    @pytest.mark.asyncio
    async def test_search_short_fragments_ignored(self, registry):
        assert await registry.search("Al") == []

    @pytest.mark.asyncio
    async def test_registry_as_candidate_lookup(self, registry):
        """Test that a registry's search plugs into the resolver."""
        result = await EntityResolver().resolve("Tan Sri Gopal Sri Ram", registry.search)
        assert result.resolved_entity_id == "lawyer-3"
