"""Unit tests for case grouping and cross-source merging.

Run with: pytest tests/unit/cases/test_merging.py -v
"""

import pytest

from lawkita.cases.errors import EmptyMergeError
from lawkita.cases.merging import (
    ExactOrSubstringPredicate,
    FuzzyNamePredicate,
    group_extractions,
    merge,
    remerge,
)
from lawkita.cases.models import LawyerRole, MatchResult, MediaReference
from tests.fixtures import make_extraction


class TestMerge:
    """Tests for merge()."""

    def test_confidence_boost_for_three_sources(self):
        """Test 70, 60, 55 merge to min(100, 70 + 5 * 3) = 85."""
        merged = merge([
            make_extraction(confidence=60, source_document_id="news:b"),
            make_extraction(confidence=70, source_document_id="news:a"),
            make_extraction(confidence=55, source_document_id="news:c"),
        ])

        assert merged.confidence == 85
        assert merged.base_confidence == 70

    def test_confidence_monotonic_in_source_count(self):
        """Test that adding sources never lowers confidence."""
        extractions = [
            make_extraction(confidence=70, source_document_id="news:a"),
            make_extraction(confidence=60, source_document_id="news:b"),
            make_extraction(confidence=55, source_document_id="news:c"),
        ]

        scores = [merge(extractions[:n]).confidence for n in (1, 2, 3)]

        assert scores == sorted(scores)
        assert scores == [70, 80, 85]

    def test_confidence_capped_at_100(self):
        merged = merge([
            make_extraction(confidence=95, source_document_id=f"news:{i}") for i in range(4)
        ])
        assert merged.confidence == 100

    def test_single_extraction_unboosted(self):
        """Test that one extraction passes through without a boost."""
        merged = merge([make_extraction(case_name="PP v Rosmah", confidence=72)])

        assert merged.confidence == 72
        assert merged.canonical_name == "PP v Rosmah"
        assert merged.canonical_key == "pp-v-rosmah"

    def test_empty_input_raises(self):
        """Test that merging nothing is a distinct precondition error."""
        with pytest.raises(EmptyMergeError):
            merge([])

    def test_highest_confidence_seeds_base(self):
        """Test that scalar fields come from the most confident extraction."""
        merged = merge([
            make_extraction(case_name="Najib 1MDB case", confidence=60, source_document_id="a",
                            summary="short"),
            make_extraction(case_name="PP v Najib Razak", confidence=80, source_document_id="b",
                            summary="detailed"),
        ])

        assert merged.canonical_name == "PP v Najib Razak"
        assert merged.summary == "detailed"
        assert merged.alternative_names == ["Najib 1MDB case"]

    def test_lawyer_dedup_first_seen_role_wins(self):
        """Test that a later duplicate mention does not overwrite the role."""
        merged = merge([
            make_extraction(confidence=80, source_document_id="a",
                            lawyers=[("Muhammad Shafee Abdullah", LawyerRole.DEFENSE)]),
            make_extraction(confidence=60, source_document_id="b",
                            lawyers=[("muhammad shafee abdullah", LawyerRole.PROSECUTION),
                                     ("Gopal Sri Ram", LawyerRole.PROSECUTION)]),
        ])

        assert [l.extracted_name for l in merged.lawyers] == [
            "Muhammad Shafee Abdullah",
            "Gopal Sri Ram",
        ]
        assert merged.lawyers[0].role == LawyerRole.DEFENSE

    def test_resolved_match_carried_from_duplicate(self):
        """Test that a later resolved match fills in an unresolved first mention."""
        first = make_extraction(confidence=80, source_document_id="a",
                                lawyers=[("Ahmad Zaki", LawyerRole.DEFENSE)])
        second = make_extraction(confidence=60, source_document_id="b",
                                 lawyers=[("Ahmad Zaki", LawyerRole.OTHER)])
        second = second.model_copy(update={"lawyers": [
            second.lawyers[0].model_copy(update={"match": MatchResult(
                extracted_name="Ahmad Zaki", resolved_entity_id="1",
                resolved_name="Ahmad Zaki Hassan", match_confidence=0.8,
            )})
        ]})

        merged = merge([first, second])

        assert merged.lawyers[0].role == LawyerRole.DEFENSE
        assert merged.lawyers[0].match.resolved_entity_id == "1"

    def test_key_dates_deduped_and_sorted(self):
        """Test date dedup on date plus event prefix, then chronological order."""
        merged = merge([
            make_extraction(confidence=80, source_document_id="a", key_dates=[
                ("2020-07-28", "Convicted on all seven charges"),
                ("2019-04-03", "Trial begins"),
            ]),
            make_extraction(confidence=60, source_document_id="b", key_dates=[
                ("2020-07-28", "Convicted on all seven charges by judge"),
                ("sometime", "Appeal filed"),
                ("2018-07-04", "Charged"),
            ]),
        ])

        assert [d.date for d in merged.key_dates] == [
            "2018-07-04",
            "2019-04-03",
            "2020-07-28",
            "sometime",
        ]

    def test_judges_and_charges_unioned(self):
        merged = merge([
            make_extraction(confidence=80, source_document_id="a",
                            judges=["Mohd Nazlan"], charges=["CBT"]),
            make_extraction(confidence=60, source_document_id="b",
                            judges=["Mohd Nazlan", "Abdul Karim"], charges=["CBT", "AMLA"]),
        ])

        assert merged.judges == ["Mohd Nazlan", "Abdul Karim"]
        assert merged.charges == ["CBT", "AMLA"]

    def test_media_references_attached(self):
        """Test that each source document gets its reference."""
        references = {"a": MediaReference(source_document_id="a", source_name="The Star", url="u")}
        merged = merge([
            make_extraction(confidence=80, source_document_id="a"),
            make_extraction(confidence=60, source_document_id="b"),
        ], references)

        assert merged.source_document_ids == ["a", "b"]
        assert merged.sources[0].source_name == "The Star"
        assert merged.sources[1].source_document_id == "b"

    def test_same_document_counted_once(self):
        """Test that two extractions from one document boost only once."""
        merged = merge([
            make_extraction(confidence=70, source_document_id="a"),
            make_extraction(confidence=65, source_document_id="a"),
        ])
        assert merged.confidence == 70


class TestRemerge:
    """Tests for folding new extractions into a stored case."""

    def test_nothing_new_returns_existing(self):
        """Test that re-seen documents leave the case untouched."""
        existing = merge([make_extraction(source_document_id="a")])
        assert remerge(existing, [make_extraction(source_document_id="a")]) is existing

    def test_new_source_boosts_and_keeps_name(self):
        existing = merge([make_extraction(case_name="PP v Najib Razak", confidence=70,
                                          source_document_id="a")])

        updated = remerge(existing, [make_extraction(case_name="Najib SRC trial", confidence=60,
                                                     source_document_id="b")])

        assert updated.canonical_name == "PP v Najib Razak"
        assert updated.confidence == 80
        assert "Najib SRC trial" in updated.alternative_names
        assert updated.source_document_ids == ["a", "b"]

    def test_confidence_never_drops(self):
        existing = merge([make_extraction(confidence=70, source_document_id=f"n{i}") for i in range(3)])
        updated = remerge(existing, [make_extraction(confidence=10, source_document_id="z")])
        assert updated.confidence >= existing.confidence


class TestGrouping:
    """Tests for same-case grouping."""

    def test_exact_name_match_case_insensitive(self):
        predicate = ExactOrSubstringPredicate()
        assert predicate.same_case(
            make_extraction(case_name="PP v. Najib Razak"),
            make_extraction(case_name="pp v najib razak"),
        )

    def test_substring_match(self):
        predicate = ExactOrSubstringPredicate()
        assert predicate.same_case(
            make_extraction(case_name="PP v Najib Razak"),
            make_extraction(case_name="Najib Razak"),
        )

    def test_alternative_name_match(self):
        predicate = ExactOrSubstringPredicate()
        assert predicate.same_case(
            make_extraction(case_name="PP v Najib Razak", alternative_names=["SRC International trial"]),
            make_extraction(case_name="SRC International trial"),
        )

    def test_short_names_do_not_substring_match(self):
        """Test that a short name like PP does not swallow other cases."""
        predicate = ExactOrSubstringPredicate()
        assert not predicate.same_case(
            make_extraction(case_name="PP"),
            make_extraction(case_name="PP v Najib Razak"),
        )

    def test_different_cases(self):
        predicate = ExactOrSubstringPredicate()
        assert not predicate.same_case(
            make_extraction(case_name="PP v Najib Razak"),
            make_extraction(case_name="PP v Rosmah Mansor"),
        )

    def test_matches_stored_case_names(self):
        """Test that a stored case is compared on its canonical and alternative names."""
        predicate = ExactOrSubstringPredicate()
        stored = merge([make_extraction(case_name="PP v Najib Razak",
                                        alternative_names=["SRC International trial"])])
        assert predicate.same_names(["SRC International"], stored.all_names)
        assert not predicate.same_names(["1MDB audit tampering"], stored.all_names)

    def test_fuzzy_predicate_tolerates_reordering(self):
        predicate = FuzzyNamePredicate()
        assert predicate.same_case(
            make_extraction(case_name="Najib Razak v PP"),
            make_extraction(case_name="PP v Najib Razak"),
        )

    def test_groups_are_transitive(self):
        """Test that A~B and B~C put A, B and C in one group."""
        a = make_extraction(case_name="PP v Najib Razak", source_document_id="a")
        b = make_extraction(case_name="Najib Razak", alternative_names=["SRC International trial"],
                            source_document_id="b")
        c = make_extraction(case_name="SRC International trial", source_document_id="c")
        d = make_extraction(case_name="PP v Rosmah Mansor", source_document_id="d")

        groups = group_extractions([a, d, b, c])

        assert [[e.source_document_id for e in g] for g in groups] == [["a", "b", "c"], ["d"]]

    def test_empty_input(self):
        assert group_extractions([]) == []
