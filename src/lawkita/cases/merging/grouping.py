"""Grouping of extractions that describe the same case.

Whether two extractions are the same case is decided by a pluggable
predicate before any merge happens. Groups are transitive: if A matches
B and B matches C, all three land in one group.
"""

import re
from abc import ABC, abstractmethod
from typing import Sequence

from rapidfuzz import fuzz

from ..models import ExtractedCase

_SPACE_RE = re.compile(r"[^a-z0-9]+")

# Shortest name that may match inside a longer one
MIN_SUBSTRING_LENGTH = 8


def normalize_case_name(name: str) -> str:
    """Lower-case and collapse punctuation/whitespace to single spaces."""
    return _SPACE_RE.sub(" ", name.lower()).strip()


class SameCasePredicate(ABC):
    """Decides whether two sets of case names describe the same real-world case.

    Used both to group a batch's extractions and to match a group against
    cases already in storage, so identity is decided the same way whether
    two reports arrive together or in separate runs.
    """

    name: str = "base"

    @abstractmethod
    def same_names(self, names_a: Sequence[str], names_b: Sequence[str]) -> bool:
        ...

    def same_case(self, a: ExtractedCase, b: ExtractedCase) -> bool:
        return self.same_names(a.all_names, b.all_names)


class ExactOrSubstringPredicate(SameCasePredicate):
    """Case-insensitive exact or substring match on any pair of names.

    Substring matches need the shorter name to be at least
    `min_substring_length` characters, so "PP" does not swallow every
    "PP v ..." case.
    """

    name = "exact_or_substring"

    def __init__(self, min_substring_length: int = MIN_SUBSTRING_LENGTH):
        self.min_substring_length = min_substring_length

    def same_names(self, names_a: Sequence[str], names_b: Sequence[str]) -> bool:
        normalized_a = [n for n in (normalize_case_name(x) for x in names_a) if n]
        normalized_b = [n for n in (normalize_case_name(x) for x in names_b) if n]

        for name_a in normalized_a:
            for name_b in normalized_b:
                if name_a == name_b:
                    return True
                shorter, longer = sorted((name_a, name_b), key=len)
                if len(shorter) >= self.min_substring_length and f" {shorter} " in f" {longer} ":
                    return True
        return False


class FuzzyNamePredicate(SameCasePredicate):
    """RapidFuzz token-sort ratio on any pair of names.

    Opt-in: catches reordered or lightly misspelled names at the risk of
    merging distinct cases with similar parties.
    """

    name = "fuzzy_name"

    def __init__(self, threshold: int = 90):
        self.threshold = threshold

    def same_names(self, names_a: Sequence[str], names_b: Sequence[str]) -> bool:
        for name_a in names_a:
            for name_b in names_b:
                score = fuzz.token_sort_ratio(
                    normalize_case_name(name_a), normalize_case_name(name_b)
                )
                if score >= self.threshold:
                    return True
        return False


def group_extractions(
    extractions: list[ExtractedCase],
    predicate: SameCasePredicate | None = None,
) -> list[list[ExtractedCase]]:
    """Partition extractions into same-case groups.

    Groups come back in order of their first member; members keep input
    order.
    """
    predicate = predicate or ExactOrSubstringPredicate()
    parent = list(range(len(extractions)))

    def find(idx: int) -> int:
        while parent[idx] != idx:
            parent[idx] = parent[parent[idx]]
            idx = parent[idx]
        return idx

    for i in range(len(extractions)):
        for j in range(i + 1, len(extractions)):
            root_i, root_j = find(i), find(j)
            if root_i == root_j:
                continue
            if predicate.same_case(extractions[i], extractions[j]):
                parent[max(root_i, root_j)] = min(root_i, root_j)

    groups: dict[int, list[ExtractedCase]] = {}
    for idx, extraction in enumerate(extractions):
        groups.setdefault(find(idx), []).append(extraction)
    return list(groups.values())
