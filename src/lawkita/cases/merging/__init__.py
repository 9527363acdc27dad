"""Cross-source merging of case extractions."""

from .grouping import (
    ExactOrSubstringPredicate,
    FuzzyNamePredicate,
    SameCasePredicate,
    group_extractions,
    normalize_case_name,
)
from .merger import (
    boosted_confidence,
    from_extraction,
    merge,
    new_extractions,
    remerge,
)

__all__ = [
    "ExactOrSubstringPredicate",
    "FuzzyNamePredicate",
    "SameCasePredicate",
    "group_extractions",
    "normalize_case_name",
    "boosted_confidence",
    "from_extraction",
    "merge",
    "new_extractions",
    "remerge",
]
