"""Name similarity strategies for lawyer resolution.

Implements two strategies:
1. Token overlap: Cheap, explainable token hit ratio (default)
2. Fuzzy token: RapidFuzz token-set ratio

Both return a similarity in [0.0, 1.0]. Malaysian honorifics and
patronymic particles (Dato', Tan Sri, bin, binti, a/l) are dropped
before comparison, so "Dato' Ahmad Zaki Bin Hassan" and
"Ahmad Zaki Hassan" compare on the same three tokens.
"""

import re
from abc import ABC, abstractmethod

from rapidfuzz import fuzz

# Titles and honorifics that precede a name
TITLE_TOKENS = frozenset({
    "dato", "datuk", "datin", "tun", "toh", "puan", "encik", "cik", "tuan",
    "dr", "prof", "mr", "mrs", "ms", "madam", "yb", "ybhg", "yab", "yam",
    "haji", "hajah", "hj", "hjh", "ustaz",
})

# Patronymic connectors between given name and father's name
PATRONYMIC_TOKENS = frozenset({
    "bin", "binti", "bte", "bt", "b", "a/l", "a/p", "s/o", "d/o",
})

# Words that only act as titles when they follow another title word
TITLE_SUFFIXES = frozenset({"seri", "sri", "paduka", "wira"})

_PUNCT_RE = re.compile(r"^[^\w/]+|[^\w/]+$")


def _clean_token(token: str) -> str:
    token = token.replace("'", "").replace("’", "")
    return _PUNCT_RE.sub("", token)


def name_tokens(name: str) -> list[str]:
    """Lower-cased whitespace tokens of a raw name."""
    return [t for t in (_clean_token(t) for t in name.lower().split()) if t]


def core_name_tokens(name: str) -> list[str]:
    """Name tokens with titles and patronymic particles removed.

    "Tan" is treated as a title only in "Tan Sri", since it is also a
    common surname. Falls back to the raw tokens if nothing is left.
    """
    tokens = name_tokens(name)
    core: list[str] = []
    previous_was_title = False

    for idx, token in enumerate(tokens):
        following = tokens[idx + 1] if idx + 1 < len(tokens) else ""
        if token == "tan" and following in TITLE_SUFFIXES:
            previous_was_title = True
            continue
        if token in TITLE_SUFFIXES and previous_was_title:
            continue
        if token in TITLE_TOKENS or token in PATRONYMIC_TOKENS:
            previous_was_title = token in TITLE_TOKENS
            continue
        previous_was_title = False
        core.append(token)

    return core or tokens


class NameSimilarityStrategy(ABC):
    """Abstract base class for name similarity strategies."""

    name: str = "base"

    @abstractmethod
    def similarity(self, extracted_name: str, candidate_name: str) -> float:
        """Score how likely two names refer to the same person.

        Args:
            extracted_name: Name as extracted from a document
            candidate_name: Name of a registry candidate

        Returns:
            Similarity in [0.0, 1.0]
        """
        ...


class TokenOverlapStrategy(NameSimilarityStrategy):
    """Token hit ratio.

    For each token of the extracted name, one hit is counted when any
    candidate token is equal to it or one contains the other. The
    similarity is hits divided by the larger token count.
    """

    name = "token_overlap"

    def __init__(self, strip_honorifics: bool = True):
        self.strip_honorifics = strip_honorifics

    def _tokens(self, name: str) -> list[str]:
        return core_name_tokens(name) if self.strip_honorifics else name_tokens(name)

    def similarity(self, extracted_name: str, candidate_name: str) -> float:
        tokens1 = self._tokens(extracted_name)
        tokens2 = self._tokens(candidate_name)
        if not tokens1 or not tokens2:
            return 0.0

        hits = 0
        for t1 in tokens1:
            for t2 in tokens2:
                if t1 == t2 or t1 in t2 or t2 in t1:
                    hits += 1
                    break

        return hits / max(len(tokens1), len(tokens2))


class FuzzyTokenStrategy(NameSimilarityStrategy):
    """RapidFuzz token-set ratio over the core name tokens.

    Tolerates transliteration variants ("Mohd" / "Mohamed") better than
    token overlap, at the cost of being harder to explain to a reviewer.
    """

    name = "fuzzy_token"

    def similarity(self, extracted_name: str, candidate_name: str) -> float:
        name1 = " ".join(core_name_tokens(extracted_name))
        name2 = " ".join(core_name_tokens(candidate_name))
        if not name1 or not name2:
            return 0.0
        return fuzz.token_set_ratio(name1, name2) / 100.0


def get_strategy(name: str) -> NameSimilarityStrategy:
    """Look up a strategy by name."""
    strategies: dict[str, type[NameSimilarityStrategy]] = {
        TokenOverlapStrategy.name: TokenOverlapStrategy,
        FuzzyTokenStrategy.name: FuzzyTokenStrategy,
    }
    if name not in strategies:
        raise ValueError(f"Unknown name similarity strategy: {name}")
    return strategies[name]()
