"""Cheap lexical relevance filter.

Decides whether a document is worth a language-model extraction call.
The filter errs toward letting documents through: a missed case costs
more than a wasted extraction.
"""

from .models import RawDocument

# English and Malay vocabulary of court coverage
LEGAL_KEYWORDS: tuple[str, ...] = (
    # English
    "court",
    "trial",
    "judge",
    "justice",
    "lawyer",
    "counsel",
    "advocate",
    "attorney",
    "prosecution",
    "prosecutor",
    "defence",
    "defense",
    "defendant",
    "accused",
    "plaintiff",
    "verdict",
    "sentence",
    "appeal",
    "judgment",
    "hearing",
    "bail",
    "charged",
    "convicted",
    "acquitted",
    "custody",
    # Malay
    "mahkamah",
    "hakim",
    "peguam",
    "pendakwa",
    "tertuduh",
    "tuduhan",
    "rayuan",
    "hukuman",
    "perbicaraan",
)


class RelevanceFilter:
    """Keyword-count classifier for legal-case coverage.

    A document is relevant when at least `min_keywords` distinct
    keywords occur anywhere in its title or content.
    """

    def __init__(
        self,
        min_keywords: int = 3,
        keywords: tuple[str, ...] = LEGAL_KEYWORDS,
    ):
        self.min_keywords = min_keywords
        self.keywords = tuple(k.lower() for k in keywords)

    def keyword_hits(self, document: RawDocument) -> list[str]:
        """Return the keywords found in the document."""
        text = f"{document.title} {document.content}".lower()
        return [kw for kw in self.keywords if kw in text]

    def is_relevant(self, document: RawDocument) -> bool:
        hits = 0
        text = f"{document.title} {document.content}".lower()
        for keyword in self.keywords:
            if keyword in text:
                hits += 1
                if hits >= self.min_keywords:
                    return True
        return False


def is_relevant(document: RawDocument, min_keywords: int = 3) -> bool:
    """Module-level shortcut using the default keyword set."""
    return RelevanceFilter(min_keywords=min_keywords).is_relevant(document)
