"""Source adapters for the legal-case pipeline.

Each adapter fetches one kind of source and normalizes it into
RawDocuments.

Available adapters:
- NewsSourceAdapter: Malaysian news sites via Firecrawl
- JudgmentSourceAdapter: e-Judgment portal search results
- DirectorySourceAdapter: Malaysian Bar legal directory listings
"""

from ..models import SourceDescriptor, SourceType
from .base import BaseSourceAdapter
from .directory import DIRECTORY_SEARCH_URL, MALAYSIAN_STATES, DirectorySourceAdapter, state_code
from .judgments import EJUDGMENT_SEARCH_URL, JudgmentSourceAdapter
from .news import NewsSourceAdapter

__all__ = [
    "BaseSourceAdapter",
    "DirectorySourceAdapter",
    "JudgmentSourceAdapter",
    "NewsSourceAdapter",
    "MALAYSIAN_STATES",
    "NEWS_SOURCES",
    "DEFAULT_SOURCES",
    "state_code",
    "get_adapter",
    "get_sources",
]


# Malaysian news outlets with trust scores
NEWS_SOURCES = [
    SourceDescriptor(name="The Star", url="https://www.thestar.com.my", source_type=SourceType.NEWS, trust_score=1.0),
    SourceDescriptor(name="New Straits Times", url="https://www.nst.com.my", source_type=SourceType.NEWS, trust_score=1.0),
    SourceDescriptor(name="Malay Mail", url="https://www.malaymail.com", source_type=SourceType.NEWS, trust_score=1.0),
    SourceDescriptor(name="Free Malaysia Today", url="https://www.freemalaysiatoday.com", source_type=SourceType.NEWS, trust_score=0.9),
    SourceDescriptor(name="The Edge", url="https://www.theedgemarkets.com", source_type=SourceType.NEWS, trust_score=1.0),
    SourceDescriptor(name="Bernama", url="https://www.bernama.com", source_type=SourceType.NEWS, trust_score=1.0),
    SourceDescriptor(name="Focus Malaysia", url="https://focusmalaysia.my", source_type=SourceType.NEWS, trust_score=0.8),
    SourceDescriptor(name="Reuters", url="https://www.reuters.com", source_type=SourceType.NEWS, trust_score=1.0),
    SourceDescriptor(name="CNA", url="https://www.channelnewsasia.com", source_type=SourceType.NEWS, trust_score=0.9),
]

DEFAULT_SOURCES: dict[SourceType, list[SourceDescriptor]] = {
    SourceType.NEWS: NEWS_SOURCES,
    SourceType.JUDGMENTS: [
        SourceDescriptor(
            name="e-Judgment Portal",
            url=EJUDGMENT_SEARCH_URL,
            source_type=SourceType.JUDGMENTS,
            trust_score=1.0,
            page_limit=50,
        ),
    ],
    SourceType.DIRECTORY: [
        SourceDescriptor(
            name="Malaysian Bar Legal Directory",
            url=DIRECTORY_SEARCH_URL,
            source_type=SourceType.DIRECTORY,
            trust_score=1.0,
            page_limit=100,
        ),
    ],
}


def get_sources(source_type: SourceType | str, states: list[str] | None = None) -> list[SourceDescriptor]:
    """Default source descriptors for a source type.

    Directory sources are narrowed to the given states.
    """
    source_type = SourceType(source_type)
    sources = DEFAULT_SOURCES[source_type]
    if states and source_type == SourceType.DIRECTORY:
        return [s.model_copy(update={"states": list(states)}) for s in sources]
    return list(sources)


def get_adapter(source_type: SourceType | str, **kwargs) -> BaseSourceAdapter:
    """Get the adapter for a source type.

    Args:
        source_type: news, judgments or directory
        **kwargs: Passed to the adapter constructor

    Raises:
        ValueError: If the source type is not supported
        JobFatalError: If the adapter's credentials are missing
    """
    adapters: dict[SourceType, type[BaseSourceAdapter]] = {
        SourceType.NEWS: NewsSourceAdapter,
        SourceType.JUDGMENTS: JudgmentSourceAdapter,
        SourceType.DIRECTORY: DirectorySourceAdapter,
    }

    try:
        key = SourceType(source_type)
    except ValueError:
        raise ValueError(f"Unsupported source type: {source_type}") from None

    return adapters[key](**kwargs)
