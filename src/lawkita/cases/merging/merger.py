"""Cross-source case merging.

Several documents often describe the same case. Their extractions are
combined into one MergedCase: the most confident extraction supplies
the scalar fields, list fields are unioned with first-seen order, and
confidence is boosted for every corroborating source.
"""

from datetime import date
from typing import Iterable, Mapping

from ..errors import EmptyMergeError
from ..models import (
    ExtractedCase,
    KeyDate,
    LawyerAssociation,
    MediaReference,
    MergedCase,
    case_key,
    parse_event_date,
)

CONFIDENCE_BOOST_PER_SOURCE = 5
MAX_CONFIDENCE = 100


def boosted_confidence(base: int, source_count: int) -> int:
    """Confidence of a case corroborated by `source_count` sources.

    A single source carries its own confidence unchanged.
    """
    if source_count <= 1:
        return min(MAX_CONFIDENCE, base)
    return min(MAX_CONFIDENCE, base + CONFIDENCE_BOOST_PER_SOURCE * source_count)


# =========================
# Field combiners
# =========================


def _union(*groups: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for item in group:
            if item not in seen:
                seen.add(item)
                merged.append(item)
    return merged


def _merge_lawyers(*groups: Iterable[LawyerAssociation]) -> list[LawyerAssociation]:
    """Dedupe by lower-cased name; the first-seen role wins.

    A resolved match from a later duplicate is carried over when the
    first-seen entry has none.
    """
    by_name: dict[str, LawyerAssociation] = {}
    for group in groups:
        for lawyer in group:
            key = lawyer.name_key
            if key not in by_name:
                by_name[key] = lawyer
                continue
            kept = by_name[key]
            if lawyer.match and lawyer.match.is_resolved and not (kept.match and kept.match.is_resolved):
                by_name[key] = kept.model_copy(update={"match": lawyer.match})
    return list(by_name.values())


def _sort_key_date(item: KeyDate) -> tuple[int, date]:
    parsed = parse_event_date(item.date)
    # Unparseable dates sort after every dated event
    return (0, parsed) if parsed else (1, date.max)


def _merge_key_dates(*groups: Iterable[KeyDate]) -> list[KeyDate]:
    by_key: dict[str, KeyDate] = {}
    for group in groups:
        for item in group:
            by_key.setdefault(item.dedup_key, item)
    return sorted(by_key.values(), key=_sort_key_date)


def _alternative_names(canonical_name: str, names: Iterable[str]) -> list[str]:
    canonical = case_key(canonical_name)
    seen = {canonical}
    alternatives: list[str] = []
    for name in names:
        key = case_key(name)
        if key and key not in seen:
            seen.add(key)
            alternatives.append(name)
    return alternatives


def _dedupe_by_source(extractions: list[ExtractedCase]) -> list[ExtractedCase]:
    """Keep one extraction per source document, the most confident."""
    kept: dict[str, ExtractedCase] = {}
    order: list[str] = []
    for idx, extraction in enumerate(extractions):
        doc_id = extraction.source_document_id or f"__anonymous_{idx}"
        if doc_id not in kept:
            kept[doc_id] = extraction
            order.append(doc_id)
        elif extraction.confidence > kept[doc_id].confidence:
            kept[doc_id] = extraction
    return [kept[doc_id] for doc_id in order]


def _references(
    document_ids: Iterable[str],
    references: Mapping[str, MediaReference] | None,
) -> list[MediaReference]:
    references = references or {}
    return [
        references.get(doc_id) or MediaReference(source_document_id=doc_id)
        for doc_id in document_ids
    ]


# =========================
# Public API
# =========================


def from_extraction(
    extraction: ExtractedCase,
    references: Mapping[str, MediaReference] | None = None,
) -> MergedCase:
    """Wrap a single extraction as a MergedCase without any boost."""
    doc_ids = [extraction.source_document_id] if extraction.source_document_id else []
    return MergedCase(
        canonical_name=extraction.case_name,
        canonical_key=case_key(extraction.case_name),
        alternative_names=_alternative_names(extraction.case_name, extraction.alternative_names),
        category=extraction.category,
        status=extraction.status,
        court=extraction.court,
        judges=_union(extraction.judges),
        lawyers=_merge_lawyers(extraction.lawyers),
        key_dates=_merge_key_dates(extraction.key_dates),
        charges=_union(extraction.charges),
        verdict=extraction.verdict,
        summary=extraction.summary,
        confidence=extraction.confidence,
        base_confidence=extraction.confidence,
        source_document_ids=doc_ids,
        sources=_references(doc_ids, references),
    )


def merge(
    extractions: list[ExtractedCase],
    references: Mapping[str, MediaReference] | None = None,
) -> MergedCase:
    """Merge extractions of the same case into one MergedCase.

    Args:
        extractions: Extractions already judged to describe the same case
        references: Media references keyed by source document ID

    Returns:
        The merged case, with confidence min(100, base + 5 * n)

    Raises:
        EmptyMergeError: If no extractions are given
    """
    if not extractions:
        raise EmptyMergeError("No extractions to merge")

    extractions = _dedupe_by_source(list(extractions))
    if len(extractions) == 1:
        return from_extraction(extractions[0], references)

    # sorted() is stable, so ties keep input order
    base = sorted(extractions, key=lambda e: e.confidence, reverse=True)[0]
    doc_ids = _union(e.source_document_id for e in extractions if e.source_document_id)

    return MergedCase(
        canonical_name=base.case_name,
        canonical_key=case_key(base.case_name),
        alternative_names=_alternative_names(
            base.case_name,
            (name for e in extractions for name in e.all_names),
        ),
        category=base.category,
        status=base.status,
        court=base.court or next((e.court for e in extractions if e.court), ""),
        judges=_union(*(e.judges for e in extractions)),
        lawyers=_merge_lawyers(*(e.lawyers for e in extractions)),
        key_dates=_merge_key_dates(*(e.key_dates for e in extractions)),
        charges=_union(*(e.charges for e in extractions)),
        verdict=base.verdict or next((e.verdict for e in extractions if e.verdict), None),
        summary=base.summary,
        confidence=boosted_confidence(base.confidence, len(extractions)),
        base_confidence=base.confidence,
        source_document_ids=doc_ids,
        sources=_references(doc_ids, references),
    )


def new_extractions(existing: MergedCase, extractions: list[ExtractedCase]) -> list[ExtractedCase]:
    """Extractions whose source document the existing case has not seen."""
    seen = set(existing.source_document_ids)
    return [
        e for e in _dedupe_by_source(list(extractions))
        if not e.source_document_id or e.source_document_id not in seen
    ]


def remerge(
    existing: MergedCase,
    extractions: list[ExtractedCase],
    references: Mapping[str, MediaReference] | None = None,
) -> MergedCase:
    """Fold new extractions into an already persisted case.

    Extractions from documents the case already records are ignored, so
    re-running a batch changes nothing. The canonical name and key are
    kept, and confidence never drops below its stored value.

    Returns:
        `existing` itself when there is nothing new to add, otherwise a
        new MergedCase
    """
    fresh = new_extractions(existing, extractions)
    if not fresh:
        return existing

    top = sorted(fresh, key=lambda e: e.confidence, reverse=True)[0]
    new_base_wins = top.confidence > existing.base_confidence
    base_confidence = max(existing.base_confidence, top.confidence)

    doc_ids = _union(
        existing.source_document_ids,
        (e.source_document_id for e in fresh if e.source_document_id),
    )
    source_count = max(len(doc_ids), 1)
    confidence = max(existing.confidence, boosted_confidence(base_confidence, source_count))

    known_sources = {ref.source_document_id: ref for ref in existing.sources}
    merged_refs = dict(references or {})
    for doc_id, ref in known_sources.items():
        merged_refs.setdefault(doc_id, ref)

    return existing.model_copy(update={
        "alternative_names": _alternative_names(
            existing.canonical_name,
            [*existing.alternative_names, *(name for e in fresh for name in e.all_names)],
        ),
        "category": top.category if new_base_wins else existing.category,
        "status": top.status if new_base_wins else existing.status,
        "court": (top.court if new_base_wins and top.court else existing.court)
        or next((e.court for e in fresh if e.court), ""),
        "judges": _union(existing.judges, *(e.judges for e in fresh)),
        "lawyers": _merge_lawyers(existing.lawyers, *(e.lawyers for e in fresh)),
        "key_dates": _merge_key_dates(existing.key_dates, *(e.key_dates for e in fresh)),
        "charges": _union(existing.charges, *(e.charges for e in fresh)),
        "verdict": (top.verdict if new_base_wins and top.verdict else existing.verdict)
        or next((e.verdict for e in fresh if e.verdict), None),
        "summary": top.summary if new_base_wins and top.summary else existing.summary,
        "confidence": min(MAX_CONFIDENCE, confidence),
        "base_confidence": base_confidence,
        "source_document_ids": doc_ids,
        "sources": _references(doc_ids, merged_refs),
    })
