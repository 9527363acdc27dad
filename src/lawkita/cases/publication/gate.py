"""Confidence-gated publication policy."""

from ...logging import log_gate_decision
from ..models import MergedCase, PublicationState


class PublicationGate:
    """Maps merged-case confidence to a publication state.

    Thresholds:
    - >= publish_threshold: Published automatically
    - >= review_threshold: Persisted unpublished and flagged for review
    - below: Persisted as a pending draft
    """

    def __init__(self, publish_threshold: int = 90, review_threshold: int = 70):
        if review_threshold > publish_threshold:
            raise ValueError("review_threshold must not exceed publish_threshold")
        self.publish_threshold = publish_threshold
        self.review_threshold = review_threshold

    def decide(self, confidence: int) -> PublicationState:
        if confidence >= self.publish_threshold:
            return PublicationState.PUBLISHED
        if confidence >= self.review_threshold:
            return PublicationState.FLAGGED
        return PublicationState.PENDING

    def evaluate(self, case: MergedCase) -> PublicationState:
        """Decide and log the state for a merged case."""
        state = self.decide(case.confidence)
        log_gate_decision(case.canonical_key, case.confidence, state.value)
        return state
