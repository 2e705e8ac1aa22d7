"""
Confidence scoring implementation.
"""

from dataclasses import dataclass
from typing import Optional

from ..config import Config
from ..schemas.transaction import ConfidenceLevel, ReviewReason, ReviewStatus, Transaction


@dataclass
class ReviewThresholds:
    """Configurable thresholds for review routing."""

    auto_approve_threshold: int = 80  # At or above this: no review needed
    min_description_length: int = 4  # Shorter descriptions are "unclear"
    placeholders: tuple[str, ...] = ("Transaction", "PDF Transaction")


@dataclass
class ReviewDecision:
    """Whether a classified transaction enters the review queue, and why."""

    needs_review: bool
    reason: Optional[ReviewReason] = None


class ConfidenceScorer:
    """
    Maps classifier outcomes onto the 0-100 confidence scale and decides
    review routing.

    Confidence sources (in order of trust):
    1. Explicit keyword / manual action: 100
    2. Learned vendor / pattern mapping: stored confidence
    3. Interval analysis and heuristics: by level (high/medium/low)
    """

    KEYWORD_CONFIDENCE = 100
    MANUAL_CONFIDENCE = 100

    LEVEL_CONFIDENCE = {
        ConfidenceLevel.HIGH: 90,
        ConfidenceLevel.MEDIUM: 65,
        ConfidenceLevel.LOW: 35,
    }

    def __init__(self, thresholds: Optional[ReviewThresholds] = None):
        """Initialize scorer with thresholds."""
        self.thresholds = thresholds or ReviewThresholds()

    @classmethod
    def from_config(cls, config: Config) -> "ConfidenceScorer":
        return cls(
            ReviewThresholds(
                auto_approve_threshold=config.review.auto_approve_threshold,
                placeholders=(
                    config.ingest.placeholder_description,
                    config.ingest.document_placeholder_description,
                ),
            )
        )

    def level_score(self, level: ConfidenceLevel) -> int:
        """Numeric confidence of a coarse level."""
        return self.LEVEL_CONFIDENCE[level]

    def expense_score(self, level: ConfidenceLevel, source: str = "") -> int:
        """Numeric confidence of an expense-type decision; keyword hits score 100."""
        if source == "keyword":
            return self.KEYWORD_CONFIDENCE
        return self.level_score(level)

    def is_unclear_description(self, description: str | None) -> bool:
        """Placeholder or very short descriptions cannot be classified reliably."""
        text = (description or "").strip()
        if text in self.thresholds.placeholders:
            return True
        return len(text) < self.thresholds.min_description_length

    def review_decision(self, confidence: int, description: str | None) -> ReviewDecision:
        """
        Decide review routing for a classification.

        Rules:
        - confidence >= auto_approve_threshold: no review
        - otherwise: review, reason unclear_description when the description
          is a placeholder or too short, else low_confidence
        """
        if confidence >= self.thresholds.auto_approve_threshold:
            return ReviewDecision(needs_review=False)
        if self.is_unclear_description(description):
            return ReviewDecision(needs_review=True, reason=ReviewReason.UNCLEAR_DESCRIPTION)
        return ReviewDecision(needs_review=True, reason=ReviewReason.LOW_CONFIDENCE)

    def apply(self, txn: Transaction) -> Transaction:
        """Set the review flags of a freshly classified transaction."""
        decision = self.review_decision(txn.confidence, txn.description)
        txn.needs_review = decision.needs_review
        txn.review_reason = decision.reason
        txn.review_status = ReviewStatus.PENDING if decision.needs_review else None
        return txn
