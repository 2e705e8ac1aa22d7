"""
Learning store.

Vendor and description-pattern → category mappings, reinforced by review
approvals and reset by corrections. Mappings live in the state store. Reads go
through a MappingCache shared by every LearningStore on the same database, and
every write invalidates the touched key, so a stale or missing cache entry
only costs a store read.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from ..config import ClassificationConfig
from ..schemas.categories import Category
from ..schemas.normalize import (
    extract_vendor_name,
    normalize_pattern_key,
    normalize_vendor_key,
    significant_words,
)
from ..state_store import MappingRecord, StateStore
from .cache import MappingCache, shared_cache
from .similarity import SimilarityResult, historical_category

logger = logging.getLogger(__name__)

VENDOR = "vendor"
PATTERN = "pattern"


@dataclass
class Suggestion:
    """A category suggestion from learned data."""

    category: Category
    confidence: int
    reason: str
    source: str  # vendor_mapping / pattern_mapping / history

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "reason": self.reason,
            "source": self.source,
        }


class LearningStore:
    """
    Learned category mappings for owners.

    Vendor mappings start at 80 and gain 5 per approval (cap 100).
    Pattern mappings start at 55 on approval or 60 on correction; a
    correction to the same category adds 10, an approval adds 5.
    A correction to a different category resets either mapping.
    """

    VENDOR_BASELINE = 80
    VENDOR_APPROVAL_STEP = 5
    PATTERN_BASELINE = 50
    PATTERN_CORRECTION_STEP = 10
    PATTERN_APPROVAL_BASELINE = 55
    PATTERN_APPROVAL_STEP = 5
    MAX_CONFIDENCE = 100

    VENDOR_MIN_CONFIDENCE = 70
    PATTERN_MIN_CONFIDENCE = 60
    SIMILAR_MIN_CONFIDENCE = 70
    SIMILAR_WORDS = 3
    LEARNED_MIN_CONFIDENCE = 80

    def __init__(
        self,
        store: StateStore,
        config: Optional[ClassificationConfig] = None,
        ignored_patterns: tuple[str, ...] = ("transaction", "pdf transaction"),
        cache: Optional[MappingCache] = None,
    ):
        self.store = store
        self.config = config or ClassificationConfig()
        self.ignored_patterns = ignored_patterns
        self.cache = cache or shared_cache(store.db_path, self.config.mapping_cache_size)

    # Keys and cache

    def vendor_key(self, description: str | None, vendor: str | None = None) -> str:
        return normalize_vendor_key(vendor or extract_vendor_name(description))

    def pattern_key(self, description: str | None) -> str:
        key = normalize_pattern_key(description)
        return "" if key in self.ignored_patterns else key

    def _cache_key(self, kind: str, owner_id: str, key: str) -> str:
        return f"{kind}:{owner_id}:{key}"

    def _lookup(self, kind: str, owner_id: str, key: str) -> Optional[MappingRecord]:
        if not key:
            return None
        return self.cache.get_or_load(
            self._cache_key(kind, owner_id, key),
            lambda: self.store.get_mapping(kind, owner_id, key),
        )

    def _invalidate(self, kind: str, owner_id: str, key: str) -> None:
        self.cache.invalidate(self._cache_key(kind, owner_id, key))

    def _invalidate_owner(self, owner_id: str) -> None:
        self.cache.invalidate_where(lambda k: k.split(":", 2)[1] == owner_id)

    # Reads

    def vendor_mapping(
        self, owner_id: str, description: str | None, vendor: str | None = None
    ) -> Optional[MappingRecord]:
        """Cached vendor mapping for a transaction's vendor."""
        return self._lookup(VENDOR, owner_id, self.vendor_key(description, vendor))

    def pattern_mapping(self, owner_id: str, description: str | None) -> Optional[MappingRecord]:
        """Cached pattern mapping for a description."""
        return self._lookup(PATTERN, owner_id, self.pattern_key(description))

    def similar_category(
        self,
        owner_id: str,
        description: str | None,
        exclude_id: int | None = None,
    ) -> Optional[SimilarityResult]:
        """Majority category of reviewed, confident transactions sharing a leading word."""
        words = significant_words(description, limit=self.SIMILAR_WORDS)
        if not words:
            return None
        similar = self.store.find_similar_transactions(
            owner_id,
            words,
            min_confidence=self.SIMILAR_MIN_CONFIDENCE,
            limit=self.config.similarity_candidates,
        )
        if exclude_id is not None:
            similar = [t for t in similar if t.id != exclude_id]
        return historical_category(similar, self.config.min_similar_transactions)

    def suggest(
        self,
        owner_id: str,
        description: str | None,
        vendor: str | None = None,
        amount: Decimal | None = None,
    ) -> Optional[Suggestion]:
        """
        Suggest a category from learned data.

        Order: vendor mapping (>= 70), pattern mapping (>= 60), then
        historical similarity. Returns the first hit or None.
        """
        vendor_record = self.vendor_mapping(owner_id, description, vendor)
        if vendor_record and vendor_record.confidence >= self.VENDOR_MIN_CONFIDENCE:
            return Suggestion(
                vendor_record.category,
                vendor_record.confidence,
                f'Learned from vendor "{vendor_record.key}" ({vendor_record.occurrences} times)',
                "vendor_mapping",
            )

        pattern_record = self.pattern_mapping(owner_id, description)
        if pattern_record and pattern_record.confidence >= self.PATTERN_MIN_CONFIDENCE:
            return Suggestion(
                pattern_record.category,
                pattern_record.confidence,
                f'Learned from description pattern "{pattern_record.key}"',
                "pattern_mapping",
            )

        similar = self.similar_category(owner_id, description)
        if similar:
            return Suggestion(
                similar.category,
                similar.confidence,
                f"{similar.similar_count} similar transactions",
                "history",
            )
        return None

    # Writes

    def learn_from_approval(
        self,
        owner_id: str,
        category: Category,
        description: str | None,
        vendor: str | None = None,
    ) -> None:
        """Reinforce mappings with a reviewer-approved category."""
        vendor_key = self.vendor_key(description, vendor)
        if vendor_key:
            existing = self.store.get_mapping(VENDOR, owner_id, vendor_key)
            if existing and existing.category == category:
                confidence = min(
                    self.MAX_CONFIDENCE, existing.confidence + self.VENDOR_APPROVAL_STEP
                )
                occurrences = existing.occurrences + 1
            else:
                confidence = self.VENDOR_BASELINE
                occurrences = 1
            self.store.save_mapping(VENDOR, owner_id, vendor_key, category, confidence, occurrences)
            self._invalidate(VENDOR, owner_id, vendor_key)

        pattern_key = self.pattern_key(description)
        if pattern_key:
            existing = self.store.get_mapping(PATTERN, owner_id, pattern_key)
            if existing and existing.category == category:
                confidence = min(
                    self.MAX_CONFIDENCE, existing.confidence + self.PATTERN_APPROVAL_STEP
                )
                occurrences = existing.occurrences + 1
            else:
                confidence = self.PATTERN_APPROVAL_BASELINE
                occurrences = 1
            self.store.save_mapping(
                PATTERN, owner_id, pattern_key, category, confidence, occurrences
            )
            self._invalidate(PATTERN, owner_id, pattern_key)

        logger.debug(
            "Learned approval for owner %s: vendor=%r pattern=%r -> %s",
            owner_id,
            vendor_key,
            pattern_key,
            category.value,
        )

    def learn_from_correction(
        self,
        owner_id: str,
        old_category: Category | None,
        new_category: Category,
        description: str | None,
        vendor: str | None = None,
    ) -> None:
        """Reset mappings to a reviewer-corrected category."""
        vendor_key = self.vendor_key(description, vendor)
        if vendor_key:
            existing = self.store.get_mapping(VENDOR, owner_id, vendor_key)
            occurrences = existing.occurrences + 1 if existing else 1
            self.store.save_mapping(
                VENDOR, owner_id, vendor_key, new_category, self.VENDOR_BASELINE, occurrences
            )
            self._invalidate(VENDOR, owner_id, vendor_key)

        pattern_key = self.pattern_key(description)
        if pattern_key:
            existing = self.store.get_mapping(PATTERN, owner_id, pattern_key)
            if existing and existing.category == new_category:
                confidence = min(
                    self.MAX_CONFIDENCE, existing.confidence + self.PATTERN_CORRECTION_STEP
                )
                occurrences = existing.occurrences + 1
            else:
                confidence = self.PATTERN_BASELINE + self.PATTERN_CORRECTION_STEP
                occurrences = 1
            self.store.save_mapping(
                PATTERN, owner_id, pattern_key, new_category, confidence, occurrences
            )
            self._invalidate(PATTERN, owner_id, pattern_key)

        logger.info(
            "Learned correction for owner %s: %s -> %s (vendor=%r, pattern=%r)",
            owner_id,
            old_category.value if old_category else None,
            new_category.value,
            vendor_key,
            pattern_key,
        )

    def rebuild_from_history(self, owner_id: str) -> int:
        """
        Recreate an owner's mappings from reviewed transaction history.

        Returns:
            Number of transactions replayed
        """
        self.clear(owner_id)
        history = self.store.get_reviewed_transactions(
            owner_id,
            min_confidence=self.LEARNED_MIN_CONFIDENCE,
            limit=self.config.history_limit,
        )
        for txn in history:
            self.learn_from_approval(owner_id, txn.category, txn.description, txn.vendor_name)
        logger.info("Rebuilt mappings for owner %s from %d transactions", owner_id, len(history))
        return len(history)

    def clear(self, owner_id: str) -> int:
        """Delete an owner's mappings. Returns rows deleted."""
        deleted = self.store.clear_mappings(owner_id)
        self._invalidate_owner(owner_id)
        return deleted

    def export_stats(self, owner_id: str) -> dict[str, Any]:
        """Summary of what has been learned for an owner."""
        vendors = self.store.list_mappings(VENDOR, owner_id)
        patterns = self.store.list_mappings(PATTERN, owner_id)
        learned = self.store.get_reviewed_transactions(
            owner_id,
            min_confidence=self.LEARNED_MIN_CONFIDENCE,
            limit=self.config.history_limit,
        )
        return {
            "vendor_mappings": len(vendors),
            "pattern_mappings": len(patterns),
            "learned_transactions": len(learned),
            "top_vendors": [
                {
                    "vendor": m.key,
                    "category": m.category.value,
                    "confidence": m.confidence,
                    "occurrences": m.occurrences,
                }
                for m in vendors[:5]
            ],
        }
