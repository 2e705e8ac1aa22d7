"""Historical category similarity."""

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from ..schemas.categories import Category
from ..schemas.transaction import Transaction


@dataclass(frozen=True)
class SimilarityResult:
    """Majority category among similar past transactions."""

    category: Category
    confidence: int
    similar_count: int
    fraction: float


def historical_category(
    similar: Sequence[Transaction],
    min_similar: int = 3,
) -> Optional[SimilarityResult]:
    """
    Majority category among similar transactions.

    Needs at least ``min_similar`` transactions; confidence is
    min(90, 30 + fraction * 60) where fraction is the majority share.
    """
    if len(similar) < min_similar:
        return None
    counts = Counter(t.category for t in similar)
    category, count = counts.most_common(1)[0]
    fraction = count / len(similar)
    confidence = min(90, round(30 + fraction * 60))
    return SimilarityResult(category, confidence, len(similar), fraction)
