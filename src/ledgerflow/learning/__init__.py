"""
Learning module.

Vendor / description-pattern → category mappings reinforced by review actions,
plus the historical similarity signal.
"""

from .similarity import SimilarityResult, historical_category
from .store import LearningStore, Suggestion

__all__ = ["LearningStore", "SimilarityResult", "Suggestion", "historical_category"]
