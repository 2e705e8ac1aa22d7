"""
Review queue for low-confidence and ambiguous transactions.
"""

from .workflow import BulkResult, ItemResult, ReviewQueue

__all__ = ["BulkResult", "ItemResult", "ReviewQueue"]
