"""
Canonical schemas.

- Category space (closed enum + metadata table)
- Transaction / Obligation records
- Dedupe fingerprints
"""

from .categories import CATEGORY_INFO, Category, CategoryInfo, Frequency, recurring_categories
from .dedupe import compute_fingerprint
from .transaction import (
    ConfidenceLevel,
    Direction,
    ExpenseType,
    GoodsReceipt,
    Obligation,
    ObligationKind,
    ObligationStatus,
    Owner,
    PurchaseOrder,
    PurchaseOrderLine,
    ReceiptLine,
    ReviewReason,
    ReviewStatus,
    Settlement,
    Transaction,
    TransactionType,
    apply_payment,
)

__all__ = [
    "CATEGORY_INFO",
    "Category",
    "CategoryInfo",
    "ConfidenceLevel",
    "Direction",
    "ExpenseType",
    "Frequency",
    "GoodsReceipt",
    "Obligation",
    "ObligationKind",
    "ObligationStatus",
    "Owner",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "ReceiptLine",
    "ReviewReason",
    "ReviewStatus",
    "Settlement",
    "Transaction",
    "TransactionType",
    "apply_payment",
    "compute_fingerprint",
    "recurring_categories",
]
