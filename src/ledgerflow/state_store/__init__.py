"""
State Store (SQLite-based).

Persistent storage for:
- Owners and their cash/runway figures
- Transactions with classification, review and match state
- Receivables and payables
- Learned vendor and pattern mappings
- Purchase orders and goods receipts
"""

from .sqlite_store import (
    MappingRecord,
    StateStore,
    obligation_from_row,
    owner_from_row,
    transaction_from_row,
)

__all__ = [
    "MappingRecord",
    "StateStore",
    "obligation_from_row",
    "owner_from_row",
    "transaction_from_row",
]
