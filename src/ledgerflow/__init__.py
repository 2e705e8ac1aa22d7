"""
Bank statement → Transactions → Classification → Reconciliation → Review

A deterministic, testable pipeline that turns raw bank statements into
classified transactions, settles them against open receivables and payables,
and routes uncertain results to a human review queue that feeds a learning
store.
"""

__version__ = "0.1.0"
