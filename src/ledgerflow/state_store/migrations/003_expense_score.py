"""
Migration 003: Numeric expense-type confidence.

Stores the 0-100 score next to the coarse expense confidence level and
backfills existing rows from their level (keyword hits score 100).
"""

import sqlite3

VERSION = 3
NAME = "expense_score"


def upgrade(conn: sqlite3.Connection) -> None:
    """Add and backfill transactions.expense_score."""
    conn.execute("ALTER TABLE transactions ADD COLUMN expense_score INTEGER NOT NULL DEFAULT 0")
    conn.execute(
        """
        UPDATE transactions SET expense_score = CASE
            WHEN expense_reason LIKE 'Contains %keyword:%' THEN 100
            WHEN expense_confidence = 'high' THEN 90
            WHEN expense_confidence = 'medium' THEN 65
            ELSE 35
        END
    """
    )
