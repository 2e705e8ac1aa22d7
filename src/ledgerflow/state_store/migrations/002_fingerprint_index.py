"""
Migration 002: Index transaction fingerprints.

Deduplication looks up every fingerprint of an owner on each ingest.
"""

import sqlite3

VERSION = 2
NAME = "fingerprint_index"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create the fingerprint index."""
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_transactions_fingerprint "
        "ON transactions(owner_id, fingerprint)"
    )
