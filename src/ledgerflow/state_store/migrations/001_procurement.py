"""
Migration 001: Add procurement tables.

Purchase orders and goods receipts (with their lines) feed the three-way
match of payables.
"""

import sqlite3

VERSION = 1
NAME = "procurement"


def upgrade(conn: sqlite3.Connection) -> None:
    """Create purchase order and goods receipt tables."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS purchase_orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id TEXT NOT NULL,
            number TEXT,
            vendor_id TEXT NOT NULL,
            vendor_name TEXT,
            total_amount TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS purchase_order_lines (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            purchase_order_id INTEGER NOT NULL,
            item TEXT NOT NULL,
            quantity TEXT NOT NULL,
            unit_price TEXT,
            FOREIGN KEY (purchase_order_id) REFERENCES purchase_orders(id) ON DELETE CASCADE
        )
    """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS goods_receipts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            purchase_order_id INTEGER NOT NULL,
            received_date TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY (purchase_order_id) REFERENCES purchase_orders(id)
        )
    """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS goods_receipt_lines (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            goods_receipt_id INTEGER NOT NULL,
            item TEXT NOT NULL,
            received_quantity TEXT NOT NULL,
            FOREIGN KEY (goods_receipt_id) REFERENCES goods_receipts(id) ON DELETE CASCADE
        )
    """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_po_lines_po ON purchase_order_lines(purchase_order_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_receipt_lines_receipt "
        "ON goods_receipt_lines(goods_receipt_id)"
    )
