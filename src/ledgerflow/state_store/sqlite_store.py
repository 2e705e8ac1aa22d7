"""
SQLite-based state store implementation.

Tables:
- owners: Businesses with cash balance and runway
- transactions: Canonical bank transactions with classification/review/match state
- obligations: Receivables and payables (kind column)
- vendor_mappings: Learned vendor → category mappings
- pattern_mappings: Learned description pattern → category mappings
- purchase_orders / goods_receipts (+ lines): Procurement documents (migration 001)
"""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from ..errors import InvalidActionError, NotFoundError
from ..schemas.categories import Category, Frequency
from ..schemas.transaction import (
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
    Transaction,
    TransactionType,
    apply_payment,
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _dec(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


@dataclass
class MappingRecord:
    """A learned vendor or pattern mapping."""

    owner_id: str
    key: str
    category: Category
    confidence: int
    occurrences: int
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "MappingRecord":
        """Create from database row."""
        return cls(
            owner_id=row["owner_id"],
            key=row["mapping_key"],
            category=Category(row["category"]),
            confidence=row["confidence"],
            occurrences=row["occurrences"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def transaction_from_row(row: sqlite3.Row) -> Transaction:
    """Create a Transaction from a database row."""
    return Transaction(
        id=row["id"],
        owner_id=row["owner_id"],
        date=row["date"],
        amount=Decimal(row["amount"]),
        description=row["description"],
        direction=Direction(row["direction"]),
        vendor_name=row["vendor_name"],
        balance=_dec(row["balance"]),
        category=Category(row["category"]),
        confidence=row["confidence"],
        classification_reason=row["classification_reason"] or "",
        classification_source=row["classification_source"],
        expense_type=ExpenseType(row["expense_type"]),
        frequency=Frequency(row["frequency"]) if row["frequency"] else None,
        expense_confidence=ConfidenceLevel(row["expense_confidence"]),
        expense_score=row["expense_score"],
        expense_reason=row["expense_reason"] or "",
        needs_review=bool(row["needs_review"]),
        review_reason=ReviewReason(row["review_reason"]) if row["review_reason"] else None,
        review_status=ReviewStatus(row["review_status"]) if row["review_status"] else None,
        reviewed_by=row["reviewed_by"],
        reviewed_at=row["reviewed_at"],
        review_notes=row["review_notes"],
        transaction_type=TransactionType(row["transaction_type"]),
        matched_receivable_id=row["matched_receivable_id"],
        matched_payable_id=row["matched_payable_id"],
        fingerprint=row["fingerprint"],
        source_line=row["source_line"],
        created_at=row["created_at"],
    )


def obligation_from_row(row: sqlite3.Row) -> Obligation:
    """Create an Obligation from a database row."""
    return Obligation(
        id=row["id"],
        owner_id=row["owner_id"],
        kind=ObligationKind(row["kind"]),
        number=row["number"],
        counterparty=row["counterparty"],
        vendor_id=row["vendor_id"],
        total_amount=Decimal(row["total_amount"]),
        paid_amount=Decimal(row["paid_amount"]),
        balance_amount=Decimal(row["balance_amount"]),
        status=ObligationStatus(row["status"]),
        due_date=row["due_date"],
        settled_at=row["settled_at"],
        match_status=row["match_status"],
        discrepancies=json.loads(row["discrepancies"]) if row["discrepancies"] else [],
    )


def owner_from_row(row: sqlite3.Row) -> Owner:
    """Create an Owner from a database row."""
    return Owner(
        id=row["id"],
        name=row["name"],
        cash_balance=Decimal(row["cash_balance"]),
        runway_months=row["runway_months"],
        monthly_burn=Decimal(row["monthly_burn"]),
        monthly_revenue=Decimal(row["monthly_revenue"]),
    )


# Columns written by save/update; id and created_at are managed by the store
_TRANSACTION_COLUMNS = (
    "owner_id",
    "date",
    "amount",
    "description",
    "direction",
    "vendor_name",
    "balance",
    "category",
    "confidence",
    "classification_reason",
    "classification_source",
    "expense_type",
    "frequency",
    "expense_confidence",
    "expense_score",
    "expense_reason",
    "needs_review",
    "review_reason",
    "review_status",
    "reviewed_by",
    "reviewed_at",
    "review_notes",
    "transaction_type",
    "matched_receivable_id",
    "matched_payable_id",
    "fingerprint",
    "source_line",
)


def _transaction_values(txn: Transaction) -> tuple:
    return (
        txn.owner_id,
        txn.date,
        str(txn.amount),
        txn.description,
        txn.direction.value,
        txn.vendor_name,
        str(txn.balance) if txn.balance is not None else None,
        txn.category.value,
        txn.confidence,
        txn.classification_reason,
        txn.classification_source,
        txn.expense_type.value,
        txn.frequency.value if txn.frequency else None,
        txn.expense_confidence.value,
        txn.expense_score,
        txn.expense_reason,
        1 if txn.needs_review else 0,
        txn.review_reason.value if txn.review_reason else None,
        txn.review_status.value if txn.review_status else None,
        txn.reviewed_by,
        txn.reviewed_at,
        txn.review_notes,
        txn.transaction_type.value,
        txn.matched_receivable_id,
        txn.matched_payable_id,
        txn.fingerprint,
        txn.source_line,
    )


class StateStore:
    """
    SQLite-based state store for the pipeline.

    Provides persistent tracking of:
    - Owners (cash balance, burn, runway)
    - Transactions and their review state
    - Receivables / payables
    - Learned vendor and pattern mappings
    - Purchase orders and goods receipts

    The only read-modify-write that must be isolated is the obligation
    settlement, which runs inside BEGIN IMMEDIATE.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str, run_migrations: bool = True):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
            run_migrations: Whether to run pending migrations (default True)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        if run_migrations:
            self._run_migrations()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def _immediate_transaction(self) -> Iterator[sqlite3.Connection]:
        """Write-locked transaction for read-modify-write sequences."""
        conn = self._get_connection()
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            # Schema version tracking
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            # Owners table
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS owners (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    cash_balance TEXT NOT NULL DEFAULT '0',
                    monthly_burn TEXT NOT NULL DEFAULT '0',
                    monthly_revenue TEXT NOT NULL DEFAULT '0',
                    runway_months REAL,  -- NULL = infinite
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            # Transactions table
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    amount TEXT NOT NULL,  -- signed decimal string
                    description TEXT NOT NULL,
                    direction TEXT NOT NULL,
                    vendor_name TEXT,
                    balance TEXT,
                    category TEXT NOT NULL,
                    confidence INTEGER NOT NULL DEFAULT 0,
                    classification_reason TEXT,
                    classification_source TEXT,
                    expense_type TEXT NOT NULL,
                    frequency TEXT,
                    expense_confidence TEXT NOT NULL,
                    expense_reason TEXT,
                    needs_review INTEGER NOT NULL DEFAULT 0,
                    review_reason TEXT,
                    review_status TEXT,
                    reviewed_by TEXT,
                    reviewed_at TEXT,
                    review_notes TEXT,
                    transaction_type TEXT NOT NULL,
                    matched_receivable_id INTEGER,
                    matched_payable_id INTEGER,
                    fingerprint TEXT,
                    source_line INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (matched_receivable_id IS NULL OR matched_payable_id IS NULL)
                )
            """
            )

            # Obligations table (receivables + payables)
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS obligations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    kind TEXT NOT NULL,  -- receivable / payable
                    number TEXT,
                    counterparty TEXT,
                    vendor_id TEXT,
                    total_amount TEXT NOT NULL,
                    paid_amount TEXT NOT NULL DEFAULT '0',
                    balance_amount TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'open',
                    due_date TEXT,
                    settled_at TEXT,
                    match_status TEXT,
                    discrepancies TEXT,  -- JSON array
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            # Learned mappings
            for table in ("vendor_mappings", "pattern_mappings"):
                conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        owner_id TEXT NOT NULL,
                        mapping_key TEXT NOT NULL,
                        category TEXT NOT NULL,
                        confidence INTEGER NOT NULL,
                        occurrences INTEGER NOT NULL DEFAULT 1,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        PRIMARY KEY (owner_id, mapping_key)
                    )
                """
                )

            # Create indexes
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_owner_date "
                "ON transactions(owner_id, date)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_review "
                "ON transactions(owner_id, needs_review)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_obligations_owner "
                "ON obligations(owner_id, kind, status)"
            )

            # Set schema version
            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,)
            )

    def _run_migrations(self) -> None:
        """Run pending database migrations."""
        from .migrations import MigrationRunner

        conn = self._get_connection()
        try:
            runner = MigrationRunner(conn)
            runner.run_pending()
        finally:
            conn.close()

    # Owner methods

    def upsert_owner(
        self,
        owner_id: str,
        name: str | None = None,
        cash_balance: Decimal | None = None,
    ) -> Owner:
        """Insert or update an owner record."""
        now = _now()
        with self._transaction() as conn:
            existing = conn.execute("SELECT * FROM owners WHERE id = ?", (owner_id,)).fetchone()
            if existing:
                conn.execute(
                    """
                    UPDATE owners
                    SET name = COALESCE(?, name),
                        cash_balance = COALESCE(?, cash_balance),
                        updated_at = ?
                    WHERE id = ?
                """,
                    (
                        name,
                        str(cash_balance) if cash_balance is not None else None,
                        now,
                        owner_id,
                    ),
                )
            else:
                conn.execute(
                    """
                    INSERT INTO owners (id, name, cash_balance, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                """,
                    (owner_id, name or owner_id, str(cash_balance or Decimal("0")), now, now),
                )
            row = conn.execute("SELECT * FROM owners WHERE id = ?", (owner_id,)).fetchone()
            return owner_from_row(row)

    def get_owner(self, owner_id: str) -> Owner | None:
        """Get an owner by id."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM owners WHERE id = ?", (owner_id,)).fetchone()
            return owner_from_row(row) if row else None

    def adjust_owner_cash(self, owner_id: str, delta: Decimal) -> Owner:
        """Atomically add a signed delta to an owner's cash balance.

        Raises:
            NotFoundError: If the owner does not exist
        """
        with self._immediate_transaction() as conn:
            row = conn.execute("SELECT * FROM owners WHERE id = ?", (owner_id,)).fetchone()
            if not row:
                raise NotFoundError("owner", owner_id)
            new_balance = Decimal(row["cash_balance"]) + delta
            conn.execute(
                "UPDATE owners SET cash_balance = ?, updated_at = ? WHERE id = ?",
                (str(new_balance), _now(), owner_id),
            )
            row = conn.execute("SELECT * FROM owners WHERE id = ?", (owner_id,)).fetchone()
            return owner_from_row(row)

    def update_owner_runway(
        self,
        owner_id: str,
        monthly_burn: Decimal,
        monthly_revenue: Decimal,
        runway_months: float | None,
    ) -> bool:
        """Store recomputed burn/revenue/runway for an owner."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE owners
                SET monthly_burn = ?, monthly_revenue = ?, runway_months = ?, updated_at = ?
                WHERE id = ?
            """,
                (str(monthly_burn), str(monthly_revenue), runway_months, _now(), owner_id),
            )
            return cursor.rowcount > 0

    # Transaction methods

    def save_transaction(self, txn: Transaction) -> int:
        """Insert a new transaction. Sets and returns txn.id."""
        now = _now()
        columns = ", ".join(_TRANSACTION_COLUMNS)
        placeholders = ", ".join("?" for _ in _TRANSACTION_COLUMNS)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"""
                INSERT INTO transactions ({columns}, created_at, updated_at)
                VALUES ({placeholders}, ?, ?)
            """,
                _transaction_values(txn) + (now, now),
            )
            txn.id = cursor.lastrowid
            txn.created_at = now
            return txn.id

    def update_transaction(self, txn: Transaction) -> bool:
        """Persist all mutable fields of an existing transaction."""
        if txn.id is None:
            raise ValueError("Cannot update a transaction without an id")
        assignments = ", ".join(f"{c} = ?" for c in _TRANSACTION_COLUMNS)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE transactions SET {assignments}, updated_at = ? WHERE id = ?",
                _transaction_values(txn) + (_now(), txn.id),
            )
            return cursor.rowcount > 0

    def get_transaction(self, transaction_id: int) -> Transaction | None:
        """Get a transaction by id."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
            ).fetchone()
            return transaction_from_row(row) if row else None

    def delete_transaction(self, transaction_id: int) -> bool:
        """Delete a transaction (bulk-delete review action only)."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,))
            return cursor.rowcount > 0

    def get_transactions(
        self,
        owner_id: str,
        limit: int | None = None,
        since: str | None = None,
        exclude_id: int | None = None,
    ) -> list[Transaction]:
        """Get an owner's transactions, newest first."""
        query = "SELECT * FROM transactions WHERE owner_id = ?"
        params: list[Any] = [owner_id]
        if since:
            query += " AND date >= ?"
            params.append(since)
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(exclude_id)
        query += " ORDER BY date DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [transaction_from_row(r) for r in rows]

    def get_pending_reviews(
        self,
        owner_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        """Get transactions waiting in the review queue, oldest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM transactions
                WHERE owner_id = ? AND needs_review = 1
                ORDER BY date ASC, id ASC
                LIMIT ? OFFSET ?
            """,
                (owner_id, limit, offset),
            ).fetchall()
            return [transaction_from_row(r) for r in rows]

    def get_fingerprints(self, owner_id: str) -> set[str]:
        """Get all stored transaction fingerprints of an owner."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT fingerprint FROM transactions "
                "WHERE owner_id = ? AND fingerprint IS NOT NULL",
                (owner_id,),
            ).fetchall()
            return {r["fingerprint"] for r in rows}

    def find_similar_transactions(
        self,
        owner_id: str,
        words: list[str],
        min_confidence: int = 70,
        limit: int = 50,
    ) -> list[Transaction]:
        """
        Find reviewed, confident transactions whose description contains any word.

        Args:
            owner_id: Owning business id
            words: Lowercase words to look for
            min_confidence: Minimum stored confidence
            limit: Maximum results

        Returns:
            Matching transactions, newest first
        """
        if not words:
            return []
        word_clause = " OR ".join("LOWER(description) LIKE ?" for _ in words)
        params: list[Any] = [owner_id, min_confidence]
        params.extend(f"%{w}%" for w in words)
        params.append(limit)
        with self._transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM transactions
                WHERE owner_id = ? AND needs_review = 0 AND confidence >= ?
                  AND ({word_clause})
                ORDER BY date DESC, id DESC
                LIMIT ?
            """,
                params,
            ).fetchall()
            return [transaction_from_row(r) for r in rows]

    def get_review_stats(self, owner_id: str, today: str) -> dict[str, Any]:
        """Review queue statistics for an owner.

        Args:
            owner_id: Owning business id
            today: Current date (YYYY-MM-DD) for the reviewed-today count
        """
        with self._transaction() as conn:
            pending = conn.execute(
                """
                SELECT COUNT(*) AS count, AVG(confidence) AS avg_confidence
                FROM transactions WHERE owner_id = ? AND needs_review = 1
            """,
                (owner_id,),
            ).fetchone()
            reviewed_today = conn.execute(
                """
                SELECT COUNT(*) AS count FROM transactions
                WHERE owner_id = ? AND reviewed_at LIKE ?
            """,
                (owner_id, f"{today}%"),
            ).fetchone()
            reasons = conn.execute(
                """
                SELECT review_reason, COUNT(*) AS count FROM transactions
                WHERE owner_id = ? AND needs_review = 1
                GROUP BY review_reason
            """,
                (owner_id,),
            ).fetchall()

            return {
                "pending_count": pending["count"] if pending else 0,
                "average_confidence": (
                    round(pending["avg_confidence"], 1)
                    if pending and pending["avg_confidence"] is not None
                    else 0.0
                ),
                "reviewed_today": reviewed_today["count"] if reviewed_today else 0,
                "by_review_reason": {
                    (r["review_reason"] or "unspecified"): r["count"] for r in reasons
                },
            }

    # Obligation methods

    def create_obligation(
        self,
        owner_id: str,
        kind: ObligationKind,
        total_amount: Decimal,
        number: str | None = None,
        counterparty: str | None = None,
        vendor_id: str | None = None,
        due_date: str | None = None,
        paid_amount: Decimal = Decimal("0"),
    ) -> int:
        """Create a receivable or payable. Returns its id."""
        now = _now()
        balance = max(Decimal("0"), total_amount - paid_amount)
        if balance == 0:
            status = ObligationStatus.SETTLED
        elif paid_amount > 0:
            status = ObligationStatus.PARTIAL
        else:
            status = ObligationStatus.OPEN

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO obligations
                (owner_id, kind, number, counterparty, vendor_id, total_amount, paid_amount,
                 balance_amount, status, due_date, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    owner_id,
                    kind.value,
                    number,
                    counterparty,
                    vendor_id,
                    str(total_amount),
                    str(paid_amount),
                    str(balance),
                    status.value,
                    due_date,
                    now,
                    now,
                ),
            )
            return cursor.lastrowid

    def get_obligation(self, obligation_id: int) -> Obligation | None:
        """Get a receivable or payable by id."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM obligations WHERE id = ?", (obligation_id,)
            ).fetchone()
            return obligation_from_row(row) if row else None

    def get_open_obligations(self, owner_id: str, kind: ObligationKind) -> list[Obligation]:
        """Get an owner's open and partially paid obligations of one kind."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM obligations
                WHERE owner_id = ? AND kind = ? AND status IN (?, ?)
                ORDER BY due_date IS NULL, due_date ASC, id ASC
            """,
                (owner_id, kind.value, ObligationStatus.OPEN.value, ObligationStatus.PARTIAL.value),
            ).fetchall()
            return [obligation_from_row(r) for r in rows]

    def settle_obligation(
        self,
        obligation_id: int,
        transaction_id: int,
        payment: Decimal,
    ) -> Obligation:
        """
        Apply a matched transaction's payment to an obligation atomically.

        Within one write-locked transaction:
        - re-reads the obligation (no stale balances)
        - paid += |payment|, balance = max(0, total - paid), status forward
        - links the transaction and sets its transaction type

        Raises:
            NotFoundError: If the obligation or transaction does not exist
            InvalidActionError: If the obligation is settled or the transaction
                is already matched
        """
        with self._immediate_transaction() as conn:
            row = conn.execute(
                "SELECT * FROM obligations WHERE id = ?", (obligation_id,)
            ).fetchone()
            if not row:
                raise NotFoundError("obligation", obligation_id)
            obligation = obligation_from_row(row)
            if obligation.status == ObligationStatus.SETTLED:
                raise InvalidActionError(f"Obligation {obligation_id} is already settled")

            settlement = apply_payment(
                obligation.total_amount,
                obligation.paid_amount,
                payment,
                obligation.status,
            )
            now = _now()
            settled_at = now if settlement.status == ObligationStatus.SETTLED else None
            conn.execute(
                """
                UPDATE obligations
                SET paid_amount = ?, balance_amount = ?, status = ?,
                    settled_at = COALESCE(?, settled_at), updated_at = ?
                WHERE id = ?
            """,
                (
                    str(settlement.paid_amount),
                    str(settlement.balance_amount),
                    settlement.status.value,
                    settled_at,
                    now,
                    obligation_id,
                ),
            )

            if obligation.kind == ObligationKind.RECEIVABLE:
                link_column = "matched_receivable_id"
                txn_type = TransactionType.INVOICE_PAYMENT
            else:
                link_column = "matched_payable_id"
                txn_type = TransactionType.BILL_PAYMENT

            cursor = conn.execute(
                f"""
                UPDATE transactions
                SET {link_column} = ?, transaction_type = ?, updated_at = ?
                WHERE id = ? AND matched_receivable_id IS NULL AND matched_payable_id IS NULL
            """,
                (obligation_id, txn_type.value, now, transaction_id),
            )
            if cursor.rowcount == 0:
                exists = conn.execute(
                    "SELECT 1 FROM transactions WHERE id = ?", (transaction_id,)
                ).fetchone()
                if not exists:
                    raise NotFoundError("transaction", transaction_id)
                raise InvalidActionError(f"Transaction {transaction_id} is already matched")

            row = conn.execute(
                "SELECT * FROM obligations WHERE id = ?", (obligation_id,)
            ).fetchone()
            return obligation_from_row(row)

    def record_three_way_result(
        self,
        bill_id: int,
        match_status: str,
        discrepancies: list[dict],
    ) -> bool:
        """Persist the latest three-way match outcome on a bill."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE obligations SET match_status = ?, discrepancies = ?, updated_at = ?
                WHERE id = ? AND kind = ?
            """,
                (
                    match_status,
                    json.dumps(discrepancies),
                    _now(),
                    bill_id,
                    ObligationKind.PAYABLE.value,
                ),
            )
            return cursor.rowcount > 0

    # Learned mapping methods

    def _mapping_table(self, kind: str) -> str:
        if kind not in ("vendor", "pattern"):
            raise ValueError(f"Unknown mapping kind: {kind}")
        return f"{kind}_mappings"

    def get_mapping(self, kind: str, owner_id: str, key: str) -> MappingRecord | None:
        """Get a learned mapping ("vendor" or "pattern")."""
        table = self._mapping_table(kind)
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT * FROM {table} WHERE owner_id = ? AND mapping_key = ?",
                (owner_id, key),
            ).fetchone()
            return MappingRecord.from_row(row) if row else None

    def save_mapping(
        self,
        kind: str,
        owner_id: str,
        key: str,
        category: Category,
        confidence: int,
        occurrences: int,
    ) -> None:
        """Insert or replace a learned mapping."""
        table = self._mapping_table(kind)
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO {table}
                (owner_id, mapping_key, category, confidence, occurrences, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(owner_id, mapping_key) DO UPDATE SET
                    category = excluded.category,
                    confidence = excluded.confidence,
                    occurrences = excluded.occurrences,
                    updated_at = excluded.updated_at
            """,
                (owner_id, key, category.value, confidence, occurrences, now, now),
            )

    def list_mappings(self, kind: str, owner_id: str) -> list[MappingRecord]:
        """List an owner's learned mappings, most confident first."""
        table = self._mapping_table(kind)
        with self._transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {table} WHERE owner_id = ?
                ORDER BY confidence DESC, occurrences DESC, mapping_key ASC
            """,
                (owner_id,),
            ).fetchall()
            return [MappingRecord.from_row(r) for r in rows]

    def clear_mappings(self, owner_id: str) -> int:
        """Delete all learned mappings of an owner. Returns rows deleted."""
        with self._transaction() as conn:
            vendors = conn.execute("DELETE FROM vendor_mappings WHERE owner_id = ?", (owner_id,))
            patterns = conn.execute(
                "DELETE FROM pattern_mappings WHERE owner_id = ?", (owner_id,)
            )
            return vendors.rowcount + patterns.rowcount

    def get_reviewed_transactions(
        self,
        owner_id: str,
        min_confidence: int = 80,
        limit: int = 500,
    ) -> list[Transaction]:
        """Transactions confirmed out of review, oldest first (learning history)."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM transactions
                WHERE owner_id = ? AND needs_review = 0 AND confidence >= ?
                ORDER BY date ASC, id ASC
                LIMIT ?
            """,
                (owner_id, min_confidence, limit),
            ).fetchall()
            return [transaction_from_row(r) for r in rows]

    # Procurement methods

    def create_purchase_order(self, po: PurchaseOrder) -> int:
        """Insert a purchase order with its lines. Sets and returns po.id."""
        now = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO purchase_orders
                (owner_id, number, vendor_id, vendor_name, total_amount, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """,
                (po.owner_id, po.number, po.vendor_id, po.vendor_name, str(po.total_amount), now),
            )
            po.id = cursor.lastrowid
            for line in po.lines:
                conn.execute(
                    """
                    INSERT INTO purchase_order_lines (purchase_order_id, item, quantity, unit_price)
                    VALUES (?, ?, ?, ?)
                """,
                    (
                        po.id,
                        line.item,
                        str(line.quantity),
                        str(line.unit_price) if line.unit_price is not None else None,
                    ),
                )
            return po.id

    def get_purchase_order(self, po_id: int) -> PurchaseOrder | None:
        """Get a purchase order with its lines."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM purchase_orders WHERE id = ?", (po_id,)).fetchone()
            if not row:
                return None
            lines = conn.execute(
                "SELECT * FROM purchase_order_lines WHERE purchase_order_id = ? ORDER BY id",
                (po_id,),
            ).fetchall()
            return PurchaseOrder(
                id=row["id"],
                owner_id=row["owner_id"],
                number=row["number"],
                vendor_id=row["vendor_id"],
                vendor_name=row["vendor_name"],
                total_amount=Decimal(row["total_amount"]),
                lines=[
                    PurchaseOrderLine(
                        item=line["item"],
                        quantity=Decimal(line["quantity"]),
                        unit_price=_dec(line["unit_price"]),
                    )
                    for line in lines
                ],
            )

    def create_goods_receipt(self, receipt: GoodsReceipt) -> int:
        """Insert a goods receipt with its lines. Sets and returns receipt.id."""
        now = _now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO goods_receipts (purchase_order_id, received_date, created_at)
                VALUES (?, ?, ?)
            """,
                (receipt.purchase_order_id, receipt.received_date, now),
            )
            receipt.id = cursor.lastrowid
            for line in receipt.lines:
                conn.execute(
                    """
                    INSERT INTO goods_receipt_lines (goods_receipt_id, item, received_quantity)
                    VALUES (?, ?, ?)
                """,
                    (receipt.id, line.item, str(line.received_quantity)),
                )
            return receipt.id

    def get_goods_receipt(self, receipt_id: int) -> GoodsReceipt | None:
        """Get a goods receipt with its lines."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM goods_receipts WHERE id = ?", (receipt_id,)
            ).fetchone()
            if not row:
                return None
            lines = conn.execute(
                "SELECT * FROM goods_receipt_lines WHERE goods_receipt_id = ? ORDER BY id",
                (receipt_id,),
            ).fetchall()
            return GoodsReceipt(
                id=row["id"],
                purchase_order_id=row["purchase_order_id"],
                received_date=row["received_date"],
                lines=[
                    ReceiptLine(
                        item=line["item"],
                        received_quantity=Decimal(line["received_quantity"]),
                    )
                    for line in lines
                ],
            )

    # Statistics

    def get_stats(self, owner_id: str | None = None) -> dict[str, Any]:
        """Get pipeline statistics, optionally for one owner."""
        where = " WHERE owner_id = ?" if owner_id else ""
        params: tuple = (owner_id,) if owner_id else ()
        and_or_where = " AND" if owner_id else " WHERE"

        with self._transaction() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) AS count FROM transactions{where}", params
            ).fetchone()
            pending = conn.execute(
                f"SELECT COUNT(*) AS count FROM transactions{where}{and_or_where} needs_review = 1",
                params,
            ).fetchone()
            matched = conn.execute(
                f"""
                SELECT COUNT(*) AS count FROM transactions{where}{and_or_where}
                (matched_receivable_id IS NOT NULL OR matched_payable_id IS NOT NULL)
            """,
                params,
            ).fetchone()
            open_obligations = conn.execute(
                f"SELECT COUNT(*) AS count FROM obligations{where}{and_or_where} status != ?",
                params + (ObligationStatus.SETTLED.value,),
            ).fetchone()
            vendors = conn.execute(
                f"SELECT COUNT(*) AS count FROM vendor_mappings{where}", params
            ).fetchone()
            patterns = conn.execute(
                f"SELECT COUNT(*) AS count FROM pattern_mappings{where}", params
            ).fetchone()

            return {
                "transactions_total": total["count"] if total else 0,
                "pending_review": pending["count"] if pending else 0,
                "matched": matched["count"] if matched else 0,
                "open_obligations": open_obligations["count"] if open_obligations else 0,
                "vendor_mappings": vendors["count"] if vendors else 0,
                "pattern_mappings": patterns["count"] if patterns else 0,
            }
