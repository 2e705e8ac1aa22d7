"""Tests for state store."""

import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from ledgerflow.errors import InvalidActionError, NotFoundError
from ledgerflow.schemas import (
    Category,
    GoodsReceipt,
    ObligationKind,
    ObligationStatus,
    PurchaseOrder,
    PurchaseOrderLine,
    ReceiptLine,
    ReviewReason,
    TransactionType,
    apply_payment,
)
from ledgerflow.state_store import StateStore
from ledgerflow.state_store.migrations import Migration, MigrationRunner, get_all_migrations


class TestStateStore:
    """Tests for SQLite state store."""

    def test_init_creates_db(self, temp_db):
        """Initializing creates database file."""
        StateStore(temp_db)
        assert temp_db.exists()

    def test_init_creates_tables(self, store):
        """All required tables are created."""
        conn = store._get_connection()
        try:
            tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            table_names = [t[0] for t in tables]

            for table in (
                "owners",
                "transactions",
                "obligations",
                "vendor_mappings",
                "pattern_mappings",
                "purchase_orders",
                "goods_receipts",
                "migrations",
            ):
                assert table in table_names
        finally:
            conn.close()

    def test_migrations_applied_once(self, store, temp_db):
        """Reopening the store applies nothing new."""
        StateStore(temp_db)
        conn = store._get_connection()
        try:
            runner = MigrationRunner(conn)
            assert runner.get_current_version() == max(m.version for m in get_all_migrations())
            assert runner.run_pending() == []
        finally:
            conn.close()

    def test_failed_migration_leaves_no_trace(self, store):
        """DDL from a failing upgrade is rolled back with its version row."""

        def upgrade(conn):
            conn.execute("CREATE TABLE scratch (id INTEGER)")
            conn.execute("SELECT * FROM no_such_table")

        conn = store._get_connection()
        try:
            runner = MigrationRunner(conn)
            with pytest.raises(sqlite3.OperationalError):
                runner.apply(Migration(99, "broken", upgrade))

            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
            assert "scratch" not in tables
            assert 99 not in runner.get_applied_versions()
        finally:
            conn.close()

    def test_expense_score_backfill(self):
        migration = next(m for m in get_all_migrations() if m.name == "expense_score")
        conn = sqlite3.connect(":memory:")
        try:
            conn.execute("CREATE TABLE transactions (expense_reason TEXT, expense_confidence TEXT)")
            conn.executemany(
                "INSERT INTO transactions VALUES (?, ?)",
                [
                    ('Contains recurring keyword: "salary"', "high"),
                    ("Vendor appears 4 times with regular monthly pattern", "high"),
                    ("Large amount (90000) relative to average monthly spend", "medium"),
                    ("No recurring patterns detected, defaulting to one-time", "low"),
                ],
            )

            migration.upgrade(conn)

            scores = [
                row[0]
                for row in conn.execute("SELECT expense_score FROM transactions ORDER BY rowid")
            ]
            assert scores == [100, 90, 65, 35]
        finally:
            conn.close()


class TestOwnerOperations:
    """Tests for owners and cash."""

    def test_upsert_new_owner(self, store):
        owner = store.upsert_owner("acme")
        assert owner.name == "acme"
        assert owner.cash_balance == Decimal("0")
        assert owner.runway_months is None

    def test_upsert_keeps_unset_fields(self, store):
        store.upsert_owner("acme", name="Acme Inc", cash_balance=Decimal("1000"))
        owner = store.upsert_owner("acme", cash_balance=Decimal("2500.50"))
        assert owner.name == "Acme Inc"
        assert owner.cash_balance == Decimal("2500.50")

    def test_adjust_cash(self, store):
        store.upsert_owner("acme", cash_balance=Decimal("1000"))
        store.adjust_owner_cash("acme", Decimal("250.25"))
        owner = store.adjust_owner_cash("acme", Decimal("-100"))
        assert owner.cash_balance == Decimal("1150.25")

    def test_adjust_missing_owner(self, store):
        with pytest.raises(NotFoundError):
            store.adjust_owner_cash("nobody", Decimal("1"))

    def test_update_runway(self, store):
        store.upsert_owner("acme")
        assert store.update_owner_runway("acme", Decimal("5000"), Decimal("1000"), 7.5)
        owner = store.get_owner("acme")
        assert owner.monthly_burn == Decimal("5000")
        assert owner.runway_months == 7.5


class TestTransactionOperations:
    """Tests for transaction CRUD operations."""

    def test_save_and_get(self, store, make_transaction):
        txn = make_transaction(
            "Slack subscription",
            "-850.00",
            category=Category.SAAS,
            confidence=100,
            balance=Decimal("9150.00"),
        )
        txn_id = store.save_transaction(txn)

        loaded = store.get_transaction(txn_id)
        assert loaded.id == txn_id == txn.id
        assert loaded.amount == Decimal("-850.00")
        assert loaded.balance == Decimal("9150.00")
        assert loaded.category == Category.SAAS
        assert loaded.fingerprint == txn.fingerprint
        assert loaded.created_at is not None

    def test_expense_score_round_trip(self, store, make_transaction):
        txn_id = store.save_transaction(make_transaction(expense_score=65))
        assert store.get_transaction(txn_id).expense_score == 65

    def test_update(self, store, make_transaction):
        txn = make_transaction()
        store.save_transaction(txn)
        txn.needs_review = True
        txn.review_reason = ReviewReason.LOW_CONFIDENCE

        assert store.update_transaction(txn)
        loaded = store.get_transaction(txn.id)
        assert loaded.needs_review
        assert loaded.review_reason == ReviewReason.LOW_CONFIDENCE

    def test_update_requires_id(self, store, make_transaction):
        with pytest.raises(ValueError):
            store.update_transaction(make_transaction())

    def test_delete(self, store, make_transaction):
        txn_id = store.save_transaction(make_transaction())
        assert store.delete_transaction(txn_id)
        assert store.get_transaction(txn_id) is None
        assert not store.delete_transaction(txn_id)

    def test_ordering(self, store, make_transaction):
        for day in ("2024-03-02", "2024-03-01", "2024-03-03"):
            store.save_transaction(make_transaction(date=day, needs_review=True))

        newest_first = [t.date for t in store.get_transactions("acme")]
        queue = [t.date for t in store.get_pending_reviews("acme")]

        assert newest_first == ["2024-03-03", "2024-03-02", "2024-03-01"]
        assert queue == ["2024-03-01", "2024-03-02", "2024-03-03"]

    def test_owner_scoping(self, store, make_transaction):
        store.save_transaction(make_transaction(owner_id="acme"))
        store.save_transaction(make_transaction(owner_id="globex"))

        assert len(store.get_transactions("acme")) == 1
        assert len(store.get_fingerprints("globex")) == 1

    def test_find_similar_requires_reviewed_and_confident(self, store, make_transaction):
        store.save_transaction(make_transaction("Zoom monthly", confidence=90))
        store.save_transaction(make_transaction("Zoom webinar", confidence=50))
        store.save_transaction(make_transaction("Zoom rooms", confidence=95, needs_review=True))

        similar = store.find_similar_transactions("acme", ["zoom"], min_confidence=70)

        assert [t.description for t in similar] == ["Zoom monthly"]


class TestApplyPayment:
    """Tests for the settlement arithmetic."""

    def test_partial(self):
        result = apply_payment(Decimal("10000"), Decimal("0"), Decimal("-4000"))
        assert result.paid_amount == Decimal("4000")
        assert result.balance_amount == Decimal("6000")
        assert result.status == ObligationStatus.PARTIAL

    def test_overpayment_clamps_balance(self):
        result = apply_payment(Decimal("100"), Decimal("0"), Decimal("150"))
        assert result.balance_amount == Decimal("0")
        assert result.status == ObligationStatus.SETTLED

    def test_status_never_moves_backward(self):
        result = apply_payment(Decimal("100"), Decimal("0"), Decimal("0"), ObligationStatus.PARTIAL)
        assert result.status == ObligationStatus.PARTIAL


class TestObligationOperations:
    """Tests for receivables, payables and settlement."""

    @pytest.fixture
    def invoice_id(self, store):
        store.upsert_owner("acme")
        return store.create_obligation(
            "acme", ObligationKind.RECEIVABLE, Decimal("10000"), number="INV-1001"
        )

    def test_create(self, store, invoice_id):
        invoice = store.get_obligation(invoice_id)
        assert invoice.status == ObligationStatus.OPEN
        assert invoice.balance_amount == Decimal("10000")

    def test_create_partially_paid(self, store):
        obligation_id = store.create_obligation(
            "acme", ObligationKind.PAYABLE, Decimal("500"), paid_amount=Decimal("200")
        )
        bill = store.get_obligation(obligation_id)
        assert bill.status == ObligationStatus.PARTIAL
        assert bill.balance_amount == Decimal("300")

    def test_partial_then_settled(self, store, invoice_id, make_transaction):
        first = store.save_transaction(make_transaction("Globex part 1", "4000"))
        second = store.save_transaction(make_transaction("Globex part 2", "6000"))

        partial = store.settle_obligation(invoice_id, first, Decimal("4000"))
        assert partial.status == ObligationStatus.PARTIAL
        assert partial.paid_amount == Decimal("4000")
        assert partial.balance_amount == Decimal("6000")
        assert partial.settled_at is None

        settled = store.settle_obligation(invoice_id, second, Decimal("6000"))
        assert settled.status == ObligationStatus.SETTLED
        assert settled.balance_amount == Decimal("0")
        assert settled.settled_at is not None

        linked = store.get_transaction(second)
        assert linked.matched_receivable_id == invoice_id
        assert linked.transaction_type == TransactionType.INVOICE_PAYMENT

    def test_balance_invariant(self, store, invoice_id, make_transaction):
        for index, amount in enumerate(("1000", "2500.50", "0.50")):
            txn_id = store.save_transaction(make_transaction(f"Globex {index}", amount))
            invoice = store.settle_obligation(invoice_id, txn_id, Decimal(amount))
            assert invoice.balance_amount == max(
                Decimal("0"), invoice.total_amount - invoice.paid_amount
            )
        assert invoice.paid_amount == Decimal("3501.00")

    def test_settled_rejects_payments(self, store, invoice_id, make_transaction):
        first = store.save_transaction(make_transaction("Globex full", "10000"))
        second = store.save_transaction(make_transaction("Globex extra", "10"))
        store.settle_obligation(invoice_id, first, Decimal("10000"))

        with pytest.raises(InvalidActionError):
            store.settle_obligation(invoice_id, second, Decimal("10"))

    def test_double_match_rolls_back(self, store, invoice_id, make_transaction):
        other_id = store.create_obligation("acme", ObligationKind.RECEIVABLE, Decimal("4000"))
        txn_id = store.save_transaction(make_transaction("Globex", "4000"))
        store.settle_obligation(other_id, txn_id, Decimal("4000"))

        with pytest.raises(InvalidActionError):
            store.settle_obligation(invoice_id, txn_id, Decimal("4000"))

        invoice = store.get_obligation(invoice_id)
        assert invoice.paid_amount == Decimal("0")
        assert invoice.status == ObligationStatus.OPEN

    def test_missing_transaction_rolls_back(self, store, invoice_id):
        with pytest.raises(NotFoundError):
            store.settle_obligation(invoice_id, 999, Decimal("100"))
        assert store.get_obligation(invoice_id).paid_amount == Decimal("0")

    def test_concurrent_settlements_all_apply(self, store, temp_db, make_transaction):
        """Payments settled in parallel from separate store instances are never lost."""
        workers = 20
        store.upsert_owner("acme")
        invoice_id = store.create_obligation("acme", ObligationKind.RECEIVABLE, Decimal("100000"))
        txn_ids = [
            store.save_transaction(make_transaction(f"Globex part {i}", "1000"))
            for i in range(workers)
        ]
        stores = [StateStore(temp_db) for _ in range(workers)]
        barrier = threading.Barrier(workers)

        def settle(worker_store, txn_id):
            barrier.wait()
            return worker_store.settle_obligation(invoice_id, txn_id, Decimal("1000"))

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(settle, s, t) for s, t in zip(stores, txn_ids)]
            for future in futures:
                future.result()

        invoice = store.get_obligation(invoice_id)
        assert invoice.paid_amount == Decimal("20000")
        assert invoice.balance_amount == Decimal("80000")
        assert invoice.status == ObligationStatus.PARTIAL
        assert all(store.get_transaction(t).matched_receivable_id == invoice_id for t in txn_ids)

    def test_missing_obligation(self, store):
        with pytest.raises(NotFoundError):
            store.settle_obligation(999, 1, Decimal("100"))

    def test_open_obligations(self, store, invoice_id, make_transaction):
        store.create_obligation("acme", ObligationKind.PAYABLE, Decimal("300"))
        done = store.create_obligation("acme", ObligationKind.RECEIVABLE, Decimal("50"))
        txn_id = store.save_transaction(make_transaction("Paid", "50"))
        store.settle_obligation(done, txn_id, Decimal("50"))

        open_ids = [o.id for o in store.get_open_obligations("acme", ObligationKind.RECEIVABLE)]
        assert open_ids == [invoice_id]

    def test_three_way_result_only_on_bills(self, store, invoice_id):
        bill_id = store.create_obligation("acme", ObligationKind.PAYABLE, Decimal("300"))
        discrepancies = [{"type": "vendor", "field": "vendor_id"}]

        assert store.record_three_way_result(bill_id, "partial", discrepancies)
        assert not store.record_three_way_result(invoice_id, "partial", discrepancies)

        bill = store.get_obligation(bill_id)
        assert bill.match_status == "partial"
        assert bill.discrepancies == discrepancies


class TestProcurementOperations:
    """Tests for purchase orders and goods receipts."""

    def test_round_trip(self, store):
        po = PurchaseOrder(
            id=0,
            owner_id="acme",
            vendor_id="V-100",
            total_amount=Decimal("1000"),
            number="PO-1",
            lines=[PurchaseOrderLine("widget", Decimal("10"), Decimal("100"))],
        )
        po_id = store.create_purchase_order(po)
        receipt = GoodsReceipt(
            id=0,
            purchase_order_id=po_id,
            received_date="2024-03-01",
            lines=[ReceiptLine("widget", Decimal("9"))],
        )
        receipt_id = store.create_goods_receipt(receipt)

        loaded_po = store.get_purchase_order(po_id)
        loaded_receipt = store.get_goods_receipt(receipt_id)
        assert loaded_po.number == "PO-1"
        assert loaded_po.lines[0].unit_price == Decimal("100")
        assert loaded_receipt.lines[0].received_quantity == Decimal("9")
        assert store.get_purchase_order(999) is None


class TestMappings:
    """Tests for learned mapping storage."""

    def test_save_and_replace(self, store):
        store.save_mapping("vendor", "acme", "figma", Category.SAAS, 80, 1)
        store.save_mapping("vendor", "acme", "figma", Category.MARKETING, 85, 2)

        mapping = store.get_mapping("vendor", "acme", "figma")
        assert (mapping.category, mapping.confidence, mapping.occurrences) == (
            Category.MARKETING,
            85,
            2,
        )

    def test_unknown_kind(self, store):
        with pytest.raises(ValueError):
            store.get_mapping("customer", "acme", "figma")

    def test_list_and_clear(self, store):
        store.save_mapping("vendor", "acme", "a", Category.SAAS, 80, 1)
        store.save_mapping("vendor", "acme", "b", Category.SAAS, 95, 1)
        store.save_mapping("pattern", "acme", "a b", Category.SAAS, 55, 1)
        store.save_mapping("vendor", "globex", "a", Category.SAAS, 80, 1)

        assert [m.key for m in store.list_mappings("vendor", "acme")] == ["b", "a"]
        assert store.clear_mappings("acme") == 3
        assert store.get_mapping("vendor", "globex", "a") is not None


class TestStatistics:
    """Tests for statistics."""

    def test_get_stats_empty(self, store):
        stats = store.get_stats()
        assert stats["transactions_total"] == 0
        assert stats["pending_review"] == 0

    def test_get_stats_with_data(self, store, make_transaction):
        store.save_transaction(make_transaction("A", needs_review=True))
        store.save_transaction(make_transaction("B"))
        store.create_obligation("acme", ObligationKind.PAYABLE, Decimal("10"))

        stats = store.get_stats("acme")
        assert stats["transactions_total"] == 2
        assert stats["pending_review"] == 1
        assert stats["open_obligations"] == 1

    def test_review_stats(self, store, make_transaction):
        store.save_transaction(
            make_transaction(
                "A", confidence=40, needs_review=True, review_reason=ReviewReason.LOW_CONFIDENCE
            )
        )
        store.save_transaction(make_transaction("B", confidence=60, needs_review=True))
        store.save_transaction(make_transaction("C", reviewed_at="2024-05-01T10:00:00Z"))

        stats = store.get_review_stats("acme", "2024-05-01")
        assert stats["pending_count"] == 2
        assert stats["average_confidence"] == 50.0
        assert stats["reviewed_today"] == 1
        assert stats["by_review_reason"] == {"low_confidence": 1, "unspecified": 1}
