"""
Tests for the reconciliation service and balance synchronizer.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from ledgerflow.errors import InvalidActionError, NotFoundError
from ledgerflow.matching import CandidateMatch, MatchDecision, MatchOutcome, ThreeWayStatus
from ledgerflow.schemas import (
    GoodsReceipt,
    ObligationKind,
    ObligationStatus,
    PurchaseOrder,
    PurchaseOrderLine,
    ReceiptLine,
    ReviewReason,
    ReviewStatus,
    TransactionType,
)
from ledgerflow.services import (
    BalanceSynchronizer,
    BurnMetrics,
    ReconciliationService,
    compute_burn,
    settlement_delta,
)


@pytest.fixture
def service(store, config):
    store.upsert_owner("acme", cash_balance=Decimal("0"))
    return ReconciliationService(store, config)


@pytest.fixture
def save(store, make_transaction):
    """Persist a transaction built by make_transaction."""

    def _save(*args, **kwargs):
        txn = make_transaction(*args, **kwargs)
        store.save_transaction(txn)
        return txn

    return _save


class TestReconcile:
    """Tests for automatic reconciliation."""

    def test_matches_invoice_and_updates_cash(self, service, store, save):
        invoice_id = store.create_obligation(
            "acme",
            ObligationKind.RECEIVABLE,
            Decimal("12000"),
            number="INV-1001",
            counterparty="Globex Corp",
        )
        txn = save("Payment from Globex INV-1001", "12000")

        outcome = service.reconcile(txn)

        assert outcome.outcome == MatchOutcome.MATCHED
        assert outcome.success
        assert outcome.obligation.id == invoice_id
        assert outcome.obligation.status == ObligationStatus.SETTLED
        assert txn.matched_receivable_id == invoice_id
        assert txn.transaction_type == TransactionType.INVOICE_PAYMENT
        assert store.get_owner("acme").cash_balance == Decimal("12000")

    def test_matches_bill_and_reduces_cash(self, service, store, save):
        bill_id = store.create_obligation("acme", ObligationKind.PAYABLE, Decimal("750"))
        txn = save("Vendor payment", "-750")

        outcome = service.reconcile(txn)

        assert outcome.obligation.id == bill_id
        assert txn.matched_payable_id == bill_id
        assert txn.transaction_type == TransactionType.BILL_PAYMENT
        assert store.get_owner("acme").cash_balance == Decimal("-750")

    def test_tie_routes_to_review(self, service, store, save):
        first = store.create_obligation("acme", ObligationKind.RECEIVABLE, Decimal("500"))
        second = store.create_obligation("acme", ObligationKind.RECEIVABLE, Decimal("500"))
        txn = save("Customer payment", "500")

        outcome = service.reconcile(txn)

        assert outcome.outcome == MatchOutcome.MULTIPLE_MATCHES
        assert outcome.needs_review
        assert sorted(c.obligation_id for c in outcome.candidates) == [first, second]

        stored = store.get_transaction(txn.id)
        assert stored.needs_review
        assert stored.review_reason == ReviewReason.MULTIPLE_MATCHES
        assert stored.review_status == ReviewStatus.PENDING
        assert not stored.is_matched
        assert store.get_obligation(first).status == ObligationStatus.OPEN
        assert store.get_owner("acme").cash_balance == Decimal("0")

    def test_no_match_is_not_flagged_by_default(self, service, store, save):
        txn = save("Customer payment", "500")

        outcome = service.reconcile(txn)

        assert outcome.outcome == MatchOutcome.NO_MATCH
        assert not store.get_transaction(txn.id).needs_review

    def test_no_match_flagged_when_configured(self, store, config, save):
        config.review.flag_unmatched = True
        service = ReconciliationService(store, config)
        txn = save("Customer payment", "500")

        service.reconcile(txn)

        assert store.get_transaction(txn.id).review_reason == ReviewReason.NO_MATCH

    def test_requires_saved_transaction(self, service, make_transaction):
        with pytest.raises(InvalidActionError):
            service.reconcile(make_transaction())

    def test_transfers_are_not_matched(self, service, store, save):
        store.create_obligation("acme", ObligationKind.PAYABLE, Decimal("10000"))
        txn = save("Sweep to FD", "-10000", transaction_type=TransactionType.TRANSFER)

        assert service.reconcile(txn).outcome == MatchOutcome.NO_MATCH
        assert not txn.is_matched

    def test_already_matched(self, service, store, save):
        invoice_id = store.create_obligation("acme", ObligationKind.RECEIVABLE, Decimal("300"))
        txn = save("Customer payment", "300")
        service.reconcile(txn)

        again = service.reconcile(txn)

        assert again.outcome == MatchOutcome.MATCHED
        assert again.obligation.id == invoice_id
        assert store.get_obligation(invoice_id).paid_amount == Decimal("300")

    def test_failed_settlement_is_reported(self, store, config, save):
        """A candidate settled by someone else yields an error, not an exception."""
        settled_id = store.create_obligation(
            "acme", ObligationKind.RECEIVABLE, Decimal("500"), paid_amount=Decimal("500")
        )

        match = CandidateMatch(settled_id, ObligationKind.RECEIVABLE, 1.0, True)
        engine = Mock()
        engine.decide.return_value = MatchDecision(
            MatchOutcome.MATCHED, match=match, candidates=[match]
        )
        service = ReconciliationService(store, config, engine=engine)
        txn = save("Customer payment", "500")

        outcome = service.reconcile(txn)

        assert outcome.outcome == MatchOutcome.NO_MATCH
        assert not outcome.success
        assert "already settled" in outcome.errors[0]


class TestSettle:
    """Tests for manual settlement."""

    @pytest.fixture
    def invoice_id(self, store):
        return store.create_obligation("acme", ObligationKind.RECEIVABLE, Decimal("10000"))

    def test_partial_then_settled(self, service, store, save, invoice_id):
        first = save("Globex part payment", "4000")
        second = save("Globex final payment", "6000")

        txn, invoice = service.settle(first.id, invoice_id)
        assert invoice.status == ObligationStatus.PARTIAL
        assert invoice.balance_amount == Decimal("6000")
        assert txn.matched_receivable_id == invoice_id

        _, invoice = service.settle(second.id, invoice_id)
        assert invoice.status == ObligationStatus.SETTLED
        assert store.get_owner("acme").cash_balance == Decimal("10000")

    def test_wrong_kind(self, service, save, invoice_id):
        txn = save("Globex", "10000")
        with pytest.raises(InvalidActionError):
            service.settle(txn.id, invoice_id, expected_kind=ObligationKind.PAYABLE)

    def test_wrong_direction(self, service, save, invoice_id):
        txn = save("Refund to Globex", "-10000")
        with pytest.raises(InvalidActionError):
            service.settle(txn.id, invoice_id)

    def test_other_owner(self, service, store, save):
        foreign = store.create_obligation("globex", ObligationKind.RECEIVABLE, Decimal("10"))
        txn = save("Payment", "10")
        with pytest.raises(InvalidActionError):
            service.settle(txn.id, foreign)

    def test_missing_documents(self, service, save, invoice_id):
        txn = save("Payment", "10")
        with pytest.raises(NotFoundError) as exc_info:
            service.settle(txn.id, 999, expected_kind=ObligationKind.RECEIVABLE)
        assert exc_info.value.kind == "receivable"

        with pytest.raises(NotFoundError):
            service.settle(999, invoice_id)

    def test_settlement_delta(self):
        assert settlement_delta(ObligationKind.RECEIVABLE, Decimal("-5")) == Decimal("5")
        assert settlement_delta(ObligationKind.PAYABLE, Decimal("5")) == Decimal("-5")


class TestThreeWay:
    """Tests for persisted three-way matching."""

    @pytest.fixture
    def documents(self, store):
        po_id = store.create_purchase_order(
            PurchaseOrder(
                id=0,
                owner_id="acme",
                vendor_id="V-100",
                total_amount=Decimal("1000"),
                lines=[PurchaseOrderLine("widget", Decimal("10"))],
            )
        )
        receipt_id = store.create_goods_receipt(
            GoodsReceipt(id=0, purchase_order_id=po_id, lines=[ReceiptLine("widget", Decimal("8"))])
        )
        bill_id = store.create_obligation(
            "acme", ObligationKind.PAYABLE, Decimal("1000"), vendor_id="V-100"
        )
        return po_id, receipt_id, bill_id

    def test_result_is_persisted(self, service, store, documents):
        po_id, receipt_id, bill_id = documents

        result = service.three_way_match(po_id, receipt_id, bill_id)

        assert result.match_status == ThreeWayStatus.PARTIAL
        bill = store.get_obligation(bill_id)
        assert bill.match_status == "partial"
        assert bill.discrepancies[0]["item"] == "widget"
        assert bill.discrepancies[0]["received"] == "8"

    def test_missing_bill(self, service, documents):
        po_id, receipt_id, _ = documents
        with pytest.raises(NotFoundError):
            service.three_way_match(po_id, receipt_id, 999)

    def test_receivable_is_not_a_bill(self, service, store, documents):
        po_id, receipt_id, _ = documents
        invoice_id = store.create_obligation("acme", ObligationKind.RECEIVABLE, Decimal("1000"))
        with pytest.raises(InvalidActionError):
            service.three_way_match(po_id, receipt_id, invoice_id)


class TestBurn:
    """Tests for burn and runway arithmetic."""

    def test_compute_burn(self, make_transaction):
        metrics = compute_burn(
            [
                make_transaction("Rent", "-3000", date="2024-01-15"),
                make_transaction("Rent", "-3000", date="2024-02-14"),
                make_transaction("Rent", "-3000", date="2024-03-15"),
                make_transaction("Sales", "1500", date="2024-03-15"),
                make_transaction(
                    "Sweep", "-20000", date="2024-03-01", transaction_type=TransactionType.TRANSFER
                ),
            ]
        )
        assert metrics.months == Decimal("2")
        assert metrics.gross_burn == Decimal("4500")
        assert metrics.monthly_revenue == Decimal("750")
        assert metrics.runway(Decimal("50000")) == 13.3

    def test_runway_without_burn(self):
        metrics = BurnMetrics(Decimal("100"), Decimal("200"), Decimal("1"))
        assert metrics.runway(Decimal("1000")) is None
        assert metrics.runway(Decimal("0")) == 0.0

    def test_empty(self):
        assert compute_burn([]).gross_burn == Decimal("0")


class TestBalanceSynchronizer:
    """Tests for cash and runway updates."""

    def test_apply_settlement_creates_owner(self, store):
        owner = BalanceSynchronizer(store).apply_settlement("newco", Decimal("4000"))
        assert owner.cash_balance == Decimal("4000")
        assert owner.runway_months is None

    def test_recompute_runway(self, store, save):
        store.upsert_owner("acme", cash_balance=Decimal("50000"))
        save("Rent", "-3000", date="2024-01-15")
        save("Rent", "-3000", date="2024-02-14")
        save("Rent", "-3000", date="2024-03-15")
        save("Sales", "1500", date="2024-03-15")
        save("Old rent", "-9000", date="2023-06-01")

        owner = BalanceSynchronizer(store).recompute_runway("acme")

        assert owner.monthly_burn == Decimal("4500.00")
        assert owner.monthly_revenue == Decimal("750.00")
        assert owner.runway_months == 13.3

    def test_recompute_with_explicit_window_end(self, store, save):
        store.upsert_owner("acme", cash_balance=Decimal("1000"))
        save("Rent", "-3000", date="2024-01-15")
        save("Rent", "-3000", date="2024-06-15")

        owner = BalanceSynchronizer(store).recompute_runway("acme", as_of=date(2024, 2, 1))

        assert owner.monthly_burn == Decimal("3000.00")
