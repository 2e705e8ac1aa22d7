"""
Review queue workflow.

A transaction sits in the queue while needs_review is set. Actions move it
from pending to a terminal state:

    pending → approved | rejected | recategorized | matched

Rejected keeps needs_review so a later recategorize is still possible.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ..confidence import ConfidenceScorer
from ..config import Config
from ..errors import BalanceSyncError, InvalidActionError, LedgerflowError, NotFoundError
from ..learning import LearningStore
from ..schemas.categories import Category
from ..schemas.transaction import (
    Obligation,
    ObligationKind,
    ReviewReason,
    ReviewStatus,
    Transaction,
)
from ..services.reconciliation import ReconciliationService
from ..state_store import StateStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class ItemResult:
    """Outcome of one item of a bulk action."""

    id: Any
    ok: bool
    error: Optional[str] = None
    transaction: Optional[Transaction] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ok": self.ok,
            "error": self.error,
            "transaction": self.transaction.to_dict() if self.transaction else None,
        }


@dataclass
class BulkResult:
    """Per-item outcomes of a bulk action, in request order."""

    action: str
    items: list[ItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.ok)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.ok)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "action": self.action,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "items": [item.to_dict() for item in self.items],
        }


def _require_id(value: Any, what: str = "Transaction ID") -> int:
    if value is None or value == "":
        raise InvalidActionError(f"{what} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidActionError(f"{what} must be an integer, got {value!r}") from None


def _require_category(value: "str | Category | None") -> Category:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidActionError("Category is required")
    try:
        return Category.parse(value)
    except ValueError as e:
        raise InvalidActionError(str(e)) from e


def _require_ids(ids: Optional[Iterable[Any]]) -> list[Any]:
    values = list(ids or [])
    if not values:
        raise InvalidActionError("Transaction IDs are required")
    return values


class ReviewQueue:
    """
    Review queue actions for transactions.

    Single actions raise InvalidActionError (bad input, before any write) or
    NotFoundError. Bulk actions validate their arguments up front, then
    process ids one by one and report each item's outcome.

    Usage:
        queue = ReviewQueue(store, config)
        queue.approve(42, reviewer="alice")
        result = queue.bulk_recategorize([1, 2, 3], "Rent")
    """

    def __init__(
        self,
        store: StateStore,
        config: Optional[Config] = None,
        learning: Optional[LearningStore] = None,
        reconciler: Optional[ReconciliationService] = None,
        owner_id: Optional[str] = None,
    ):
        """
        Args:
            store: State store
            config: Application configuration
            learning: Learning store updated by approvals and corrections
            reconciler: Reconciliation service used for manual matches
            owner_id: When set, only this owner's transactions are visible
        """
        self.store = store
        self.config = config or Config()
        self.learning = learning or LearningStore(store, self.config.classification)
        self.reconciler = reconciler or ReconciliationService(store, self.config)
        self.owner_id = owner_id

    # Queries

    def pending(
        self, owner_id: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> list[Transaction]:
        """Transactions awaiting review, oldest first."""
        return self.store.get_pending_reviews(self._owner(owner_id), limit=limit, offset=offset)

    def stats(self, owner_id: Optional[str] = None) -> dict[str, Any]:
        """Pending count, reviewed today, average pending confidence, counts by reason."""
        today = datetime.now(timezone.utc).date().isoformat()
        return self.store.get_review_stats(self._owner(owner_id), today)

    # Single actions

    def approve(
        self, transaction_id: Any, reviewer: Optional[str] = None, notes: Optional[str] = None
    ) -> Transaction:
        """Accept the current classification and reinforce learning from it."""
        txn = self._load(_require_id(transaction_id))

        self._close(txn, ReviewStatus.APPROVED, reviewer, notes or "Approved by user")
        self.store.update_transaction(txn)
        self.learning.learn_from_approval(
            txn.owner_id, txn.category, txn.description, txn.vendor_name
        )
        logger.info("Approved transaction %s as %s", txn.id, txn.category.value)
        return txn

    def reject(
        self, transaction_id: Any, reviewer: Optional[str] = None, notes: Optional[str] = None
    ) -> Transaction:
        """Reject the classification; the transaction stays in the queue."""
        txn = self._load(_require_id(transaction_id))

        txn.needs_review = True
        txn.review_reason = ReviewReason.USER_REJECTED
        txn.review_status = ReviewStatus.REJECTED
        txn.reviewed_by = reviewer or self.config.review.default_reviewer
        txn.reviewed_at = _now()
        txn.review_notes = notes or "Rejected by user"
        self.store.update_transaction(txn)
        logger.info("Rejected transaction %s", txn.id)
        return txn

    def recategorize(
        self,
        transaction_id: Any,
        category: "str | Category | None",
        reviewer: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Transaction:
        """Set a user-confirmed category and learn from the correction."""
        txn_id = _require_id(transaction_id)
        new_category = _require_category(category)
        txn = self._load(txn_id)

        old_category = txn.category
        txn.category = new_category
        txn.confidence = ConfidenceScorer.MANUAL_CONFIDENCE
        txn.classification_reason = "Recategorized by reviewer"
        txn.classification_source = "manual"
        self._close(txn, ReviewStatus.RECATEGORIZED, reviewer, notes or "Recategorized by user")
        self.store.update_transaction(txn)
        self.learning.learn_from_correction(
            txn.owner_id, old_category, new_category, txn.description, txn.vendor_name
        )
        logger.info(
            "Recategorized transaction %s: %s -> %s",
            txn.id,
            old_category.value,
            new_category.value,
        )
        return txn

    def match_invoice(
        self,
        transaction_id: Any,
        receivable_id: Any,
        reviewer: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Transaction:
        """Settle a receivable with an incoming payment."""
        return self._match(
            transaction_id, receivable_id, ObligationKind.RECEIVABLE, reviewer, notes
        )

    def match_bill(
        self,
        transaction_id: Any,
        payable_id: Any,
        reviewer: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Transaction:
        """Settle a payable with an outgoing payment."""
        return self._match(transaction_id, payable_id, ObligationKind.PAYABLE, reviewer, notes)

    # Bulk actions

    def bulk_approve(
        self, transaction_ids: Iterable[Any], reviewer: Optional[str] = None
    ) -> BulkResult:
        ids = _require_ids(transaction_ids)
        return self._bulk(
            "approve", ids, lambda i: self.approve(i, reviewer, "Bulk approved by user")
        )

    def bulk_reject(
        self,
        transaction_ids: Iterable[Any],
        reviewer: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BulkResult:
        ids = _require_ids(transaction_ids)
        return self._bulk(
            "reject", ids, lambda i: self.reject(i, reviewer, notes or "Bulk rejected by user")
        )

    def bulk_recategorize(
        self,
        transaction_ids: Iterable[Any],
        category: "str | Category | None",
        reviewer: Optional[str] = None,
    ) -> BulkResult:
        ids = _require_ids(transaction_ids)
        new_category = _require_category(category)
        return self._bulk(
            "recategorize",
            ids,
            lambda i: self.recategorize(i, new_category, reviewer, "Bulk recategorized by user"),
        )

    def bulk_delete(self, transaction_ids: Iterable[Any]) -> BulkResult:
        """Delete transactions. Matched transactions cannot be deleted."""
        ids = _require_ids(transaction_ids)
        return self._bulk("delete", ids, self._delete)

    # Internals

    def _owner(self, owner_id: Optional[str]) -> str:
        owner = owner_id or self.owner_id
        if not owner:
            raise InvalidActionError("Owner ID is required")
        return owner

    def _load(self, transaction_id: int) -> Transaction:
        txn = self.store.get_transaction(transaction_id)
        if txn is None or (self.owner_id and txn.owner_id != self.owner_id):
            raise NotFoundError("transaction", transaction_id)
        return txn

    def _close(
        self,
        txn: Transaction,
        status: ReviewStatus,
        reviewer: Optional[str],
        notes: str,
    ) -> None:
        txn.needs_review = False
        txn.review_status = status
        txn.reviewed_by = reviewer or self.config.review.default_reviewer
        txn.reviewed_at = _now()
        txn.review_notes = notes

    def _match(
        self,
        transaction_id: Any,
        target_id: Any,
        kind: ObligationKind,
        reviewer: Optional[str],
        notes: Optional[str],
    ) -> Transaction:
        label = "Invoice ID" if kind == ObligationKind.RECEIVABLE else "Bill ID"
        txn_id = _require_id(transaction_id)
        obligation_id = _require_id(target_id, label)
        self._load(txn_id)

        try:
            txn, obligation = self.reconciler.settle(txn_id, obligation_id, expected_kind=kind)
        except BalanceSyncError as e:
            # The settlement is committed; the review must still be closed
            self._close_match(self._load(txn_id), e.obligation, reviewer, notes)
            raise
        return self._close_match(txn, obligation, reviewer, notes)

    def _close_match(
        self,
        txn: Transaction,
        obligation: Obligation,
        reviewer: Optional[str],
        notes: Optional[str],
    ) -> Transaction:
        txn.confidence = ConfidenceScorer.MANUAL_CONFIDENCE
        self._close(
            txn,
            ReviewStatus.MATCHED,
            reviewer,
            notes or f"Matched to {obligation.kind.value} {obligation.id}",
        )
        self.store.update_transaction(txn)
        logger.info(
            "Matched transaction %s to %s %s (%s)",
            txn.id,
            obligation.kind.value,
            obligation.id,
            obligation.status.value,
        )
        return txn

    def _delete(self, transaction_id: Any) -> None:
        txn = self._load(_require_id(transaction_id))
        if txn.is_matched:
            raise InvalidActionError(f"Transaction {txn.id} is matched and cannot be deleted")
        self.store.delete_transaction(txn.id)
        logger.info("Deleted transaction %s", txn.id)

    def _bulk(
        self,
        action: str,
        ids: list[Any],
        apply: Callable[[Any], Optional[Transaction]],
    ) -> BulkResult:
        result = BulkResult(action=action)
        for item_id in ids:
            try:
                txn = apply(item_id)
            except LedgerflowError as e:
                logger.warning("Bulk %s failed for %r: %s", action, item_id, e)
                result.items.append(ItemResult(id=item_id, ok=False, error=str(e)))
                continue
            result.items.append(ItemResult(id=item_id, ok=True, transaction=txn))

        logger.info(
            "Bulk %s: %d succeeded, %d failed", action, result.succeeded, result.failed
        )
        return result
