"""Receivable/payable reconciliation service.

Connects the matching engine to the state store:
- loads the owner's open obligations of the right kind
- commits a single unambiguous match as one atomic settlement
- routes tied candidates to review instead of guessing
- applies the settled cash to the owner's balance
- runs and persists purchase order / goods receipt / bill three-way matches
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from ..errors import BalanceSyncError, InvalidActionError, LedgerflowError, NotFoundError
from ..matching.engine import CandidateMatch, MatchingEngine, MatchOutcome, kind_for
from ..matching.three_way import ThreeWayResult, three_way_match
from ..schemas.transaction import (
    Obligation,
    ObligationKind,
    ReviewReason,
    ReviewStatus,
    Transaction,
    TransactionType,
)
from .balance_sync import BalanceSynchronizer

if TYPE_CHECKING:
    from ..config import Config
    from ..state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileOutcome:
    """Result of reconciling one transaction."""

    outcome: MatchOutcome
    obligation: Obligation | None = None
    candidates: list[CandidateMatch] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Return True if reconciliation finished without errors."""
        return not self.errors

    @property
    def needs_review(self) -> bool:
        return self.outcome == MatchOutcome.MULTIPLE_MATCHES

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "outcome": self.outcome.value,
            "obligation": self.obligation.to_dict() if self.obligation else None,
            "candidates": [c.to_dict() for c in self.candidates],
            "errors": self.errors,
        }


def settlement_delta(kind: ObligationKind, payment: Decimal) -> Decimal:
    """Signed cash effect of settling an obligation of this kind."""
    return abs(payment) if kind == ObligationKind.RECEIVABLE else -abs(payment)


class ReconciliationService:
    """Matches transactions against open receivables and payables.

    A transaction settles at most one obligation. Ties between equally strong
    candidates are never resolved automatically.

    Usage:
        service = ReconciliationService(state_store, config)
        outcome = service.reconcile(txn)
    """

    def __init__(
        self,
        state_store: StateStore,
        config: Config,
        balance: BalanceSynchronizer | None = None,
        engine: MatchingEngine | None = None,
    ) -> None:
        self.store = state_store
        self.config = config
        self.balance = balance or BalanceSynchronizer(state_store, config.balance)
        self.engine = engine or MatchingEngine(config.reconciliation)

    def reconcile(self, txn: Transaction) -> ReconcileOutcome:
        """Reconcile a classified, persisted transaction.

        Args:
            txn: Transaction to match; updated in place with match and review fields

        Returns:
            ReconcileOutcome with the decision and the settled obligation, if any

        Raises:
            InvalidActionError: If the transaction has not been saved yet
        """
        if txn.id is None:
            raise InvalidActionError("Transaction must be saved before reconciliation")

        if txn.is_matched:
            obligation_id = txn.matched_receivable_id or txn.matched_payable_id
            logger.debug("Transaction %s already matched to %s", txn.id, obligation_id)
            return ReconcileOutcome(MatchOutcome.MATCHED, self.store.get_obligation(obligation_id))

        if txn.amount == 0 or txn.transaction_type == TransactionType.TRANSFER:
            return ReconcileOutcome(MatchOutcome.NO_MATCH)

        obligations = self.store.get_open_obligations(txn.owner_id, kind_for(txn))
        decision = self.engine.decide(txn, obligations)

        if decision.outcome == MatchOutcome.MATCHED:
            return self._commit(txn, decision.match, decision.candidates)

        if decision.outcome == MatchOutcome.MULTIPLE_MATCHES:
            logger.info(
                "Transaction %s has tied candidates %s, routing to review",
                txn.id,
                decision.tied_ids,
            )
            self._flag(txn, ReviewReason.MULTIPLE_MATCHES)
            return ReconcileOutcome(MatchOutcome.MULTIPLE_MATCHES, candidates=decision.candidates)

        if self.config.review.flag_unmatched and not txn.needs_review:
            logger.debug("Transaction %s has no match, flagging for review", txn.id)
            self._flag(txn, ReviewReason.NO_MATCH)
        return ReconcileOutcome(MatchOutcome.NO_MATCH, candidates=decision.candidates)

    def settle(
        self,
        transaction_id: int,
        obligation_id: int,
        expected_kind: ObligationKind | None = None,
    ) -> tuple[Transaction, Obligation]:
        """Manually settle an obligation with a transaction.

        Validation happens before any write; the settlement itself is atomic.

        Raises:
            NotFoundError: If the transaction or obligation does not exist
            InvalidActionError: If the pair cannot be matched
            BalanceSyncError: If the settlement committed but owner cash was not updated
        """
        txn = self.store.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError("transaction", transaction_id)
        obligation = self.store.get_obligation(obligation_id)
        if obligation is None:
            kind = expected_kind.value if expected_kind else "obligation"
            raise NotFoundError(kind, obligation_id)
        if expected_kind is not None and obligation.kind != expected_kind:
            raise InvalidActionError(f"Obligation {obligation_id} is not a {expected_kind.value}")
        if obligation.owner_id != txn.owner_id:
            raise InvalidActionError(
                f"Obligation {obligation_id} belongs to a different owner than transaction "
                f"{transaction_id}"
            )
        if txn.amount == 0:
            raise InvalidActionError(f"Transaction {transaction_id} has no amount to apply")
        if kind_for(txn) != obligation.kind:
            raise InvalidActionError(
                f"Transaction {transaction_id} cannot settle "
                f"{obligation.kind.value} {obligation_id}"
            )

        settled = self.store.settle_obligation(obligation_id, transaction_id, txn.abs_amount)
        try:
            self.balance.apply_settlement(
                txn.owner_id, settlement_delta(settled.kind, txn.abs_amount)
            )
        except (LedgerflowError, sqlite3.Error) as e:
            logger.error(
                "Balance sync failed for owner %s after settling %s: %s",
                txn.owner_id,
                obligation_id,
                e,
            )
            raise BalanceSyncError(transaction_id, settled, e) from e
        logger.info(
            "Settled %s %s with transaction %s: paid %s, balance %s, %s",
            settled.kind.value,
            obligation_id,
            transaction_id,
            settled.paid_amount,
            settled.balance_amount,
            settled.status.value,
        )
        return self.store.get_transaction(transaction_id), settled

    def three_way_match(self, po_id: int, receipt_id: int, bill_id: int) -> ThreeWayResult:
        """Compare a purchase order, its goods receipt and the resulting bill.

        The outcome is persisted on the bill.

        Raises:
            NotFoundError: If any of the three documents does not exist
            InvalidActionError: If the bill is not a payable
        """
        po = self.store.get_purchase_order(po_id)
        if po is None:
            raise NotFoundError("purchase_order", po_id)
        receipt = self.store.get_goods_receipt(receipt_id)
        if receipt is None:
            raise NotFoundError("goods_receipt", receipt_id)
        bill = self.store.get_obligation(bill_id)
        if bill is None:
            raise NotFoundError("bill", bill_id)
        if bill.kind != ObligationKind.PAYABLE:
            raise InvalidActionError(f"Obligation {bill_id} is not a bill")

        settings = self.config.reconciliation
        result = three_way_match(
            po,
            receipt,
            bill,
            amount_tolerance=Decimal(str(settings.three_way_amount_tolerance)),
            discrepancy_ratio=Decimal(str(settings.three_way_discrepancy_ratio)),
        )
        self.store.record_three_way_result(
            bill_id,
            result.match_status.value,
            [d.to_dict() for d in result.discrepancies],
        )
        logger.info(
            "Three-way match PO %s / receipt %s / bill %s: %s (%d discrepancies)",
            po_id,
            receipt_id,
            bill_id,
            result.match_status.value,
            len(result.discrepancies),
        )
        return result

    def _commit(
        self,
        txn: Transaction,
        match: CandidateMatch,
        candidates: list[CandidateMatch],
    ) -> ReconcileOutcome:
        errors: list[str] = []
        try:
            stored, obligation = self.settle(txn.id, match.obligation_id)
        except BalanceSyncError as e:
            stored = self.store.get_transaction(txn.id)
            obligation = e.obligation
            errors.append(str(e))
        except LedgerflowError as e:
            # A concurrent match may have settled the obligation first
            logger.warning(
                "Could not settle %s with transaction %s: %s", match.obligation_id, txn.id, e
            )
            return ReconcileOutcome(MatchOutcome.NO_MATCH, candidates=candidates, errors=[str(e)])

        txn.matched_receivable_id = stored.matched_receivable_id
        txn.matched_payable_id = stored.matched_payable_id
        txn.transaction_type = stored.transaction_type
        return ReconcileOutcome(MatchOutcome.MATCHED, obligation, candidates, errors=errors)

    def _flag(self, txn: Transaction, reason: ReviewReason) -> None:
        txn.needs_review = True
        txn.review_reason = reason
        txn.review_status = ReviewStatus.PENDING
        self.store.update_transaction(txn)
