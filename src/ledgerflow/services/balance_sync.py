"""Balance synchronizer.

Keeps an owner's cash balance and runway in step with settled
receivables/payables.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from dateutil.relativedelta import relativedelta

from ..config import BalanceConfig
from ..schemas.transaction import Owner, Transaction, TransactionType

if TYPE_CHECKING:
    from ..state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class BurnMetrics:
    """Monthly burn/revenue figures over a trailing window."""

    gross_burn: Decimal  # average monthly outflow
    monthly_revenue: Decimal  # average monthly inflow
    months: Decimal  # months the averages are taken over

    @property
    def net_burn(self) -> Decimal:
        return self.gross_burn - self.monthly_revenue

    def runway(self, cash_balance: Decimal) -> float | None:
        """Months of cash left; None means infinite."""
        if self.net_burn <= 0:
            return None if cash_balance > 0 else 0.0
        return round(float(cash_balance / self.net_burn), 1)


def compute_burn(transactions: Sequence[Transaction]) -> BurnMetrics:
    """
    Average monthly outflow and inflow of a set of transactions.

    Transfers between own accounts are ignored. Months span first to last
    transaction date, at least one.
    """
    flows = [t for t in transactions if t.transaction_type != TransactionType.TRANSFER]
    if not flows:
        return BurnMetrics(Decimal("0"), Decimal("0"), Decimal("1"))

    dates = [date.fromisoformat(t.date) for t in flows]
    months = max(Decimal("1"), Decimal((max(dates) - min(dates)).days) / Decimal("30"))
    outflow = sum((t.abs_amount for t in flows if t.amount < 0), Decimal("0"))
    inflow = sum((t.amount for t in flows if t.amount > 0), Decimal("0"))
    return BurnMetrics(gross_burn=outflow / months, monthly_revenue=inflow / months, months=months)


class BalanceSynchronizer:
    """
    Applies settlements to owner cash and recomputes runway.

    Usage:
        sync = BalanceSynchronizer(store, config.balance)
        owner = sync.apply_settlement("acme", Decimal("4000"))
    """

    def __init__(self, state_store: StateStore, config: BalanceConfig | None = None) -> None:
        self.store = state_store
        self.config = config or BalanceConfig()

    def apply_settlement(self, owner_id: str, amount: Decimal) -> Owner:
        """
        Adjust cash by the signed amount of a settled transaction.

        Receivable collections are positive, payable payments negative.
        """
        if self.store.get_owner(owner_id) is None:
            self.store.upsert_owner(owner_id)
        owner = self.store.adjust_owner_cash(owner_id, amount)
        logger.info(
            "Owner %s cash %s by %s -> %s",
            owner_id,
            "increased" if amount > 0 else "decreased",
            abs(amount),
            owner.cash_balance,
        )
        return self.recompute_runway(owner_id)

    def recompute_runway(self, owner_id: str, as_of: date | None = None) -> Owner:
        """
        Recompute burn, revenue and runway over the trailing window.

        Args:
            owner_id: Owner to update
            as_of: Window end (defaults to the owner's latest transaction date)
        """
        latest = self.store.get_transactions(owner_id, limit=1)
        if as_of is None:
            as_of = date.fromisoformat(latest[0].date) if latest else date.today()
        since = as_of - relativedelta(months=self.config.burn_window_months)

        window = [
            t
            for t in self.store.get_transactions(owner_id, since=since.isoformat())
            if date.fromisoformat(t.date) <= as_of
        ]
        metrics = compute_burn(window)

        owner = self.store.get_owner(owner_id) or self.store.upsert_owner(owner_id)
        runway = metrics.runway(owner.cash_balance)
        self.store.update_owner_runway(
            owner_id,
            monthly_burn=metrics.gross_burn.quantize(Decimal("0.01")),
            monthly_revenue=metrics.monthly_revenue.quantize(Decimal("0.01")),
            runway_months=runway,
        )
        logger.debug(
            "Owner %s: burn %.2f, revenue %.2f, runway %s",
            owner_id,
            metrics.gross_burn,
            metrics.monthly_revenue,
            "infinite" if runway is None else f"{runway} months",
        )
        return self.store.get_owner(owner_id)
