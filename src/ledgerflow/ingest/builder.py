"""
Transaction builder.

Converts resolved rows into canonical Transaction records, filtering out
rows that are not transactions (opening/closing balance, totals, rows with
no usable date or no amount). Skipped rows are never errors: they are
tallied by reason so every dropped row can be explained.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal

from ..config import IngestConfig
from ..schemas.dedupe import compute_fingerprint
from ..schemas.normalize import extract_vendor_name
from ..schemas.transaction import Direction, Transaction, TransactionType
from .dates import parse_statement_date
from .normalizer import NormalizedStatement, StatementFormat
from .resolver import ColumnMapping, ResolvedFields

logger = logging.getLogger(__name__)


class SkipReason:
    """Reason codes for skipped rows."""

    INVALID_DATE = "invalid_date"
    BALANCE_ROW = "balance_row"
    ZERO_AMOUNT = "zero_amount"


def is_summary_row(description: str) -> bool:
    """Opening/closing balance and total rows are not transactions."""
    lower = description.strip().lower()
    return (
        "opening balance" in lower
        or "closing balance" in lower
        or lower in ("total", "totals")
    )


@dataclass
class BuildResult:
    """Transactions built from one statement plus the skip tally."""

    transactions: list[Transaction] = field(default_factory=list)
    skip_reasons: Counter = field(default_factory=Counter)

    @property
    def skipped(self) -> int:
        return sum(self.skip_reasons.values())


class TransactionBuilder:
    """Builds Transactions from a normalized statement and its column mapping."""

    def __init__(self, config: IngestConfig | None = None):
        self.config = config or IngestConfig()

    def build(
        self,
        statement: NormalizedStatement,
        mapping: ColumnMapping,
        owner_id: str,
    ) -> BuildResult:
        """
        Build transactions, in row order.

        Args:
            statement: Normalized statement
            mapping: Resolved column mapping
            owner_id: Owning business id

        Returns:
            BuildResult with transactions and skip tally
        """
        result = BuildResult()
        placeholder = (
            self.config.document_placeholder_description
            if statement.format == StatementFormat.DOCUMENT
            else self.config.placeholder_description
        )

        for row in statement.rows:
            fields = mapping.resolve(row)
            txn, reason = self.build_one(fields, owner_id, placeholder)
            if txn is None:
                result.skip_reasons[reason] += 1
                logger.debug("Line %d: skipped (%s)", row.line, reason)
                continue
            result.transactions.append(txn)

        logger.info(
            "Built %d transactions, skipped %d rows %s",
            len(result.transactions),
            result.skipped,
            dict(result.skip_reasons),
        )
        return result

    def build_one(
        self,
        fields: ResolvedFields,
        owner_id: str,
        placeholder: str,
    ) -> tuple[Transaction | None, str | None]:
        """Build a single transaction, or return (None, skip_reason)."""
        parsed_date = parse_statement_date(
            fields.date_text,
            min_year=self.config.min_year,
            max_year=self.config.max_year,
        )
        if parsed_date is None:
            return None, SkipReason.INVALID_DATE

        description = fields.description.strip() or placeholder
        if is_summary_row(description):
            return None, SkipReason.BALANCE_ROW

        amount = signed_amount(fields)
        if amount == 0:
            return None, SkipReason.ZERO_AMOUNT

        iso_date = parsed_date.isoformat()
        direction = Direction.CREDIT if amount > 0 else Direction.DEBIT
        vendor = extract_vendor_name(description) if description != placeholder else ""

        txn = Transaction(
            owner_id=owner_id,
            date=iso_date,
            amount=amount,
            description=description,
            direction=direction,
            vendor_name=vendor or None,
            balance=fields.balance,
            transaction_type=(
                TransactionType.REVENUE
                if direction == Direction.CREDIT
                else TransactionType.EXPENSE
            ),
            fingerprint=compute_fingerprint(owner_id, iso_date, amount, description),
            source_line=fields.line,
        )
        return txn, None


def signed_amount(fields: ResolvedFields) -> Decimal:
    """
    Compute the signed amount of a row.

    Credit (positive) takes precedence over debit (negative). When both are
    zero the single amount column decides, by its sign.
    """
    if fields.credit > 0:
        return fields.credit
    if fields.debit > 0:
        return -fields.debit
    if fields.amount is not None:
        return fields.amount
    return Decimal("0")
