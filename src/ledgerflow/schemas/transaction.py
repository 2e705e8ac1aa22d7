"""
Canonical transaction and obligation records (SSOT).

This is THE single source of truth for the records that flow through the
pipeline. Every component maps into/out of these types.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from .categories import Category, Frequency


class Direction(str, Enum):
    """Direction of money movement relative to the owner."""

    CREDIT = "credit"  # inflow
    DEBIT = "debit"  # outflow


class ExpenseType(str, Enum):
    """One-time vs recurring classification."""

    ONE_TIME = "one-time"
    RECURRING = "recurring"


class ConfidenceLevel(str, Enum):
    """Coarse confidence used by the expense-type cascade."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReviewReason(str, Enum):
    """Why a transaction sits in the review queue."""

    LOW_CONFIDENCE = "low_confidence"
    UNCLEAR_DESCRIPTION = "unclear_description"
    NO_MATCH = "no_match"
    MULTIPLE_MATCHES = "multiple_matches"
    USER_REJECTED = "user_rejected"


class ReviewStatus(str, Enum):
    """Review queue state.

    PENDING is the only non-terminal state; REJECTED keeps needs_review set
    so a later recategorize is still possible.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RECATEGORIZED = "recategorized"
    MATCHED = "matched"


class TransactionType(str, Enum):
    """Business meaning of a transaction."""

    INVOICE_PAYMENT = "invoice_payment"
    BILL_PAYMENT = "bill_payment"
    EXPENSE = "expense"
    REVENUE = "revenue"
    TRANSFER = "transfer"
    UNKNOWN = "unknown"


class ObligationKind(str, Enum):
    """Receivable (money owed to the owner) or payable (owed by the owner)."""

    RECEIVABLE = "receivable"
    PAYABLE = "payable"


class ObligationStatus(str, Enum):
    """Settlement status. Moves forward only: open → partial → settled."""

    OPEN = "open"
    PARTIAL = "partial"
    SETTLED = "settled"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    ObligationStatus.OPEN: 0,
    ObligationStatus.PARTIAL: 1,
    ObligationStatus.SETTLED: 2,
}


@dataclass
class Transaction:
    """A canonical bank transaction.

    Amount is signed: positive = inflow, negative = outflow.
    At most one of matched_receivable_id / matched_payable_id is set.
    """

    owner_id: str
    date: str  # YYYY-MM-DD
    amount: Decimal
    description: str
    direction: Direction
    id: Optional[int] = None
    vendor_name: Optional[str] = None
    balance: Optional[Decimal] = None  # running balance from the statement

    # Classification
    category: Category = Category.OTHER
    confidence: int = 0
    classification_reason: str = ""
    classification_source: Optional[str] = None
    expense_type: ExpenseType = ExpenseType.ONE_TIME
    frequency: Optional[Frequency] = None
    expense_confidence: ConfidenceLevel = ConfidenceLevel.LOW
    expense_score: int = 0
    expense_reason: str = ""

    # Review
    needs_review: bool = False
    review_reason: Optional[ReviewReason] = None
    review_status: Optional[ReviewStatus] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    review_notes: Optional[str] = None

    # Reconciliation
    transaction_type: TransactionType = TransactionType.UNKNOWN
    matched_receivable_id: Optional[int] = None
    matched_payable_id: Optional[int] = None

    # Provenance
    fingerprint: Optional[str] = None
    source_line: Optional[int] = None
    created_at: Optional[str] = None

    @property
    def is_inflow(self) -> bool:
        return self.amount > 0

    @property
    def abs_amount(self) -> Decimal:
        return abs(self.amount)

    @property
    def is_matched(self) -> bool:
        return self.matched_receivable_id is not None or self.matched_payable_id is not None

    def to_dict(self) -> dict:
        """Serialize to dictionary for JSON output."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "date": self.date,
            "amount": str(self.amount),
            "description": self.description,
            "direction": self.direction.value,
            "vendor_name": self.vendor_name,
            "balance": str(self.balance) if self.balance is not None else None,
            "category": self.category.value,
            "confidence": self.confidence,
            "classification_reason": self.classification_reason,
            "classification_source": self.classification_source,
            "expense_type": self.expense_type.value,
            "frequency": self.frequency.value if self.frequency else None,
            "expense_confidence": self.expense_confidence.value,
            "expense_score": self.expense_score,
            "expense_reason": self.expense_reason,
            "needs_review": self.needs_review,
            "review_reason": self.review_reason.value if self.review_reason else None,
            "review_status": self.review_status.value if self.review_status else None,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at,
            "review_notes": self.review_notes,
            "transaction_type": self.transaction_type.value,
            "matched_receivable_id": self.matched_receivable_id,
            "matched_payable_id": self.matched_payable_id,
            "fingerprint": self.fingerprint,
            "source_line": self.source_line,
            "created_at": self.created_at,
        }


@dataclass
class Obligation:
    """An open receivable or payable.

    Invariant: balance_amount == max(0, total_amount - paid_amount).
    """

    id: int
    owner_id: str
    kind: ObligationKind
    total_amount: Decimal
    paid_amount: Decimal = Decimal("0")
    balance_amount: Optional[Decimal] = None
    status: ObligationStatus = ObligationStatus.OPEN
    number: Optional[str] = None  # invoice / bill number
    counterparty: Optional[str] = None  # customer or vendor name
    vendor_id: Optional[str] = None
    due_date: Optional[str] = None
    settled_at: Optional[str] = None
    # Three-way match outcome (bills only)
    match_status: Optional[str] = None
    discrepancies: list[dict] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.balance_amount is None:
            self.balance_amount = max(Decimal("0"), self.total_amount - self.paid_amount)

    @property
    def is_open(self) -> bool:
        return self.status != ObligationStatus.SETTLED

    def to_dict(self) -> dict:
        """Serialize to dictionary for JSON output."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "kind": self.kind.value,
            "number": self.number,
            "counterparty": self.counterparty,
            "vendor_id": self.vendor_id,
            "total_amount": str(self.total_amount),
            "paid_amount": str(self.paid_amount),
            "balance_amount": str(self.balance_amount),
            "status": self.status.value,
            "due_date": self.due_date,
            "settled_at": self.settled_at,
            "match_status": self.match_status,
            "discrepancies": self.discrepancies,
        }


@dataclass(frozen=True)
class Settlement:
    """Result of applying a payment to an obligation."""

    paid_amount: Decimal
    balance_amount: Decimal
    status: ObligationStatus


def apply_payment(
    total: Decimal,
    paid: Decimal,
    payment: Decimal,
    current_status: ObligationStatus = ObligationStatus.OPEN,
) -> Settlement:
    """
    Compute the new paid/balance/status after a payment.

    Status is derived from the balance and never moves backward.

    Args:
        total: Obligation total amount
        paid: Amount paid so far
        payment: Absolute payment amount to apply
        current_status: Status before the payment

    Returns:
        Settlement with the new values
    """
    new_paid = paid + abs(payment)
    new_balance = max(Decimal("0"), total - new_paid)

    if new_balance == 0:
        derived = ObligationStatus.SETTLED
    elif new_paid > 0:
        derived = ObligationStatus.PARTIAL
    else:
        derived = ObligationStatus.OPEN

    status = derived if derived.rank >= current_status.rank else current_status
    return Settlement(paid_amount=new_paid, balance_amount=new_balance, status=status)


@dataclass
class PurchaseOrderLine:
    """Ordered line on a purchase order."""

    item: str
    quantity: Decimal
    unit_price: Optional[Decimal] = None


@dataclass
class PurchaseOrder:
    """Purchase order sent to a vendor."""

    id: int
    owner_id: str
    vendor_id: str
    total_amount: Decimal
    vendor_name: Optional[str] = None
    number: Optional[str] = None
    lines: list[PurchaseOrderLine] = field(default_factory=list)


@dataclass
class ReceiptLine:
    """Received line on a goods receipt."""

    item: str
    received_quantity: Decimal


@dataclass
class GoodsReceipt:
    """Goods received against a purchase order."""

    id: int
    purchase_order_id: int
    received_date: Optional[str] = None
    lines: list[ReceiptLine] = field(default_factory=list)


@dataclass
class Owner:
    """The business whose statements are processed."""

    id: str
    name: str
    cash_balance: Decimal = Decimal("0")
    # Months of runway; None means infinite (net burn <= 0)
    runway_months: Optional[float] = None
    monthly_burn: Decimal = Decimal("0")
    monthly_revenue: Decimal = Decimal("0")
