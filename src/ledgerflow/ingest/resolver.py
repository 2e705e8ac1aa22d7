"""
Column/field resolver.

Maps ambiguous statement headers (or document line structure) onto the
semantic fields the builder needs: date, description, debit, credit, single
signed amount and running balance.

Header rules are priority ordered and case-insensitive. Each header is
claimed by at most one field, fields are resolved in this order:
date, description, debit, credit, amount, balance.

A DR/CR direction column is detected first, by its header or by its sampled
values, and signs the single amount column instead of being read as debit.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from .normalizer import NormalizedStatement, RawRow, StatementFormat

logger = logging.getLogger(__name__)

# Characters stripped from money values before parsing
_MONEY_NOISE = re.compile(r"[,\s₹$€£¥]")
_MONEY_MARKER = re.compile(r"\s*(cr|dr)\.?$", re.IGNORECASE)

# Amount-like tokens inside an extracted document line
DOCUMENT_AMOUNT = re.compile(
    r"(?<![\d/,.])(\d{1,3}(?:,\d{2,3})+(?:\.\d{2})?|\d+(?:\.\d{2})?)(?![\d/]|[.,]\d)"
)

# Document amounts below this are treated as references, not money
MIN_DOCUMENT_AMOUNT = Decimal("10")

# Cell values of a direction column
DIRECTION_MARKERS = {"dr": "dr", "debit": "dr", "cr": "cr", "credit": "cr"}

# Rows inspected when deciding whether a column holds direction markers
DIRECTION_SAMPLE_ROWS = 20


def _tokens(header: str) -> set[str]:
    return {t for t in re.split(r"[^a-z0-9]+", header) if t}


def _is_balance(h: str) -> bool:
    return "balance" in h or "closing" in h


def _is_date(h: str) -> bool:
    return "date" in h or "txn" in h or "time" in h or h == "dt"


def _is_description(h: str) -> bool:
    if any(k in h for k in ("desc", "narr", "particular", "detail", "remark")):
        return True
    return (
        "transaction" in h
        and "date" not in h
        and "type" not in h
        and "amount" not in h
    )


def _is_debit(h: str) -> bool:
    tokens = _tokens(h)
    if _is_balance(h) or "in" in tokens:
        return False
    return (
        any(k in h for k in ("debit", "withdrawal", "paid", "expense"))
        or "dr" in tokens
        or "out" in tokens
    )


def _is_credit(h: str) -> bool:
    tokens = _tokens(h)
    if _is_balance(h) or "out" in tokens:
        return False
    if any(k in h for k in ("credit", "deposit", "received", "income")) or "cr" in tokens:
        return True
    return "in" in tokens and "inter" not in h


def _is_amount(h: str) -> bool:
    return h == "amount" or ("amount" in h and "balance" not in h)


def direction_marker(value: str | None) -> str | None:
    """Return "dr" or "cr" for a direction cell such as "DR", "Cr." or "Credit"."""
    return DIRECTION_MARKERS.get((value or "").strip().lower().rstrip("."))


def _is_direction_column(header: str, rows: list[RawRow]) -> bool:
    if _tokens(header.lower()) == {"dr", "cr"}:
        return True
    values = [row.get(header).strip() for row in rows[:DIRECTION_SAMPLE_ROWS]]
    values = [v for v in values if v]
    return bool(values) and all(direction_marker(v) for v in values)


FIELD_RULES = (
    ("date", _is_date),
    ("description", _is_description),
    ("debit", _is_debit),
    ("credit", _is_credit),
    ("amount", _is_amount),
    ("balance", _is_balance),
)


def parse_money(value: str | None) -> tuple[Decimal, str | None]:
    """
    Parse a raw money cell.

    Handles thousands separators, currency symbols, "(123.45)" negatives and
    a trailing CR/DR marker.

    Returns:
        (amount, marker) where marker is "cr", "dr" or None. Unparseable or
        empty cells yield Decimal("0").
    """
    if not value:
        return Decimal("0"), None

    text = value.strip()
    marker = None
    m = _MONEY_MARKER.search(text)
    if m:
        marker = m.group(1).lower()
        text = text[: m.start()]

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = _MONEY_NOISE.sub("", text)
    if not text or text in ("-", "+"):
        return Decimal("0"), marker

    try:
        amount = Decimal(text)
    except InvalidOperation:
        return Decimal("0"), marker

    if not amount.is_finite():
        return Decimal("0"), marker
    return (-amount if negative else amount), marker


def _is_numeric(value: str) -> bool:
    cleaned = _MONEY_NOISE.sub("", value)
    if not cleaned:
        return False
    try:
        Decimal(cleaned)
    except InvalidOperation:
        return False
    return True


@dataclass
class ResolvedFields:
    """Semantic field values of one row, before transaction building."""

    line: int
    date_text: str
    description: str
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    amount: Decimal | None = None  # single signed amount column
    balance: Decimal | None = None


@dataclass
class ColumnMapping:
    """Field → header mapping for a delimited statement.

    For document statements every attribute stays None and each line is
    resolved on its own.
    """

    format: StatementFormat = StatementFormat.DELIMITED
    date: str | None = None
    description: str | None = None
    debit: str | None = None
    credit: str | None = None
    amount: str | None = None
    balance: str | None = None
    direction: str | None = None  # DR/CR column signing the amount

    def to_dict(self) -> dict:
        return {
            "format": self.format.value,
            "date": self.date,
            "description": self.description,
            "debit": self.debit,
            "credit": self.credit,
            "amount": self.amount,
            "balance": self.balance,
            "direction": self.direction,
        }

    def resolve(self, row: RawRow) -> ResolvedFields:
        """Extract the semantic fields of one row."""
        if self.format == StatementFormat.DOCUMENT:
            return resolve_document_line(row)

        debit, _ = parse_money(row.get(self.debit))
        credit, _ = parse_money(row.get(self.credit))

        amount = None
        if self.amount:
            amount, marker = parse_money(row.get(self.amount))
            if self.direction:
                marker = direction_marker(row.get(self.direction)) or marker
            if marker == "dr":
                amount = -abs(amount)
            elif marker == "cr":
                amount = abs(amount)

        balance = None
        if self.balance and row.get(self.balance):
            balance, _ = parse_money(row.get(self.balance))

        return ResolvedFields(
            line=row.line,
            date_text=row.get(self.date),
            description=row.get(self.description),
            debit=abs(debit),
            credit=abs(credit),
            amount=amount,
            balance=balance,
        )


def resolve_columns(statement: NormalizedStatement) -> ColumnMapping:
    """
    Resolve the column mapping for a normalized statement.

    Args:
        statement: Normalized statement (headers + rows)

    Returns:
        ColumnMapping for the statement
    """
    if statement.format == StatementFormat.DOCUMENT:
        return ColumnMapping(format=StatementFormat.DOCUMENT)

    headers = statement.headers
    mapping = ColumnMapping()
    claimed: set[str] = set()

    for header in headers:
        if _is_direction_column(header, statement.rows):
            mapping.direction = header
            claimed.add(header)
            break

    for field_name, rule in FIELD_RULES:
        for header in headers:
            if header in claimed:
                continue
            if rule(header.lower().strip()):
                setattr(mapping, field_name, header)
                claimed.add(header)
                break

    if mapping.date is None and headers:
        mapping.date = headers[0]
        claimed.add(headers[0])
        logger.warning("No date column detected, using first column: %r", headers[0])

    if mapping.description is None and statement.rows:
        sample = statement.rows[0]
        for header in headers:
            if header in claimed:
                continue
            value = sample.get(header)
            if len(value) > 3 and not _is_numeric(value):
                mapping.description = header
                logger.warning("Using %r as description column (fallback)", header)
                break

    logger.info("Column mapping: %s", mapping.to_dict())
    return mapping


def resolve_document_line(row: RawRow) -> ResolvedFields:
    """
    Resolve one extracted document line.

    The first amount-like token (>= 10) after the date is the transaction
    amount; when two or more are present the last one is the running
    balance. Text before the first amount is the description. A CR, credit
    or deposit marker makes the line an inflow.
    """
    date_text = row.get(0)
    remainder = row.get(1)

    candidates = [
        (m.start(), m.group(1)) for m in DOCUMENT_AMOUNT.finditer(remainder)
    ]
    # Statements print money with decimals; bare integers are then references
    if any("." in token for _, token in candidates):
        candidates = [(pos, token) for pos, token in candidates if "." in token]

    amounts: list[tuple[int, Decimal]] = []
    for pos, token in candidates:
        value, _ = parse_money(token)
        if value >= MIN_DOCUMENT_AMOUNT:
            amounts.append((pos, value))

    if not amounts:
        return ResolvedFields(line=row.line, date_text=date_text, description=remainder)

    first_pos, first_amount = amounts[0]
    description = remainder[:first_pos].strip(" -|:")
    balance = amounts[-1][1] if len(amounts) >= 2 else None

    lower = remainder.lower()
    is_credit = "credit" in lower or "deposit" in lower or "cr" in _tokens(lower)

    return ResolvedFields(
        line=row.line,
        date_text=date_text,
        description=description if len(description) >= 2 else "",
        credit=first_amount if is_credit else Decimal("0"),
        debit=Decimal("0") if is_credit else first_amount,
        balance=balance,
    )
