"""
Transaction fingerprints (dedupe keys).

This module defines THE deterministic fingerprint function used to detect
re-uploaded statement rows. A fingerprint identifies a transaction by
(owner, date, amount, normalized description).

The fingerprint must be:
- Stable: Same inputs always produce same output
- Owner-scoped: Identical rows for different owners never collide
- Whitespace/case insensitive on the description
"""

import datetime
import hashlib
import re
from decimal import Decimal

# Length of the hex digest prefix stored as the fingerprint
FINGERPRINT_LENGTH = 32

_WHITESPACE = re.compile(r"\s+")
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def _normalize_amount(amount: Decimal | str | float) -> str:
    """Normalize amount to a signed 2-decimal string for hashing."""
    if isinstance(amount, str):
        amount = Decimal(amount.replace(",", ""))
    elif isinstance(amount, float):
        amount = Decimal(str(amount))
    elif not isinstance(amount, Decimal):
        raise ValueError(f"amount must be Decimal, str, or float, got: {type(amount)}")

    return f"{amount:.2f}"


def normalize_description(description: str | None) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    if not description:
        return ""
    return _WHITESPACE.sub(" ", description.strip().lower())


def compute_fingerprint(
    owner_id: str,
    date: str,
    amount: Decimal | str | float,
    description: str | None,
) -> str:
    """
    Compute the dedupe fingerprint for a transaction.

    Args:
        owner_id: Owning business id
        date: Transaction date (YYYY-MM-DD)
        amount: Signed transaction amount
        description: Raw description

    Returns:
        Lowercase hex fingerprint

    Raises:
        ValueError: If the date is not in YYYY-MM-DD format
    """
    if not date or not _ISO_DATE.fullmatch(date):
        raise ValueError(f"date must be in YYYY-MM-DD format, got: {date}")
    try:
        datetime.date.fromisoformat(date)
    except ValueError as e:
        raise ValueError(f"date must be a valid YYYY-MM-DD date, got: {date}") from e

    canonical = "|".join(
        [
            owner_id.strip(),
            date,
            _normalize_amount(amount),
            normalize_description(description),
        ]
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]
