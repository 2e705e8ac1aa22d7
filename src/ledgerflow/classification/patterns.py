"""
Historical pattern analysis.

Pure functions over an owner's prior transactions:
- interval regularity (weekly / monthly / quarterly / yearly)
- trailing average monthly spend
- subscription detection
"""

import statistics
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ..schemas.categories import Frequency
from ..schemas.normalize import extract_vendor_name
from ..schemas.transaction import ConfidenceLevel, Transaction
from .keywords import has_subscription_keyword

# Mean-gap windows (days, inclusive)
FREQUENCY_WINDOWS: tuple[tuple[Frequency, float, float], ...] = (
    (Frequency.WEEKLY, 5, 9),
    (Frequency.MONTHLY, 25, 35),
    (Frequency.QUARTERLY, 80, 100),
    (Frequency.YEARLY, 350, 380),
)

# Gaps are regular when their std-dev is below this fraction of the mean
REGULARITY_RATIO = 0.2

# Same-vendor amounts within this fraction count as the same charge
VENDOR_AMOUNT_TOLERANCE = Decimal("0.15")
SUBSCRIPTION_AMOUNT_TOLERANCE = Decimal("0.10")

MIN_PATTERN_OCCURRENCES = 3
MIN_SUBSCRIPTION_OCCURRENCES = 2


@dataclass(frozen=True)
class IntervalPattern:
    """Outcome of interval analysis on a series of dates."""

    is_regular: bool
    frequency: Frequency
    confidence: ConfidenceLevel
    mean_gap: float = 0.0
    std_dev: float = 0.0
    occurrences: int = 0


@dataclass(frozen=True)
class SubscriptionInfo:
    is_subscription: bool
    name: str
    billing_cycle: Frequency
    confidence: ConfidenceLevel


def _as_date(value: "date | str") -> date:
    return value if isinstance(value, date) else date.fromisoformat(value)


def day_gaps(dates: Iterable["date | str"]) -> list[int]:
    """Day gaps between consecutive dates, after sorting."""
    ordered = sorted(_as_date(d) for d in dates)
    return [(b - a).days for a, b in zip(ordered, ordered[1:])]


def analyze_intervals(dates: Iterable["date | str"]) -> IntervalPattern:
    """
    Classify the cadence of a series of occurrence dates.

    The mean gap picks the frequency window; the series is regular when the
    population std-dev of the gaps is below 20% of the mean. Confidence is
    high when regular, medium when irregular inside a window, and low when
    the mean falls outside every window.
    """
    values = list(dates)
    gaps = day_gaps(values)
    occurrences = len(values)
    if not gaps:
        return IntervalPattern(
            False, Frequency.MONTHLY, ConfidenceLevel.LOW, occurrences=occurrences
        )

    mean_gap = statistics.fmean(gaps)
    std_dev = statistics.pstdev(gaps)
    is_regular = std_dev < mean_gap * REGULARITY_RATIO

    for frequency, low, high in FREQUENCY_WINDOWS:
        if low <= mean_gap <= high:
            confidence = ConfidenceLevel.HIGH if is_regular else ConfidenceLevel.MEDIUM
            return IntervalPattern(
                is_regular, frequency, confidence, mean_gap, std_dev, occurrences
            )

    return IntervalPattern(
        is_regular, Frequency.MONTHLY, ConfidenceLevel.LOW, mean_gap, std_dev, occurrences
    )


def same_vendor_transactions(
    description: str,
    amount: Decimal,
    history: Iterable[Transaction],
    tolerance: Decimal = VENDOR_AMOUNT_TOLERANCE,
) -> list[Transaction]:
    """History entries from the same derived vendor with an amount within tolerance."""
    vendor = extract_vendor_name(description)
    if not vendor:
        return []
    target = abs(amount)
    return [
        t
        for t in history
        if extract_vendor_name(t.description) == vendor
        and abs(t.abs_amount - target) < target * tolerance
    ]


def average_monthly_spend(history: Sequence[Transaction]) -> Decimal:
    """Total absolute amount divided by months of history (at least one)."""
    if not history:
        return Decimal("0")
    total = sum((t.abs_amount for t in history), Decimal("0"))
    dates = [_as_date(t.date) for t in history]
    span_days = (max(dates) - min(dates)).days
    months = max(Decimal("1"), Decimal(span_days) / Decimal("30"))
    return total / months


def detect_subscription(
    description: str,
    amount: Decimal,
    history: Iterable[Transaction],
) -> SubscriptionInfo:
    """
    Detect whether a charge is a subscription.

    A regular monthly, quarterly or yearly cadence over at least two similar
    past charges (within 10%) wins; otherwise a known subscription vendor or
    keyword yields a medium-confidence monthly guess.
    """
    vendor = extract_vendor_name(description)
    similar = same_vendor_transactions(
        description, amount, history, tolerance=SUBSCRIPTION_AMOUNT_TOLERANCE
    )

    if len(similar) >= MIN_SUBSCRIPTION_OCCURRENCES:
        pattern = analyze_intervals(t.date for t in similar)
        if pattern.is_regular and pattern.frequency != Frequency.WEEKLY and (
            pattern.confidence != ConfidenceLevel.LOW
        ):
            return SubscriptionInfo(True, vendor, pattern.frequency, pattern.confidence)

    if has_subscription_keyword(description):
        return SubscriptionInfo(True, vendor, Frequency.MONTHLY, ConfidenceLevel.MEDIUM)

    return SubscriptionInfo(False, vendor, Frequency.MONTHLY, ConfidenceLevel.LOW)
