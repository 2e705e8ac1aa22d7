"""
Classification cascades as ordered rule lists.

Each rule is a pure function of a precomputed context returning a result or
None. Cascades are evaluated top-down and the first hit wins, so each rule
can be tested in isolation by building a context by hand.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Generic, Optional, TypeVar

from ..confidence.scorer import ConfidenceScorer
from ..learning.similarity import SimilarityResult
from ..schemas.categories import Category, Frequency, recurring_categories
from ..schemas.transaction import ConfidenceLevel, ExpenseType
from .keywords import find_one_time_keyword, find_recurring_keyword, match_category_keyword
from .patterns import IntervalPattern

VENDOR_MAPPING_MIN_CONFIDENCE = 70
PATTERN_MAPPING_MIN_CONFIDENCE = 60
GENERAL_KEYWORD_CONFIDENCE = 50
WEAK_DEFAULT_CONFIDENCE = 40
UNCLASSIFIED_CONFIDENCE = 25

# An amount above this multiple of average monthly spend skews one-time
LARGE_AMOUNT_FACTOR = Decimal("2")


@dataclass
class LearnedMapping:
    """A learned mapping as seen by the rules."""

    key: str
    category: Category
    confidence: int


@dataclass
class CategoryContext:
    """Everything the category rules may look at."""

    description: str
    vendor_key: str = ""
    pattern_key: str = ""
    vendor_mapping: Optional[LearnedMapping] = None
    pattern_mapping: Optional[LearnedMapping] = None
    similarity: Optional[SimilarityResult] = None
    history_by_category: dict[Category, int] = field(default_factory=dict)
    weak_default_min_history: int = 5


@dataclass
class CategoryResult:
    category: Category
    confidence: int
    reason: str
    source: str
    frequency: Optional[Frequency] = None


@dataclass
class ExpenseContext:
    """Everything the expense-type rules may look at."""

    description: str
    amount: Decimal  # absolute
    category: Category
    vendor_pattern: Optional[IntervalPattern] = None
    vendor_occurrences: int = 0
    average_monthly_spend: Decimal = Decimal("0")
    history_count: int = 0
    min_pattern_occurrences: int = 3
    weak_default_min_history: int = 5


@dataclass
class ExpenseResult:
    expense_type: ExpenseType
    confidence: ConfidenceLevel
    reason: str
    frequency: Optional[Frequency] = None
    source: str = ""  # "keyword" when an explicit keyword decided it


C = TypeVar("C")
R = TypeVar("R")


@dataclass(frozen=True)
class Rule(Generic[C, R]):
    """A named predicate → result step of a cascade."""

    name: str
    apply: Callable[[C], Optional[R]]


def evaluate(rules: Sequence[Rule[C, R]], context: C) -> tuple[str, R]:
    """
    Run a cascade; returns (rule name, result) of the first rule that fires.

    Raises:
        LookupError: If no rule fires (cascades end with a catch-all)
    """
    for rule in rules:
        result = rule.apply(context)
        if result is not None:
            return rule.name, result
    raise LookupError("Cascade has no catch-all rule")


# Category rules


def one_time_keyword_rule(ctx: CategoryContext) -> Optional[CategoryResult]:
    hit = find_one_time_keyword(ctx.description)
    if hit is None:
        return None
    keyword, category = hit
    if category is None:
        general = match_category_keyword(ctx.description)
        category = general[0] if general else Category.G_A
    return CategoryResult(
        category,
        ConfidenceScorer.KEYWORD_CONFIDENCE,
        f'Contains one-time keyword: "{keyword}"',
        "keyword",
    )


def recurring_keyword_rule(ctx: CategoryContext) -> Optional[CategoryResult]:
    hit = find_recurring_keyword(ctx.description)
    if hit is None:
        return None
    keyword, frequency, default = hit
    general = match_category_keyword(ctx.description)
    category = general[0] if general else default
    # Cadence words alone ("monthly", "annual") do not name a category
    if category is None:
        return None
    return CategoryResult(
        category,
        ConfidenceScorer.KEYWORD_CONFIDENCE,
        f'Contains recurring keyword: "{keyword}"',
        "keyword",
        frequency=frequency,
    )


def vendor_mapping_rule(ctx: CategoryContext) -> Optional[CategoryResult]:
    mapping = ctx.vendor_mapping
    if mapping is None or mapping.confidence < VENDOR_MAPPING_MIN_CONFIDENCE:
        return None
    return CategoryResult(
        mapping.category,
        mapping.confidence,
        f'Learned from vendor "{mapping.key}"',
        "vendor_mapping",
    )


def pattern_mapping_rule(ctx: CategoryContext) -> Optional[CategoryResult]:
    mapping = ctx.pattern_mapping
    if mapping is None or mapping.confidence < PATTERN_MAPPING_MIN_CONFIDENCE:
        return None
    return CategoryResult(
        mapping.category,
        mapping.confidence,
        f'Learned from description pattern "{mapping.key}"',
        "pattern_mapping",
    )


def historical_similarity_rule(ctx: CategoryContext) -> Optional[CategoryResult]:
    similar = ctx.similarity
    if similar is None:
        return None
    return CategoryResult(
        similar.category,
        similar.confidence,
        f"{similar.similar_count} similar transactions, "
        f"{similar.fraction:.0%} categorized as {similar.category.value}",
        "history",
    )


def general_keyword_rule(ctx: CategoryContext) -> Optional[CategoryResult]:
    hit = match_category_keyword(ctx.description)
    if hit is None:
        return None
    category, keyword = hit
    return CategoryResult(
        category, GENERAL_KEYWORD_CONFIDENCE, f'Keyword match: "{keyword}"', "keyword_table"
    )


def weak_default_rule(ctx: CategoryContext) -> Optional[CategoryResult]:
    buckets = [
        (ctx.history_by_category.get(c, 0), c)
        for c in recurring_categories()
        if ctx.history_by_category.get(c, 0) >= ctx.weak_default_min_history
    ]
    if not buckets:
        return None
    count, category = max(buckets, key=lambda item: item[0])
    return CategoryResult(
        category,
        WEAK_DEFAULT_CONFIDENCE,
        f"Owner has {count} past {category.value} transactions",
        "weak_default",
    )


def unclassified_rule(ctx: CategoryContext) -> CategoryResult:
    return CategoryResult(
        Category.OTHER, UNCLASSIFIED_CONFIDENCE, "No classification signal", "default"
    )


CATEGORY_RULES: tuple[Rule[CategoryContext, CategoryResult], ...] = (
    Rule("one_time_keyword", one_time_keyword_rule),
    Rule("recurring_keyword", recurring_keyword_rule),
    Rule("vendor_mapping", vendor_mapping_rule),
    Rule("pattern_mapping", pattern_mapping_rule),
    Rule("historical_similarity", historical_similarity_rule),
    Rule("general_keyword", general_keyword_rule),
    Rule("weak_default", weak_default_rule),
    Rule("unclassified", unclassified_rule),
)


# Expense-type rules


def one_time_expense_rule(ctx: ExpenseContext) -> Optional[ExpenseResult]:
    hit = find_one_time_keyword(ctx.description)
    if hit is None:
        return None
    return ExpenseResult(
        ExpenseType.ONE_TIME,
        ConfidenceLevel.HIGH,
        f'Contains one-time keyword: "{hit[0]}"',
        source="keyword",
    )


def recurring_expense_rule(ctx: ExpenseContext) -> Optional[ExpenseResult]:
    hit = find_recurring_keyword(ctx.description)
    if hit is None:
        return None
    keyword, frequency, _ = hit
    return ExpenseResult(
        ExpenseType.RECURRING,
        ConfidenceLevel.HIGH,
        f'Contains recurring keyword: "{keyword}"',
        frequency=frequency,
        source="keyword",
    )


def vendor_interval_rule(ctx: ExpenseContext) -> Optional[ExpenseResult]:
    pattern = ctx.vendor_pattern
    if pattern is None or ctx.vendor_occurrences < ctx.min_pattern_occurrences:
        return None
    if not pattern.is_regular or pattern.confidence == ConfidenceLevel.LOW:
        return None
    return ExpenseResult(
        ExpenseType.RECURRING,
        pattern.confidence,
        f"Vendor appears {ctx.vendor_occurrences + 1} times with regular "
        f"{pattern.frequency.value} pattern",
        frequency=pattern.frequency,
    )


def large_amount_rule(ctx: ExpenseContext) -> Optional[ExpenseResult]:
    average = ctx.average_monthly_spend
    if average <= 0 or ctx.amount <= average * LARGE_AMOUNT_FACTOR:
        return None
    return ExpenseResult(
        ExpenseType.ONE_TIME,
        ConfidenceLevel.MEDIUM,
        f"Large amount ({ctx.amount}) relative to average monthly spend ({average:.2f})",
    )


def category_hint_rule(ctx: ExpenseContext) -> Optional[ExpenseResult]:
    if not ctx.category.is_recurring_hint or ctx.history_count < ctx.weak_default_min_history:
        return None
    return ExpenseResult(
        ExpenseType.RECURRING,
        ConfidenceLevel.LOW,
        f'Category "{ctx.category.value}" is typically recurring (no pattern detected yet)',
        frequency=ctx.category.default_frequency or Frequency.MONTHLY,
    )


def one_time_default_rule(ctx: ExpenseContext) -> ExpenseResult:
    return ExpenseResult(
        ExpenseType.ONE_TIME,
        ConfidenceLevel.LOW,
        "No recurring patterns detected, defaulting to one-time",
    )


EXPENSE_RULES: tuple[Rule[ExpenseContext, ExpenseResult], ...] = (
    Rule("one_time_keyword", one_time_expense_rule),
    Rule("recurring_keyword", recurring_expense_rule),
    Rule("vendor_interval", vendor_interval_rule),
    Rule("large_amount", large_amount_rule),
    Rule("category_hint", category_hint_rule),
    Rule("default", one_time_default_rule),
)
