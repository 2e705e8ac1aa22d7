"""
Classification module.

Category and expense-type cascades:
- keywords: keyword tables (one-time, recurring, category, transfer)
- patterns: interval regularity, average spend, subscription detection
- rules: ordered pure rules and the cascade evaluator
- classifier: Classifier wiring history + learned mappings into the cascades
"""

from .classifier import Classifier
from .patterns import (
    IntervalPattern,
    SubscriptionInfo,
    analyze_intervals,
    average_monthly_spend,
    detect_subscription,
    same_vendor_transactions,
)
from .rules import (
    CATEGORY_RULES,
    EXPENSE_RULES,
    CategoryContext,
    CategoryResult,
    ExpenseContext,
    ExpenseResult,
    LearnedMapping,
    Rule,
    evaluate,
)

__all__ = [
    "CATEGORY_RULES",
    "EXPENSE_RULES",
    "CategoryContext",
    "CategoryResult",
    "Classifier",
    "ExpenseContext",
    "ExpenseResult",
    "IntervalPattern",
    "LearnedMapping",
    "Rule",
    "SubscriptionInfo",
    "analyze_intervals",
    "average_monthly_spend",
    "detect_subscription",
    "evaluate",
    "same_vendor_transactions",
]
