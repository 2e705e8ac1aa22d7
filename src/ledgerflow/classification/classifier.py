"""
Transaction classifier.

Assigns {category, confidence} and {expense type, frequency, level} to a
transaction by running the category and expense-type cascades over the
owner's history and learned mappings, then decides review routing.
"""

import logging
from collections import Counter
from typing import Optional

from ..config import Config
from ..confidence import ConfidenceScorer
from ..learning import LearningStore
from ..schemas.normalize import extract_vendor_name
from ..schemas.transaction import Transaction, TransactionType
from ..state_store import MappingRecord, StateStore
from .keywords import is_transfer
from .patterns import analyze_intervals, average_monthly_spend, same_vendor_transactions
from .rules import (
    CATEGORY_RULES,
    EXPENSE_RULES,
    CategoryContext,
    CategoryResult,
    ExpenseContext,
    ExpenseResult,
    LearnedMapping,
    evaluate,
)

logger = logging.getLogger(__name__)


def _as_learned(record: Optional[MappingRecord]) -> Optional[LearnedMapping]:
    if record is None:
        return None
    return LearnedMapping(key=record.key, category=record.category, confidence=record.confidence)


class Classifier:
    """
    Classifies transactions for an owner.

    Usage:
        classifier = Classifier(store, config=config)
        txn = classifier.classify(txn, "acme")
    """

    def __init__(
        self,
        store: StateStore,
        learning: Optional[LearningStore] = None,
        config: Optional[Config] = None,
        scorer: Optional[ConfidenceScorer] = None,
    ):
        self.store = store
        self.config = config or Config()
        self.learning = learning or LearningStore(store, self.config.classification)
        self.scorer = scorer or ConfidenceScorer.from_config(self.config)

    def history(self, owner_id: str, exclude_id: int | None = None) -> list[Transaction]:
        """Owner's prior transactions, capped by classification.history_limit."""
        return self.store.get_transactions(
            owner_id,
            limit=self.config.classification.history_limit,
            exclude_id=exclude_id,
        )

    def category_context(
        self, txn: Transaction, owner_id: str, history: list[Transaction]
    ) -> CategoryContext:
        description = txn.description
        return CategoryContext(
            description=description,
            vendor_key=self.learning.vendor_key(description, txn.vendor_name),
            pattern_key=self.learning.pattern_key(description),
            vendor_mapping=_as_learned(
                self.learning.vendor_mapping(owner_id, description, txn.vendor_name)
            ),
            pattern_mapping=_as_learned(self.learning.pattern_mapping(owner_id, description)),
            similarity=self.learning.similar_category(owner_id, description, exclude_id=txn.id),
            history_by_category=dict(Counter(t.category for t in history)),
            weak_default_min_history=self.config.classification.weak_default_min_history,
        )

    def expense_context(
        self, txn: Transaction, category_result: CategoryResult, history: list[Transaction]
    ) -> ExpenseContext:
        same_vendor = same_vendor_transactions(txn.description, txn.amount, history)
        return ExpenseContext(
            description=txn.description,
            amount=txn.abs_amount,
            category=category_result.category,
            vendor_pattern=analyze_intervals(t.date for t in same_vendor) if same_vendor else None,
            vendor_occurrences=len(same_vendor),
            average_monthly_spend=average_monthly_spend(history),
            history_count=len(history),
            weak_default_min_history=self.config.classification.weak_default_min_history,
        )

    def classify(self, txn: Transaction, owner_id: str | None = None) -> Transaction:
        """
        Classify a transaction in place.

        Args:
            txn: Transaction to classify
            owner_id: Owner whose history and mappings apply (defaults to txn.owner_id)

        Returns:
            The same transaction with classification and review fields set
        """
        owner_id = owner_id or txn.owner_id
        history = self.history(owner_id, exclude_id=txn.id)

        category_rule, category_result = evaluate(
            CATEGORY_RULES, self.category_context(txn, owner_id, history)
        )
        expense_rule, expense_result = evaluate(
            EXPENSE_RULES, self.expense_context(txn, category_result, history)
        )
        self._apply(txn, category_result, expense_result)

        logger.debug(
            "Classified %r as %s (%d, %s) / %s (%s)",
            txn.description,
            txn.category.value,
            txn.confidence,
            category_rule,
            txn.expense_type.value,
            expense_rule,
        )
        return txn

    def _apply(
        self,
        txn: Transaction,
        category_result: CategoryResult,
        expense_result: ExpenseResult,
    ) -> None:
        txn.category = category_result.category
        txn.confidence = category_result.confidence
        txn.classification_reason = category_result.reason
        txn.classification_source = category_result.source

        txn.expense_type = expense_result.expense_type
        txn.frequency = expense_result.frequency
        txn.expense_confidence = expense_result.confidence
        txn.expense_score = self.scorer.expense_score(
            expense_result.confidence, expense_result.source
        )
        txn.expense_reason = expense_result.reason

        if not txn.vendor_name and not self.scorer.is_unclear_description(txn.description):
            txn.vendor_name = extract_vendor_name(txn.description) or None

        if not txn.is_matched:
            if is_transfer(txn.description):
                txn.transaction_type = TransactionType.TRANSFER
            else:
                txn.transaction_type = (
                    TransactionType.REVENUE if txn.is_inflow else TransactionType.EXPENSE
                )

        self.scorer.apply(txn)
