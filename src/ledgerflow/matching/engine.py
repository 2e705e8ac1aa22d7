"""Matching engine for correlating bank transactions with open receivables/payables.

Scores every open obligation of the right kind against a transaction and
decides between a single committed match, an ambiguous tie (review) and no
match. The engine is pure: loading candidates and committing settlements is
the reconciliation service's job.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from ..config import ReconciliationConfig
from ..schemas.normalize import name_similarity
from ..schemas.transaction import Obligation, ObligationKind, Transaction

logger = logging.getLogger(__name__)

# Reference tokens in payment descriptions ("INV-1042", "BILL #77", "#204311")
_REFERENCE_PATTERNS = (
    re.compile(r"INV(?:OICE)?\s*[-#_]?\s*([A-Z0-9]+)"),
    re.compile(r"BILL\s*[-#_]?\s*([A-Z0-9]+)"),
    re.compile(r"PO\s*[-#_]?\s*(\d+)"),
    re.compile(r"#(\d{4,})"),
)


@dataclass
class MatchScore:
    """Individual signal contribution to a match score."""

    signal: str
    score: float
    weight: float
    detail: str

    @property
    def weighted_score(self) -> float:
        """Get the weighted score for this signal."""
        return self.score * self.weight


@dataclass
class CandidateMatch:
    """A scored receivable/payable candidate for one transaction."""

    obligation_id: int
    kind: ObligationKind
    total_score: float
    eligible: bool  # balance within amount tolerance of |amount|
    signals: list[MatchScore] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)

    def signal_score(self, name: str) -> float:
        return next((s.score for s in self.signals if s.signal == name), 0.0)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "obligation_id": self.obligation_id,
            "kind": self.kind.value,
            "total_score": round(self.total_score, 4),
            "eligible": self.eligible,
            "signals": [
                {
                    "signal": s.signal,
                    "score": s.score,
                    "weight": s.weight,
                    "weighted_score": s.weighted_score,
                    "detail": s.detail,
                }
                for s in self.signals
            ],
            "reasons": self.reasons,
        }


class MatchOutcome(str, Enum):
    """What the engine decided for a transaction."""

    MATCHED = "matched"
    NO_MATCH = "no_match"
    MULTIPLE_MATCHES = "multiple_matches"


@dataclass
class MatchDecision:
    outcome: MatchOutcome
    match: CandidateMatch | None = None
    candidates: list[CandidateMatch] = field(default_factory=list)

    @property
    def tied_ids(self) -> list[int]:
        if self.outcome != MatchOutcome.MULTIPLE_MATCHES:
            return []
        return [c.obligation_id for c in self.candidates if c.eligible]


def kind_for(txn: Transaction) -> ObligationKind:
    """Inflows settle receivables, outflows settle payables."""
    return ObligationKind.RECEIVABLE if txn.amount > 0 else ObligationKind.PAYABLE


def reference_in_description(description: str | None, number: str | None) -> bool:
    """Whether an invoice/bill number is referenced in a payment description."""
    if not description or not number:
        return False
    text = description.upper()
    ref = number.upper().strip()
    if ref and ref in text:
        return True

    ref_digits = re.sub(r"\D", "", ref)
    for pattern in _REFERENCE_PATTERNS:
        m = pattern.search(text)
        if not m:
            continue
        extracted = m.group(1)
        if extracted in ref:
            return True
        if ref_digits and ref_digits in extracted:
            return True
    return False


class MatchingEngine:
    """Engine for matching transactions to open receivables/payables.

    Signals:
    - Amount: outstanding balance within tolerance (exact) or within 1%
    - Reference: invoice/bill number found in the description
    - Counterparty: customer/vendor name similarity
    - Date: payment close to the due date

    Only candidates whose balance is within the amount tolerance are
    eligible for an automatic match; the other signals rank and narrow them.
    """

    # Signal weights (sum to 1.0)
    WEIGHT_AMOUNT = 0.40
    WEIGHT_REFERENCE = 0.30
    WEIGHT_COUNTERPARTY = 0.20
    WEIGHT_DATE = 0.10

    CLOSE_AMOUNT_SCORE = 0.625  # 25 of 40 points
    CLOSE_AMOUNT_RATIO = Decimal("0.01")
    DATE_PROXIMITY_DAYS = 30

    def __init__(self, config: ReconciliationConfig | None = None) -> None:
        self.config = config or ReconciliationConfig()
        self.tolerance = Decimal(str(self.config.amount_tolerance))

    def score_candidate(self, txn: Transaction, obligation: Obligation) -> CandidateMatch:
        """Score one obligation against a transaction."""
        signals = [
            self._score_amount(txn.abs_amount, obligation.balance_amount),
            self._score_reference(txn.description, obligation.number),
            self._score_counterparty(txn, obligation.counterparty),
            self._score_date(txn.date, obligation.due_date),
        ]
        reasons = [f"{s.signal} ({s.detail})" for s in signals if s.score > 0]
        eligible = abs(obligation.balance_amount - txn.abs_amount) <= self.tolerance
        return CandidateMatch(
            obligation_id=obligation.id,
            kind=obligation.kind,
            total_score=sum(s.weighted_score for s in signals),
            eligible=eligible,
            signals=signals,
            reasons=reasons,
        )

    def rank(self, txn: Transaction, obligations: list[Obligation]) -> list[CandidateMatch]:
        """Score all candidates of the transaction's kind, best first."""
        kind = kind_for(txn)
        candidates = [
            self.score_candidate(txn, o)
            for o in obligations
            if o.kind == kind and o.is_open and o.owner_id == txn.owner_id
        ]
        candidates.sort(key=lambda c: c.total_score, reverse=True)
        return candidates

    def decide(self, txn: Transaction, obligations: list[Obligation]) -> MatchDecision:
        """
        Decide the match for a transaction.

        Rules:
        - no eligible candidate: NO_MATCH
        - several eligible: keep those whose counterparty matches (if any)
        - top two within tie_epsilon: MULTIPLE_MATCHES
        - otherwise the best eligible candidate is MATCHED
        """
        candidates = self.rank(txn, obligations)
        eligible = [c for c in candidates if c.eligible]

        if not eligible:
            return MatchDecision(MatchOutcome.NO_MATCH, candidates=candidates)

        if len(eligible) > 1:
            named = [c for c in eligible if c.signal_score("counterparty") > 0]
            if named:
                eligible = named

        if len(eligible) > 1:
            top, second = eligible[0], eligible[1]
            if top.total_score - second.total_score <= self.config.tie_epsilon:
                tied = [
                    c
                    for c in eligible
                    if top.total_score - c.total_score <= self.config.tie_epsilon
                ]
                logger.info(
                    "Transaction %s ties between obligations %s",
                    txn.id,
                    [c.obligation_id for c in tied],
                )
                return MatchDecision(MatchOutcome.MULTIPLE_MATCHES, candidates=tied)

        best = eligible[0]
        return MatchDecision(MatchOutcome.MATCHED, match=best, candidates=candidates)

    def _score_amount(self, amount: Decimal, balance: Decimal | None) -> MatchScore:
        if balance is None or balance <= 0:
            return MatchScore("amount", 0.0, self.WEIGHT_AMOUNT, "no balance")

        diff = abs(amount - balance)
        if diff <= self.tolerance:
            return MatchScore("amount", 1.0, self.WEIGHT_AMOUNT, f"exact: {amount}")
        if diff / balance <= self.CLOSE_AMOUNT_RATIO:
            return MatchScore(
                "amount",
                self.CLOSE_AMOUNT_SCORE,
                self.WEIGHT_AMOUNT,
                f"~1%: {amount} vs {balance}",
            )
        return MatchScore("amount", 0.0, self.WEIGHT_AMOUNT, f"mismatch: {amount} vs {balance}")

    def _score_reference(self, description: str, number: str | None) -> MatchScore:
        if reference_in_description(description, number):
            return MatchScore("reference", 1.0, self.WEIGHT_REFERENCE, f"number {number}")
        return MatchScore("reference", 0.0, self.WEIGHT_REFERENCE, "not referenced")

    def _score_counterparty(self, txn: Transaction, counterparty: str | None) -> MatchScore:
        if not counterparty:
            return MatchScore("counterparty", 0.0, self.WEIGHT_COUNTERPARTY, "missing")

        similarity = max(
            name_similarity(txn.description, counterparty),
            name_similarity(txn.vendor_name, counterparty),
        )
        if similarity > self.config.name_similarity_threshold:
            return MatchScore(
                "counterparty",
                similarity,
                self.WEIGHT_COUNTERPARTY,
                f"{counterparty} ({similarity:.0%})",
            )
        return MatchScore("counterparty", 0.0, self.WEIGHT_COUNTERPARTY, f"{similarity:.0%}")

    def _score_date(self, txn_date: str, due_date: str | None) -> MatchScore:
        if not due_date:
            return MatchScore("date", 0.0, self.WEIGHT_DATE, "no due date")

        days = abs((date.fromisoformat(txn_date) - date.fromisoformat(due_date[:10])).days)
        if days <= self.DATE_PROXIMITY_DAYS:
            return MatchScore(
                "date",
                1.0 - days / self.DATE_PROXIMITY_DAYS,
                self.WEIGHT_DATE,
                f"{days} days from due date",
            )
        return MatchScore("date", 0.0, self.WEIGHT_DATE, f"{days} days from due date")
