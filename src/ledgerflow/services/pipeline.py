"""Statement pipeline.

One statement upload, one synchronous run:

    parse → dedupe → classify → persist → reconcile

Row-level problems never abort the run; they are counted and reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..classification import Classifier
from ..ingest import ParseError, StatementFormat, parse_statement
from ..matching.engine import MatchOutcome
from ..schemas.transaction import Transaction
from .reconciliation import ReconciliationService

if TYPE_CHECKING:
    from ..config import Config
    from ..state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Counts and records produced by one pipeline run."""

    owner_id: str
    parsed: int = 0
    duplicates: int = 0
    skipped: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)
    parse_errors: list[ParseError] = field(default_factory=list)
    auto_approved: int = 0
    needs_review: int = 0
    matched: int = 0
    transactions: list[Transaction] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Return True if every built transaction was stored and reconciled."""
        return not self.errors

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "owner_id": self.owner_id,
            "parsed": self.parsed,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "skip_reasons": self.skip_reasons,
            "parse_errors": [e.to_dict() for e in self.parse_errors],
            "auto_approved": self.auto_approved,
            "needs_review": self.needs_review,
            "matched": self.matched,
            "transaction_ids": [t.id for t in self.transactions],
            "errors": self.errors,
        }


class StatementPipeline:
    """
    Runs a raw statement through ingestion, classification and reconciliation.

    Usage:
        pipeline = StatementPipeline(store, config)
        result = pipeline.run(raw_bytes, "delimited", "acme")
    """

    def __init__(
        self,
        state_store: StateStore,
        config: Config,
        classifier: Classifier | None = None,
        reconciler: ReconciliationService | None = None,
    ) -> None:
        self.store = state_store
        self.config = config
        self.classifier = classifier or Classifier(state_store, config=config)
        self.reconciler = reconciler or ReconciliationService(state_store, config)

    def run(
        self,
        data: bytes | str,
        fmt: StatementFormat | str,
        owner_id: str,
    ) -> PipelineResult:
        """
        Process one statement for an owner.

        Args:
            data: Raw statement bytes or text
            fmt: Format hint ("delimited" or "document")
            owner_id: Owning business id

        Returns:
            PipelineResult with per-stage counts
        """
        parsed = parse_statement(data, fmt, owner_id, self.config.ingest)
        result = PipelineResult(
            owner_id=owner_id,
            parsed=len(parsed.transactions),
            skipped=parsed.skipped,
            skip_reasons=parsed.skip_reasons,
            parse_errors=parsed.errors,
        )
        for error in parsed.errors:
            logger.debug("Line %d not parsed: %s", error.line, error.reason)

        if self.store.get_owner(owner_id) is None:
            self.store.upsert_owner(owner_id)

        dedupe = self.config.ingest.dedupe
        seen = self.store.get_fingerprints(owner_id) if dedupe else set()

        for txn in parsed.transactions:
            if dedupe and txn.fingerprint in seen:
                result.duplicates += 1
                logger.debug("Skipping duplicate %s %s %r", txn.date, txn.amount, txn.description)
                continue
            seen.add(txn.fingerprint)

            self.classifier.classify(txn, owner_id)
            self.store.save_transaction(txn)

            outcome = self.reconciler.reconcile(txn)
            result.errors.extend(f"Transaction {txn.id}: {e}" for e in outcome.errors)
            if outcome.outcome == MatchOutcome.MATCHED:
                result.matched += 1

            if txn.needs_review:
                result.needs_review += 1
            else:
                result.auto_approved += 1
            result.transactions.append(txn)

        logger.info(
            "Pipeline for %s: %d parsed, %d duplicates, %d skipped, %d errors, "
            "%d auto-approved, %d to review, %d matched",
            owner_id,
            result.parsed,
            result.duplicates,
            result.skipped,
            len(result.parse_errors),
            result.auto_approved,
            result.needs_review,
            result.matched,
        )
        return result
