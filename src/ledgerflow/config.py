"""
Configuration management (SSOT).

This module defines ALL configuration for the ledgerflow pipeline.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- The auto-approval threshold is a configuration value, never hardcoded logic
- Amount tolerance and tie epsilon bound reconciliation decisions
- Historical lookups are capped to keep classification cost bounded
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class ReviewConfig:
    """Review queue settings."""

    # Confidence strictly below this routes a transaction to review
    auto_approve_threshold: int = 80
    # Also flag transactions for which no receivable/payable matched
    flag_unmatched: bool = False
    # Default reviewer recorded when none is given
    default_reviewer: str = "system"


@dataclass
class ClassificationConfig:
    """Classifier and learning store settings."""

    # Max prior transactions loaded per owner for pattern/interval analysis
    history_limit: int = 500
    # Max candidates consulted by the historical similarity signal
    similarity_candidates: int = 50
    # Minimum similar transactions before history is trusted
    min_similar_transactions: int = 3
    # Minimum history in a recurring bucket before the weak default fires
    weak_default_min_history: int = 5
    # Max learned-mapping lookups kept in the shared in-process cache
    mapping_cache_size: int = 4096


@dataclass
class ReconciliationConfig:
    """Reconciliation settings."""

    # Absolute tolerance between balance and transaction amount (currency units)
    amount_tolerance: float = 1.0
    # Two candidate scores closer than this are considered tied
    tie_epsilon: float = 0.01
    # Minimum name similarity before a counterparty counts as matching
    name_similarity_threshold: float = 0.6
    # Three-way match: amount discrepancy tolerance (currency units)
    three_way_amount_tolerance: float = 1.0
    # Three-way match: fraction of PO total above which status is "discrepancy"
    three_way_discrepancy_ratio: float = 0.05


@dataclass
class IngestConfig:
    """Statement ingestion settings."""

    # Skip transactions already stored for the same owner/date/amount/description
    dedupe: bool = True
    # Placeholder used when a row has no description
    placeholder_description: str = "Transaction"
    # Placeholder used for document-extracted lines without a description
    document_placeholder_description: str = "PDF Transaction"
    # Generic date fallback is only trusted within this year range
    min_year: int = 2000
    max_year: int = 2030


@dataclass
class BalanceConfig:
    """Cash balance and runway settings."""

    # Trailing window used for burn/revenue averages
    burn_window_months: int = 3


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    review: ReviewConfig = field(default_factory=ReviewConfig)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    balance: BalanceConfig = field(default_factory=BalanceConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/ledgerflow.db"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not 0 <= self.review.auto_approve_threshold <= 100:
            errors.append("review.auto_approve_threshold must be between 0 and 100")

        if self.reconciliation.amount_tolerance < 0:
            errors.append("reconciliation.amount_tolerance must be >= 0")
        if self.reconciliation.tie_epsilon < 0:
            errors.append("reconciliation.tie_epsilon must be >= 0")
        if not 0 <= self.reconciliation.name_similarity_threshold <= 1:
            errors.append("reconciliation.name_similarity_threshold must be between 0 and 1")

        if self.classification.history_limit < 1:
            errors.append("classification.history_limit must be >= 1")
        if self.classification.min_similar_transactions < 1:
            errors.append("classification.min_similar_transactions must be >= 1")
        if self.classification.mapping_cache_size < 1:
            errors.append("classification.mapping_cache_size must be >= 1")

        if self.ingest.min_year > self.ingest.max_year:
            errors.append("ingest.min_year must be <= ingest.max_year")

        if self.balance.burn_window_months < 1:
            errors.append("balance.burn_window_months must be >= 1")

        return errors


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return default


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - LEDGERFLOW_DB_PATH
    - LEDGERFLOW_AUTO_APPROVE_THRESHOLD
    - LEDGERFLOW_AMOUNT_TOLERANCE
    - LEDGERFLOW_TIE_EPSILON
    - LEDGERFLOW_DEDUPE (true/false)

    Raises:
        ConfigValidationError: If the resulting configuration is invalid
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Review config
    review_data = data.get("review", {})
    threshold_env = os.environ.get("LEDGERFLOW_AUTO_APPROVE_THRESHOLD", "")
    threshold = review_data.get("auto_approve_threshold", 80)
    if threshold_env:
        try:
            threshold = int(threshold_env)
        except ValueError:
            raise ConfigValidationError(
                f"LEDGERFLOW_AUTO_APPROVE_THRESHOLD must be an integer, got {threshold_env!r}"
            )

    review = ReviewConfig(
        auto_approve_threshold=threshold,
        flag_unmatched=review_data.get("flag_unmatched", False),
        default_reviewer=review_data.get("default_reviewer", "system"),
    )

    # Classification config
    class_data = data.get("classification", {})
    classification = ClassificationConfig(
        history_limit=class_data.get("history_limit", 500),
        similarity_candidates=class_data.get("similarity_candidates", 50),
        min_similar_transactions=class_data.get("min_similar_transactions", 3),
        weak_default_min_history=class_data.get("weak_default_min_history", 5),
        mapping_cache_size=class_data.get("mapping_cache_size", 4096),
    )

    # Reconciliation config
    recon_data = data.get("reconciliation", {})
    reconciliation = ReconciliationConfig(
        amount_tolerance=float(os.environ.get(
            "LEDGERFLOW_AMOUNT_TOLERANCE", recon_data.get("amount_tolerance", 1.0)
        )),
        tie_epsilon=float(os.environ.get(
            "LEDGERFLOW_TIE_EPSILON", recon_data.get("tie_epsilon", 0.01)
        )),
        name_similarity_threshold=recon_data.get("name_similarity_threshold", 0.6),
        three_way_amount_tolerance=recon_data.get("three_way_amount_tolerance", 1.0),
        three_way_discrepancy_ratio=recon_data.get("three_way_discrepancy_ratio", 0.05),
    )

    # Ingest config
    ingest_data = data.get("ingest", {})
    ingest = IngestConfig(
        dedupe=_env_bool("LEDGERFLOW_DEDUPE", ingest_data.get("dedupe", True)),
        placeholder_description=ingest_data.get("placeholder_description", "Transaction"),
        document_placeholder_description=ingest_data.get(
            "document_placeholder_description", "PDF Transaction"
        ),
        min_year=ingest_data.get("min_year", 2000),
        max_year=ingest_data.get("max_year", 2030),
    )

    # Balance config
    balance_data = data.get("balance", {})
    balance = BalanceConfig(
        burn_window_months=balance_data.get("burn_window_months", 3),
    )

    # State DB
    state_db = os.environ.get(
        "LEDGERFLOW_DB_PATH", data.get("state_db_path", "data/ledgerflow.db")
    )

    config = Config(
        review=review,
        classification=classification,
        reconciliation=reconciliation,
        ingest=ingest,
        balance=balance,
        state_db_path=Path(state_db),
    )

    errors = config.validate()
    if errors:
        raise ConfigValidationError("; ".join(errors))

    return config


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# ledgerflow configuration
#
# Environment overrides:
#   LEDGERFLOW_DB_PATH, LEDGERFLOW_AUTO_APPROVE_THRESHOLD,
#   LEDGERFLOW_AMOUNT_TOLERANCE, LEDGERFLOW_TIE_EPSILON, LEDGERFLOW_DEDUPE

# Review queue
review:
  auto_approve_threshold: 80               # Below this confidence: needs review
  flag_unmatched: false                    # Route unmatched transactions to review
  default_reviewer: "system"

# Classifier / learning store
classification:
  history_limit: 500                       # Prior transactions loaded per owner
  similarity_candidates: 50                # Cap for historical similarity lookups
  min_similar_transactions: 3
  weak_default_min_history: 5
  mapping_cache_size: 4096                 # Shared learned-mapping cache entries

# Reconciliation
reconciliation:
  amount_tolerance: 1.0                    # Balance vs. amount tolerance
  tie_epsilon: 0.01                        # Scores closer than this are tied
  name_similarity_threshold: 0.6
  three_way_amount_tolerance: 1.0
  three_way_discrepancy_ratio: 0.05

# Statement ingestion
ingest:
  dedupe: true                             # Skip already-stored transactions
  placeholder_description: "Transaction"
  document_placeholder_description: "PDF Transaction"
  min_year: 2000
  max_year: 2030

# Cash balance / runway
balance:
  burn_window_months: 3

# State database path
state_db_path: "data/ledgerflow.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
