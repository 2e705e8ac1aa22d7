"""Services that orchestrate the core components."""

from .balance_sync import BalanceSynchronizer, BurnMetrics, compute_burn
from .pipeline import PipelineResult, StatementPipeline
from .reconciliation import ReconcileOutcome, ReconciliationService, settlement_delta

__all__ = [
    "BalanceSynchronizer",
    "BurnMetrics",
    "PipelineResult",
    "ReconcileOutcome",
    "ReconciliationService",
    "StatementPipeline",
    "compute_burn",
    "settlement_delta",
]
