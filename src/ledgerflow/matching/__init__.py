"""
Matching module.

- engine: transaction ↔ receivable/payable scoring and match decision
- three_way: purchase order / goods receipt / bill comparison
"""

from .engine import (
    CandidateMatch,
    MatchDecision,
    MatchingEngine,
    MatchOutcome,
    MatchScore,
    kind_for,
    reference_in_description,
)
from .three_way import (
    Discrepancy,
    DiscrepancyType,
    ThreeWayResult,
    ThreeWayStatus,
    find_discrepancies,
    match_status,
    three_way_match,
)

__all__ = [
    "CandidateMatch",
    "Discrepancy",
    "DiscrepancyType",
    "MatchDecision",
    "MatchOutcome",
    "MatchScore",
    "MatchingEngine",
    "ThreeWayResult",
    "ThreeWayStatus",
    "find_discrepancies",
    "kind_for",
    "match_status",
    "reference_in_description",
    "three_way_match",
]
