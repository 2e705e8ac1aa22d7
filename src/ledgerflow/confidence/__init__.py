"""
Confidence scoring module.

Maps classification outcomes onto a 0-100 scale.
Determines review routing based on thresholds.
"""

from .scorer import ConfidenceScorer, ReviewDecision, ReviewThresholds

__all__ = [
    "ConfidenceScorer",
    "ReviewDecision",
    "ReviewThresholds",
]
