"""
CLI runner module.

Provides commands:
- init: Write a default config file
- ingest: Parse, classify, store and reconcile a statement
- parse: Dry parse to JSON
- review: Work the review queue
- three-way: PO / goods receipt / bill match
- learned: Inspect or rebuild learned mappings
- status: Pipeline and owner status
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
