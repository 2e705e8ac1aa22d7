"""
Statement ingestion.

Normalizer → Resolver → Builder:
- normalize_statement: raw bytes/text → raw rows + per-line parse errors
- resolve_columns: headers → semantic field mapping
- TransactionBuilder: rows → canonical Transactions + skip tally

parse_statement runs all three and never raises for row-level problems.
"""

from dataclasses import dataclass, field

from ..config import IngestConfig
from ..schemas.transaction import Transaction
from .builder import BuildResult, SkipReason, TransactionBuilder, signed_amount
from .dates import parse_statement_date
from .normalizer import (
    NormalizedStatement,
    ParseError,
    RawRow,
    StatementFormat,
    normalize_statement,
)
from .resolver import ColumnMapping, ResolvedFields, parse_money, resolve_columns


@dataclass
class ParseResult:
    """Outcome of parsing one statement."""

    transactions: list[Transaction] = field(default_factory=list)
    skipped: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)
    errors: list[ParseError] = field(default_factory=list)
    mapping: ColumnMapping | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "transactions": [t.to_dict() for t in self.transactions],
            "skipped": self.skipped,
            "skip_reasons": self.skip_reasons,
            "errors": [e.to_dict() for e in self.errors],
            "mapping": self.mapping.to_dict() if self.mapping else None,
        }


def parse_statement(
    data: bytes | str,
    fmt: StatementFormat | str,
    owner_id: str,
    config: IngestConfig | None = None,
) -> ParseResult:
    """
    Parse a raw statement into canonical transactions.

    Args:
        data: Raw statement bytes or text
        fmt: Format hint ("delimited" or "document")
        owner_id: Owning business id
        config: Ingestion settings

    Returns:
        ParseResult with transactions, skipped count and per-line errors
    """
    statement = normalize_statement(data, fmt)
    mapping = resolve_columns(statement)
    built = TransactionBuilder(config).build(statement, mapping, owner_id)

    return ParseResult(
        transactions=built.transactions,
        skipped=built.skipped,
        skip_reasons=dict(built.skip_reasons),
        errors=list(statement.errors),
        mapping=mapping,
    )


__all__ = [
    "BuildResult",
    "ColumnMapping",
    "NormalizedStatement",
    "ParseError",
    "ParseResult",
    "RawRow",
    "ResolvedFields",
    "SkipReason",
    "StatementFormat",
    "TransactionBuilder",
    "normalize_statement",
    "parse_money",
    "parse_statement",
    "parse_statement_date",
    "resolve_columns",
    "signed_amount",
]
