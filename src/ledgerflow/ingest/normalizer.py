"""
Statement normalizer.

Turns raw statement bytes/text into an ordered sequence of raw rows.

Two input shapes are supported:
- DELIMITED: a header line followed by delimited records (CSV, TSV, ...)
- DOCUMENT: line-oriented text extracted from a PDF or similar document

A malformed delimited line never aborts the statement. It becomes a
ParseError (line number + reason) and is excluded from the rows.
"""

import csv
import logging
import re
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

BOM = "\ufeff"

# Candidate delimiters, in preference order when sniffing is inconclusive
DELIMITERS = ",;\t|"

# Leading date-like token of a document line
DOCUMENT_DATE_TOKEN = re.compile(
    r"^\s*("
    r"\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}"
    r"|\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2}"
    r"|\d{1,2}[\s\-](?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*[\s\-,]+\d{2,4}"
    r")",
    re.IGNORECASE,
)

# Lines of extracted documents shorter than this are layout noise
MIN_DOCUMENT_LINE_LENGTH = 6


class StatementFormat(str, Enum):
    """Format hint supplied with a raw statement."""

    DELIMITED = "delimited"
    DOCUMENT = "document"


@dataclass
class ParseError:
    """A statement line that could not be turned into a row."""

    line: int  # 1-based physical line number
    reason: str

    def to_dict(self) -> dict:
        return {"line": self.line, "reason": self.reason}


@dataclass
class RawRow:
    """One raw row: header label (or position) → raw string value."""

    line: int
    values: dict[str | int, str]

    def get(self, key: str | int | None) -> str:
        if key is None:
            return ""
        return self.values.get(key, "") or ""


@dataclass
class NormalizedStatement:
    """Rows recovered from a statement plus per-line errors."""

    format: StatementFormat
    headers: list[str] = field(default_factory=list)
    rows: list[RawRow] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)


def decode_statement(data: bytes | str) -> str:
    """Decode raw statement bytes and strip a leading byte-order mark."""
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError:
            logger.debug("Statement is not valid UTF-8, falling back to latin-1")
            text = data.decode("latin-1")
    else:
        text = data

    if text.startswith(BOM):
        text = text[len(BOM):]
    return text


def sniff_delimiter(sample: str) -> str:
    """Detect the delimiter of a delimited statement (default: comma)."""
    try:
        return csv.Sniffer().sniff(sample, delimiters=DELIMITERS).delimiter
    except csv.Error:
        # Inconsistent field counts defeat the sniffer; count on the header line
        header = sample.splitlines()[0] if sample else ""
        best = max(DELIMITERS, key=header.count)
        return best if header.count(best) else ","


def normalize_statement(
    data: bytes | str,
    fmt: StatementFormat | str = StatementFormat.DELIMITED,
) -> NormalizedStatement:
    """
    Normalize a raw statement into rows.

    Args:
        data: Raw statement bytes or text
        fmt: Format hint

    Returns:
        NormalizedStatement with rows and per-line errors
    """
    fmt = StatementFormat(fmt)
    text = decode_statement(data)

    if fmt == StatementFormat.DOCUMENT:
        return _normalize_document(text)
    return _normalize_delimited(text)


def _normalize_delimited(text: str) -> NormalizedStatement:
    result = NormalizedStatement(format=StatementFormat.DELIMITED)

    lines = text.splitlines()
    numbered = [(i + 1, line) for i, line in enumerate(lines) if line.strip()]
    if not numbered:
        logger.warning("Delimited statement contains no data")
        return result

    header_line_no, header_line = numbered[0]
    delimiter = sniff_delimiter("\n".join(line for _, line in numbered[:20]))

    try:
        raw_headers = next(csv.reader([header_line], delimiter=delimiter, strict=True))
    except csv.Error as e:
        result.errors.append(ParseError(line=header_line_no, reason=f"Malformed header: {e}"))
        return result

    headers = [h.strip() for h in raw_headers]
    # Blank header cells still need a unique label
    headers = [h or f"column_{i + 1}" for i, h in enumerate(headers)]
    result.headers = headers

    for line_no, line in numbered[1:]:
        try:
            fields = next(csv.reader([line], delimiter=delimiter, strict=True))
        except csv.Error as e:
            logger.debug("Line %d: malformed record (%s)", line_no, e)
            result.errors.append(ParseError(line=line_no, reason=f"Malformed record: {e}"))
            continue

        if len(fields) > len(headers):
            # Trailing empty cells are a common exporter artefact
            while len(fields) > len(headers) and not fields[-1].strip():
                fields.pop()
        if len(fields) > len(headers):
            result.errors.append(
                ParseError(
                    line=line_no,
                    reason=f"Expected {len(headers)} fields, got {len(fields)}",
                )
            )
            continue

        fields = fields + [""] * (len(headers) - len(fields))
        values: dict[str | int, str] = {h: v.strip() for h, v in zip(headers, fields)}
        if not any(values.values()):
            continue
        result.rows.append(RawRow(line=line_no, values=values))

    logger.info(
        "Normalized delimited statement: %d rows, %d errors, delimiter=%r",
        len(result.rows),
        len(result.errors),
        delimiter,
    )
    return result


def is_document_header(line: str) -> bool:
    """Check whether an extracted document line is a table header or balance line."""
    lower = line.lower()
    return (
        ("date" in lower and "description" in lower)
        or "particulars" in lower
        or "opening balance" in lower
        or "closing balance" in lower
    )


def _normalize_document(text: str) -> NormalizedStatement:
    result = NormalizedStatement(format=StatementFormat.DOCUMENT)

    for i, raw_line in enumerate(text.splitlines()):
        line = raw_line.strip()
        if len(line) < MIN_DOCUMENT_LINE_LENGTH or is_document_header(line):
            continue

        match = DOCUMENT_DATE_TOKEN.match(line)
        if not match:
            continue

        result.rows.append(
            RawRow(
                line=i + 1,
                values={0: match.group(1).strip(), 1: line[match.end():].strip()},
            )
        )

    logger.info("Normalized document statement: %d candidate lines", len(result.rows))
    return result
