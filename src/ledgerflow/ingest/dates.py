"""Statement date parsing.

Formats are tried in order:
1. D/M/YYYY (also with - or . separators; 2-digit years are 20YY)
2. YYYY/M/D (also with - or . separators)
3. D Mon YYYY (3-letter month names, longer names accepted)
4. Generic fallback parse, accepted only within the configured year range
"""

import re
from datetime import date

from dateutil import parser as date_parser

DAY_FIRST = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})(?!\d)")
YEAR_FIRST = re.compile(r"^(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})(?!\d)")
DAY_MONTH_NAME = re.compile(
    r"^(\d{1,2})[\s\-]+(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*[\s\-,]+(\d{4})",
    re.IGNORECASE,
)

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_statement_date(
    value: str | None,
    min_year: int = 2000,
    max_year: int = 2030,
) -> date | None:
    """Parse a statement date.

    Args:
        value: Raw date text
        min_year: Lowest year accepted from the generic fallback
        max_year: Highest year accepted from the generic fallback

    Returns:
        Parsed date, or None if the text is not a usable date
    """
    if not value:
        return None
    text = value.strip()
    if not text:
        return None

    # An impossible day/month falls through to the generic parser
    m = DAY_FIRST.match(text)
    if m:
        year = int(m.group(3))
        if year < 100:
            year += 2000
        parsed_date = _safe_date(year, int(m.group(2)), int(m.group(1)))
        if parsed_date:
            return parsed_date

    m = YEAR_FIRST.match(text)
    if m:
        parsed_date = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if parsed_date:
            return parsed_date

    m = DAY_MONTH_NAME.match(text)
    if m:
        parsed_date = _safe_date(int(m.group(3)), MONTHS[m.group(2).lower()], int(m.group(1)))
        if parsed_date:
            return parsed_date

    # Pure numbers are amounts or references, never dates
    if re.fullmatch(r"[\d.,\s]+", text):
        return None

    try:
        parsed = date_parser.parse(text, dayfirst=True, fuzzy=False)
    except (ValueError, OverflowError):
        return None

    if not min_year <= parsed.year <= max_year:
        return None
    return parsed.date()
