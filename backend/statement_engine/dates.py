"""
Module: dates.py
Description: Statement date parsing shared by the classifier, profile builder
and detectors.

Author: Statement Engine Team
"""

from datetime import datetime
from typing import Optional


class DateParseError(ValueError):
    """Exception for dates that match none of the known statement layouts."""

    def __init__(self, value: str, formats: list = None):
        super().__init__(f"Unparseable statement date: {value!r}")
        self.value = value
        self.formats = formats or []


# Order matters: DD/MM wins over MM/DD for ambiguous values.
DATE_FORMATS = [
    "%d/%m/%Y",
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%m/%d/%Y",
    "%d/%m/%y",
    "%d-%m-%y",
]


def try_parse_date(value: str) -> Optional[datetime]:
    """Return the parsed date, or None if no layout matches."""
    if not value:
        return None
    text = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_date_strict(value: str) -> datetime:
    parsed = try_parse_date(value)
    if parsed is None:
        raise DateParseError(value, DATE_FORMATS)
    return parsed


def parse_date(value: str, now: Optional[datetime] = None) -> tuple[datetime, bool]:
    """
    Lenient parse used where a timestamp is always needed.

    Returns:
        Tuple of (timestamp, parsed_ok). Unparseable input yields "now" and False.
    """
    parsed = try_parse_date(value)
    if parsed is None:
        return (now or datetime.now()), False
    return parsed, True
