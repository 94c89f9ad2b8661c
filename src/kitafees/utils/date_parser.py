"""Date parsing utilities."""

from datetime import date, datetime
from typing import Iterator

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta


def parse_german_date(date_str: str) -> date:
    """Parse a strict DD.MM.YYYY date as used in bank exports.

    Raises:
        ValueError: If the string is not a valid DD.MM.YYYY date
    """
    if not date_str or not date_str.strip():
        raise ValueError("Empty date string")
    try:
        return datetime.strptime(date_str.strip(), "%d.%m.%Y").date()
    except ValueError:
        raise ValueError(f"Could not parse date '{date_str}'") from None


def parse_date(date_str: str) -> date:
    """Parse a date given on the command line.

    Accepts DD.MM.YYYY, ISO dates and "today".

    Raises:
        ValueError: If date string cannot be parsed
    """
    text = date_str.strip().lower()
    if text == "today":
        return date.today()
    try:
        return parse_german_date(text)
    except ValueError:
        pass
    try:
        return date_parser.parse(text, dayfirst=False, yearfirst=True).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}")


def parse_year_month(value: str) -> tuple[int, int]:
    """Parse "YYYY-MM" (or "MM/YYYY") into a (year, month) tuple.

    Raises:
        ValueError: If the value is not a valid month
    """
    text = value.strip()
    for fmt in ("%Y-%m", "%m/%Y"):
        try:
            parsed = datetime.strptime(text, fmt)
            return parsed.year, parsed.month
        except ValueError:
            continue
    raise ValueError(f"Could not parse month '{value}'; expected YYYY-MM")


def iter_months(start: tuple[int, int], end: tuple[int, int]) -> Iterator[tuple[int, int]]:
    """Yield (year, month) from start to end inclusive."""
    current = date(start[0], start[1], 1)
    last = date(end[0], end[1], 1)
    while current <= last:
        yield current.year, current.month
        current += relativedelta(months=1)


def month_end(year: int, month: int) -> date:
    """Last day of a month."""
    return date(year, month, 1) + relativedelta(months=1, days=-1)
