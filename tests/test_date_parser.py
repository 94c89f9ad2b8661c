"""Tests for date parsing utilities."""

import pytest
from datetime import date

from kitafees.utils.date_parser import (
    iter_months,
    month_end,
    parse_date,
    parse_german_date,
    parse_year_month,
)


def test_parse_german_date():
    """Test parsing a bank export date."""
    assert parse_german_date("05.03.2026") == date(2026, 3, 5)
    assert parse_german_date(" 29.02.2024 ") == date(2024, 2, 29)


@pytest.mark.parametrize("value", ["", "2026-03-05", "31.02.2026", "5.3.26x", "abc"])
def test_parse_german_date_invalid(value):
    """Test that anything but a valid DD.MM.YYYY date is rejected."""
    with pytest.raises(ValueError):
        parse_german_date(value)


def test_parse_absolute_date():
    """Test parsing ISO and German dates on the command line."""
    assert parse_date("2024-01-15") == date(2024, 1, 15)
    assert parse_date("15.01.2024") == date(2024, 1, 15)


def test_parse_today():
    """Test parsing 'today'."""
    assert parse_date("today") == date.today()
    assert parse_date("Today") == date.today()


def test_parse_invalid_date():
    """Test parsing an invalid date."""
    with pytest.raises(ValueError):
        parse_date("not a date")


def test_parse_year_month():
    """Test parsing billing months."""
    assert parse_year_month("2026-03") == (2026, 3)
    assert parse_year_month("03/2026") == (2026, 3)
    with pytest.raises(ValueError):
        parse_year_month("2026-13")


def test_iter_months_across_year_end():
    """Test iterating a month range over the turn of the year."""
    assert list(iter_months((2025, 11), (2026, 2))) == [
        (2025, 11),
        (2025, 12),
        (2026, 1),
        (2026, 2),
    ]
    assert list(iter_months((2026, 3), (2026, 3))) == [(2026, 3)]
    assert list(iter_months((2026, 4), (2026, 3))) == []


def test_month_end():
    """Test the last day of a month."""
    assert month_end(2026, 1) == date(2026, 1, 31)
    assert month_end(2024, 2) == date(2024, 2, 29)
    assert month_end(2025, 2) == date(2025, 2, 28)
    assert month_end(2026, 12) == date(2026, 12, 31)
