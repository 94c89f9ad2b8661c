"""Utility functions for kitafees."""

from kitafees.utils.date_parser import parse_date, parse_german_date, parse_year_month, iter_months
from kitafees.utils.amount_parser import parse_amount, format_amount

__all__ = [
    "parse_date",
    "parse_german_date",
    "parse_year_month",
    "iter_months",
    "parse_amount",
    "format_amount",
]
