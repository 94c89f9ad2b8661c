"""CLI helpers for parsing dates, months and amounts."""

from datetime import date
from decimal import Decimal

import click

from kitafees.utils.amount_parser import parse_amount
from kitafees.utils.date_parser import parse_date, parse_year_month


def parse_cli_date(ctx, value: str | None, label: str) -> date | None:
    """Parse an optional date option, exiting with an error message if invalid."""
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        click.echo(f"Error: Invalid {label}: {e}", err=True)
        ctx.exit(1)


def parse_cli_month(ctx, value: str, label: str) -> tuple[int, int]:
    """Parse a YYYY-MM option, exiting with an error message if invalid."""
    try:
        return parse_year_month(value)
    except ValueError as e:
        click.echo(f"Error: Invalid {label}: {e}", err=True)
        ctx.exit(1)


def parse_cli_amount(ctx, value: str | None, label: str) -> Decimal | None:
    """Parse an optional amount option ("45,40" or "45.40")."""
    if value is None:
        return None
    try:
        return parse_amount(value)
    except ValueError as e:
        click.echo(f"Error: Invalid {label}: {e}", err=True)
        ctx.exit(1)
