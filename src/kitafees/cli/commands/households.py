"""Household management commands."""

import click
from kitafees.cli.error_handling import handle_domain_error
from kitafees.cli.parsing import parse_cli_amount
from kitafees.domain.entities import IncomeStatus
from kitafees.domain.errors import DomainError
from kitafees.domain.household import HouseholdService
from kitafees.utils.amount_parser import format_amount

STATUS_CHOICES = [status.value for status in IncomeStatus if status.value]


@click.group()
def households_group():
    """Manage households, parents and income."""
    pass


@households_group.command("add")
@click.argument("name")
@click.option("--income", help="Fee-relevant annual net income, e.g. 36412,80")
@click.option("--status", type=click.Choice(STATUS_CHOICES), help="Income status")
@click.option("--siblings", type=int, help="Children counted for the sibling discount")
@click.pass_context
def add_household(ctx, name: str, income: str | None, status: str | None, siblings: int | None):
    """Create a household.

    Examples:
        kitafees households add "Familie Schmidt" --income 36412,80
        kitafees households add "Familie Weber" --status MAX_ACCEPTED
    """
    db = ctx.obj["db"]
    service = HouseholdService(db)

    annual_income = parse_cli_amount(ctx, income, "income")
    if status is not None:
        income_status = IncomeStatus(status)
    elif annual_income is not None:
        income_status = IncomeStatus.PROVIDED
    else:
        income_status = IncomeStatus.UNKNOWN

    try:
        household_id = service.create_household(
            name=name,
            annual_net_income=annual_income,
            income_status=income_status,
            sibling_count_override=siblings,
        )
        click.echo(f"Created household '{name}' (ID: {household_id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@households_group.command("list")
@click.pass_context
def list_households(ctx):
    """List all households."""
    db = ctx.obj["db"]
    service = HouseholdService(db)

    households = service.list_households()
    if not households:
        click.echo("No households found.")
        return

    click.echo("\nHouseholds:")
    click.echo("-" * 70)
    for household in households:
        income = (
            format_amount(household.annual_net_income)
            if household.annual_net_income is not None
            else "-"
        )
        status = household.income_status.value or "UNKNOWN"
        click.echo(f"ID: {household.id:3d} | {household.name:25s} | {status:14s} | {income}")


@households_group.command("income")
@click.argument("household_id", type=int)
@click.option("--status", type=click.Choice(STATUS_CHOICES), default="PROVIDED", show_default=True)
@click.option("--income", help="Fee-relevant annual net income (required for PROVIDED)")
@click.option("--siblings", type=int, help="Children counted for the sibling discount")
@click.pass_context
def set_income(ctx, household_id: int, status: str, income: str | None, siblings: int | None):
    """Set the income assessment of a household."""
    db = ctx.obj["db"]
    service = HouseholdService(db)

    try:
        service.set_income(
            household_id,
            IncomeStatus(status),
            annual_net_income=parse_cli_amount(ctx, income, "income"),
            sibling_count_override=siblings,
        )
        click.echo(f"Updated income of household {household_id} ({status})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@households_group.command("add-parent")
@click.argument("household_id", type=int)
@click.argument("first_name")
@click.argument("last_name")
@click.option("--email", help="Parent e-mail address")
@click.pass_context
def add_parent(ctx, household_id: int, first_name: str, last_name: str, email: str | None):
    """Add a parent to a household."""
    db = ctx.obj["db"]
    service = HouseholdService(db)

    try:
        parent_id = service.add_parent(household_id, first_name, last_name, email)
        click.echo(f"Added parent {first_name} {last_name} (ID: {parent_id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register household commands with main CLI."""
    cli.add_command(households_group, name="households")
