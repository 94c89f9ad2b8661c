"""Child management commands."""

import click
from kitafees.cli.error_handling import handle_domain_error
from kitafees.cli.parsing import parse_cli_date
from kitafees.domain.child import ChildService
from kitafees.domain.errors import DomainError
from kitafees.domain.fee_generation import FeeService
from kitafees.utils.amount_parser import format_amount


@click.group()
def children_group():
    """Manage children."""
    pass


@children_group.command("add")
@click.argument("member_number")
@click.argument("first_name")
@click.argument("last_name")
@click.option("--birth", "birth_date", required=True, help="Date of birth (DD.MM.YYYY)")
@click.option("--entry", "entry_date", required=True, help="First day of care (DD.MM.YYYY)")
@click.option("--exit", "exit_date", help="Last day of care (DD.MM.YYYY)")
@click.option("--household", "household_id", type=int, help="Household ID")
@click.option("--hours", "care_hours", type=int, help="Weekly care hours (30-55)")
@click.pass_context
def add_child(
    ctx,
    member_number: str,
    first_name: str,
    last_name: str,
    birth_date: str,
    entry_date: str,
    exit_date: str | None,
    household_id: int | None,
    care_hours: int | None,
):
    """Register a child.

    Examples:
        kitafees children add 12345 Mia Schmidt --birth 14.05.2024 --entry 01.09.2025 --household 1
    """
    db = ctx.obj["db"]
    service = ChildService(db)

    birth = parse_cli_date(ctx, birth_date, "birth date")
    entry = parse_cli_date(ctx, entry_date, "entry date")
    exit_ = parse_cli_date(ctx, exit_date, "exit date")

    try:
        child_id = service.create_child(
            member_number=member_number,
            first_name=first_name,
            last_name=last_name,
            birth_date=birth,
            entry_date=entry,
            exit_date=exit_,
            household_id=household_id,
            care_hours=care_hours,
        )
        click.echo(f"Created child {first_name} {last_name} (ID: {child_id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@children_group.command("list")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive children")
@click.pass_context
def list_children(ctx, include_inactive: bool):
    """List children."""
    db = ctx.obj["db"]
    service = ChildService(db)

    children = service.list_children(active_only=not include_inactive)
    if not children:
        click.echo("No children found.")
        return

    click.echo("\nChildren:")
    click.echo("-" * 70)
    for child in children:
        hours = child.care_hours if child.care_hours is not None else "-"
        marker = "" if child.is_active else " (inactive)"
        click.echo(
            f"ID: {child.id:3d} | {child.member_number} | {child.full_name:25s} | "
            f"born {child.birth_date:%d.%m.%Y} | {hours}h{marker}"
        )


@children_group.command("ledger")
@click.argument("child_id", type=int)
@click.option("--year", type=int, help="Only fees of this year")
@click.pass_context
def show_ledger(ctx, child_id: int, year: int | None):
    """Show the account statement of a child."""
    db = ctx.obj["db"]
    service = FeeService(db)

    try:
        ledger = service.get_child_ledger(child_id, year=year)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if not ledger.entries:
        click.echo("No entries found.")
        return

    click.echo(f"\n{'Date':10s}  {'Description':30s} {'Debit':>10s} {'Credit':>10s} {'Balance':>10s}")
    click.echo("-" * 76)
    for entry in ledger.entries:
        debit = format_amount(entry.debit) if entry.debit else ""
        credit = format_amount(entry.credit) if entry.credit else ""
        click.echo(
            f"{entry.entry_date:%d.%m.%Y}  {entry.description:30s} {debit:>10s} {credit:>10s} "
            f"{format_amount(entry.balance):>10s}"
        )
    click.echo("-" * 76)
    click.echo(f"Open balance: {format_amount(ledger.balance)} EUR")


@children_group.command("deactivate")
@click.argument("child_id", type=int)
@click.pass_context
def deactivate_child(ctx, child_id: int):
    """Stop billing a child."""
    db = ctx.obj["db"]
    service = ChildService(db)

    try:
        service.deactivate_child(child_id)
        click.echo(f"Deactivated child {child_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register child commands with main CLI."""
    cli.add_command(children_group, name="children")
