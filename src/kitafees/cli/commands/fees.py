"""Fee generation, calculation and maintenance commands."""

from decimal import Decimal

import click
from kitafees.cli.error_handling import handle_domain_error
from kitafees.cli.parsing import parse_cli_amount, parse_cli_date, parse_cli_month
from kitafees.domain.childcare_fee import (
    CARE_HOURS_TIERS,
    DEFAULT_CARE_HOURS,
    ChildcareFeeInput,
    calculate_childcare_fee,
)
from kitafees.domain.entities import ChildAgeType, FeeType
from kitafees.domain.errors import DomainError
from kitafees.domain.fee_generation import GENERATED_FEE_TYPES, FeeService
from kitafees.utils.amount_parser import format_amount

FEE_TYPE_CHOICES = [fee_type.value for fee_type in FeeType]


@click.group()
def fees_group():
    """Generate and manage fee expectations."""
    pass


@fees_group.command("generate")
@click.option("--from", "start", required=True, help="First month (YYYY-MM)")
@click.option("--to", "end", required=True, help="Last month (YYYY-MM)")
@click.option(
    "--type",
    "fee_types",
    multiple=True,
    type=click.Choice([t.value for t in GENERATED_FEE_TYPES]),
    help="Fee type to generate (repeatable; default: all)",
)
@click.option("--child", "child_ids", type=int, multiple=True, help="Restrict to child ID (repeatable)")
@click.pass_context
def generate_fees(ctx, start: str, end: str, fee_types: tuple[str, ...], child_ids: tuple[int, ...]):
    """Create membership, food and childcare fees for a month range.

    Already billed months are skipped, so the command can be re-run safely.

    Examples:
        kitafees fees generate --from 2026-01 --to 2026-12
        kitafees fees generate --from 2026-03 --to 2026-03 --type CHILDCARE --child 4
    """
    db = ctx.obj["db"]
    service = FeeService(db)

    start_month = parse_cli_month(ctx, start, "start month")
    end_month = parse_cli_month(ctx, end, "end month")

    try:
        result = service.generate(
            start_month,
            end_month,
            fee_types=[FeeType(t) for t in fee_types] or None,
            child_ids=list(child_ids) or None,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Created: {len(result.created)} fees")
    click.echo(f"Skipped: {result.skipped} already existing")
    if result.errors:
        click.echo(f"Errors: {len(result.errors)}")
        for error in result.errors:
            click.echo(f"  {error}", err=True)


@fees_group.command("calculate")
@click.option("--income", required=True, help="Fee-relevant annual net income, e.g. 36412,80")
@click.option(
    "--hours",
    type=click.Choice([str(h) for h in CARE_HOURS_TIERS]),
    default=str(DEFAULT_CARE_HOURS),
    show_default=True,
    help="Weekly care hours",
)
@click.option("--siblings", type=int, default=1, show_default=True, help="Children in the household")
@click.option("--kindergarten", is_flag=True, help="Child is three or older")
@click.option("--highest-rate", is_flag=True, help="Household accepted the highest rate")
@click.option("--foster", is_flag=True, help="Foster family")
@click.pass_context
def calculate_fee(
    ctx,
    income: str,
    hours: str,
    siblings: int,
    kindergarten: bool,
    highest_rate: bool,
    foster: bool,
):
    """Calculate a monthly childcare fee without storing anything."""
    net_income = parse_cli_amount(ctx, income, "income")

    try:
        result = calculate_childcare_fee(
            ChildcareFeeInput(
                age_type=ChildAgeType.KINDERGARTEN if kindergarten else ChildAgeType.UNDER_THREE,
                net_income=net_income,
                siblings_count=siblings,
                care_hours=int(hours),
                highest_rate=highest_rate,
                foster_family=foster,
            )
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Fee: {format_amount(result.fee)} EUR")
    click.echo(f"Base fee: {format_amount(result.base_fee)} EUR")
    click.echo(f"Rule: {result.rule}")
    if result.discount_factor != Decimal("1.00"):
        click.echo(f"Sibling discount: {result.discount_percent}%")
    for note in result.notes:
        click.echo(f"Note: {note}")


@fees_group.command("list")
@click.option("--child", "child_id", type=int, help="Filter by child ID")
@click.option("--year", type=int, help="Filter by year")
@click.option("--month", type=click.IntRange(1, 12), help="Filter by month")
@click.option("--type", "fee_type", type=click.Choice(FEE_TYPE_CHOICES), help="Filter by fee type")
@click.option("--open", "open_only", is_flag=True, help="Only unpaid fees")
@click.pass_context
def list_fees(ctx, child_id: int | None, year: int | None, month: int | None, fee_type: str | None, open_only: bool):
    """List fee expectations."""
    db = ctx.obj["db"]
    service = FeeService(db)

    fees = service.list_fees(
        child_id=child_id,
        year=year,
        month=month,
        fee_type=FeeType(fee_type) if fee_type else None,
        open_only=open_only,
    )
    if not fees:
        click.echo("No fees found.")
        return

    click.echo(f"\n{'ID':>5s}  {'Child':>5s}  {'Type':10s} {'Period':8s} {'Amount':>10s}  {'Due':10s}  Status")
    click.echo("-" * 70)
    for fee in fees:
        status = "paid" if service.is_paid(fee) else "open"
        click.echo(
            f"{fee.id:5d}  {fee.child_id:5d}  {fee.fee_type.value:10s} {fee.period_label:8s} "
            f"{format_amount(fee.amount):>10s}  {fee.due_date:%d.%m.%Y}  {status}"
        )


@fees_group.command("add")
@click.argument("child_id", type=int)
@click.argument("fee_type", type=click.Choice([t.value for t in GENERATED_FEE_TYPES]))
@click.argument("year", type=int)
@click.option("--month", type=click.IntRange(1, 12), help="Billing month (not for MEMBERSHIP)")
@click.option("--amount", help="Amount; defaults to the standard amount")
@click.option("--due", help="Due date (DD.MM.YYYY)")
@click.option("--reconciliation-year", type=int, help="Year a catch-up charge settles")
@click.pass_context
def add_fee(
    ctx,
    child_id: int,
    fee_type: str,
    year: int,
    month: int | None,
    amount: str | None,
    due: str | None,
    reconciliation_year: int | None,
):
    """Create a single fee by hand."""
    db = ctx.obj["db"]
    service = FeeService(db)

    try:
        fee = service.create(
            child_id,
            FeeType(fee_type),
            year,
            month=month,
            amount=parse_cli_amount(ctx, amount, "amount"),
            due_date=parse_cli_date(ctx, due, "due date"),
            reconciliation_year=reconciliation_year,
        )
        click.echo(
            f"Created {fee.fee_type.value} {fee.period_label} over {format_amount(fee.amount)} EUR (ID: {fee.id})"
        )
    except DomainError as e:
        handle_domain_error(ctx, e)


@fees_group.command("remind")
@click.argument("fee_id", type=int)
@click.option("--date", "as_of", help="Reference date (default: today)")
@click.pass_context
def remind_fee(ctx, fee_id: int, as_of: str | None):
    """Charge a reminder fee for an unpaid fee."""
    db = ctx.obj["db"]
    service = FeeService(db)

    try:
        reminder = service.create_reminder(fee_id, as_of=parse_cli_date(ctx, as_of, "date"))
        click.echo(
            f"Reminder fee {reminder.id}: {format_amount(reminder.amount)} EUR, "
            f"due {reminder.due_date:%d.%m.%Y}"
        )
    except DomainError as e:
        handle_domain_error(ctx, e)


@fees_group.command("delete")
@click.argument("fee_id", type=int)
@click.pass_context
def delete_fee(ctx, fee_id: int):
    """Delete a fee without matched payments."""
    db = ctx.obj["db"]
    service = FeeService(db)

    try:
        service.delete(fee_id)
        click.echo(f"Deleted fee {fee_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register fee commands with main CLI."""
    cli.add_command(fees_group, name="fees")
