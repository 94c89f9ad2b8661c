"""Transaction warning commands."""

import click
from kitafees.cli.error_handling import handle_domain_error
from kitafees.domain.entities import WarningType
from kitafees.domain.errors import DomainError
from kitafees.domain.reconciliation import ReconciliationLedger
from kitafees.utils.amount_parser import format_amount


@click.group()
def warnings_group():
    """Review and resolve transaction warnings."""
    pass


@warnings_group.command("list")
@click.option("--type", "warning_type", type=click.Choice([t.value for t in WarningType]))
@click.option("--transaction", "transaction_id", type=int, help="Filter by transaction ID")
@click.option("--all", "include_resolved", is_flag=True, help="Include resolved warnings")
@click.pass_context
def list_warnings(ctx, warning_type: str | None, transaction_id: int | None, include_resolved: bool):
    """List open warnings."""
    db = ctx.obj["db"]
    ledger = ReconciliationLedger(db)

    warnings = ledger.list_warnings(
        transaction_id=transaction_id,
        warning_type=WarningType(warning_type) if warning_type else None,
        unresolved_only=not include_resolved,
    )
    if not warnings:
        click.echo("No warnings found.")
        return

    for warning in warnings:
        amounts = ""
        if warning.actual_amount is not None:
            amounts = f" [{format_amount(warning.actual_amount)}"
            if warning.expected_amount is not None:
                amounts += f" / expected {format_amount(warning.expected_amount)}"
            amounts += "]"
        status = f" ({warning.resolution_type.value})" if warning.resolution_type else ""
        click.echo(
            f"{warning.id:4d}  tx {warning.transaction_id:4d}  {warning.warning_type.value:18s} "
            f"{warning.message}{amounts}{status}"
        )


@warnings_group.command("dismiss")
@click.argument("warning_id", type=int)
@click.option("--note", help="Why the warning is dismissed")
@click.pass_context
def dismiss_warning(ctx, warning_id: int, note: str | None):
    """Dismiss a warning without further action."""
    db = ctx.obj["db"]
    ledger = ReconciliationLedger(db)

    try:
        ledger.dismiss_warning(warning_id, user="cli", note=note)
        click.echo(f"Dismissed warning {warning_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@warnings_group.command("late-fee")
@click.argument("warning_id", type=int)
@click.pass_context
def charge_late_fee(ctx, warning_id: int):
    """Charge a reminder fee for a late payment warning."""
    db = ctx.obj["db"]
    ledger = ReconciliationLedger(db)

    try:
        reminder = ledger.resolve_late_payment(warning_id, user="cli")
        click.echo(
            f"Created reminder fee {reminder.id} over {format_amount(reminder.amount)} EUR, "
            f"due {reminder.due_date:%d.%m.%Y}"
        )
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register warning commands with main CLI."""
    cli.add_command(warnings_group, name="warnings")
