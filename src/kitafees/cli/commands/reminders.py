"""Reminder commands."""

import click
from kitafees.cli.error_handling import handle_domain_error
from kitafees.cli.parsing import parse_cli_date
from kitafees.domain.errors import DomainError
from kitafees.domain.reminders import STAGE_NONE, STAGES, ReminderEngine
from kitafees.mailer import create_email_sender
from kitafees.utils.amount_parser import format_amount


@click.group()
def reminders_group():
    """Send payment reminders for overdue fees."""
    pass


@reminders_group.command("run")
@click.option("--stage", type=click.Choice(STAGES), default="auto", show_default=True)
@click.option("--date", "as_of", help="Reference date (default: today)")
@click.option(
    "--recipient",
    envvar="KITAFEES_REMINDER_RECIPIENT",
    help="E-mail address for the summary (overrides KITAFEES_REMINDER_RECIPIENT)",
)
@click.option("--dry-run", is_flag=True, help="Only show what would happen")
@click.pass_context
def run_reminders(ctx, stage: str, as_of: str | None, recipient: str | None, dry_run: bool):
    """Run a reminder stage.

    The auto stage sends the initial notice on the 5th and charges reminder
    fees on the 10th, if automatic reminders are enabled.
    """
    db = ctx.obj["db"]
    engine = ReminderEngine(db, email_sender=create_email_sender(), default_recipient=recipient)

    try:
        result = engine.run(
            stage=stage,
            as_of=parse_cli_date(ctx, as_of, "date"),
            dry_run=dry_run,
            user="cli",
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if result.stage == STAGE_NONE:
        click.echo("No reminder stage due.")
        return

    prefix = "[dry run] " if dry_run else ""
    click.echo(f"{prefix}Stage: {result.stage} ({result.as_of:%d.%m.%Y})")
    click.echo(f"{prefix}Overdue fees: {len(result.overdue)}")
    for item in result.overdue:
        name = item.child.full_name if item.child else f"child {item.fee.child_id}"
        click.echo(
            f"  {name:25s} {item.fee.fee_type.value:10s} {item.fee.period_label:8s} "
            f"{format_amount(item.fee.amount):>8s}  {item.days_overdue} days overdue"
        )
    if result.already_reminded:
        click.echo(f"{prefix}Already reminded: {result.already_reminded}")
    if result.reminders_created:
        click.echo(f"Reminder fees created: {len(result.reminders_created)}")
    if result.email_sent:
        click.echo("E-mail sent.")
    elif result.email_error:
        click.echo(f"E-mail not sent: {result.email_error}", err=True)


@reminders_group.command("auto")
@click.argument("state", type=click.Choice(["on", "off", "status"]), default="status")
@click.pass_context
def auto_reminders(ctx, state: str):
    """Switch automatic reminders on or off."""
    db = ctx.obj["db"]
    engine = ReminderEngine(db)

    if state != "status":
        engine.set_auto_enabled(state == "on")
    click.echo(f"Automatic reminders: {'on' if engine.get_auto_enabled() else 'off'}")


def register_commands(cli):
    """Register reminder commands with main CLI."""
    cli.add_command(reminders_group, name="reminders")
