"""Known IBAN commands."""

import click
from kitafees.cli.error_handling import handle_domain_error
from kitafees.domain.entities import KnownIBANStatus
from kitafees.domain.errors import DomainError
from kitafees.domain.iban_memory import IbanMemoryService


@click.group()
def ibans_group():
    """Manage trusted and blacklisted payer IBANs."""
    pass


@ibans_group.command("list")
@click.option("--status", type=click.Choice([s.value for s in KnownIBANStatus]))
@click.pass_context
def list_ibans(ctx, status: str | None):
    """List known IBANs."""
    db = ctx.obj["db"]
    service = IbanMemoryService(db)

    entries = service.list(KnownIBANStatus(status) if status else None)
    if not entries:
        click.echo("No known IBANs.")
        return
    for entry in entries:
        child = f"child {entry.child_id}" if entry.child_id is not None else "-"
        click.echo(
            f"{entry.iban:34s}  {entry.status.value:11s}  {child:10s}  "
            f"{entry.payer_name or ''}{'  (' + entry.reason + ')' if entry.reason else ''}"
        )


@ibans_group.command("trust")
@click.argument("iban")
@click.option("--child", "child_id", type=int, help="Bind the IBAN to a child")
@click.pass_context
def trust_iban(ctx, iban: str, child_id: int | None):
    """Mark an IBAN as a trusted parent account."""
    db = ctx.obj["db"]
    service = IbanMemoryService(db)

    try:
        entry = service.trust(iban, child_id=child_id)
        click.echo(f"Trusted {entry.iban}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@ibans_group.command("blacklist")
@click.argument("iban")
@click.option("--reason", help="Why payments from this IBAN are ignored")
@click.pass_context
def blacklist_iban(ctx, iban: str, reason: str | None):
    """Ignore all payments from an IBAN."""
    db = ctx.obj["db"]
    service = IbanMemoryService(db)

    try:
        entry = service.blacklist(iban, reason=reason)
        click.echo(f"Blacklisted {entry.iban}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@ibans_group.command("link")
@click.argument("iban")
@click.argument("child_id", type=int)
@click.pass_context
def link_iban(ctx, iban: str, child_id: int):
    """Bind a trusted IBAN to a child."""
    db = ctx.obj["db"]
    service = IbanMemoryService(db)

    try:
        service.link(iban, child_id)
        click.echo(f"Linked {iban} to child {child_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@ibans_group.command("unlink")
@click.argument("iban")
@click.pass_context
def unlink_iban(ctx, iban: str):
    """Remove the child binding of an IBAN."""
    db = ctx.obj["db"]
    service = IbanMemoryService(db)

    try:
        service.unlink(iban)
        click.echo(f"Unlinked {iban}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@ibans_group.command("remove")
@click.argument("iban")
@click.pass_context
def remove_iban(ctx, iban: str):
    """Take an IBAN off the blacklist."""
    db = ctx.obj["db"]
    service = IbanMemoryService(db)

    try:
        service.remove_from_blacklist(iban)
        click.echo(f"Removed {iban} from blacklist")
    except DomainError as e:
        handle_domain_error(ctx, e)


@ibans_group.command("dismiss")
@click.argument("transaction_id", type=int)
@click.option("--reason", help="Why the payer is ignored")
@click.confirmation_option(prompt="Blacklist the payer and delete all of its unmatched transactions?")
@click.pass_context
def dismiss_transaction(ctx, transaction_id: int, reason: str | None):
    """Blacklist a transaction's payer and delete its unmatched transactions."""
    db = ctx.obj["db"]
    service = IbanMemoryService(db)

    try:
        deleted = service.dismiss_transaction(transaction_id, reason=reason)
        click.echo(f"Blacklisted payer and deleted {deleted} transactions")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register IBAN commands with main CLI."""
    cli.add_command(ibans_group, name="ibans")
