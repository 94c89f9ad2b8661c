"""Payment matching commands."""

import click
from kitafees.cli.error_handling import handle_domain_error
from kitafees.cli.parsing import parse_cli_amount
from kitafees.domain.bank_import import BankImportService
from kitafees.domain.errors import DomainError, ValidationError
from kitafees.domain.reconciliation import Allocation, MatchConfirmation, ReconciliationLedger
from kitafees.utils.amount_parser import format_amount


@click.group()
def matches_group():
    """Confirm, split and undo payment matches."""
    pass


@matches_group.command("confirm")
@click.argument("pairs", nargs=-1, required=True)
@click.option("--user", default="cli", show_default=True, help="Name recorded with the match")
@click.pass_context
def confirm_matches(ctx, pairs: tuple[str, ...], user: str):
    """Confirm matches given as TRANSACTION_ID FEE_ID pairs.

    Examples:
        kitafees matches confirm 12 40
        kitafees matches confirm 12 40 13 41
    """
    db = ctx.obj["db"]
    ledger = ReconciliationLedger(db)

    if len(pairs) % 2:
        click.echo("Error: Give TRANSACTION_ID FEE_ID pairs", err=True)
        ctx.exit(1)
    try:
        ids = [int(value) for value in pairs]
    except ValueError:
        click.echo("Error: IDs must be integers", err=True)
        ctx.exit(1)

    confirmations = [MatchConfirmation(ids[i], ids[i + 1]) for i in range(0, len(ids), 2)]
    result = ledger.confirm(confirmations, user=user)

    click.echo(f"Matched: {len(result.matched)}")
    if result.already_matched:
        click.echo(f"Already matched: {result.already_matched}")
    if result.duplicates:
        click.echo(f"Already paid: {', '.join(str(fee_id) for fee_id in result.duplicates)}")
    if result.warnings:
        click.echo(f"Warnings raised: {len(result.warnings)}")
    if result.failed:
        for failure in result.failed:
            click.echo(f"Error: {failure}", err=True)
        ctx.exit(1)


@matches_group.command("split")
@click.argument("transaction_id", type=int)
@click.argument("allocations", nargs=-1, required=True)
@click.option("--user", default="cli", show_default=True)
@click.pass_context
def split_payment(ctx, transaction_id: int, allocations: tuple[str, ...], user: str):
    """Split a payment over several fees, given as FEE_ID=AMOUNT.

    Examples:
        kitafees matches split 12 40=45,40 41=45,40
    """
    db = ctx.obj["db"]
    ledger = ReconciliationLedger(db)

    parsed = []
    for item in allocations:
        fee_id, sep, amount = item.partition("=")
        if not sep or not fee_id.isdigit():
            handle_domain_error(ctx, ValidationError(f"Invalid allocation '{item}', expected FEE_ID=AMOUNT"))
            return
        parsed.append(Allocation(int(fee_id), parse_cli_amount(ctx, amount, "amount")))

    try:
        match_ids = ledger.allocate(transaction_id, parsed, user=user)
        click.echo(f"Created {len(match_ids)} matches for transaction {transaction_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@matches_group.command("unmatch")
@click.argument("transaction_id", type=int)
@click.option("--delete", "delete_transaction", is_flag=True, help="Also delete the transaction")
@click.pass_context
def unmatch(ctx, transaction_id: int, delete_transaction: bool):
    """Remove the matches of a transaction, re-opening its fees."""
    db = ctx.obj["db"]
    ledger = ReconciliationLedger(db)

    try:
        result = ledger.unmatch(transaction_id, delete_transaction=delete_transaction)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Removed {result.removed_matches} matches from transaction {transaction_id}")
    if result.transaction_deleted:
        click.echo(f"Deleted transaction {transaction_id}")


@matches_group.command("rescan")
@click.pass_context
def rescan(ctx):
    """Match all unmatched transactions again."""
    db = ctx.obj["db"]
    service = BankImportService(db)

    run = service.rescan(user="cli")
    click.echo(f"Scanned: {run.scanned}")
    click.echo(f"Auto-matched: {run.auto_matched}")
    click.echo(f"Warnings: {run.warnings}")
    click.echo(f"Needs review: {len(run.suggestions)}")


@matches_group.command("suggest")
@click.argument("transaction_id", type=int)
@click.pass_context
def suggest(ctx, transaction_id: int):
    """Show the best matching fee for a transaction."""
    db = ctx.obj["db"]
    service = BankImportService(db)

    try:
        suggestion = service.suggestion_for(transaction_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if suggestion is None:
        click.echo("Transaction is excluded from matching.")
        return
    click.echo(f"Detected type: {suggestion.detected_type.value if suggestion.detected_type else '-'}")
    click.echo(f"Child: {suggestion.child_id if suggestion.child_id is not None else '-'}")
    click.echo(f"Fee: {suggestion.expectation_id if suggestion.has_target else '-'}")
    click.echo(f"Matched by: {suggestion.matched_by}")
    click.echo(f"Confidence: {suggestion.confidence:.2f}")
    if suggestion.warning_type is not None:
        click.echo(f"Warning: {suggestion.warning_type.value}")


@matches_group.command("transactions")
@click.option("--unmatched", is_flag=True, help="Only unmatched transactions")
@click.option("--hidden", is_flag=True, help="Include hidden transactions")
@click.pass_context
def list_transactions(ctx, unmatched: bool, hidden: bool):
    """List imported transactions."""
    db = ctx.obj["db"]
    service = BankImportService(db)

    transactions = service.list_transactions(unmatched_only=unmatched, include_hidden=hidden)
    if not transactions:
        click.echo("No transactions found.")
        return

    for txn in transactions:
        click.echo(
            f"{txn.id:5d}  {txn.booking_date:%d.%m.%Y}  {format_amount(txn.amount):>10s}  "
            f"{(txn.payer_name or '-')[:25]:25s}  {(txn.description or '')[:40]}"
        )


@matches_group.command("hide")
@click.argument("transaction_id", type=int)
@click.pass_context
def hide_transaction(ctx, transaction_id: int):
    """Hide a transaction from the unmatched list."""
    db = ctx.obj["db"]
    service = BankImportService(db)

    try:
        service.hide_transaction(transaction_id, user="cli")
        click.echo(f"Hid transaction {transaction_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@matches_group.command("history")
@click.pass_context
def history(ctx):
    """List past imports."""
    db = ctx.obj["db"]
    service = BankImportService(db)

    batches = service.history()
    if not batches:
        click.echo("No imports found.")
        return
    for batch in batches:
        click.echo(
            f"{batch.id:4d}  {batch.imported_at:%d.%m.%Y %H:%M}  {batch.file_name:30s}  "
            f"{batch.transaction_count} imported, {batch.matched_count} matched  ({batch.imported_by})"
        )


def register_commands(cli):
    """Register matching commands with main CLI."""
    cli.add_command(matches_group, name="matches")
