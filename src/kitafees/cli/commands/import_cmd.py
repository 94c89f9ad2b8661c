"""Bank statement import command."""

from pathlib import Path

import click
from kitafees.cli.error_handling import handle_domain_error
from kitafees.domain.bank_import import BankImportService
from kitafees.domain.errors import DomainError


@click.command("import")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--user", default="cli", show_default=True, help="Name recorded with the import")
@click.pass_context
def import_csv(ctx, csv_file: str, user: str):
    """Import a bank statement CSV and match its payments."""
    db = ctx.obj["db"]
    service = BankImportService(db)

    path = Path(csv_file)
    try:
        result = service.import_file(path.read_bytes(), path.name, user=user)
    except (DomainError, OSError) as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"\nImport complete (batch {result.batch_id}):")
    click.echo(f"  Rows: {result.total_rows}")
    click.echo(f"  Imported: {result.imported} transactions")
    click.echo(f"  Auto-matched: {result.auto_matched}")
    click.echo(f"  Skipped: {result.skipped}")
    click.echo(f"    Duplicates: {result.duplicates}")
    click.echo(f"    Outgoing: {result.outgoing}")
    click.echo(f"    Blacklisted: {result.blacklisted}")
    click.echo(f"    Excluded: {result.excluded}")
    click.echo(f"    Malformed: {result.malformed}")
    click.echo(f"  Warnings: {result.warnings}")
    if result.suggestions:
        click.echo(f"  Needs review: {len(result.suggestions)}")
        for suggestion in result.suggestions:
            target = suggestion.expectation_id if suggestion.has_target else "-"
            click.echo(
                f"    Transaction {suggestion.transaction_id}: fee {target} "
                f"({suggestion.matched_by}, {suggestion.confidence:.2f})"
            )
    if result.errors:
        click.echo(f"  Errors: {len(result.errors)}")
        for error in result.errors:
            click.echo(f"    {error}", err=True)


def register_commands(cli):
    """Register import command with main CLI."""
    cli.add_command(import_csv)
