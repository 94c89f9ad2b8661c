"""Main CLI entry point."""

import logging

import click
from kitafees.database.factories import create_database, create_sqlite_database

# Import and register all commands at module level
from kitafees.cli.commands import (
    children,
    fees,
    households,
    ibans,
    import_cmd,
    matches,
    reminders,
    warnings,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides KITAFEES_DB_PATH environment variable)",
    envvar="KITAFEES_DB_PATH",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, db_path: str | None, verbose: bool):
    """Kitafees - Daycare fee billing and bank reconciliation.

    Generate membership, food and childcare fees, import bank statements and
    match incoming payments to the fees they settle.
    """
    ctx.ensure_object(dict)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        if db_path is not None:
            db = create_sqlite_database(database_path=db_path)
        else:
            db = create_database()
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
households.register_commands(cli)
children.register_commands(cli)
fees.register_commands(cli)
import_cmd.register_commands(cli)
matches.register_commands(cli)
warnings.register_commands(cli)
ibans.register_commands(cli)
reminders.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
