"""Tests for the command line interface."""

import logging

from kitafees.cli.main import cli

IBAN = "DE89370400440532013000"


def invoke(cli_runner, temp_db, *args, **kwargs):
    return cli_runner.invoke(cli, ["--db-path", temp_db.database_path, *args], **kwargs)


def setup_family(cli_runner, temp_db):
    """Create the Schmidt household with one child through the CLI."""
    result = invoke(cli_runner, temp_db, "households", "add", "Familie Schmidt", "--income", "36412,80")
    assert result.exit_code == 0
    assert "Created household 'Familie Schmidt' (ID: 1)" in result.output

    result = invoke(cli_runner, temp_db, "households", "add-parent", "1", "Julia", "Schmidt")
    assert result.exit_code == 0

    result = invoke(
        cli_runner,
        temp_db,
        "children",
        "add",
        "12345",
        "Mia",
        "Schmidt",
        "--birth",
        "14.05.2024",
        "--entry",
        "01.09.2025",
        "--household",
        "1",
        "--hours",
        "45",
    )
    assert result.exit_code == 0
    assert "Created child Mia Schmidt (ID: 1)" in result.output


def test_help_needs_no_database(cli_runner):
    """Test that help output works without a database."""
    result = cli_runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Daycare fee billing" in result.output


def test_households_list(cli_runner, temp_db):
    """Test listing households with their income status."""
    setup_family(cli_runner, temp_db)
    result = invoke(cli_runner, temp_db, "households", "list")
    assert result.exit_code == 0
    assert "Familie Schmidt" in result.output
    assert "PROVIDED" in result.output
    assert "36.412,80" in result.output


def test_children_add_invalid_date(cli_runner, temp_db):
    """Test that a malformed birth date is reported."""
    result = invoke(
        cli_runner, temp_db, "children", "add", "12345", "Mia", "Schmidt", "--birth", "gestern?", "--entry", "01.09.2025"
    )
    assert result.exit_code == 1
    assert "Error: Invalid birth date" in result.output


def test_children_add_duplicate_member_number(cli_runner, temp_db):
    """Test that member numbers are unique."""
    setup_family(cli_runner, temp_db)
    result = invoke(
        cli_runner, temp_db, "children", "add", "12345", "Ben", "Schmidt", "--birth", "01.01.2023", "--entry", "01.08.2024"
    )
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_fees_calculate(cli_runner, temp_db):
    """Test the stateless fee calculator."""
    result = invoke(cli_runner, temp_db, "fees", "calculate", "--income", "36412,80", "--hours", "45")
    assert result.exit_code == 0
    assert "Fee: 66,00 EUR" in result.output

    result = invoke(cli_runner, temp_db, "fees", "calculate", "--income", "50000", "--kindergarten")
    assert result.exit_code == 0
    assert "Fee: 0,00 EUR" in result.output


def test_generate_import_and_ledger(cli_runner, temp_db, fixtures_dir):
    """Test the monthly workflow from fee generation to the child ledger."""
    setup_family(cli_runner, temp_db)

    result = invoke(cli_runner, temp_db, "fees", "generate", "--from", "2026-03", "--to", "2026-03")
    assert result.exit_code == 0
    assert "Created: 3 fees" in result.output

    result = invoke(cli_runner, temp_db, "fees", "generate", "--from", "2026-03", "--to", "2026-03")
    assert "Created: 0 fees" in result.output
    assert "Skipped: 3 already existing" in result.output

    result = invoke(cli_runner, temp_db, "import", str(fixtures_dir / "bank_statement.csv"), "--user", "kassenwart")
    assert result.exit_code == 0
    assert "Imported: 1 transactions" in result.output
    assert "Auto-matched: 1" in result.output
    assert "Outgoing: 1" in result.output
    assert "Excluded: 1" in result.output
    assert "Malformed: 1" in result.output

    result = invoke(cli_runner, temp_db, "fees", "list", "--open")
    assert result.exit_code == 0
    assert "CHILDCARE" in result.output
    assert "MEMBERSHIP" in result.output
    assert "FOOD" not in result.output

    result = invoke(cli_runner, temp_db, "children", "ledger", "1")
    assert result.exit_code == 0
    assert "Open balance: 96,00 EUR" in result.output

    result = invoke(cli_runner, temp_db, "matches", "history")
    assert "bank_statement.csv" in result.output
    assert "1 imported, 1 matched" in result.output

    result = invoke(cli_runner, temp_db, "ibans", "list")
    assert IBAN in result.output
    assert "trusted" in result.output


def test_generate_invalid_month(cli_runner, temp_db):
    """Test that malformed months are rejected."""
    result = invoke(cli_runner, temp_db, "fees", "generate", "--from", "03.2026", "--to", "2026-03")
    assert result.exit_code == 1
    assert "Error: Invalid start month" in result.output


def test_manual_match_and_unmatch(cli_runner, temp_db, fixtures_dir):
    """Test confirming and undoing a match by hand."""
    setup_family(cli_runner, temp_db)
    invoke(cli_runner, temp_db, "import", str(fixtures_dir / "bank_statement.csv"))
    invoke(cli_runner, temp_db, "fees", "add", "1", "FOOD", "2026", "--month", "3")

    result = invoke(cli_runner, temp_db, "matches", "suggest", "1")
    assert result.exit_code == 0
    assert "Matched by: member_number" in result.output
    assert "Confidence: 0.95" in result.output

    result = invoke(cli_runner, temp_db, "matches", "confirm", "1", "1")
    assert result.exit_code == 0
    assert "Matched: 1" in result.output

    result = invoke(cli_runner, temp_db, "matches", "confirm", "1", "1")
    assert "Already matched: 1" in result.output

    result = invoke(cli_runner, temp_db, "matches", "unmatch", "1")
    assert result.exit_code == 0
    assert "Removed 1 matches from transaction 1" in result.output

    result = invoke(cli_runner, temp_db, "matches", "transactions", "--unmatched")
    assert "Julia Schmidt" in result.output


def test_confirm_requires_pairs(cli_runner, temp_db):
    """Test that an odd number of IDs is rejected."""
    result = invoke(cli_runner, temp_db, "matches", "confirm", "1", "2", "3")
    assert result.exit_code == 1
    assert "Error: Give TRANSACTION_ID FEE_ID pairs" in result.output


def test_confirm_unknown_ids(cli_runner, temp_db):
    """Test that failed confirmations exit with an error."""
    result = invoke(cli_runner, temp_db, "matches", "confirm", "7", "8")
    assert result.exit_code == 1
    assert "Error: 7 -> 8" in result.output


def test_split_invalid_allocation(cli_runner, temp_db):
    """Test that allocations must be FEE_ID=AMOUNT."""
    result = invoke(cli_runner, temp_db, "matches", "split", "1", "45,40")
    assert result.exit_code == 1
    assert "Invalid allocation" in result.output


def test_warnings_dismiss_unknown(cli_runner, temp_db):
    """Test dismissing a missing warning."""
    result = invoke(cli_runner, temp_db, "warnings", "dismiss", "999")
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_warnings_list_after_import(cli_runner, temp_db, fixtures_dir):
    """Test that an identified payment without fee shows up as a warning."""
    setup_family(cli_runner, temp_db)
    invoke(cli_runner, temp_db, "import", str(fixtures_dir / "bank_statement.csv"))

    result = invoke(cli_runner, temp_db, "warnings", "list")
    assert result.exit_code == 0
    assert "NO_MATCHING_FEE" in result.output

    result = invoke(cli_runner, temp_db, "warnings", "dismiss", "1", "--note", "Vorauszahlung")
    assert result.exit_code == 0
    result = invoke(cli_runner, temp_db, "warnings", "list")
    assert "No warnings found." in result.output


def test_ibans_blacklist_and_dismiss(cli_runner, temp_db, fixtures_dir):
    """Test blacklisting by IBAN and by transaction."""
    result = invoke(cli_runner, temp_db, "ibans", "blacklist", "DE44 5001 0517 5407 3249 31", "--reason", "Strom")
    assert result.exit_code == 0
    assert "Blacklisted DE44500105175407324931" in result.output

    invoke(cli_runner, temp_db, "import", str(fixtures_dir / "bank_statement.csv"))
    result = invoke(cli_runner, temp_db, "ibans", "dismiss", "1", "--reason", "kein Beitrag", "--yes")
    assert result.exit_code == 0
    assert "deleted 1 transactions" in result.output

    result = invoke(cli_runner, temp_db, "ibans", "list", "--status", "blacklisted")
    assert IBAN in result.output
    assert "DE44500105175407324931" in result.output

    result = invoke(cli_runner, temp_db, "ibans", "remove", IBAN)
    assert result.exit_code == 0
    result = invoke(cli_runner, temp_db, "ibans", "remove", IBAN)
    assert result.exit_code == 1


def test_reminders(cli_runner, temp_db, monkeypatch):
    """Test the reminder switch and a dry run."""
    monkeypatch.delenv("KITAFEES_SMTP_HOST", raising=False)
    setup_family(cli_runner, temp_db)
    invoke(cli_runner, temp_db, "fees", "generate", "--from", "2026-03", "--to", "2026-03")

    result = invoke(cli_runner, temp_db, "reminders", "auto")
    assert "Automatic reminders: off" in result.output
    result = invoke(cli_runner, temp_db, "reminders", "auto", "on")
    assert "Automatic reminders: on" in result.output

    result = invoke(cli_runner, temp_db, "reminders", "run", "--stage", "initial", "--date", "05.04.2026", "--dry-run")
    assert result.exit_code == 0
    assert "[dry run] Stage: initial (05.04.2026)" in result.output
    assert "[dry run] Overdue fees: 3" in result.output

    result = invoke(cli_runner, temp_db, "reminders", "run", "--date", "07.04.2026")
    assert "No reminder stage due." in result.output

    result = invoke(cli_runner, temp_db, "reminders", "run", "--stage", "initial", "--date", "05.04.2026", "--recipient", "vorstand@example.org")
    assert result.exit_code == 0
    assert "E-mail not sent: E-mail is not configured" in result.output


def test_logging_level(cli_runner, temp_db, monkeypatch):
    """Test that batch summaries are logged by default and debug on --verbose."""
    levels = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: levels.append(kwargs["level"]))

    assert invoke(cli_runner, temp_db, "households", "list").exit_code == 0
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "--verbose", "households", "list"])
    assert result.exit_code == 0
    assert levels == [logging.INFO, logging.DEBUG]
