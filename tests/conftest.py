"""Shared pytest fixtures for kitafees tests."""

import tempfile
import os
from datetime import date
from decimal import Decimal
from pathlib import Path
import pytest

from kitafees.database.factories import create_sqlite_database
from kitafees.domain.bank_csv import BANK_CSV_HEADER
from kitafees.domain.bank_import import BankImportService
from kitafees.domain.child import ChildService
from kitafees.domain.entities import IncomeStatus
from kitafees.domain.fee_generation import FeeService
from kitafees.domain.household import HouseholdService
from kitafees.domain.iban_memory import IbanMemoryService
from kitafees.domain.reconciliation import ReconciliationLedger

OWN_ACCOUNT = ["Kita Sonnenschein e.V.", "DE02120300000000202051", "BYLADEM1001", "Testbank"]


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def household_service(temp_db):
    """Create a HouseholdService with a temporary database."""
    return HouseholdService(temp_db)


@pytest.fixture
def child_service(temp_db):
    """Create a ChildService with a temporary database."""
    return ChildService(temp_db)


@pytest.fixture
def fee_service(temp_db):
    """Create a FeeService with a temporary database."""
    return FeeService(temp_db)


@pytest.fixture
def ledger(temp_db):
    """Create a ReconciliationLedger with a temporary database."""
    return ReconciliationLedger(temp_db)


@pytest.fixture
def import_service(temp_db):
    """Create a BankImportService with a temporary database."""
    return BankImportService(temp_db)


@pytest.fixture
def iban_service(temp_db):
    """Create an IbanMemoryService with a temporary database."""
    return IbanMemoryService(temp_db)


@pytest.fixture
def sample_household(household_service):
    """Create a household with a provided income in the relief band."""
    household_id = household_service.create_household(
        name="Familie Schmidt",
        annual_net_income=Decimal("36412.80"),
        income_status=IncomeStatus.PROVIDED,
    )
    household_service.add_parent(household_id, "Julia", "Schmidt", "julia@example.org")
    return household_service.get_household(household_id)


@pytest.fixture
def sample_child(child_service, sample_household):
    """Create an under-three child in the sample household."""
    child_id = child_service.create_child(
        member_number="12345",
        first_name="Mia",
        last_name="Schmidt",
        birth_date=date(2024, 5, 14),
        entry_date=date(2025, 9, 1),
        household_id=sample_household.id,
        care_hours=45,
    )
    return child_service.get_child(child_id)


@pytest.fixture
def other_child(child_service, household_service):
    """Create a second, unrelated child."""
    household_id = household_service.create_household(
        name="Familie Weber", income_status=IncomeStatus.MAX_ACCEPTED
    )
    household_service.add_parent(household_id, "Thomas", "Weber")
    child_id = child_service.create_child(
        member_number="23456",
        first_name="Leon",
        last_name="Weber",
        birth_date=date(2022, 2, 1),
        entry_date=date(2024, 8, 1),
        household_id=household_id,
        care_hours=35,
    )
    return child_service.get_child(child_id)


def bank_row(
    booking: str,
    amount: str,
    payer_name: str = "",
    payer_iban: str = "",
    purpose: str = "",
    value: str | None = None,
    transaction_type: str = "Gutschrift",
) -> list[str]:
    """One bank statement line in export column order."""
    return OWN_ACCOUNT + [
        booking,
        value or booking,
        payer_name,
        payer_iban,
        "",
        transaction_type,
        purpose,
        amount,
        "EUR",
        "",
        "",
        "",
        "",
        "",
        "",
    ]


def bank_csv(*rows: list[str]) -> bytes:
    """Encode rows like the bank export: ISO-8859-1, semicolons, header first."""
    lines = [";".join(BANK_CSV_HEADER)]
    lines.extend(";".join(row) for row in rows)
    return ("\r\n".join(lines) + "\r\n").encode("iso-8859-1")


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
