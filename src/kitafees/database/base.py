"""Abstract database interface."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional, Any
from datetime import date
from decimal import Decimal

# Import entities directly to avoid circular import through domain/__init__.py
from kitafees.domain.entities import (
    Household,
    Parent,
    Child,
    FeeExpectation,
    FeeType,
    BankTransaction,
    PaymentMatch,
    KnownIBAN,
    KnownIBANStatus,
    TransactionWarning,
    WarningType,
    ResolutionType,
    ImportBatch,
    EmailLog,
    EmailLogType,
    IncomeStatus,
    MatchType,
)


class Database(ABC):
    """Abstract database interface for kitafees."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Group writes into one unit; commits when the outermost block exits."""
        pass

    # Household operations
    @abstractmethod
    def create_household(
        self,
        name: str,
        annual_net_income: Optional[Decimal] = None,
        income_status: IncomeStatus = IncomeStatus.UNKNOWN,
        sibling_count_override: Optional[int] = None,
    ) -> int:
        """Create a household. Returns household ID."""
        pass

    @abstractmethod
    def get_household(self, household_id: int) -> Optional[Household]:
        """Get household by ID."""
        pass

    @abstractmethod
    def list_households(self) -> list[Household]:
        """List all households."""
        pass

    @abstractmethod
    def update_household_income(
        self,
        household_id: int,
        annual_net_income: Optional[Decimal],
        income_status: IncomeStatus,
        income_calculation: Optional[dict[str, Any]] = None,
        sibling_count_override: Optional[int] = None,
    ) -> None:
        """Replace the income assessment of a household."""
        pass

    # Parent operations
    @abstractmethod
    def create_parent(
        self, household_id: int, first_name: str, last_name: str, email: Optional[str] = None
    ) -> int:
        """Create a parent. Returns parent ID."""
        pass

    @abstractmethod
    def list_parents(self, household_id: Optional[int] = None) -> list[Parent]:
        """List parents, optionally filtered by household."""
        pass

    # Child operations
    @abstractmethod
    def create_child(
        self,
        member_number: str,
        first_name: str,
        last_name: str,
        birth_date: date,
        entry_date: date,
        exit_date: Optional[date] = None,
        household_id: Optional[int] = None,
        care_hours: Optional[int] = None,
        legal_hours: Optional[int] = None,
        legal_hours_until: Optional[date] = None,
    ) -> int:
        """Create a child. Returns child ID."""
        pass

    @abstractmethod
    def get_child(self, child_id: int) -> Optional[Child]:
        """Get child by ID."""
        pass

    @abstractmethod
    def get_child_by_member_number(self, member_number: str) -> Optional[Child]:
        """Get child by 5-digit member number."""
        pass

    @abstractmethod
    def list_children(
        self, active_only: bool = False, child_ids: Optional[list[int]] = None
    ) -> list[Child]:
        """List children ordered by last and first name."""
        pass

    @abstractmethod
    def set_child_active(self, child_id: int, is_active: bool) -> None:
        """Activate or deactivate a child."""
        pass

    # Fee expectation operations
    @abstractmethod
    def create_fee_expectation(
        self,
        child_id: int,
        fee_type: FeeType,
        year: int,
        month: Optional[int],
        amount: Decimal,
        due_date: date,
        reminder_for_id: Optional[int] = None,
        reconciliation_year: Optional[int] = None,
    ) -> int:
        """Create a fee expectation. Returns fee ID."""
        pass

    @abstractmethod
    def get_fee_expectation(self, fee_id: int) -> Optional[FeeExpectation]:
        """Get fee expectation by ID."""
        pass

    @abstractmethod
    def fee_expectation_exists(
        self, child_id: int, fee_type: FeeType, year: int, month: Optional[int]
    ) -> bool:
        """Check if a fee exists for the child, type and period."""
        pass

    @abstractmethod
    def list_fee_expectations(
        self,
        child_id: Optional[int] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
        fee_types: Optional[list[FeeType]] = None,
        unpaid_only: bool = False,
    ) -> list[FeeExpectation]:
        """List fee expectations ordered by period."""
        pass

    @abstractmethod
    def get_reminder_for(self, fee_id: int) -> Optional[FeeExpectation]:
        """Get the REMINDER fee linked to a fee, if any."""
        pass

    @abstractmethod
    def update_fee_amount(self, fee_id: int, amount: Decimal) -> None:
        """Change the amount of a fee."""
        pass

    @abstractmethod
    def delete_fee_expectation(self, fee_id: int) -> None:
        """Delete a fee expectation."""
        pass

    @abstractmethod
    def get_paid_amount(self, fee_id: int) -> Decimal:
        """Sum of matched amounts allocated to a fee."""
        pass

    # Bank transaction operations
    @abstractmethod
    def create_bank_transaction(
        self,
        booking_date: date,
        value_date: date,
        amount: Decimal,
        payer_name: Optional[str] = None,
        payer_iban: Optional[str] = None,
        description: Optional[str] = None,
        currency: str = "EUR",
        transaction_type: Optional[str] = None,
        import_batch_id: Optional[int] = None,
    ) -> int:
        """Create a bank transaction. Returns transaction ID."""
        pass

    @abstractmethod
    def get_bank_transaction(self, transaction_id: int) -> Optional[BankTransaction]:
        """Get bank transaction by ID."""
        pass

    @abstractmethod
    def bank_transaction_exists(
        self,
        booking_date: date,
        payer_iban: Optional[str],
        amount: Decimal,
        description: Optional[str],
    ) -> bool:
        """Check if the same statement line was already imported."""
        pass

    @abstractmethod
    def list_bank_transactions(
        self,
        unmatched_only: bool = False,
        include_hidden: bool = False,
        payer_iban: Optional[str] = None,
        import_batch_id: Optional[int] = None,
    ) -> list[BankTransaction]:
        """List bank transactions ordered by booking date."""
        pass

    @abstractmethod
    def hide_bank_transaction(self, transaction_id: int, hidden_by: str) -> None:
        """Flag a transaction as hidden."""
        pass

    @abstractmethod
    def delete_bank_transaction(self, transaction_id: int) -> None:
        """Delete a transaction with its matches and warnings."""
        pass

    # Payment match operations
    @abstractmethod
    def create_payment_match(
        self,
        transaction_id: int,
        expectation_id: int,
        match_type: MatchType,
        amount: Decimal,
        confidence: Optional[float] = None,
        matched_by: Optional[str] = None,
    ) -> int:
        """Create a payment match. Returns match ID."""
        pass

    @abstractmethod
    def get_payment_match(self, transaction_id: int, expectation_id: int) -> Optional[PaymentMatch]:
        """Get the match for a transaction/expectation pair."""
        pass

    @abstractmethod
    def list_payment_matches(
        self, transaction_id: Optional[int] = None, expectation_id: Optional[int] = None
    ) -> list[PaymentMatch]:
        """List payment matches, optionally filtered."""
        pass

    @abstractmethod
    def delete_payment_matches(self, transaction_id: int) -> int:
        """Delete all matches of a transaction. Returns number removed."""
        pass

    # Known IBAN operations
    @abstractmethod
    def get_known_iban(self, iban: str) -> Optional[KnownIBAN]:
        """Get known IBAN entry."""
        pass

    @abstractmethod
    def save_known_iban(
        self,
        iban: str,
        status: KnownIBANStatus,
        payer_name: Optional[str] = None,
        child_id: Optional[int] = None,
        reason: Optional[str] = None,
        original_transaction_id: Optional[int] = None,
        original_description: Optional[str] = None,
        original_amount: Optional[Decimal] = None,
    ) -> None:
        """Insert or replace a known IBAN entry."""
        pass

    @abstractmethod
    def set_known_iban_child(self, iban: str, child_id: Optional[int]) -> None:
        """Bind a known IBAN to a child, or unbind with None."""
        pass

    @abstractmethod
    def list_known_ibans(self, status: Optional[KnownIBANStatus] = None) -> list[KnownIBAN]:
        """List known IBANs, optionally filtered by status."""
        pass

    @abstractmethod
    def delete_known_iban(self, iban: str) -> None:
        """Forget a known IBAN."""
        pass

    # Warning operations
    @abstractmethod
    def create_warning(
        self,
        transaction_id: int,
        warning_type: WarningType,
        message: str,
        expected_amount: Optional[Decimal] = None,
        actual_amount: Optional[Decimal] = None,
        child_id: Optional[int] = None,
        matched_fee_id: Optional[int] = None,
    ) -> int:
        """Create a transaction warning. Returns warning ID."""
        pass

    @abstractmethod
    def get_warning(self, warning_id: int) -> Optional[TransactionWarning]:
        """Get warning by ID."""
        pass

    @abstractmethod
    def list_warnings(
        self,
        transaction_id: Optional[int] = None,
        warning_type: Optional[WarningType] = None,
        unresolved_only: bool = True,
    ) -> list[TransactionWarning]:
        """List warnings, newest first."""
        pass

    @abstractmethod
    def resolve_warning(
        self,
        warning_id: int,
        resolution_type: ResolutionType,
        resolved_by: Optional[str] = None,
        note: Optional[str] = None,
    ) -> None:
        """Mark a warning as resolved."""
        pass

    # Import batch operations
    @abstractmethod
    def create_import_batch(self, file_name: str, imported_by: str) -> int:
        """Create an import batch. Returns batch ID."""
        pass

    @abstractmethod
    def update_import_batch_counts(
        self, batch_id: int, transaction_count: int, matched_count: int
    ) -> None:
        """Store the final counts of an import batch."""
        pass

    @abstractmethod
    def list_import_batches(self) -> list[ImportBatch]:
        """List import batches, newest first."""
        pass

    # Settings operations
    @abstractmethod
    def get_setting(self, key: str) -> Optional[str]:
        """Get a setting value."""
        pass

    @abstractmethod
    def set_setting(self, key: str, value: str) -> None:
        """Set a setting value."""
        pass

    # Email log operations
    @abstractmethod
    def create_email_log(
        self,
        to_email: str,
        subject: str,
        body: str,
        email_type: EmailLogType,
        payload: Optional[dict[str, Any]] = None,
        sent_by: Optional[str] = None,
    ) -> int:
        """Record a sent e-mail. Returns log ID."""
        pass

    @abstractmethod
    def list_email_logs(self, email_type: Optional[EmailLogType] = None) -> list[EmailLog]:
        """List e-mail logs, newest first."""
        pass
