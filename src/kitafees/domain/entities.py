"""Domain model entities for kitafees.

These are pure data classes representing billing and reconciliation concepts,
independent of database schema. Money is always a Decimal in euros; optional
values are None rather than sentinel values.
"""

from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class FeeType(str, Enum):
    """Kind of billing obligation."""

    MEMBERSHIP = "MEMBERSHIP"
    FOOD = "FOOD"
    CHILDCARE = "CHILDCARE"
    REMINDER = "REMINDER"


class IncomeStatus(str, Enum):
    """How the household income was established."""

    UNKNOWN = ""
    PROVIDED = "PROVIDED"
    MAX_ACCEPTED = "MAX_ACCEPTED"
    PENDING = "PENDING"
    NOT_REQUIRED = "NOT_REQUIRED"
    HISTORIC = "HISTORIC"
    FOSTER_FAMILY = "FOSTER_FAMILY"


class ChildAgeType(str, Enum):
    """Fee age category (U3 / Ü3)."""

    UNDER_THREE = "krippe"
    KINDERGARTEN = "kindergarten"


class MatchType(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class KnownIBANStatus(str, Enum):
    TRUSTED = "trusted"
    BLACKLISTED = "blacklisted"


class WarningType(str, Enum):
    """Anomaly raised against an incoming transaction."""

    NO_MATCHING_FEE = "NO_MATCHING_FEE"
    UNEXPECTED_AMOUNT = "UNEXPECTED_AMOUNT"
    PARTIAL_PAYMENT = "PARTIAL_PAYMENT"
    OVERPAYMENT = "OVERPAYMENT"
    POSSIBLE_BULK = "POSSIBLE_BULK"
    DUPLICATE_PAYMENT = "DUPLICATE_PAYMENT"
    LATE_PAYMENT = "LATE_PAYMENT"
    MULTIPLE_OPEN_FEES = "MULTIPLE_OPEN_FEES"


class ResolutionType(str, Enum):
    DISMISSED = "dismissed"
    MATCHED = "matched"
    AUTO_RESOLVED = "auto_resolved"


class EmailLogType(str, Enum):
    REMINDER_INITIAL = "REMINDER_INITIAL"
    REMINDER_FINAL = "REMINDER_FINAL"


@dataclass(frozen=True)
class Household:
    """Parents and children sharing one income assessment."""

    id: int
    name: str
    annual_net_income: Optional[Decimal]
    income_status: IncomeStatus
    sibling_count_override: Optional[int]
    income_calculation: Optional[dict[str, Any]]
    created_at: datetime

    @property
    def has_usable_income(self) -> bool:
        """Income is meaningful only for provided or max-accepted households."""
        return self.income_status in (IncomeStatus.PROVIDED, IncomeStatus.MAX_ACCEPTED)


@dataclass(frozen=True)
class Parent:
    """Parent domain entity."""

    id: int
    household_id: int
    first_name: str
    last_name: str
    email: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class Child:
    """Child domain entity."""

    id: int
    member_number: str
    first_name: str
    last_name: str
    birth_date: date
    entry_date: date
    exit_date: Optional[date]
    household_id: Optional[int]
    care_hours: Optional[int]
    legal_hours: Optional[int]
    legal_hours_until: Optional[date]
    is_active: bool
    created_at: datetime

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class FeeExpectation:
    """One billing obligation. ``month`` is None for annual fees."""

    id: int
    child_id: int
    fee_type: FeeType
    year: int
    month: Optional[int]
    amount: Decimal
    due_date: date
    reminder_for_id: Optional[int]
    reconciliation_year: Optional[int]
    created_at: datetime

    @property
    def is_annual(self) -> bool:
        return self.month is None

    @property
    def period_label(self) -> str:
        if self.month is None:
            return str(self.year)
        return f"{self.month:02d}/{self.year}"


@dataclass(frozen=True)
class BankTransaction:
    """Imported bank statement line."""

    id: int
    booking_date: date
    value_date: date
    payer_name: Optional[str]
    payer_iban: Optional[str]
    description: Optional[str]
    amount: Decimal
    currency: str
    transaction_type: Optional[str]
    import_batch_id: Optional[int]
    is_hidden: bool
    hidden_at: Optional[datetime]
    hidden_by: Optional[str]
    imported_at: datetime


@dataclass(frozen=True)
class PaymentMatch:
    """Link between one transaction and one fee expectation."""

    id: int
    transaction_id: int
    expectation_id: int
    match_type: MatchType
    confidence: Optional[float]
    amount: Decimal
    matched_by: Optional[str]
    matched_at: datetime


@dataclass(frozen=True)
class KnownIBAN:
    """Learned payer account classification."""

    iban: str
    payer_name: Optional[str]
    status: KnownIBANStatus
    child_id: Optional[int]
    reason: Optional[str]
    original_transaction_id: Optional[int]
    original_description: Optional[str]
    original_amount: Optional[Decimal]
    created_at: datetime


@dataclass(frozen=True)
class TransactionWarning:
    """Anomaly raised against a transaction."""

    id: int
    transaction_id: int
    warning_type: WarningType
    message: str
    expected_amount: Optional[Decimal]
    actual_amount: Optional[Decimal]
    child_id: Optional[int]
    matched_fee_id: Optional[int]
    resolved_at: Optional[datetime]
    resolved_by: Optional[str]
    resolution_type: Optional[ResolutionType]
    resolution_note: Optional[str]
    created_at: datetime

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


@dataclass(frozen=True)
class ImportBatch:
    """Metadata of one CSV upload."""

    id: int
    file_name: str
    imported_by: str
    imported_at: datetime
    transaction_count: int
    matched_count: int


@dataclass(frozen=True)
class EmailLog:
    id: int
    to_email: str
    subject: str
    body: str
    email_type: EmailLogType
    payload: Optional[dict[str, Any]]
    sent_by: Optional[str]
    sent_at: datetime


@dataclass(frozen=True)
class RawTransaction:
    """Decoded bank CSV row before persistence.

    Strings are already decoded to text and amounts to Decimal, so nothing
    downstream of the CSV parser deals with the export's charset or locale.
    """

    row_number: int
    booking_date: date
    value_date: date
    payer_name: Optional[str]
    payer_iban: Optional[str]
    payer_bic: Optional[str]
    transaction_type: Optional[str]
    description: Optional[str]
    amount: Decimal
    currency: str
    balance: Optional[Decimal] = None
    notes: Optional[str] = None
    creditor_id: Optional[str] = None
    mandate_reference: Optional[str] = None


@dataclass(frozen=True)
class MatchSuggestion:
    """Proposed transaction-to-fee match produced by the matcher.

    ``expectation_ids`` holds every fee the payment covers (two for a fee paid
    together with its reminder); ``expectation_id`` is the primary one.
    """

    transaction_id: int
    detected_type: Optional[FeeType]
    confidence: float
    matched_by: str
    child_id: Optional[int] = None
    expectation_id: Optional[int] = None
    expectation_ids: tuple[int, ...] = ()
    amount_matches: bool = False
    in_billing_period: bool = False
    warning_type: Optional[WarningType] = None
    candidate_ids: tuple[int, ...] = ()

    @property
    def has_target(self) -> bool:
        return self.expectation_id is not None
