"""Fee expectation domain service."""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from kitafees.database.base import Database
from kitafees.domain.childcare_fee import (
    DEFAULT_CARE_HOURS,
    ChildcareFeeInput,
    ChildcareFeeResult,
    calculate_childcare_fee,
)
from kitafees.domain.eligibility import age_type_for_month, is_under_three_for_entire_month
from kitafees.domain.entities import (
    Child,
    FeeExpectation,
    FeeType,
    IncomeStatus,
)
from kitafees.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    child_not_found,
    duplicate_fee,
    fee_not_found,
)
from kitafees.domain.policy import (
    FOOD_FEE,
    MEMBERSHIP_FEE,
    default_due_date,
    reminder_amount_for,
)
from kitafees.utils.date_parser import iter_months, month_end

logger = logging.getLogger(__name__)

GENERATED_FEE_TYPES = (FeeType.MEMBERSHIP, FeeType.FOOD, FeeType.CHILDCARE)


@dataclass(frozen=True)
class IncomeInfo:
    """Household figures feeding the childcare fee calculation."""

    net_income: Decimal
    siblings_count: int
    highest_rate: bool = False
    foster_family: bool = False


@dataclass
class GenerationResult:
    """Outcome of a fee generation run."""

    created: list[FeeExpectation] = field(default_factory=list)
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class LedgerEntry:
    """One line of a child's account statement."""

    entry_date: date
    description: str
    debit: Decimal
    credit: Decimal
    balance: Decimal
    fee_id: Optional[int] = None
    transaction_id: Optional[int] = None


@dataclass(frozen=True)
class ChildLedger:
    child_id: int
    entries: tuple[LedgerEntry, ...]
    total_debit: Decimal
    total_credit: Decimal

    @property
    def balance(self) -> Decimal:
        return self.total_debit - self.total_credit


def is_in_care(child: Child, year: int, month: int) -> bool:
    """True if the child attends at any point during the month."""
    first = date(year, month, 1)
    last = month_end(year, month)
    if child.entry_date > last:
        return False
    return child.exit_date is None or child.exit_date >= first


class FeeService:
    """Service for creating and maintaining fee expectations."""

    def __init__(self, db: Database):
        """Initialize fee service.

        Args:
            db: Database instance
        """
        self.db = db

    def generate(
        self,
        start: tuple[int, int],
        end: tuple[int, int],
        fee_types: Optional[Iterable[FeeType]] = None,
        child_ids: Optional[list[int]] = None,
    ) -> GenerationResult:
        """Create the periodic fees of active children for a month range.

        Re-running for an already billed period creates nothing new.

        Args:
            start: First (year, month) of the range
            end: Last (year, month) of the range, inclusive
            fee_types: Fee types to generate; defaults to membership, food and childcare
            child_ids: Optional restriction to these children

        Returns:
            GenerationResult with the created fees and the number skipped

        Raises:
            ValidationError: If the range is inverted or a fee type can't be generated
        """
        if start > end:
            raise ValidationError("Start month must not be after end month")
        types = tuple(fee_types) if fee_types else GENERATED_FEE_TYPES
        for fee_type in types:
            if fee_type not in GENERATED_FEE_TYPES:
                raise ValidationError(f"{fee_type.value} fees are not generated periodically")

        result = GenerationResult()
        children = self.db.list_children(active_only=True, child_ids=child_ids)
        months = list(iter_months(start, end))

        for child in children:
            info: Optional[IncomeInfo] = None
            membership_years: set[int] = set()
            for year, month in months:
                if not is_in_care(child, year, month):
                    continue

                if FeeType.MEMBERSHIP in types and year not in membership_years:
                    membership_years.add(year)
                    if child.entry_date.year <= year:
                        self._create_if_missing(
                            result, child.id, FeeType.MEMBERSHIP, year, None, MEMBERSHIP_FEE
                        )

                if FeeType.FOOD in types:
                    self._create_if_missing(result, child.id, FeeType.FOOD, year, month, FOOD_FEE)

                if FeeType.CHILDCARE in types and is_under_three_for_entire_month(child, year, month):
                    if info is None:
                        info = self.get_income_info(child)
                    try:
                        fee = self._childcare_fee(child, info, year, month)
                    except ValidationError as e:
                        result.errors.append(f"Child {child.member_number} {month:02d}/{year}: {e}")
                        continue
                    if fee.fee > 0:
                        self._create_if_missing(
                            result, child.id, FeeType.CHILDCARE, year, month, fee.fee
                        )

        logger.info(
            "Generated %d fees for %d children (%d skipped)",
            len(result.created),
            len(children),
            result.skipped,
        )
        return result

    def _create_if_missing(
        self,
        result: GenerationResult,
        child_id: int,
        fee_type: FeeType,
        year: int,
        month: Optional[int],
        amount: Decimal,
    ) -> None:
        if self.db.fee_expectation_exists(child_id, fee_type, year, month):
            result.skipped += 1
            return
        try:
            fee_id = self.db.create_fee_expectation(
                child_id=child_id,
                fee_type=fee_type,
                year=year,
                month=month,
                amount=amount,
                due_date=default_due_date(fee_type, year, month),
            )
        except ConflictError:
            # Created concurrently; same outcome as an existing fee
            result.skipped += 1
            return
        result.created.append(self.db.get_fee_expectation(fee_id))

    def get_income_info(self, child: Child) -> IncomeInfo:
        """Collect the household figures for a child's fee calculation.

        Households without a usable income (unknown, pending, not required,
        historic) count as zero income, which is fee-free.
        """
        household = self.db.get_household(child.household_id) if child.household_id else None
        if household is None:
            return IncomeInfo(net_income=Decimal("0.00"), siblings_count=1)

        if household.sibling_count_override:
            siblings = household.sibling_count_override
        else:
            siblings = sum(
                1
                for c in self.db.list_children(active_only=True)
                if c.household_id == household.id
            )
        siblings = max(siblings, 1)

        if household.income_status == IncomeStatus.FOSTER_FAMILY:
            return IncomeInfo(Decimal("0.00"), siblings, foster_family=True)
        if household.income_status == IncomeStatus.MAX_ACCEPTED:
            return IncomeInfo(Decimal("0.00"), siblings, highest_rate=True)
        if household.income_status == IncomeStatus.PROVIDED and household.annual_net_income is not None:
            return IncomeInfo(household.annual_net_income, siblings)
        return IncomeInfo(Decimal("0.00"), siblings)

    def _childcare_fee(
        self, child: Child, info: IncomeInfo, year: int, month: int
    ) -> ChildcareFeeResult:
        return calculate_childcare_fee(
            ChildcareFeeInput(
                age_type=age_type_for_month(child, year, month),
                net_income=info.net_income,
                siblings_count=info.siblings_count,
                care_hours=child.care_hours or DEFAULT_CARE_HOURS,
                highest_rate=info.highest_rate,
                foster_family=info.foster_family,
            )
        )

    def calculate_for_child(self, child_id: int, year: int, month: int) -> ChildcareFeeResult:
        """Calculate the childcare fee a child owes for a month.

        Raises:
            NotFoundError: If the child doesn't exist
        """
        child = self.db.get_child(child_id)
        if child is None:
            raise NotFoundError(child_not_found(child_id))
        return self._childcare_fee(child, self.get_income_info(child), year, month)

    def create(
        self,
        child_id: int,
        fee_type: FeeType,
        year: int,
        month: Optional[int] = None,
        amount: Optional[Decimal] = None,
        due_date: Optional[date] = None,
        reconciliation_year: Optional[int] = None,
    ) -> FeeExpectation:
        """Create a single fee, e.g. an annual catch-up charge.

        Args:
            child_id: Child ID
            fee_type: Membership, food or childcare
            year: Billing year
            month: Billing month; None for membership
            amount: Amount; defaults to the standard amount for the type
            due_date: Due date; defaults to the standard due date for the type
            reconciliation_year: Year a catch-up charge settles

        Returns:
            The created fee

        Raises:
            NotFoundError: If the child doesn't exist
            ValidationError: If the period or amount is invalid
            ConflictError: If the fee already exists
        """
        child = self.db.get_child(child_id)
        if child is None:
            raise NotFoundError(child_not_found(child_id))
        if fee_type == FeeType.REMINDER:
            raise ValidationError("Use create_reminder for reminder fees")
        if fee_type == FeeType.MEMBERSHIP:
            month = None
        elif month is None or not 1 <= month <= 12:
            raise ValidationError(f"{fee_type.value} fees need a month between 1 and 12")

        if amount is None:
            if fee_type == FeeType.MEMBERSHIP:
                amount = MEMBERSHIP_FEE
            elif fee_type == FeeType.FOOD:
                amount = FOOD_FEE
            else:
                amount = self.calculate_for_child(child_id, year, month).fee
        if amount <= 0:
            raise ValidationError("Fee amount must be greater than zero")

        if self.db.fee_expectation_exists(child_id, fee_type, year, month):
            raise ConflictError(duplicate_fee(child_id, fee_type.value, year, month))

        fee_id = self.db.create_fee_expectation(
            child_id=child_id,
            fee_type=fee_type,
            year=year,
            month=month,
            amount=amount,
            due_date=due_date or default_due_date(fee_type, year, month),
            reconciliation_year=reconciliation_year,
        )
        return self.db.get_fee_expectation(fee_id)

    def create_reminder(
        self,
        fee_id: int,
        as_of: Optional[date] = None,
        due_date: Optional[date] = None,
        require_unpaid: bool = True,
    ) -> FeeExpectation:
        """Create the REMINDER fee for an overdue fee.

        Returns the existing reminder if one is already linked. Late payments
        are charged after the fact, so they pass ``require_unpaid=False``.

        Raises:
            NotFoundError: If the fee doesn't exist
            ValidationError: If the fee is a reminder itself or already paid
        """
        fee = self.db.get_fee_expectation(fee_id)
        if fee is None:
            raise NotFoundError(fee_not_found(fee_id))
        if fee.fee_type == FeeType.REMINDER:
            raise ValidationError("Reminder fees don't get reminders")
        existing = self.db.get_reminder_for(fee_id)
        if existing is not None:
            return existing
        if require_unpaid and self.is_paid(fee):
            raise ValidationError(f"Fee {fee_id} is already paid")

        as_of = as_of or date.today()
        reminder_id = self.db.create_fee_expectation(
            child_id=fee.child_id,
            fee_type=FeeType.REMINDER,
            year=fee.year,
            month=fee.month,
            amount=reminder_amount_for(fee.fee_type),
            due_date=due_date or as_of + timedelta(days=14),
            reminder_for_id=fee.id,
        )
        logger.info("Created reminder %s for fee %s", reminder_id, fee.id)
        return self.db.get_fee_expectation(reminder_id)

    def is_paid(self, fee: FeeExpectation) -> bool:
        """A fee is paid once matched amounts cover it."""
        return self.db.get_paid_amount(fee.id) >= fee.amount

    def get_fee(self, fee_id: int) -> Optional[FeeExpectation]:
        """Get fee by ID."""
        return self.db.get_fee_expectation(fee_id)

    def list_fees(
        self,
        child_id: Optional[int] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
        fee_type: Optional[FeeType] = None,
        open_only: bool = False,
    ) -> list[FeeExpectation]:
        """List fees with optional filters."""
        return self.db.list_fee_expectations(
            child_id=child_id,
            year=year,
            month=month,
            fee_types=[fee_type] if fee_type else None,
            unpaid_only=open_only,
        )

    def update_amount(self, fee_id: int, amount: Decimal) -> None:
        """Correct the amount of a fee.

        Raises:
            NotFoundError: If the fee doesn't exist
            ValidationError: If the amount is not positive
        """
        if amount <= 0:
            raise ValidationError("Fee amount must be greater than zero")
        if self.db.get_fee_expectation(fee_id) is None:
            raise NotFoundError(fee_not_found(fee_id))
        self.db.update_fee_amount(fee_id, amount)

    def delete(self, fee_id: int) -> None:
        """Delete an unpaid fee.

        Raises:
            NotFoundError: If the fee doesn't exist
            ValidationError: If payments are matched to it
        """
        fee = self.db.get_fee_expectation(fee_id)
        if fee is None:
            raise NotFoundError(fee_not_found(fee_id))
        if self.db.list_payment_matches(expectation_id=fee_id):
            raise ValidationError(f"Fee {fee_id} has matched payments; unmatch them first")
        self.db.delete_fee_expectation(fee_id)

    def get_child_ledger(self, child_id: int, year: Optional[int] = None) -> ChildLedger:
        """Chronological statement of a child's fees and payments.

        Raises:
            NotFoundError: If the child doesn't exist
        """
        if self.db.get_child(child_id) is None:
            raise NotFoundError(child_not_found(child_id))

        rows: list[tuple[date, int, str, Decimal, Decimal, Optional[int], Optional[int]]] = []
        for fee in self.db.list_fee_expectations(child_id=child_id, year=year):
            label = f"{fee.fee_type.value} {fee.period_label}"
            rows.append((fee.due_date, 0, label, fee.amount, Decimal("0.00"), fee.id, None))
            for match in self.db.list_payment_matches(expectation_id=fee.id):
                txn = self.db.get_bank_transaction(match.transaction_id)
                paid_on = txn.value_date if txn is not None else match.matched_at.date()
                rows.append(
                    (paid_on, 1, f"Zahlung {label}", Decimal("0.00"), match.amount, fee.id, match.transaction_id)
                )
        rows.sort(key=lambda r: (r[0], r[1]))

        entries = []
        balance = Decimal("0.00")
        total_debit = Decimal("0.00")
        total_credit = Decimal("0.00")
        for entry_date, _, text, debit, credit, fee_id, transaction_id in rows:
            balance += debit - credit
            total_debit += debit
            total_credit += credit
            entries.append(
                LedgerEntry(entry_date, text, debit, credit, balance, fee_id, transaction_id)
            )
        return ChildLedger(child_id, tuple(entries), total_debit, total_credit)

