"""Fee constants and tunable matching / reminder policies."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from kitafees.domain.entities import FeeType

MEMBERSHIP_FEE = Decimal("30.00")
FOOD_FEE = Decimal("45.40")
REMINDER_FEE = Decimal("10.00")
MEMBERSHIP_REMINDER_FEE = Decimal("5.00")

MEMBERSHIP_DUE_MONTH = 3
MEMBERSHIP_DUE_DAY = 31
MONTHLY_DUE_DAY = 5


def reminder_amount_for(fee_type: FeeType) -> Decimal:
    """Reminder surcharge for an overdue fee of the given type."""
    if fee_type == FeeType.MEMBERSHIP:
        return MEMBERSHIP_REMINDER_FEE
    return REMINDER_FEE


def default_due_date(fee_type: FeeType, year: int, month: int | None) -> date:
    """Membership is due on 31 March, monthly fees on the 5th."""
    if fee_type == FeeType.MEMBERSHIP or month is None:
        return date(year, MEMBERSHIP_DUE_MONTH, MEMBERSHIP_DUE_DAY)
    return date(year, month, MONTHLY_DUE_DAY)


DEFAULT_EXCLUDED_PATTERNS = (
    r"\bentgelt\b",
    r"kontof(ue|ü)hrung",
    r"rechnungsabschluss",
    r"abschluss\s+per",
    r"\bzinsen\b",
    r"\bgehalt\b",
    r"\blohn\b",
    r"\bfinanzamt\b",
    r"\bkrankenkasse\b",
    r"\bversicherung\b",
    r"\b(aok|barmer|dak|techniker)\b",
    r"\bberufsgenossenschaft\b",
    r"\bgutschrift\s+storno\b",
)

DEFAULT_BANK_FEE_TYPES = (
    r"entgelt",
    r"abschluss",
    r"geb(ue|ü)hr",
)


@dataclass(frozen=True)
class MatchingPolicy:
    """Thresholds and confidence tiers of the transaction matcher.

    Tiers are ordinal: only their order is meaningful.
    """

    auto_confirm_threshold: float = 0.95
    trusted_iban: float = 0.99
    member_number_exact: float = 0.95
    name_exact: float = 0.90
    member_number_amount_differs: float = 0.80
    weak_name_exact: float = 0.75
    name_amount_differs: float = 0.70
    weak_name_amount_differs: float = 0.60
    amount_only: float = 0.50
    combined_boost: float = 0.02
    combined_cap: float = 0.99
    # Targets outside the booking period stay below auto-confirmation.
    out_of_period_cap: float = 0.90
    min_name_score: float = 0.5
    strong_name_score: float = 0.85
    fuzzy_name_ratio: float = 0.85
    late_payment_day: int = 15
    bulk_max_fees: int = 6
    amount_tolerance: Decimal = Decimal("0.01")
    bind_trusted_iban_to_child: bool = False
    fixed_amounts: tuple[tuple[Decimal, FeeType], ...] = (
        (FOOD_FEE, FeeType.FOOD),
        (MEMBERSHIP_FEE, FeeType.MEMBERSHIP),
        (FOOD_FEE + REMINDER_FEE, FeeType.FOOD),
        (MEMBERSHIP_FEE + MEMBERSHIP_REMINDER_FEE, FeeType.MEMBERSHIP),
    )
    excluded_patterns: tuple[str, ...] = DEFAULT_EXCLUDED_PATTERNS
    bank_fee_types: tuple[str, ...] = DEFAULT_BANK_FEE_TYPES


@dataclass(frozen=True)
class ReminderPolicy:
    """When overdue fees get an initial notice and a final reminder fee."""

    initial_day: int = 5
    final_day: int = 10
    grace_days: dict[str, int] = field(default_factory=lambda: {"initial": 0, "final": 5})
    fee_types: tuple[FeeType, ...] = (FeeType.FOOD, FeeType.CHILDCARE, FeeType.MEMBERSHIP)
    reminder_due_day: int = 15
    min_payment_days: int = 14
