"""Monthly childcare fee calculation.

Rates follow the municipal fee statute (Satzung) for under-three care and the
reduced table of the Brandenburg parental fee relief act (Entlastung). Tables
are ordered by ascending minimum income and searched for the greatest
threshold that does not exceed the household income.
"""

from bisect import bisect_right
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from kitafees.domain.entities import ChildAgeType
from kitafees.domain.errors import ValidationError, invalid_care_hours

CENT = Decimal("0.01")

CARE_HOURS_TIERS = (30, 35, 40, 45, 50, 55)
DEFAULT_CARE_HOURS = 45

FREE_INCOME_LIMIT_U3 = Decimal("35000.00")
RELIEF_INCOME_MIN_U3 = Decimal("35000.01")
RELIEF_INCOME_MAX_U3 = Decimal("55000.00")
STANDARD_INCOME_MIN_U3 = Decimal("55000.01")

SIBLINGS_FREE_THRESHOLD = 7
MAX_SIBLINGS_FOR_DISCOUNT = 6

# Discount factor by number of children in the household.
SIBLING_DISCOUNT = (
    (1, Decimal("1.00")),
    (2, Decimal("0.90")),
    (3, Decimal("0.80")),
    (4, Decimal("0.65")),
    (5, Decimal("0.45")),
    (6, Decimal("0.25")),
)


@dataclass(frozen=True)
class FeeTableRow:
    """Minimum income and one rate per care hours tier."""

    min_income: Decimal
    rates: tuple[Decimal, ...]


def _row(min_income: str, *rates: str) -> FeeTableRow:
    return FeeTableRow(Decimal(min_income), tuple(Decimal(r) for r in rates))


STANDARD_TABLE_U3 = (
    _row("20000.01", "55.52", "62.46", "69.40", "76.34", "83.28", "90.22"),
    _row("22000.00", "77.73", "87.44", "97.16", "106.88", "116.59", "126.31"),
    _row("25000.00", "107.25", "120.66", "134.07", "147.48", "160.88", "174.29"),
    _row("28000.00", "141.32", "158.99", "176.65", "194.32", "211.99", "229.65"),
    _row("31000.00", "156.47", "176.02", "195.58", "215.14", "234.70", "254.26"),
    _row("34000.00", "171.61", "193.06", "214.51", "235.96", "257.41", "278.86"),
    _row("37000.00", "186.75", "210.09", "233.44", "256.78", "280.12", "303.47"),
    _row("40000.00", "201.89", "227.13", "252.36", "277.60", "302.84", "328.07"),
    _row("43000.00", "217.03", "244.16", "271.29", "298.42", "325.55", "352.68"),
    _row("46000.00", "232.17", "261.20", "290.22", "319.24", "348.26", "377.28"),
    _row("49000.00", "247.32", "278.23", "309.15", "340.06", "370.97", "401.89"),
    _row("52000.00", "262.46", "295.27", "328.07", "360.88", "393.69", "426.49"),
    _row("55000.01", "277.60", "312.30", "347.00", "381.70", "416.40", "451.10"),
)

RELIEF_TABLE_U3 = (
    _row("35000.01", "48", "54", "60", "66", "72", "78"),
    _row("40000.01", "80", "90", "100", "110", "120", "130"),
    _row("45000.01", "120", "135", "150", "165", "180", "195"),
    _row("50000.01", "168", "189", "210", "231", "252", "273"),
)

RULE_KINDERGARTEN = "Beitragsfrei (ab 3 Jahren)"
RULE_FOSTER = "Pflegefamilie (Durchschnittsbeitrag)"
RULE_MANY_SIBLINGS = "Beitragsfrei (≥ 7 Kinder)"
RULE_HIGHEST_RATE = "Höchstsatz (Satzung U3)"
RULE_LOW_INCOME = "Beitragsfrei (Einkommen ≤ 35.000 EUR)"
RULE_RELIEF = "Reduzierter Beitrag (Entlastung U3)"
RULE_STANDARD = "Regulärer Beitrag (Satzung U3)"

NOTE_SIBLING_DISCOUNT = "Geschwisterermäßigung berücksichtigt."
NOTE_RELIEF_NO_DISCOUNT = "Kein zusätzlicher Geschwisterrabatt in diesem Einkommensbereich."
NOTE_RELIEF_LAW = "Rechtsgrundlage: Elternbeitragsentlastungsgesetz."


@dataclass(frozen=True)
class ChildcareFeeInput:
    """Inputs of the childcare fee calculation."""

    age_type: ChildAgeType
    net_income: Decimal
    siblings_count: int = 1
    care_hours: int = DEFAULT_CARE_HOURS
    highest_rate: bool = False
    foster_family: bool = False


@dataclass(frozen=True)
class ChildcareFeeResult:
    """Outcome of the calculation including the applied rule."""

    fee: Decimal
    base_fee: Decimal
    rule: str
    discount_factor: Decimal = Decimal("1.00")
    discount_percent: int = 0
    show_relief: bool = False
    notes: tuple[str, ...] = field(default=())

    @property
    def is_free(self) -> bool:
        return self.fee == 0


def round_money(value: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def hours_index(care_hours: int) -> int:
    """Column index for a weekly care hours tier."""
    try:
        return CARE_HOURS_TIERS.index(care_hours)
    except ValueError:
        raise ValidationError(invalid_care_hours(care_hours, CARE_HOURS_TIERS)) from None


def find_row(table: tuple[FeeTableRow, ...], income: Decimal) -> Optional[FeeTableRow]:
    """Return the row with the greatest minimum income <= income."""
    thresholds = [row.min_income for row in table]
    position = bisect_right(thresholds, income)
    if position == 0:
        return None
    return table[position - 1]


def find_rate(table: tuple[FeeTableRow, ...], income: Decimal, care_hours: int) -> Decimal:
    """Look up the rate for an income and care hours tier in a fee table."""
    column = hours_index(care_hours)
    row = find_row(table, income)
    if row is None:
        return Decimal("0.00")
    return row.rates[column]


def average_standard_rate(care_hours: int) -> Decimal:
    """Unrounded average of all statute rates for a care hours tier."""
    column = hours_index(care_hours)
    total = sum((row.rates[column] for row in STANDARD_TABLE_U3), Decimal("0"))
    return total / len(STANDARD_TABLE_U3)


def sibling_discount_factor(siblings_count: int) -> Decimal:
    """Discount factor for the number of children, capped at the table maximum."""
    count = min(max(siblings_count, 1), MAX_SIBLINGS_FOR_DISCOUNT)
    for key, factor in SIBLING_DISCOUNT:
        if key == count:
            return factor
    return Decimal("1.00")


def _discounted(base_fee: Decimal, siblings_count: int, rule: str) -> ChildcareFeeResult:
    factor = sibling_discount_factor(siblings_count)
    notes: tuple[str, ...] = ()
    if siblings_count > 1 and factor < 1:
        notes = (NOTE_SIBLING_DISCOUNT,)
    return ChildcareFeeResult(
        fee=round_money(base_fee * factor),
        base_fee=base_fee,
        rule=rule,
        discount_factor=factor,
        discount_percent=int(((1 - factor) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
        notes=notes,
    )


def calculate_childcare_fee(fee_input: ChildcareFeeInput) -> ChildcareFeeResult:
    """Calculate the monthly childcare fee.

    Args:
        fee_input: Age category, fee-relevant income, sibling count, care hours
            and the special status flags

    Returns:
        ChildcareFeeResult with the final fee, the pre-discount base fee and
        the rule that was applied

    Raises:
        ValidationError: If the care hours tier or age category is unknown
    """
    if not isinstance(fee_input.age_type, ChildAgeType):
        raise ValidationError(f"Unknown age category '{fee_input.age_type}'")
    hours_index(fee_input.care_hours)
    siblings = max(fee_input.siblings_count, 1)

    if fee_input.age_type == ChildAgeType.KINDERGARTEN:
        return ChildcareFeeResult(
            fee=Decimal("0.00"),
            base_fee=Decimal("0.00"),
            rule=RULE_KINDERGARTEN,
            notes=("Die Betreuung im Kindergartenalter ist in Brandenburg beitragsfrei.",),
        )

    # Rounded once, after averaging.
    if fee_input.foster_family:
        average = average_standard_rate(fee_input.care_hours)
        return ChildcareFeeResult(
            fee=round_money(average),
            base_fee=average,
            rule=RULE_FOSTER,
            notes=("Beitrag ist der Durchschnitt aller Sätze für die entsprechende Betreuungszeit.",),
        )

    if siblings >= SIBLINGS_FREE_THRESHOLD:
        return ChildcareFeeResult(
            fee=Decimal("0.00"),
            base_fee=Decimal("0.00"),
            rule=RULE_MANY_SIBLINGS,
            notes=("Bei 7 oder mehr unterhaltsberechtigten Kindern entfällt der Elternbeitrag.",),
        )

    if fee_input.highest_rate:
        top_row = STANDARD_TABLE_U3[-1]
        base_fee = top_row.rates[hours_index(fee_input.care_hours)]
        return _discounted(base_fee, siblings, RULE_HIGHEST_RATE)

    income = fee_input.net_income
    if income <= FREE_INCOME_LIMIT_U3:
        return ChildcareFeeResult(
            fee=Decimal("0.00"),
            base_fee=Decimal("0.00"),
            rule=RULE_LOW_INCOME,
            show_relief=True,
            notes=("Gemäß Elternbeitragsentlastungsgesetz.",),
        )

    if income <= RELIEF_INCOME_MAX_U3:
        base_fee = round_money(find_rate(RELIEF_TABLE_U3, income, fee_input.care_hours))
        return ChildcareFeeResult(
            fee=base_fee,
            base_fee=base_fee,
            rule=RULE_RELIEF,
            show_relief=True,
            notes=(NOTE_RELIEF_NO_DISCOUNT, NOTE_RELIEF_LAW),
        )

    base_fee = find_rate(STANDARD_TABLE_U3, income, fee_input.care_hours)
    return _discounted(base_fee, siblings, RULE_STANDARD)
