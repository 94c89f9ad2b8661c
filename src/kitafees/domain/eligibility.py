"""Under-three eligibility rules.

A year of life is completed at the end of the day *before* the birthday
(BGB §187 Abs. 2, §188 Abs. 2). A child whose third birthday is the 1st of a
month has completed its third year when that month starts, so the month is
already fee-free. A birthday on the 2nd or later falls inside the month, and
the month still carries the childcare fee.
"""

from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from kitafees.domain.entities import Child, ChildAgeType


def third_birthday(birth_date: date) -> date:
    """Return the third birthday; 29 February rolls back to 28 February."""
    return birth_date + relativedelta(years=3)


def completes_third_year(birth_date: date) -> date:
    """Day at whose end the third year of life is completed."""
    return third_birthday(birth_date) - timedelta(days=1)


def is_under_three(child: Child, on: date) -> bool:
    """True strictly before the third birthday."""
    return on < third_birthday(child.birth_date)


def is_under_three_for_entire_month(child: Child, year: int, month: int) -> bool:
    """True if the third year of life is not yet completed when the month starts."""
    return completes_third_year(child.birth_date) >= date(year, month, 1)


def age_type_for_month(child: Child, year: int, month: int) -> ChildAgeType:
    """Fee age category that applies to a billing month."""
    if is_under_three_for_entire_month(child, year, month):
        return ChildAgeType.UNDER_THREE
    return ChildAgeType.KINDERGARTEN
