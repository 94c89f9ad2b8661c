"""Itemized household income calculation.

The fee-relevant income leaves out parental and maternity benefits; the full
net income includes them. Both derive from the same per-parent line items.
"""

from dataclasses import dataclass, fields, asdict
from decimal import Decimal
from typing import Any, Optional

from kitafees.domain.childcare_fee import round_money
from kitafees.domain.errors import ValidationError

ZERO = Decimal("0")


@dataclass(frozen=True)
class IncomeDetails:
    """Annual income line items of one parent."""

    gross_income: Decimal = ZERO
    other_income: Decimal = ZERO
    social_security_share: Decimal = ZERO
    private_insurance: Decimal = ZERO
    tax: Decimal = ZERO
    advertising_costs: Decimal = ZERO
    profit: Decimal = ZERO
    welfare_expense: Decimal = ZERO
    self_employed_tax: Decimal = ZERO
    parental_benefit: Decimal = ZERO
    maternity_benefit: Decimal = ZERO
    insurances: Decimal = ZERO
    maintenance_to_pay: Decimal = ZERO
    maintenance_received: Decimal = ZERO

    def employee_net(self) -> Decimal:
        return (
            self.gross_income
            + self.other_income
            - self.social_security_share
            - self.private_insurance
            - self.tax
            - self.advertising_costs
        )

    def self_employed_net(self) -> Decimal:
        return self.profit - self.welfare_expense - self.self_employed_tax

    def benefits_net(self) -> Decimal:
        return self.parental_benefit + self.maternity_benefit - self.insurances

    def net_income(self) -> Decimal:
        """Net income including benefits."""
        subtotal = self.employee_net() + self.self_employed_net() + self.benefits_net()
        return subtotal - self.maintenance_to_pay + self.maintenance_received

    def fee_relevant_income(self) -> Decimal:
        """Net income without parental and maternity benefits."""
        return (
            self.employee_net()
            + self.self_employed_net()
            - self.insurances
            - self.maintenance_to_pay
            + self.maintenance_received
        )

    def to_dict(self) -> dict[str, str]:
        return {key: str(value) for key, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "IncomeDetails":
        """Build line items from a mapping, ignoring unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        values = {}
        for key, raw in data.items():
            if key not in known or raw in (None, ""):
                continue
            try:
                values[key] = Decimal(str(raw))
            except ArithmeticError:
                raise ValidationError(f"Invalid amount for '{key}': {raw!r}") from None
        return cls(**values)


@dataclass(frozen=True)
class HouseholdIncomeCalculation:
    """Income sheet for up to two parents."""

    parent1: IncomeDetails
    parent2: Optional[IncomeDetails] = None

    def _parents(self) -> list[IncomeDetails]:
        return [p for p in (self.parent1, self.parent2) if p is not None]

    def annual_net_income(self) -> Decimal:
        """Fee-relevant household income, rounded to cents."""
        return round_money(sum((p.fee_relevant_income() for p in self._parents()), ZERO))

    def full_net_income(self) -> Decimal:
        """Household net income including benefits, rounded to cents."""
        return round_money(sum((p.net_income() for p in self._parents()), ZERO))

    def to_dict(self) -> dict[str, Any]:
        return {
            "parent1": self.parent1.to_dict(),
            "parent2": self.parent2.to_dict() if self.parent2 is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HouseholdIncomeCalculation":
        parent2 = data.get("parent2")
        return cls(
            parent1=IncomeDetails.from_dict(data.get("parent1")),
            parent2=IncomeDetails.from_dict(parent2) if parent2 else None,
        )
