"""Household domain service."""

import logging
from decimal import Decimal
from typing import Optional

from kitafees.database.base import Database
from kitafees.domain.entities import Household as HouseholdEntity, IncomeStatus, Parent
from kitafees.domain.errors import NotFoundError, ValidationError, household_not_found
from kitafees.domain.income import HouseholdIncomeCalculation

logger = logging.getLogger(__name__)


class HouseholdService:
    """Service for managing households, their parents and income."""

    def __init__(self, db: Database):
        """Initialize household service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_household(
        self,
        name: str,
        annual_net_income: Optional[Decimal] = None,
        income_status: IncomeStatus = IncomeStatus.UNKNOWN,
        sibling_count_override: Optional[int] = None,
    ) -> int:
        """Create a household.

        Args:
            name: Display name, usually the family name
            annual_net_income: Fee-relevant annual income
            income_status: How the income was established
            sibling_count_override: Children counted for the sibling discount

        Returns:
            Household ID

        Raises:
            ValidationError: If the name is empty or a value is negative
        """
        if not name or not name.strip():
            raise ValidationError("Household name must not be empty")
        if annual_net_income is not None and annual_net_income < 0:
            raise ValidationError("Income must not be negative")
        if sibling_count_override is not None and sibling_count_override < 1:
            raise ValidationError("Sibling count must be at least 1")
        return self.db.create_household(
            name=name.strip(),
            annual_net_income=annual_net_income,
            income_status=income_status,
            sibling_count_override=sibling_count_override,
        )

    def get_household(self, household_id: int) -> Optional[HouseholdEntity]:
        """Get household by ID."""
        return self.db.get_household(household_id)

    def list_households(self) -> list[HouseholdEntity]:
        """List all households."""
        return self.db.list_households()

    def add_parent(
        self, household_id: int, first_name: str, last_name: str, email: Optional[str] = None
    ) -> int:
        """Add a parent to a household.

        Raises:
            NotFoundError: If the household doesn't exist
            ValidationError: If a name is empty
        """
        self._require(household_id)
        if not first_name.strip() or not last_name.strip():
            raise ValidationError("Parent first and last name are required")
        return self.db.create_parent(household_id, first_name.strip(), last_name.strip(), email)

    def list_parents(self, household_id: Optional[int] = None) -> list[Parent]:
        """List parents, optionally for one household."""
        return self.db.list_parents(household_id)

    def set_income(
        self,
        household_id: int,
        income_status: IncomeStatus,
        annual_net_income: Optional[Decimal] = None,
        sibling_count_override: Optional[int] = None,
    ) -> None:
        """Set the income status and, where it applies, the income value.

        The income value is stored only for PROVIDED households; other statuses
        clear it so a stale figure is never used for fee calculation.

        Raises:
            NotFoundError: If the household doesn't exist
            ValidationError: If PROVIDED is given without an income
        """
        self._require(household_id)
        if income_status == IncomeStatus.PROVIDED:
            if annual_net_income is None:
                raise ValidationError("Income status PROVIDED requires an income")
            if annual_net_income < 0:
                raise ValidationError("Income must not be negative")
        else:
            annual_net_income = None
        self.db.update_household_income(
            household_id,
            annual_net_income=annual_net_income,
            income_status=income_status,
            sibling_count_override=sibling_count_override,
        )

    def apply_income_calculation(
        self, household_id: int, calculation: HouseholdIncomeCalculation
    ) -> Decimal:
        """Store an itemized income sheet and its fee-relevant income.

        Returns:
            The fee-relevant annual income that was stored

        Raises:
            NotFoundError: If the household doesn't exist
        """
        self._require(household_id)
        income = calculation.annual_net_income()
        if income < 0:
            income = Decimal("0.00")
        self.db.update_household_income(
            household_id,
            annual_net_income=income,
            income_status=IncomeStatus.PROVIDED,
            income_calculation=calculation.to_dict(),
        )
        logger.info("Household %s income set to %s from itemized calculation", household_id, income)
        return income

    def _require(self, household_id: int) -> HouseholdEntity:
        household = self.db.get_household(household_id)
        if household is None:
            raise NotFoundError(household_not_found(household_id))
        return household
