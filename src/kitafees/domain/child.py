"""Child domain service."""

import re
from datetime import date
from typing import Optional

from kitafees.database.base import Database
from kitafees.domain.childcare_fee import hours_index
from kitafees.domain.entities import Child as ChildEntity
from kitafees.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    child_not_found,
    duplicate_member_number,
    household_not_found,
)

MEMBER_NUMBER_PATTERN = re.compile(r"^\d{5}$")


class ChildService:
    """Service for managing children."""

    def __init__(self, db: Database):
        """Initialize child service.

        Args:
            db: Database instance
        """
        self.db = db

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
        """Create a child.

        Args:
            member_number: Unique 5-digit member number
            first_name: First name
            last_name: Last name
            birth_date: Date of birth
            entry_date: First day of care
            exit_date: Optional last day of care
            household_id: Optional household the child belongs to
            care_hours: Agreed weekly care hours (30 to 55 in steps of 5)
            legal_hours: Weekly hours the child is legally entitled to
            legal_hours_until: Expiry of the legal hours entitlement

        Returns:
            Child ID

        Raises:
            ValidationError: If dates are inconsistent or values are malformed
            ConflictError: If the member number is already taken
            NotFoundError: If the household doesn't exist
        """
        if not MEMBER_NUMBER_PATTERN.match(member_number or ""):
            raise ValidationError(f"Member number must have 5 digits, got '{member_number}'")
        if not first_name.strip() or not last_name.strip():
            raise ValidationError("Child first and last name are required")
        if birth_date > entry_date:
            raise ValidationError("Birth date must not be after the entry date")
        if exit_date is not None and exit_date < entry_date:
            raise ValidationError("Exit date must not be before the entry date")
        if care_hours is not None:
            hours_index(care_hours)
        if household_id is not None and self.db.get_household(household_id) is None:
            raise NotFoundError(household_not_found(household_id))
        if self.db.get_child_by_member_number(member_number) is not None:
            raise ConflictError(duplicate_member_number(member_number))

        return self.db.create_child(
            member_number=member_number,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            birth_date=birth_date,
            entry_date=entry_date,
            exit_date=exit_date,
            household_id=household_id,
            care_hours=care_hours,
            legal_hours=legal_hours,
            legal_hours_until=legal_hours_until,
        )

    def get_child(self, child_id: int) -> Optional[ChildEntity]:
        """Get child by ID."""
        return self.db.get_child(child_id)

    def list_children(self, active_only: bool = False) -> list[ChildEntity]:
        """List children."""
        return self.db.list_children(active_only=active_only)

    def deactivate_child(self, child_id: int) -> None:
        """Stop billing a child.

        Raises:
            NotFoundError: If the child doesn't exist
        """
        if self.db.get_child(child_id) is None:
            raise NotFoundError(child_not_found(child_id))
        self.db.set_child_active(child_id, False)
