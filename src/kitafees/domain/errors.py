"""Shared domain error messages and error types."""

from typing import Optional


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class ExternalError(DomainError):
    """A collaborator outside the database (e.g. the mail server) failed."""


def child_not_found(child_id: int) -> str:
    """Return message for missing child."""
    return f"Child {child_id} not found"


def household_not_found(household_id: int) -> str:
    """Return message for missing household."""
    return f"Household {household_id} not found"


def fee_not_found(fee_id: int) -> str:
    """Return message for missing fee expectation."""
    return f"Fee {fee_id} not found"


def transaction_not_found(transaction_id: int) -> str:
    """Return message for missing bank transaction."""
    return f"Transaction {transaction_id} not found"


def warning_not_found(warning_id: int) -> str:
    """Return message for missing transaction warning."""
    return f"Warning {warning_id} not found"


def iban_not_found(iban: str) -> str:
    """Return message for an IBAN that is not in the memory."""
    return f"IBAN '{iban}' is not known"


def duplicate_fee(child_id: int, fee_type: str, year: int, month: Optional[int]) -> str:
    """Return message for a fee that already exists for the period."""
    period = str(year) if month is None else f"{month:02d}/{year}"
    return f"{fee_type} fee for child {child_id} and period {period} already exists"


def duplicate_member_number(member_number: str) -> str:
    """Return message for a member number that is already taken."""
    return f"Member number '{member_number}' is already assigned"


def invalid_care_hours(hours: int, allowed: tuple[int, ...]) -> str:
    """Return message for an unsupported weekly care hours value."""
    return f"Unsupported care hours {hours}; expected one of {', '.join(str(h) for h in allowed)}"


def multiple_open_fees(count: int) -> str:
    """Return message when several open fees qualify for one payment."""
    return f"{count} open fees qualify for this payment; assign it manually"
