"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation
import re


def parse_amount(amount_str: str) -> Decimal:
    """Parse a German-formatted amount string into a Decimal.

    Handles formats found in bank exports and operator input:
    - "45,40"
    - "-12,00"
    - "1.234,56" (dots are dropped as thousands separators)
    - "45.40" (a lone dot followed by two digits is a decimal point)
    - "45,40 €"

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if not amount_str or not amount_str.strip():
        raise ValueError("Empty amount string")

    cleaned = re.sub(r"[€\s]|EUR", "", amount_str.strip())

    if "," in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".")
    elif not re.fullmatch(r"[+-]?\d+\.\d{1,2}", cleaned):
        cleaned = cleaned.replace(".", "")

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Could not parse amount '{amount_str}'") from None
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str}'")
    return amount


def format_amount(amount: Decimal) -> str:
    """Format a Decimal as a German amount string, e.g. "1.234,56"."""
    text = f"{amount:,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")
