"""Integer arithmetic utilities for Leone amounts.

All prices, totals and escrow amounts are whole Leone (int). No minor units,
no float, no Decimal. The provider receives the same integer.
"""

CURRENCY = "SLE"


def validate_amount(amount: int) -> None:
    """Validate that an amount is a positive whole number of Leone."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an integer number of Leone, got {amount!r}")
    if amount <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")


def leones_to_display(amount: int) -> str:
    """Convert an amount to display string: 450000 -> 'Le 450,000', -1200 -> '-Le 1,200'."""
    if amount < 0:
        return f"-Le {-amount:,}"
    return f"Le {amount:,}"


def percentage(part: int, whole: int) -> str:
    """Percentage with two decimals as a string, '0.00' when whole is zero."""
    if whole <= 0:
        return "0.00"
    return f"{part * 100 / whole:.2f}"
