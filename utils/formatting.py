"""
Formatting utilities.
"""


def format_currency(amount: float, currency: str = "CAD") -> str:
    """
    Format an amount as whole-unit currency.

    Args:
        amount: The amount in currency units; cents are rounded away.
        currency: Currency code (default CAD).

    Returns:
        Formatted currency string, e.g. "-$6,000".
    """
    symbols = {
        "CAD": "$",
        "USD": "$",
        "GBP": "£",
        "EUR": "€",
    }
    symbol = symbols.get(currency, currency + " ")
    whole = int(round(amount))
    sign = "-" if whole < 0 else ""
    return f"{sign}{symbol}{abs(whole):,}"


def format_quantity(value: float) -> str:
    """Format a count or area without trailing zeros ("2", "2.5", "1,800")."""
    text = f"{value:,.2f}".rstrip("0").rstrip(".")
    return text or "0"
