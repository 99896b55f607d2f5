"""Conversions between human-entered token amounts and minor units"""

import re

from .errors import ValidationError

MAX_UINT256 = 2**256 - 1

# Plain digits with an optional fractional part; no sign, exponent or separators
AMOUNT_PATTERN = re.compile(r"[0-9]+(?:\.[0-9]+)?")


def parse_units(amount: str, decimals: int) -> int:
    """
    Convert a decimal amount string to the token's integer minor units.

    The integer is assembled from the digit strings, so no digit is ever
    rounded away regardless of how long the amount is.

    Args:
        amount: Amount as typed by the user (e.g. "1.5")
        decimals: Token decimals (e.g. 18)

    Returns:
        Integer amount in minor units (e.g. 1500000000000000000)

    Raises:
        ValidationError: if the string is not a plain non-negative decimal,
            carries more fractional digits than the token supports, or does
            not fit in a uint256
    """
    if decimals < 0:
        raise ValidationError(f"Invalid token decimals: {decimals}")

    text = amount.strip() if isinstance(amount, str) else ""
    if not AMOUNT_PATTERN.fullmatch(text):
        raise ValidationError(f"Invalid amount: {amount!r}")

    whole, _, fraction = text.partition(".")
    if fraction[decimals:].strip("0"):
        raise ValidationError(f"Amount {amount!r} has more than {decimals} decimal places")

    value = int(whole + fraction[:decimals].ljust(decimals, "0"))
    if value > MAX_UINT256:
        raise ValidationError(f"Amount {amount!r} exceeds the uint256 range")
    return value

def format_units(value: int, decimals: int) -> str:
    """Render minor units back to a trimmed decimal string ("1.5", "0", "42")."""
    negative = value < 0
    whole, frac = divmod(abs(value), 10 ** decimals)
    text = str(whole)
    if decimals and frac:
        text += "." + str(frac).rjust(decimals, "0").rstrip("0")
    return f"-{text}" if negative else text


def shorten_address(address: str) -> str:
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"
