"""
Money and Rate Primitives

Currency amounts are held as integer minor units (paise, cents) so that
rounding is reproducible. Interest rates are Decimal and are never rounded;
rounding to minor units happens only when a value is stored in a schedule
entry. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, localcontext
from dataclasses import dataclass
from typing import Union
from enum import Enum
import re

# Precision for intermediate rate and installment math
RATE_PRECISION = 28

MONTHS_PER_YEAR = Decimal('12')
PERCENT = Decimal('100')


class Currency(Enum):
    """ISO 4217 Currency Codes with minor-unit exponent"""
    INR = ("INR", 2)  # Indian Rupee, paise
    USD = ("USD", 2)  # US Dollar, cents
    EUR = ("EUR", 2)  # Euro, cents
    GBP = ("GBP", 2)  # British Pound, pence
    JPY = ("JPY", 0)  # Japanese Yen, no minor unit

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @property
    def minor_per_major(self) -> int:
        return 10 ** self.precision


@dataclass(frozen=True)
class Money:
    """
    Immutable money value in integer minor units.
    Arithmetic is only defined between amounts of the same currency.
    """
    minor_units: int
    currency: Currency = Currency.INR

    def __post_init__(self):
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise TypeError(f"Money requires integer minor units, got {type(self.minor_units).__name__}")

    @classmethod
    def from_major(cls, value: Union[str, Decimal, int], currency: Currency = Currency.INR) -> 'Money':
        """Build from a major-unit amount such as "1234.56", rounding half-up"""
        if isinstance(value, str):
            value = decimal_from_string(value)
        elif not isinstance(value, Decimal):
            value = Decimal(value)
        return cls(round_half_up(value * currency.minor_per_major), currency)

    @classmethod
    def zero(cls, currency: Currency = Currency.INR) -> 'Money':
        return cls(0, currency)

    def to_major(self) -> Decimal:
        """Major-unit Decimal with the currency's exponent"""
        return (Decimal(self.minor_units) / self.currency.minor_per_major).quantize(
            Decimal('0.1') ** self.currency.precision
        )

    def _check(self, other: 'Money') -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if self.currency != other.currency:
            raise ValueError(f"Currency mismatch: {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check(other)
        return Money(self.minor_units + other.minor_units, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check(other)
        return Money(self.minor_units - other.minor_units, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.minor_units, self.currency)

    def __lt__(self, other: 'Money') -> bool:
        self._check(other)
        return self.minor_units < other.minor_units

    def __le__(self, other: 'Money') -> bool:
        self._check(other)
        return self.minor_units <= other.minor_units

    def __gt__(self, other: 'Money') -> bool:
        self._check(other)
        return self.minor_units > other.minor_units

    def __ge__(self, other: 'Money') -> bool:
        self._check(other)
        return self.minor_units >= other.minor_units

    def is_zero(self) -> bool:
        return self.minor_units == 0

    def is_positive(self) -> bool:
        return self.minor_units > 0

    def to_string(self) -> str:
        """Format for display"""
        if self.currency.precision == 0:
            return f"{self.currency.code} {self.to_major():,.0f}"
        return f"{self.currency.code} {self.to_major():,.{self.currency.precision}f}"


def round_half_up(value: Decimal) -> int:
    """Round a Decimal minor-unit value to the nearest integer, halves away from zero"""
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def monthly_rate(annual_rate: Union[Decimal, str, int]) -> Decimal:
    """
    Convert an annual percentage rate (e.g. 9.5) to a monthly fraction.

    Computed under a 28-digit context; the result is never rounded to minor
    units.
    """
    if not isinstance(annual_rate, Decimal):
        annual_rate = Decimal(str(annual_rate))
    with localcontext() as ctx:
        ctx.prec = RATE_PRECISION
        return annual_rate / MONTHS_PER_YEAR / PERCENT


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert string to Decimal, handling common formats

    Args:
        value: String representation of number, e.g. "1,20,000.50" or "9.5%"

    Returns:
        Decimal value

    Raises:
        ValueError: If string cannot be converted to a finite Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    # Strip currency symbols, percent signs and whitespace
    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())

    # Commas are always grouping separators (lakh or thousand style)
    clean_value = clean_value.replace(',', '')

    try:
        result = Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")
    if not result.is_finite():
        raise ValueError(f"Cannot convert '{value}' to Decimal")
    return result
