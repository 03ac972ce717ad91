"""
Exact-precision money and quantity value types.

Amounts are Decimal at scale 2 (NUMERIC(15,2) in storage). Money is never
negative; a subtraction that would go below zero is an invariant breach and
raises. Both types are frozen; aggregates store the raw Decimal plus a
currency column and expose these through read-only properties.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from erp.config import settings
from erp.errors import ValidationError

SCALE = Decimal("0.01")

Numeric = Union[Decimal, int, str]


def to_decimal(value: Numeric, field_name: str = "amount") -> Decimal:
    if value is None:
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, float):
        # floats are rejected to keep arithmetic exact
        raise ValidationError(f"{field_name} must be a Decimal, int or str, not float")
    try:
        return Decimal(str(value)).quantize(SCALE, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} is not a valid number: {value!r}")


@dataclass(frozen=True, slots=True)
class Money:
    amount: Decimal
    currency: str = settings.DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        amount = to_decimal(self.amount)
        if amount < 0:
            raise ValidationError(f"Money amount must not be negative: {amount}")
        if not self.currency:
            raise ValidationError("currency is required")
        object.__setattr__(self, "amount", amount)

    @classmethod
    def of(cls, amount: Numeric, currency: Optional[str] = None) -> "Money":
        return cls(amount, currency or settings.DEFAULT_CURRENCY)

    @classmethod
    def zero(cls, currency: Optional[str] = None) -> "Money":
        return cls(Decimal("0"), currency or settings.DEFAULT_CURRENCY)

    @classmethod
    def sum(cls, values: Iterable["Money"], currency: Optional[str] = None) -> "Money":
        total = cls.zero(currency)
        for value in values:
            total = total + value
        return total

    def _check_currency(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise ValueError(
                f"Currency mismatch: {self.currency} vs {other.currency}"
            )

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_positive(self) -> bool:
        return self.amount > 0

    def __str__(self) -> str:
        return f"{self.currency} {self.amount:,.2f}"


@dataclass(frozen=True, slots=True)
class Quantity:
    value: Decimal

    def __post_init__(self) -> None:
        value = to_decimal(self.value, "quantity")
        if value <= 0:
            raise ValidationError(f"Quantity must be positive: {value}")
        object.__setattr__(self, "value", value)

    def __mul__(self, price: Money) -> Money:
        if not isinstance(price, Money):
            return NotImplemented
        return Money(self.value * price.amount, price.currency)

    def __str__(self) -> str:
        return f"{self.value.normalize():f}"


def require_positive(money: Optional[Money], field_name: str) -> Money:
    if money is None:
        raise ValidationError(f"{field_name} is required")
    if not money.is_positive():
        raise ValidationError(f"{field_name} must be positive")
    return money
