"""
Unit tests for erp/domain/money.py

Tests: Money construction and rounding, arithmetic, currency checks,
       Quantity validation and Quantity × Money.
"""

from decimal import Decimal

import pytest

from erp.domain.money import Money, Quantity, require_positive
from erp.errors import ValidationError


def test_money_defaults_to_krw():
    assert Money.of(100).currency == "KRW"
    assert Money.zero().currency == "KRW"


def test_money_quantizes_to_two_places():
    assert Money.of("10.005").amount == Decimal("10.01")
    assert Money.of(3).amount == Decimal("3.00")


def test_money_rejects_negative_amount():
    with pytest.raises(ValidationError, match="negative"):
        Money.of(-1)


def test_money_rejects_float_and_none():
    with pytest.raises(ValidationError):
        Money.of(1.5)
    with pytest.raises(ValidationError):
        Money(None)


def test_money_rejects_garbage():
    with pytest.raises(ValidationError, match="not a valid number"):
        Money.of("ten")


def test_add_and_subtract():
    assert Money.of(300) + Money.of(400) == Money.of(700)
    assert Money.of(1000) - Money.of(800) == Money.of(200)


def test_subtract_below_zero_raises():
    with pytest.raises(ValidationError):
        Money.of(100) - Money.of(101)


def test_currency_mismatch_raises_value_error():
    with pytest.raises(ValueError, match="Currency mismatch"):
        Money.of(1, "KRW") + Money.of(1, "USD")
    with pytest.raises(ValueError):
        Money.of(1, "KRW") < Money.of(1, "USD")


def test_comparing_with_non_money_raises_type_error():
    with pytest.raises(TypeError):
        Money.of(1) > 0


def test_comparisons():
    assert Money.of(800) < Money.of(1000)
    assert Money.of(1000) <= Money.of(1000)
    assert Money.of(300) > Money.of(200)
    assert not Money.of(300) > Money.of(300)


def test_sum_of_empty_is_zero():
    total = Money.sum([], "USD")
    assert total.is_zero()
    assert total.currency == "USD"


def test_sum_of_values():
    assert Money.sum([Money.of(300), Money.of(400), Money.of(300)]) == Money.of(1000)


def test_str():
    assert str(Money.of("1234567.5")) == "KRW 1,234,567.50"


def test_quantity_must_be_positive():
    with pytest.raises(ValidationError):
        Quantity(0)
    with pytest.raises(ValidationError):
        Quantity("-2")


def test_quantity_times_money():
    assert Quantity("2.5") * Money.of(400) == Money.of(1000)
    assert (Quantity(3) * Money.of(0)).is_zero()


def test_require_positive():
    assert require_positive(Money.of(1), "amount") == Money.of(1)
    with pytest.raises(ValidationError, match="amount must be positive"):
        require_positive(Money.zero(), "amount")
    with pytest.raises(ValidationError, match="amount is required"):
        require_positive(None, "amount")
