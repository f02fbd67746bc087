"""
Test suite for currency module

Tests Money quantization, rounding modes, explicit-context arithmetic and
fail-fast currency mixing. All monetary calculations must use Decimal.
"""

import pytest
from decimal import Decimal

from progressive_loan.currency import Money, Currency, resolve_rounding, validate_decimal_precision
from progressive_loan.mathutil import default_context, divide, negative_to_zero, total, ZERO


class TestMoney:
    """Test Money class operations"""

    def test_money_creation(self):
        """Test Money quantizes to currency precision"""
        money = Money(Decimal('100.50'), Currency.USD)
        assert money.amount == Decimal('100.50')
        assert money.currency == Currency.USD

        # Default rounding is banker's rounding
        assert Money(Decimal('100.555'), Currency.USD).amount == Decimal('100.56')
        assert Money(Decimal('100.545'), Currency.USD).amount == Decimal('100.54')

        # JPY has no minor unit
        assert Money(Decimal('100.7'), Currency.JPY).amount == Decimal('101')

    def test_explicit_rounding_mode(self):
        """Test rounding mode carried by the value"""
        money = Money(Decimal('100.545'), Currency.USD, "ROUND_HALF_UP")
        assert money.amount == Decimal('100.55')
        assert money.rounding == "ROUND_HALF_UP"

        # Derived values keep the rounding mode
        assert money.with_amount(Decimal('0.125')).amount == Decimal('0.13')

    def test_unknown_rounding_mode(self):
        """Test invalid rounding names are rejected"""
        with pytest.raises(ValueError, match="Unknown rounding mode"):
            Money(Decimal('1'), Currency.USD, "ROUND_SIDEWAYS")
        with pytest.raises(ValueError, match="Unknown rounding mode"):
            resolve_rounding("getcontext")

    def test_money_arithmetic(self):
        """Test Money arithmetic operations"""
        money1 = Money(Decimal('100.50'), Currency.USD)
        money2 = Money(Decimal('50.25'), Currency.USD)

        assert (money1 + money2).amount == Decimal('150.75')
        assert (money1 - money2).amount == Decimal('50.25')
        assert (money1 * Decimal('2')).amount == Decimal('201.00')
        assert (money1 / Decimal('3')).amount == Decimal('33.50')
        assert (-money1).amount == Decimal('-100.50')
        assert abs(-money1) == money1

    def test_context_arithmetic(self):
        """Test plus/minus under an explicit context and with None"""
        context = default_context()
        money = Money(Decimal('10.00'), Currency.EUR)

        assert money.plus(None, context) == money
        assert money.minus(None, context) == money
        assert money.plus(Money(Decimal('0.01'), Currency.EUR), context).amount == Decimal('10.01')
        assert money.multiplied_by(Decimal('0.5'), context).amount == Decimal('5.00')
        assert money.divided_by(Decimal('4'), context).amount == Decimal('2.50')

    def test_currency_mismatch(self):
        """Test mixing currencies fails immediately"""
        usd = Money(Decimal('100'), Currency.USD)
        eur = Money(Decimal('100'), Currency.EUR)

        with pytest.raises(ValueError, match="Cannot add USD and EUR"):
            usd + eur
        with pytest.raises(ValueError, match="Cannot subtract USD and EUR"):
            usd.minus(eur)
        with pytest.raises(ValueError, match="Cannot compare USD and EUR"):
            usd < eur

    def test_negative_to_zero(self):
        """Test clamping of negative amounts"""
        assert Money(Decimal('-5'), Currency.USD).negative_to_zero().is_zero()
        assert Money(Decimal('5'), Currency.USD).negative_to_zero().amount == Decimal('5.00')

    def test_comparisons_and_predicates(self):
        """Test ordering and sign predicates"""
        small = Money(Decimal('1.00'), Currency.USD)
        large = Money(Decimal('2.00'), Currency.USD)

        assert small < large
        assert large >= small
        assert min(small, large) == small
        assert small.is_positive()
        assert Money.zero(Currency.USD).is_zero()
        assert (small - large).is_negative()

    def test_to_string(self):
        """Test display formatting"""
        assert Money(Decimal('1234.5'), Currency.USD).to_string() == "USD 1,234.50"
        assert Money(Decimal('1234'), Currency.JPY).to_string() == "JPY 1,234"


class TestCurrency:
    """Test currency lookup and precision"""

    def test_from_code(self):
        assert Currency.from_code("KES") is Currency.KES
        with pytest.raises(ValueError, match="Unsupported currency code"):
            Currency.from_code("XXX")

    def test_minor_unit(self):
        assert Currency.USD.minor_unit == Decimal('0.01')
        assert Currency.JPY.minor_unit == Decimal('1')

    def test_validate_decimal_precision(self):
        assert validate_decimal_precision(Decimal('1.005'), Currency.USD, "ROUND_HALF_UP") == Decimal('1.01')
        assert validate_decimal_precision(Decimal('1.005'), Currency.USD) == Decimal('1.00')


class TestMathUtil:
    """Test decimal helpers"""

    def test_divide_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            divide(Decimal('1'), ZERO, default_context())

    def test_total_and_clamp(self):
        context = default_context()
        assert total([Decimal('0.1'), Decimal('0.2'), Decimal('0.3')], context) == Decimal('0.6')
        assert negative_to_zero(Decimal('-0.0001')) == ZERO

    def test_context_precision(self):
        context = default_context(precision=5)
        assert divide(Decimal('1'), Decimal('3'), context) == Decimal('0.33333')
