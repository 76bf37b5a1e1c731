"""
Tests for MNEE amounts, addresses and hashes
============================================
"""
from decimal import Decimal

import pytest

from agentpay.exceptions import InvalidParameterError
from agentpay.models.values import (
    format_mnee,
    from_units,
    quantize_mnee,
    to_mnee,
    to_units,
    validate_transaction_hash,
    validate_wallet_address,
)


class TestAmounts:
    """Boundary validation of MNEE amounts."""

    def test_accepts_smallest_unit(self):
        """One base unit is a valid amount."""
        assert to_mnee("0.00000001") == Decimal("0.00000001")

    def test_float_goes_through_str(self):
        """0.1 stays 0.1 instead of the binary float expansion."""
        assert to_mnee(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", ["-1", "0.000000001", "1000000000.00000001", "abc", True, "NaN"])
    def test_rejects_invalid(self, value):
        """Negative, too precise, over the cap, non-numeric, bool and NaN are rejected."""
        with pytest.raises(InvalidParameterError):
            to_mnee(value)

    def test_cap_is_inclusive(self):
        """Exactly one billion MNEE is allowed."""
        assert to_mnee("1000000000") == Decimal("1000000000")

    def test_units_conversion(self):
        """Amounts convert to integer base units and back."""
        assert to_units(Decimal("1.5")) == 150_000_000
        assert from_units(150_000_000) == Decimal("1.5")

    def test_quantize_half_up(self):
        """Computed amounts round half-up to 8 places."""
        assert quantize_mnee(Decimal("0.000000005")) == Decimal("0.00000001")

    def test_format(self):
        assert format_mnee(Decimal("1234.5")) == "1,234.50000000 MNEE"


class TestAddresses:
    """Wallet address and transaction hash validation."""

    def test_valid_address(self):
        address = "0x" + "aB" * 20
        assert validate_wallet_address(address) == address

    @pytest.mark.parametrize("address", ["", "aa" * 21, "0x123", "0x" + "g" * 40])
    def test_invalid_address(self, address):
        with pytest.raises(InvalidParameterError):
            validate_wallet_address(address)

    def test_hash_requires_prefix(self):
        with pytest.raises(InvalidParameterError):
            validate_transaction_hash("abc")
        assert validate_transaction_hash("0xabc") == "0xabc"
