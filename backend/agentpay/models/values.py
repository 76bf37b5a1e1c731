"""
Value helpers for MNEE amounts, wallet addresses and transaction hashes.

MNEE is a fixed-point token with 8 fractional digits. Amounts travel through
the domain as Decimal and are stored as integer base units.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from ..exceptions import InvalidParameterError

MNEE_DECIMALS = 8
MNEE_QUANTUM = Decimal("0.00000001")
UNITS_PER_MNEE = 10 ** MNEE_DECIMALS
MAX_MNEE_AMOUNT = Decimal("1000000000")

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def to_mnee(value: Any) -> Decimal:
    """
    Validate an externally supplied amount.

    Accepts Decimal, int, str, or float (converted through str so 0.1 stays 0.1).

    Raises:
        InvalidParameterError: not a number, negative, above the cap, or with
            more than 8 fractional digits
    """
    if isinstance(value, bool):
        raise InvalidParameterError(f"MNEE amount must be numeric, got {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidParameterError(f"MNEE amount must be numeric, got {value!r}")

    if not amount.is_finite():
        raise InvalidParameterError(f"MNEE amount must be finite, got {value!r}")
    if amount < 0:
        raise InvalidParameterError("MNEE amount cannot be negative", {"amount": str(amount)})
    if amount > MAX_MNEE_AMOUNT:
        raise InvalidParameterError("MNEE amount exceeds maximum", {"amount": str(amount)})
    if amount != amount.quantize(MNEE_QUANTUM, rounding=ROUND_HALF_UP):
        raise InvalidParameterError(
            f"MNEE amount supports at most {MNEE_DECIMALS} decimal places",
            {"amount": str(amount)}
        )
    return amount


def quantize_mnee(value: Decimal) -> Decimal:
    """Round a computed amount to 8 places (half-up)."""
    return value.quantize(MNEE_QUANTUM, rounding=ROUND_HALF_UP)


def to_units(amount: Decimal) -> int:
    """Convert MNEE to integer base units for storage."""
    return int(quantize_mnee(amount) * UNITS_PER_MNEE)


def from_units(units: int) -> Decimal:
    """Convert stored base units back to MNEE."""
    return quantize_mnee(Decimal(units) / UNITS_PER_MNEE)


def format_mnee(amount: Decimal) -> str:
    return f"{amount:,.8f} MNEE"


def validate_wallet_address(address: str) -> str:
    if not address or not address.strip():
        raise InvalidParameterError("Wallet address cannot be empty")
    if not address.startswith("0x"):
        raise InvalidParameterError("Invalid wallet address format", {"address": address})
    if not _ADDRESS_PATTERN.match(address):
        raise InvalidParameterError(
            "Wallet address must be 0x followed by 40 hex characters",
            {"address": address}
        )
    return address


def validate_transaction_hash(tx_hash: str) -> str:
    if not tx_hash or not tx_hash.strip():
        raise InvalidParameterError("Transaction hash cannot be empty")
    if not tx_hash.startswith("0x"):
        raise InvalidParameterError("Invalid transaction hash format", {"hash": tx_hash})
    return tx_hash
