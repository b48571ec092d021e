"""
Input validation utilities for ledger operations.
Provides normalization for PINs, wallet destinations and USD amounts.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any

from creator_ledger.core.config import settings
from creator_ledger.core.exceptions import (
    InvalidAmountError,
    InvalidPinFormatError,
    InvalidWalletAddressError,
    UnknownCryptoTypeError,
)


PIN_PATTERN = re.compile(r"^\d{4,6}$")

CENTS = Decimal("0.01")
MICRO_USD = Decimal("0.000001")


class CryptoType(str, Enum):
    """Supported payout networks."""
    SOL = "SOL"
    TRC20 = "TRC20"
    BEP20 = "BEP20"


class LedgerValidator:
    """Validators shared by the creator and admin surfaces."""

    @staticmethod
    def validate_pin(pin: Any) -> str:
        """
        Validate a withdrawal PIN.

        Args:
            pin: Raw PIN as supplied by the caller

        Returns:
            The PIN string

        Raises:
            InvalidPinFormatError: If the PIN is not 4-6 digits
        """
        if not isinstance(pin, str) or not PIN_PATTERN.match(pin):
            raise InvalidPinFormatError()
        return pin

    @staticmethod
    def validate_crypto_type(crypto_type: Any) -> CryptoType:
        try:
            return CryptoType(crypto_type)
        except ValueError:
            raise UnknownCryptoTypeError(str(crypto_type))

    @staticmethod
    def validate_wallet_address(address: Any) -> str:
        min_length = settings.min_wallet_address_length
        if not isinstance(address, str):
            raise InvalidWalletAddressError(min_length)
        address = address.strip()
        if len(address) < min_length:
            raise InvalidWalletAddressError(min_length)
        return address

    @staticmethod
    def validate_amount(amount: Any) -> Decimal:
        """
        Parse a positive USD amount and quantize it to cents.

        Raises:
            InvalidAmountError: If the amount is not a positive finite number
        """
        if isinstance(amount, bool):
            raise InvalidAmountError(amount)
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise InvalidAmountError(amount)
        if not value.is_finite() or value <= 0:
            raise InvalidAmountError(amount)
        quantized = value.quantize(CENTS, rounding=ROUND_HALF_UP)
        if quantized != value:
            raise InvalidAmountError(amount)
        return quantized


def quantize_usd(value: Decimal) -> Decimal:
    """Round an accrual amount to the earnings column precision."""
    return Decimal(value).quantize(MICRO_USD, rounding=ROUND_HALF_UP)
