"""
Custom exception classes for the ledger.

Every error carries a machine-readable code, a human-readable message and an
HTTP status used by the API layer. Money-affecting operations surface these
unchanged to the caller.
"""

from decimal import Decimal
from typing import Any, Optional, Dict


class LedgerError(Exception):
    """Base exception class for the creator ledger."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


# Taxonomy

class ValidationError(LedgerError):
    """Raised when input is malformed."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code, details)


class PolicyViolationError(LedgerError):
    """Raised when a business rule forbids the operation."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "POLICY_VIOLATION"):
        super().__init__(message, code, details)


class AuthorizationError(LedgerError):
    """Raised when the caller may not perform the operation."""

    status_code = 403

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "AUTHORIZATION_ERROR"):
        super().__init__(message, code, details)


class StateConflictError(LedgerError):
    """Raised when an entity is not in the state the operation requires."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "STATE_CONFLICT"):
        super().__init__(message, code, details)


class NotFoundError(LedgerError):
    """Raised when a requested resource is not found."""

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: str = "NOT_FOUND"):
        super().__init__(message, code, details)


class StoreError(LedgerError):
    """Raised when the backing store fails. Always safe to retry."""

    status_code = 503

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "STORE_ERROR", details)


class ConfigurationError(LedgerError):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


# Validation errors

class InvalidAmountError(ValidationError):
    def __init__(self, amount: Any):
        super().__init__(
            f"Invalid amount: {amount}",
            {"amount": str(amount)},
            code="INVALID_AMOUNT"
        )


class InvalidPinFormatError(ValidationError):
    def __init__(self):
        super().__init__("PIN must be 4-6 digits", code="INVALID_PIN_FORMAT")


class UnknownCryptoTypeError(ValidationError):
    def __init__(self, crypto_type: str):
        super().__init__(
            "Invalid crypto type. Must be SOL, TRC20, or BEP20",
            {"crypto_type": crypto_type},
            code="UNKNOWN_CRYPTO_TYPE"
        )


class InvalidWalletAddressError(ValidationError):
    def __init__(self, min_length: int):
        super().__init__(
            "Invalid wallet address",
            {"min_length": min_length},
            code="INVALID_WALLET_ADDRESS"
        )


class WalletMismatchError(ValidationError):
    def __init__(self):
        super().__init__(
            "Wallet does not match the saved payout destination",
            code="WALLET_MISMATCH"
        )


# Policy violations

class WithdrawalsPausedError(PolicyViolationError):
    status_code = 403

    def __init__(self, reason: Optional[str]):
        super().__init__(
            f"Withdrawals paused: {reason or 'Contact admin'}",
            {"reason": reason},
            code="WITHDRAWALS_PAUSED"
        )


class SetupIncompleteError(PolicyViolationError):
    def __init__(self, missing: list):
        super().__init__(
            "Please set up your wallet and PIN first",
            {"missing": missing},
            code="SETUP_INCOMPLETE"
        )


class BelowMinimumError(PolicyViolationError):
    def __init__(self, minimum: Decimal):
        super().__init__(
            f"Minimum withdrawal is ${minimum} USD",
            {"minimum_usd": str(minimum)},
            code="BELOW_MINIMUM"
        )


class InsufficientBalanceError(PolicyViolationError):
    def __init__(self, requested: Decimal, available: Decimal):
        super().__init__(
            "Insufficient balance",
            {"requested_usd": str(requested), "available_usd": str(available)},
            code="INSUFFICIENT_BALANCE"
        )


class MonthlyLimitExceededError(PolicyViolationError):
    def __init__(self, limit: Decimal, already_withdrawn: Decimal):
        super().__init__(
            f"Monthly withdrawal limit of ${limit} exceeded",
            {"limit_usd": str(limit), "withdrawn_usd": str(already_withdrawn)},
            code="MONTHLY_LIMIT_EXCEEDED"
        )


class PendingRequestExistsError(PolicyViolationError):
    def __init__(self, creator_id: str):
        super().__init__(
            "You already have a pending withdrawal request",
            {"creator_id": creator_id},
            code="PENDING_REQUEST_EXISTS"
        )


class CooldownActiveError(PolicyViolationError):
    def __init__(self, days_remaining: int):
        self.days_remaining = days_remaining
        super().__init__(
            f"You can change your wallet in {days_remaining} days. Contact support if urgent.",
            {"days_remaining": days_remaining},
            code="COOLDOWN_ACTIVE"
        )


class AlreadyPendingError(PolicyViolationError):
    def __init__(self, creator_id: str):
        super().__init__(
            "You already have a pending tier upgrade request",
            {"creator_id": creator_id},
            code="TIER_REQUEST_PENDING"
        )


class TierDowngradeError(PolicyViolationError):
    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Tier cannot move from {current} to {requested}",
            {"current_tier": current, "requested_tier": requested},
            code="TIER_DOWNGRADE"
        )


class TopTierReachedError(PolicyViolationError):
    def __init__(self, current: str):
        super().__init__(
            f"Tier {current} is already the highest tier",
            {"current_tier": current},
            code="TOP_TIER_REACHED"
        )


# Authorization errors

class InvalidPinError(AuthorizationError):
    status_code = 401

    def __init__(self, message: str = "Invalid PIN"):
        super().__init__(message, code="INVALID_PIN")


class PinLockedError(AuthorizationError):
    status_code = 429

    def __init__(self, minutes_remaining: int):
        super().__init__(
            f"Too many incorrect PIN attempts. Try again in {minutes_remaining} minutes.",
            {"minutes_remaining": minutes_remaining},
            code="PIN_LOCKED"
        )


class AdminRequiredError(AuthorizationError):
    def __init__(self):
        super().__init__("Admin access required", code="ADMIN_ACCESS_REQUIRED")


class IngestAccessRequiredError(AuthorizationError):
    def __init__(self):
        super().__init__("View ingestion requires a service credential", code="INGEST_ACCESS_REQUIRED")


# State conflicts

class InvalidStateTransitionError(StateConflictError):
    def __init__(self, entity: str, entity_id: Any, current: str, action: str):
        super().__init__(
            f"Cannot {action} {entity} {entity_id} in status '{current}'",
            {"entity": entity, "id": entity_id, "status": current, "action": action},
            code="INVALID_STATE_TRANSITION"
        )


class NoPendingTierRequestError(StateConflictError):
    def __init__(self, creator_id: str):
        super().__init__(
            f"No pending tier upgrade request for creator {creator_id}",
            {"creator_id": creator_id},
            code="NO_PENDING_TIER_REQUEST"
        )


# Not found

class CreatorNotFoundError(NotFoundError):
    def __init__(self, creator_id: str):
        super().__init__(
            f"Creator not found: {creator_id}",
            {"creator_id": creator_id},
            code="CREATOR_NOT_FOUND"
        )


class PayoutRequestNotFoundError(NotFoundError):
    def __init__(self, request_id: int):
        super().__init__(
            f"Payout request not found: {request_id}",
            {"request_id": request_id},
            code="PAYOUT_REQUEST_NOT_FOUND"
        )


class FraudFlagNotFoundError(NotFoundError):
    def __init__(self, flag_id: int):
        super().__init__(
            f"Fraud flag not found: {flag_id}",
            {"flag_id": flag_id},
            code="FRAUD_FLAG_NOT_FOUND"
        )


class PinNotSetError(NotFoundError):
    def __init__(self, creator_id: str):
        super().__init__(
            "No PIN set",
            {"creator_id": creator_id},
            code="PIN_NOT_SET"
        )
