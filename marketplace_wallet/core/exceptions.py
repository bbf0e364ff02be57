"""
Custom Exception Hierarchy

Provides structured exceptions for consistent error handling across the application.
"""
from decimal import Decimal
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"

    # Wallet errors (4xxx)
    WALLET_NOT_FOUND = "ERR_4001"
    INSUFFICIENT_BALANCE = "ERR_4002"
    INVALID_AMOUNT = "ERR_4003"
    WALLET_DISABLED = "ERR_4004"
    EXCEEDS_MAX_REDEEMABLE = "ERR_4005"
    BELOW_MIN_ORDER_VALUE = "ERR_4006"
    CONCURRENT_BALANCE_CHANGE = "ERR_4007"

    # Wallet settings errors (7xxx)
    SETTINGS_NOT_CONFIGURED = "ERR_7001"
    INVALID_SETTINGS = "ERR_7002"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class WalletException(AppException):
    """Base exception for wallet-related errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        user_id: int | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if user_id:
            self.details["user_id"] = user_id


class WalletNotFoundError(WalletException):
    """Raised when a user has no wallet yet"""

    def __init__(self, user_id: int):
        super().__init__(
            message=f"Wallet not found for user {user_id}",
            error_code=ErrorCode.WALLET_NOT_FOUND,
            user_id=user_id
        )
        self.status_code = 404


class WalletDisabledError(WalletException):
    """Raised when the wallet program is switched off in settings"""

    def __init__(self, user_id: int | None = None):
        super().__init__(
            message="Wallet system is currently disabled",
            error_code=ErrorCode.WALLET_DISABLED,
            user_id=user_id
        )
        self.status_code = 409


class InvalidAmountError(WalletException):
    """Raised for a non-positive amount, or a zero adjustment"""

    def __init__(self, amount: int, reason: str = "Amount must be positive"):
        super().__init__(
            message=reason,
            error_code=ErrorCode.INVALID_AMOUNT,
            details={"amount": amount}
        )


class ExceedsMaxRedeemableError(WalletException):
    """Raised when a redemption is over the per-transaction cap"""

    def __init__(self, user_id: int, amount: int, max_redeemable: int):
        super().__init__(
            message=f"Cannot redeem more than {max_redeemable} coins in a single transaction",
            error_code=ErrorCode.EXCEEDS_MAX_REDEEMABLE,
            user_id=user_id,
            details={"amount": amount, "max_redeemable_coins": max_redeemable}
        )


class BelowMinimumOrderValueError(WalletException):
    """Raised when coins are redeemed against an order below the configured minimum"""

    def __init__(self, user_id: int, order_total: Decimal, min_order_value: Decimal):
        super().__init__(
            message=f"Order total must be at least {min_order_value} to redeem coins",
            error_code=ErrorCode.BELOW_MIN_ORDER_VALUE,
            user_id=user_id,
            details={
                "order_total": str(order_total),
                "min_order_value": str(min_order_value),
            }
        )


class InsufficientBalanceError(WalletException):
    """Raised when a debit would drive the balance below zero"""

    def __init__(self, user_id: int, current_balance: int, required_amount: int):
        super().__init__(
            message=f"Insufficient wallet balance for user {user_id}",
            error_code=ErrorCode.INSUFFICIENT_BALANCE,
            user_id=user_id,
            details={
                "current_balance": current_balance,
                "required_amount": required_amount,
            }
        )


class ConcurrentBalanceChangeError(WalletException):
    """Raised when the balance changed under a guarded update; safe to retry"""

    def __init__(self, wallet_id: int):
        super().__init__(
            message=f"Wallet {wallet_id} balance changed concurrently, retry the operation",
            error_code=ErrorCode.CONCURRENT_BALANCE_CHANGE,
            details={"wallet_id": wallet_id}
        )
        self.status_code = 409


class SettingsNotConfiguredError(AppException):
    """Raised when the wallet settings row has not been created yet"""

    def __init__(self):
        super().__init__(
            message="Wallet settings have not been configured",
            error_code=ErrorCode.SETTINGS_NOT_CONFIGURED,
            status_code=503,
        )


class InvalidSettingsError(ValidationException):
    """Raised for a malformed wallet settings update"""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            field=field,
            error_code=ErrorCode.INVALID_SETTINGS,
        )
