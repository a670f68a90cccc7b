"""Unified exception hierarchy for the MetaVault allocation engine.

This module provides a standardized exception system with:
- Standardized error codes for every exception
- Categorization (retryable, fatal, validation, etc.)
- Rich error context and metadata
- Logging levels and suggested resolutions

USAGE RULES:
1. ALL modules import exceptions from this single source of truth
2. ALL exceptions carry an error code
3. Target failures on queries are absorbed by the adapter and never raised;
   only state-changing target calls surface ``TargetError`` subclasses

Example Usage:
    from metavault.core.exceptions import InvalidInputLengthError

    raise InvalidInputLengthError(
        "targets and amounts differ in length",
        expected_length=2,
        actual_length=3,
    )
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categorization for automated handling."""

    RETRYABLE = "retryable"  # Can be retried automatically
    FATAL = "fatal"  # Requires manual intervention
    VALIDATION = "validation"  # Input validation errors
    CONFIGURATION = "configuration"  # Configuration errors
    BUSINESS_LOGIC = "business_logic"  # Accounting rule violations
    EXTERNAL = "external"  # Failures raised by a target or the asset token
    SYSTEM = "system"  # Internal state errors


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MetaVaultError(Exception):
    """Base exception for all MetaVault errors.

    Every exception includes standardized metadata for logging, monitoring,
    and automated handling.

    Attributes:
        message: Human-readable error message
        error_code: Standardized error code (e.g., 'ALLOC_001')
        category: Error category for automated handling
        severity: Error severity level
        details: Additional context data
        retryable: Whether this error can be retried
        suggested_action: Recommended resolution steps
        context: Additional contextual information
        timestamp: When the error occurred
        logger_name: Logger name for this error type
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
        suggested_action: str | None = None,
        context: dict[str, Any] | None = None,
        logger_name: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.retryable = retryable
        self.suggested_action = suggested_action
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)
        self.logger_name = logger_name or self.__class__.__module__

        self.context.update(kwargs)

        self._log_error()

    def _log_error(self) -> None:
        """Log the error with appropriate level based on severity."""
        try:
            logger = logging.getLogger(self.logger_name)
            log_data = {
                "error_code": self.error_code,
                "category": self.category.value,
                "severity": self.severity.value,
                "retryable": self.retryable,
                "details": self.details,
                "context": {k: str(v) for k, v in self.context.items()},
                "timestamp": self.timestamp.isoformat(),
            }

            if self.severity == ErrorSeverity.CRITICAL:
                logger.critical(self.message, extra={"error": log_data})
            elif self.severity == ErrorSeverity.HIGH:
                logger.error(self.message, extra={"error": log_data})
            elif self.severity == ErrorSeverity.MEDIUM:
                logger.warning(self.message, extra={"error": log_data})
            else:
                logger.info(self.message, extra={"error": log_data})
        except Exception:
            # Logging must never mask the original error
            pass

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "category": self.category.value,
            "severity": self.severity.value,
            "details": self.details,
            "retryable": self.retryable,
            "suggested_action": self.suggested_action,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        """Return formatted error message with code."""
        parts = []
        if self.error_code:
            parts.append(f"[{self.error_code}]")
        parts.append(self.message)
        error_str = " ".join(parts)

        if self.category != ErrorCategory.SYSTEM:
            error_str += f" (Category: {self.category.value})"

        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in list(self.details.items())[:3])
            error_str += f" (Details: {details_str})"

        return error_str

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"category={self.category}, "
            f"severity={self.severity}"
            f")"
        )


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(MetaVaultError):
    """Base class for input validation errors.

    Raised before any side effect takes place.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "VALID_000",
        field_name: str | None = None,
        field_value: Any | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        context.update({"field_name": field_name, "field_value": field_value})
        kwargs["context"] = context

        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("logger_name", "validation")

        super().__init__(message, error_code, **kwargs)


class InvalidInputLengthError(ValidationError):
    """Parallel arrays of a batch operation differ in length."""

    def __init__(
        self,
        message: str = "Batch inputs differ in length",
        expected_length: int | None = None,
        actual_length: int | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("error_code", "VALID_001")
        kwargs.setdefault("suggested_action", "Pass one amount per target")
        details = kwargs.pop("details", {})
        details.update({"expected_length": expected_length, "actual_length": actual_length})

        super().__init__(message, details=details, **kwargs)


class ConfigurationError(ValidationError):
    """Configuration file and parameter validation errors."""

    def __init__(self, message: str, config_key: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "CONF_001")
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        kwargs.setdefault("severity", ErrorSeverity.HIGH)

        super().__init__(message, field_name=config_key, **kwargs)


# =============================================================================
# ALLOCATION
# =============================================================================


class AllocationError(MetaVaultError):
    """Base class for errors raised by curator allocation entry points."""

    def __init__(
        self,
        message: str,
        error_code: str = "ALLOC_000",
        target: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        context.update({"target": target})
        kwargs["context"] = context

        kwargs.setdefault("category", ErrorCategory.BUSINESS_LOGIC)
        kwargs.setdefault("severity", ErrorSeverity.MEDIUM)
        kwargs.setdefault("logger_name", "allocation")

        super().__init__(message, error_code, **kwargs)


class IneligibleTargetError(AllocationError):
    """Target is not approved by the registry."""

    def __init__(self, message: str, target: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "ALLOC_001")
        kwargs.setdefault("suggested_action", "Approve the target in the registry first")

        super().__init__(message, target=target, **kwargs)


class InsufficientIdleAssetsError(AllocationError):
    """Requested allocation exceeds the MetaVault's free idle assets."""

    def __init__(
        self,
        message: str,
        requested: Any | None = None,
        available: Any | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("error_code", "ALLOC_002")
        details = kwargs.pop("details", {})
        details.update({"requested": str(requested), "available": str(available)})

        super().__init__(message, details=details, **kwargs)


# =============================================================================
# WITHDRAWAL
# =============================================================================


class WithdrawalError(MetaVaultError):
    """Base class for user withdrawal errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "WDRAW_000",
        owner: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        context.update({"owner": owner})
        kwargs["context"] = context

        kwargs.setdefault("category", ErrorCategory.BUSINESS_LOGIC)
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("logger_name", "withdrawal")

        super().__init__(message, error_code, **kwargs)


class WithdrawalLimitError(WithdrawalError):
    """Requested amount exceeds the applicable maximum."""

    def __init__(
        self,
        message: str,
        requested: Any | None = None,
        maximum: Any | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("error_code", "WDRAW_001")
        details = kwargs.pop("details", {})
        details.update({"requested": str(requested), "maximum": str(maximum)})

        super().__init__(message, details=details, **kwargs)


class WithdrawNotClaimableError(WithdrawalError):
    """A user withdraw key is unknown, already claimed, or still pending."""

    def __init__(self, message: str, withdraw_key: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "WDRAW_002")
        kwargs.setdefault("retryable", True)
        kwargs.setdefault("suggested_action", "Run claim_allocations and retry later")

        super().__init__(message, withdraw_key=withdraw_key, **kwargs)


class VaultShutdownError(MetaVaultError):
    """Operation rejected because the vault has been shut down."""

    def __init__(self, message: str = "Vault is shut down", **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "VAULT_001")
        kwargs.setdefault("category", ErrorCategory.BUSINESS_LOGIC)
        kwargs.setdefault("severity", ErrorSeverity.MEDIUM)
        kwargs.setdefault("logger_name", "vault")

        super().__init__(message, **kwargs)


# =============================================================================
# STATE
# =============================================================================


class StateConsistencyError(MetaVaultError):
    """Ledger state would violate an accounting invariant."""

    def __init__(
        self,
        message: str,
        error_code: str = "STATE_000",
        state_component: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        context.update({"state_component": state_component})
        kwargs["context"] = context

        kwargs.setdefault("category", ErrorCategory.SYSTEM)
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("logger_name", "state")

        super().__init__(message, error_code, **kwargs)


# =============================================================================
# EXTERNAL (targets and asset token)
# =============================================================================


class TargetError(MetaVaultError):
    """Base class for failures raised by an external target."""

    def __init__(
        self,
        message: str,
        error_code: str = "TARGET_000",
        target: str | None = None,
        operation: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        context.update({"target": target, "operation": operation})
        kwargs["context"] = context

        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        kwargs.setdefault("logger_name", "target")

        super().__init__(message, error_code, **kwargs)


class TargetRevertError(TargetError):
    """A target rejected a call."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("error_code", "TARGET_001")

        super().__init__(message, **kwargs)


class InsufficientBalanceError(MetaVaultError):
    """Asset token transfer exceeds the sender's balance."""

    def __init__(
        self,
        message: str,
        account: str | None = None,
        balance: Any | None = None,
        amount: Any | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("error_code", "ASSET_001")
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        kwargs.setdefault("severity", ErrorSeverity.MEDIUM)
        kwargs.setdefault("logger_name", "asset")
        details = kwargs.pop("details", {})
        details.update({"account": account, "balance": str(balance), "amount": str(amount)})

        super().__init__(message, details=details, **kwargs)
