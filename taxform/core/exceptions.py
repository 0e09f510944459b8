"""Structured exception hierarchy for the Taxform API.

Every error the application raises on purpose derives from ``TaxformError``.
Each carries a machine-readable ``error_code``, a ``Severity`` and an optional
context dictionary. The API layer maps them to HTTP responses in
``taxform.api.middleware.error_handler``.

Subclasses encode the few outcomes callers must tell apart:
- ``ValidationError``: malformed or out-of-range input
- ``NotFoundError``: the requested resource does not exist
- ``UnauthorizedError``: no valid credentials
- ``ForbiddenError``: credentials are valid but the action is not allowed,
  including attempts to modify a tax rate that has taken effect
- ``ConflictError``: the request contradicts current ledger state
- ``StorageError``: the database failed; surfaced to clients opaquely
"""

import hashlib
import traceback
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    STORAGE_ERROR = "STORAGE_ERROR"

    # Tax rate ledger
    TAX_RATE_NOT_FOUND = "TAX_RATE_NOT_FOUND"
    """No tax rate matches the requested id or date."""

    CURRENT_TAX_RATE_MISSING = "CURRENT_TAX_RATE_MISSING"
    """The ledger has no open-ended rate; the deployment is not seeded."""

    INVALID_DATE_FORMAT = "INVALID_DATE_FORMAT"
    """A date parameter is not a valid YYYY-MM-DD calendar date."""


class Severity(Enum):
    """Severity levels used for log level selection and alerting."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TaxformError(Exception):
    """Base exception for all application errors.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        self.stack_trace = traceback.format_stack()[:-1]
        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Hash the error type and raising location for log grouping.

        Returns:
            str: A 16 character hex digest
        """
        max_frames = 5
        relevant_frames = self.stack_trace[-max_frames:]

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"
        for frame in relevant_frames:
            if "site-packages" not in frame and "taxform/" in frame:
                first_line = frame.strip().split("\n")[0]
                fingerprint_data += f":{first_line}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Whether the error is part of normal operation (LOW or MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        """Whether the error warrants an alert (HIGH or CRITICAL)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ValidationError(TaxformError):
    """Raised when input data is malformed or out of range."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class NotFoundError(TaxformError):
    """Raised when a requested resource cannot be found."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class UnauthorizedError(TaxformError):
    """Raised when the caller is not authenticated."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.UNAUTHORIZED,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.HIGH, context, cause)


class BusinessRuleError(TaxformError):
    """Raised when an operation violates a business rule.

    Args:
        message: Description of the business rule violation
        error_code: Error code (defaults to BUSINESS_RULE_VIOLATION)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.MEDIUM, context, cause)


class ForbiddenError(BusinessRuleError):
    """Raised when an authenticated caller may not perform an action.

    Covers both missing permissions and mutations of tax rates that have
    already taken effect.
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.FORBIDDEN,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, error_code, context, cause)


class ConflictError(BusinessRuleError):
    """Raised when a write contradicts the current ledger state."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.CONFLICT,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, error_code, context, cause)


class StorageError(TaxformError):
    """Raised when the persistence layer fails.

    The original database exception is kept as ``cause`` for logging; the
    client only ever sees a generic message.
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.STORAGE_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.HIGH, context, cause)
