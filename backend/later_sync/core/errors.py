"""
Later Sync - Error Taxonomy
===========================

Every failure that crosses into the sync engine is mapped into the closed
``ErrorCode`` taxonomy before it is stored or re-raised. Callers only ever
reason over ``AppError``.
"""

import asyncio
import enum
from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from later_sync.core.config import settings

logger = structlog.get_logger()


# ==========================================================================
# Codes
# ==========================================================================

class ErrorSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode(str, enum.Enum):
    """Closed set of error kinds understood by the engine."""

    # Database
    DATABASE_UNIQUE_CONSTRAINT = "database_unique_constraint"
    DATABASE_FOREIGN_KEY_VIOLATION = "database_foreign_key_violation"
    DATABASE_NOT_NULL_VIOLATION = "database_not_null_violation"
    DATABASE_PERMISSION_DENIED = "database_permission_denied"
    DATABASE_TIMEOUT = "database_timeout"
    DATABASE_GENERIC = "database_generic"

    # Network / remote backend
    NETWORK_TIMEOUT = "network_timeout"
    NETWORK_NO_CONNECTION = "network_no_connection"
    NETWORK_SERVER_ERROR = "network_server_error"
    NETWORK_BAD_REQUEST = "network_bad_request"
    NETWORK_NOT_FOUND = "network_not_found"
    NETWORK_GENERIC = "network_generic"

    # Validation
    VALIDATION_REQUIRED = "validation_required"
    VALIDATION_INVALID_FORMAT = "validation_invalid_format"
    VALIDATION_OUT_OF_RANGE = "validation_out_of_range"
    VALIDATION_DUPLICATE = "validation_duplicate"

    # Business rules
    SPACE_NOT_FOUND = "space_not_found"
    ENTITY_NOT_FOUND = "entity_not_found"
    CONFLICT = "conflict"
    OPERATION_NOT_ALLOWED = "operation_not_allowed"

    # Catch-all
    UNKNOWN = "unknown"

    @property
    def is_retryable(self) -> bool:
        return self in _RETRYABLE

    @property
    def is_validation(self) -> bool:
        return self.value.startswith("validation_")

    @property
    def is_not_found(self) -> bool:
        return self in (
            ErrorCode.NETWORK_NOT_FOUND,
            ErrorCode.SPACE_NOT_FOUND,
            ErrorCode.ENTITY_NOT_FOUND,
        )

    @property
    def severity(self) -> ErrorSeverity:
        if self in (
            ErrorCode.DATABASE_FOREIGN_KEY_VIOLATION,
            ErrorCode.DATABASE_NOT_NULL_VIOLATION,
        ):
            return ErrorSeverity.CRITICAL
        if self.is_validation:
            return ErrorSeverity.LOW
        if self.value.startswith("network_") or self in (
            ErrorCode.SPACE_NOT_FOUND,
            ErrorCode.ENTITY_NOT_FOUND,
            ErrorCode.CONFLICT,
            ErrorCode.OPERATION_NOT_ALLOWED,
        ):
            return ErrorSeverity.MEDIUM
        return ErrorSeverity.HIGH


_RETRYABLE = frozenset({
    ErrorCode.NETWORK_TIMEOUT,
    ErrorCode.NETWORK_NO_CONNECTION,
    ErrorCode.NETWORK_SERVER_ERROR,
    ErrorCode.NETWORK_GENERIC,
    ErrorCode.DATABASE_TIMEOUT,
})


_DEFAULT_USER_MESSAGES = {
    ErrorCode.DATABASE_UNIQUE_CONSTRAINT: "This item already exists.",
    ErrorCode.DATABASE_FOREIGN_KEY_VIOLATION: "This item references data that no longer exists.",
    ErrorCode.DATABASE_NOT_NULL_VIOLATION: "Some required data is missing.",
    ErrorCode.DATABASE_PERMISSION_DENIED: "You don't have permission to do that.",
    ErrorCode.DATABASE_TIMEOUT: "The operation took too long. Please try again.",
    ErrorCode.DATABASE_GENERIC: "Unable to save or load data. Please try again.",
    ErrorCode.NETWORK_TIMEOUT: "The request timed out. Please try again.",
    ErrorCode.NETWORK_NO_CONNECTION: "No connection. Please check your internet connection.",
    ErrorCode.NETWORK_SERVER_ERROR: "The server had a problem. Please try again later.",
    ErrorCode.NETWORK_BAD_REQUEST: "The request was invalid.",
    ErrorCode.NETWORK_NOT_FOUND: "The requested item could not be found.",
    ErrorCode.NETWORK_GENERIC: "Connection failed. Please try again.",
    ErrorCode.SPACE_NOT_FOUND: "This space could not be found.",
    ErrorCode.ENTITY_NOT_FOUND: "This item could not be found.",
    ErrorCode.CONFLICT: "This item was changed elsewhere. Please refresh.",
    ErrorCode.OPERATION_NOT_ALLOWED: "This action is not allowed.",
    ErrorCode.UNKNOWN: "An unexpected error occurred. Please try again.",
}


# ==========================================================================
# Raw store errors
# ==========================================================================

class NotFoundError(LookupError):
    """Raised by repositories when a row does not exist."""


class ConflictError(RuntimeError):
    """Raised by repositories when a write conflicts with stored state."""


# ==========================================================================
# AppError
# ==========================================================================

class AppError(Exception):
    """Classified error carried through the engine."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        user_message: Optional[str] = None,
        technical_details: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.technical_details = technical_details
        self.context = dict(context or {})
        self._user_message = user_message

    @property
    def severity(self) -> ErrorSeverity:
        return self.code.severity

    @property
    def is_retryable(self) -> bool:
        return self.code.is_retryable

    @property
    def user_message(self) -> str:
        """Message safe to show to the user, rendered from context when possible."""
        if self._user_message:
            return self._user_message
        field = self.context.get("field_name")
        if field:
            if self.code is ErrorCode.VALIDATION_REQUIRED:
                return f"{field} is required."
            if self.code is ErrorCode.VALIDATION_INVALID_FORMAT:
                return f"{field} has an invalid format."
            if self.code is ErrorCode.VALIDATION_OUT_OF_RANGE:
                return f"{field} must be between {self.context.get('min')} and {self.context.get('max')}."
            if self.code is ErrorCode.VALIDATION_DUPLICATE:
                return f"{field} already exists."
        if self.code.is_validation:
            return "Invalid input. Please check your data and try again."
        return _DEFAULT_USER_MESSAGES[self.code]

    @property
    def action_label(self) -> str:
        return "Retry" if self.is_retryable else "Dismiss"

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "retryable": self.is_retryable,
            "context": self.context,
        }

    def __repr__(self) -> str:
        return f"<AppError {self.code.value}: {self.message}>"


# ==========================================================================
# Validation factories
# ==========================================================================

class ValidationErrors:
    """Builders for terminal validation errors with structured context."""

    @staticmethod
    def required_field(field_name: str) -> AppError:
        return AppError(
            ErrorCode.VALIDATION_REQUIRED,
            f"Required field is missing: {field_name}",
            context={"field_name": field_name},
        )

    @staticmethod
    def invalid_format(field_name: str) -> AppError:
        return AppError(
            ErrorCode.VALIDATION_INVALID_FORMAT,
            f"Invalid format for field: {field_name}",
            context={"field_name": field_name},
        )

    @staticmethod
    def out_of_range(field_name: str, min_value: Any, max_value: Any) -> AppError:
        return AppError(
            ErrorCode.VALIDATION_OUT_OF_RANGE,
            f"Field {field_name} is out of range: must be between {min_value} and {max_value}",
            context={"field_name": field_name, "min": str(min_value), "max": str(max_value)},
        )

    @staticmethod
    def duplicate(field_name: str) -> AppError:
        return AppError(
            ErrorCode.VALIDATION_DUPLICATE,
            f"Duplicate value for field: {field_name}",
            context={"field_name": field_name},
        )


def require_text(value: Optional[str], field_name: str) -> None:
    """Raise ``validation_required`` when a display text is blank."""
    if value is None or not value.strip():
        raise ValidationErrors.required_field(field_name)


# ==========================================================================
# Classification
# ==========================================================================

def classify(raw: BaseException) -> AppError:
    """Map any raised exception into an ``AppError``."""
    if isinstance(raw, AppError):
        return raw

    details = f"{type(raw).__name__}: {raw}"

    if isinstance(raw, NotFoundError):
        return AppError(ErrorCode.ENTITY_NOT_FOUND, str(raw), technical_details=details)
    if isinstance(raw, ConflictError):
        return AppError(ErrorCode.CONFLICT, str(raw), technical_details=details)

    if isinstance(raw, PydanticValidationError):
        first = raw.errors()[0] if raw.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or "value"
        if first.get("type") == "missing":
            error = ValidationErrors.required_field(field)
        else:
            error = ValidationErrors.invalid_format(field)
        error.technical_details = details
        return error

    if isinstance(raw, IntegrityError):
        return AppError(
            _integrity_code(str(raw.orig)),
            "Database operation failed",
            technical_details=details,
        )
    if isinstance(raw, OperationalError):
        text = str(raw.orig).lower()
        code = ErrorCode.DATABASE_TIMEOUT if ("locked" in text or "timeout" in text) else ErrorCode.DATABASE_GENERIC
        return AppError(code, "Database operation failed", technical_details=details)
    if isinstance(raw, DBAPIError):
        code = ErrorCode.NETWORK_NO_CONNECTION if raw.connection_invalidated else ErrorCode.DATABASE_GENERIC
        return AppError(code, "Database operation failed", technical_details=details)

    if isinstance(raw, httpx.HTTPStatusError):
        return AppError(
            _status_code(raw.response.status_code),
            f"Remote request failed with status {raw.response.status_code}",
            technical_details=details,
            context={"status_code": raw.response.status_code},
        )
    if isinstance(raw, httpx.TimeoutException):
        return AppError(ErrorCode.NETWORK_TIMEOUT, "Remote request timed out", technical_details=details)
    if isinstance(raw, (httpx.ConnectError, httpx.NetworkError)):
        return AppError(ErrorCode.NETWORK_NO_CONNECTION, "Remote backend unreachable", technical_details=details)
    if isinstance(raw, httpx.TransportError):
        return AppError(ErrorCode.NETWORK_GENERIC, "Remote request failed", technical_details=details)

    if isinstance(raw, (TimeoutError, asyncio.TimeoutError)):
        return AppError(ErrorCode.NETWORK_TIMEOUT, "Operation timed out", technical_details=details)
    if isinstance(raw, ConnectionError):
        return AppError(ErrorCode.NETWORK_NO_CONNECTION, "Connection failed", technical_details=details)

    return AppError(ErrorCode.UNKNOWN, str(raw) or type(raw).__name__, technical_details=details)


def _integrity_code(text: str) -> ErrorCode:
    text = text.lower()
    if "unique" in text:
        return ErrorCode.DATABASE_UNIQUE_CONSTRAINT
    if "foreign key" in text:
        return ErrorCode.DATABASE_FOREIGN_KEY_VIOLATION
    if "not null" in text:
        return ErrorCode.DATABASE_NOT_NULL_VIOLATION
    return ErrorCode.DATABASE_GENERIC


def _status_code(status: int) -> ErrorCode:
    if status == 404:
        return ErrorCode.NETWORK_NOT_FOUND
    if status == 409:
        return ErrorCode.CONFLICT
    if status in (401, 403):
        return ErrorCode.DATABASE_PERMISSION_DENIED
    if status in (408, 504):
        return ErrorCode.NETWORK_TIMEOUT
    if status >= 500:
        return ErrorCode.NETWORK_SERVER_ERROR
    return ErrorCode.NETWORK_BAD_REQUEST


# ==========================================================================
# Error log
# ==========================================================================

SENSITIVE_KEYS = frozenset({
    "password",
    "token",
    "api_key",
    "apikey",
    "secret",
    "auth",
    "authorization",
    "credential",
    "key",
})

_recent_errors: deque = deque(maxlen=settings.ERROR_LOG_LIMIT)


def _sanitize(data: dict[str, Any]) -> dict[str, Any]:
    clean = {}
    for key, value in data.items():
        if key.lower() in SENSITIVE_KEYS or any(s in key.lower() for s in ("password", "token", "secret")):
            clean[key] = "[REDACTED]"
        elif isinstance(value, dict):
            clean[key] = _sanitize(value)
        else:
            clean[key] = value
    return clean


def log_error(error: AppError, context: Optional[str] = None, **extra: Any) -> None:
    """Log a classified error and remember it in the recent-errors ring."""
    extra = _sanitize(extra)
    logger.warning(
        "app_error",
        code=error.code.value,
        severity=error.severity.value,
        retryable=error.is_retryable,
        error_message=error.message,
        context=context,
        details=error.technical_details,
        **extra,
    )
    _recent_errors.appendleft({
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "code": error.code.value,
        "message": error.message,
        "context": context,
        "technical_details": error.technical_details,
        "additional_data": extra or None,
    })


def recent_errors(limit: int = 50) -> list[dict[str, Any]]:
    """Most recent logged errors, newest first."""
    return list(_recent_errors)[:limit]


def clear_errors() -> None:
    _recent_errors.clear()
