"""Exception hierarchy for the RTB device workflow service.

Every error raised by the workflow core derives from RTBError. Each subclass
fixes its machine-readable code, HTTP status and recoverability, so the API
layer renders any of them with a single handler.

    RTBError
    ├── ValidationError          400  malformed or policy-violating input
    ├── ForbiddenError           403  role or ownership check failed
    ├── NotFoundError            404  referenced entity missing
    ├── InvalidTransitionError   409  state machine violation
    ├── ConflictError            409  lost a race; re-fetch and retry
    ├── ConfigurationError       500  bad environment
    └── DatabaseError            500
        ├── ConnectionPoolError
        ├── TransactionError
        └── IntegrityError

Only ConflictError is recoverable: the caller may re-fetch and retry.
"""
from datetime import datetime, timezone
from typing import Any, Optional


def _jsonable(value: Any) -> Any:
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if hasattr(value, "value"):  # Enum members
        return value.value
    return str(value)


def _context(details: Optional[dict[str, Any]], **extra: Any) -> dict[str, Any]:
    """Merge caller details with the non-None keyword context."""
    merged = dict(details or {})
    merged.update({k: v for k, v in extra.items() if v is not None})
    return merged


class RTBError(Exception):
    """Base exception for all workflow errors.

    Attributes:
        message: Human-readable description
        code: Machine-readable code, e.g. "INVALID_TRANSITION"
        details: Context such as entity id, current and attempted state
        timestamp: When the error was raised (UTC)
        cause: Underlying exception, also chained as __cause__
        recoverable: Whether retrying the same call might succeed
    """

    status_code: int = 500
    default_code: Optional[str] = None
    default_recoverable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code or type(self).__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")"
        return text

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}, details={self.details!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serializable form used by the API error handler and logs."""
        return {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================
# Workflow errors
# ============================================

class ValidationError(RTBError):
    """Input is malformed or violates a policy (zero quantities, over-assignment, duplicate ids)."""

    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, details=None, **kwargs):
        super().__init__(message, details=_context(details, field=field), **kwargs)
        self.field = field


class ForbiddenError(RTBError):
    """The actor's role or school does not permit the operation."""

    status_code = 403
    default_code = "FORBIDDEN"

    def __init__(
        self,
        message: str = "Access denied. Insufficient permissions.",
        role: Optional[str] = None,
        operation: Optional[str] = None,
        details=None,
        **kwargs,
    ):
        super().__init__(message, details=_context(details, role=role, operation=operation), **kwargs)


class NotFoundError(RTBError):
    """A referenced application, device or school does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: Optional[Any] = None, details=None, **kwargs):
        message = (
            f"{resource_type} not found"
            if resource_id is None
            else f"{resource_type} '{resource_id}' not found"
        )
        super().__init__(
            message,
            details=_context(details, resource_type=resource_type, resource_id=resource_id),
            **kwargs,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class InvalidTransitionError(RTBError):
    """The operation is not allowed from the entity's current state."""

    status_code = 409
    default_code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        entity_id: Optional[Any] = None,
        current: Optional[Any] = None,
        attempted: Optional[Any] = None,
        details=None,
        **kwargs,
    ):
        super().__init__(
            message,
            details=_context(details, entity_id=entity_id, current=current, attempted=attempted),
            **kwargs,
        )
        self.entity_id = entity_id
        self.current = current
        self.attempted = attempted


class ConflictError(RTBError):
    """A concurrent request claimed the devices or row lock first."""

    status_code = 409
    default_code = "CONFLICT"
    default_recoverable = True

    def __init__(self, message: str, conflicting_ids: Optional[list[Any]] = None, details=None, **kwargs):
        self.conflicting_ids = list(conflicting_ids or [])
        super().__init__(
            message,
            details=_context(details, conflicting_ids=self.conflicting_ids or None),
            **kwargs,
        )


class ConfigurationError(RTBError):
    """An environment variable is missing or has an invalid value."""

    default_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, missing_keys: Optional[list[str]] = None, details=None, **kwargs):
        super().__init__(message, details=_context(details, missing_keys=missing_keys), **kwargs)


# ============================================
# Database errors
# ============================================

class DatabaseError(RTBError):
    """The store failed for a reason outside the workflow's control."""

    default_code = "DATABASE_ERROR"


class ConnectionPoolError(DatabaseError):
    """No pooled connection could be obtained."""

    default_code = "CONNECTION_POOL_ERROR"

    def __init__(self, message: str = "Database connection pool error", **kwargs):
        super().__init__(message, **kwargs)


class TransactionError(DatabaseError):
    """A transaction could not be started, or a query timed out."""

    default_code = "TRANSACTION_ERROR"

    def __init__(self, message: str = "Database transaction failed", operation: Optional[str] = None, details=None, **kwargs):
        super().__init__(message, details=_context(details, operation=operation), **kwargs)


class IntegrityError(DatabaseError):
    """A constraint rejected the write; retrying the same data will fail again."""

    default_code = "INTEGRITY_ERROR"

    def __init__(self, message: str = "Database integrity error", constraint: Optional[str] = None, details=None, **kwargs):
        super().__init__(message, details=_context(details, constraint=constraint), **kwargs)


__all__ = [
    "RTBError",
    "ValidationError",
    "ForbiddenError",
    "NotFoundError",
    "InvalidTransitionError",
    "ConflictError",
    "ConfigurationError",
    "DatabaseError",
    "ConnectionPoolError",
    "TransactionError",
    "IntegrityError",
]
