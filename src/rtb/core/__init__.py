"""Shared infrastructure: errors, database helpers and configuration."""

from .config import Settings
from .exceptions import (
    ConfigurationError,
    ConflictError,
    ConnectionPoolError,
    DatabaseError,
    ForbiddenError,
    IntegrityError,
    InvalidTransitionError,
    NotFoundError,
    RTBError,
    TransactionError,
    ValidationError,
)

__all__ = [
    "Settings",
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
