"""Error handling framework for journey sync.

This package provides:
- Typed domain exceptions mapped to HTTP status codes
- Error code registry with E-XXXX format codes
- Error formatting and grouping utilities

Error categories:
- E-2xxx: Validation errors
- E-3xxx: Remote platform errors
- E-4xxx: System/internal errors
- E-5xxx: Authentication errors
"""

from journeysync.errors.domain import (
    ConflictError,
    DomainError,
    LedgerUnavailableError,
    NotFoundError,
    NotPublishableError,
    ValidationError,
    VersionConflict,
)
from journeysync.errors.formatter import (
    JourneySyncError,
    format_error,
    format_error_summary,
    group_errors,
)
from journeysync.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Domain
    "DomainError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "VersionConflict",
    "NotPublishableError",
    "LedgerUnavailableError",
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Formatter
    "JourneySyncError",
    "format_error",
    "group_errors",
    "format_error_summary",
]
