"""Typed domain exceptions for API error mapping.

Routes translate these to HTTP status codes through exception handlers
registered in journeysync.api.main, so services never import FastAPI.

Usage:
    # In service layer
    raise NotFoundError("Journey", journey_id)
"""

from typing import Any


class DomainError(Exception):
    """Base exception for all domain errors."""

    code = "E-4002"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    code = "E-2006"

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Resource conflict. Maps to HTTP 409."""

    code = "E-2010"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(DomainError):
    """Validation failure. Maps to HTTP 400."""

    code = "E-2001"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class VersionConflict(ConflictError):
    """Submitted journey version is stale. Maps to HTTP 409.

    Carries the full current entity so the caller can re-base its edit.

    Attributes:
        journey: Current journey state (ORM instance) as of the failed write.
        journey_id: Journey identifier.
        submitted_version: Version the caller believed was current.
        current_version: Version actually stored.
    """

    def __init__(
        self,
        journey: Any,
        submitted_version: int,
        current_version: int,
    ) -> None:
        super().__init__(
            f"Journey '{journey.id}' was modified by another user "
            f"(current version {current_version}, submitted {submitted_version})"
        )
        self.journey = journey
        self.journey_id = journey.id
        self.submitted_version = submitted_version
        self.current_version = current_version


class NotPublishableError(DomainError):
    """Touchpoint type has no remote template counterpart. Maps to HTTP 400."""

    code = "E-2002"

    def __init__(self, touchpoint_type: str) -> None:
        super().__init__(
            f"Touchpoint type '{touchpoint_type}' cannot be published as a template"
        )
        self.touchpoint_type = touchpoint_type


class LedgerUnavailableError(DomainError):
    """Publish state ledger could not be read or written."""

    code = "E-4001"

    def __init__(self, message: str) -> None:
        super().__init__(message)
