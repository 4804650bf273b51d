"""Shared service-layer error types for the remote platform.

Centralised here to avoid circular imports between the platform client,
the publisher, and the retry policy.
"""

from dataclasses import dataclass


@dataclass
class PlatformError(Exception):
    """Error returned by (or while reaching) the remote platform.

    Attributes:
        code: Journey sync error code (E-XXXX format)
        message: Human-readable error message
        status_code: HTTP status, when a response was received
        details: Raw response body or transport details
    """

    code: str
    message: str
    status_code: int | None = None
    details: dict | None = None

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class RemoteAuthError(PlatformError):
    """401: the API key was rejected. Aborts a sync run."""


class RemotePermissionError(PlatformError):
    """403: the key lacks access to the location. Aborts a sync run."""


@dataclass
class RemoteRateLimited(PlatformError):
    """429: rate limited. ``retry_after`` is the server hint in seconds."""

    retry_after: float | None = None


class RemoteTimeout(PlatformError):
    """The request timed out or the connection dropped."""


class RemoteUnknownError(PlatformError):
    """Any other non-2xx response."""


class RemoteNotFound(RemoteUnknownError):
    """404 on a read-back: the remote object no longer exists."""
