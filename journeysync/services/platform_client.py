"""Async HTTP client for the remote workflow platform.

Wraps template and workflow endpoints behind typed methods and classifies
every failure into the PlatformError hierarchy. The client never retries;
retry decisions belong to RetryPolicy.
"""

import logging
from typing import Any

import httpx

from journeysync.services.errors import (
    PlatformError,
    RemoteAuthError,
    RemoteNotFound,
    RemotePermissionError,
    RemoteRateLimited,
    RemoteTimeout,
    RemoteUnknownError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://services.leadconnectorhq.com"
DEFAULT_API_VERSION = "2021-07-28"

_STATUS_FALLBACK_MESSAGES = {
    401: "Authentication failed - check the platform API key",
    403: "Permission denied - check location access for the API key",
    429: "Rate limit exceeded - please try again later",
}


def extract_template_id(data: dict[str, Any] | None) -> str | None:
    """Pull the template id out of a create/update response body."""
    if not data:
        return None
    template_id = data.get("id") or data.get("templateId")
    if template_id is None and isinstance(data.get("template"), dict):
        template_id = data["template"].get("id")
    return str(template_id) if template_id is not None else None


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _error_message(response: httpx.Response) -> str:
    """Server message: body ``message``, then ``error``, then raw text."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, list):
                value = "; ".join(str(v) for v in value)
            if value:
                return str(value)
    fallback = _STATUS_FALLBACK_MESSAGES.get(response.status_code)
    if fallback:
        return fallback
    text = response.text.strip()
    return text[:500] if text else f"HTTP {response.status_code}"


def classify_response_error(response: httpx.Response) -> PlatformError:
    """Map a non-2xx response onto the PlatformError hierarchy."""
    status = response.status_code
    message = _error_message(response)
    details = {"status": status, "body": response.text[:2000]}

    if status == 401:
        return RemoteAuthError("E-5001", message, status, details)
    if status == 403:
        return RemotePermissionError("E-5002", message, status, details)
    if status == 429:
        return RemoteRateLimited(
            "E-3001",
            message,
            status,
            details,
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
        )
    if status == 404:
        return RemoteNotFound("E-3004", message, status, details)
    return RemoteUnknownError("E-3003", message, status, details)


class PlatformClient:
    """Typed access to the remote platform's template and workflow APIs.

    Attributes:
        base_url: API root, without trailing slash.
        api_version: Value sent in the ``Version`` header.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Bearer token for the platform.
            base_url: API root URL.
            api_version: API version header value.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
                "Version": api_version,
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "PlatformClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one request and return the parsed JSON body.

        Raises:
            PlatformError: Classified failure (see classify_response_error);
                timeouts and dropped connections raise RemoteTimeout.
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise RemoteTimeout("E-3002", f"{method} {path} timed out", None, {"error": str(e)}) from e
        except httpx.TransportError as e:
            raise RemoteTimeout("E-3002", f"{method} {path} failed: {e}", None, {"error": str(e)}) from e

        if response.is_error:
            error = classify_response_error(response)
            logger.debug("%s %s -> %d: %s", method, path, response.status_code, error.message)
            raise error

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteUnknownError(
                "E-3003", "Platform returned a non-JSON body", response.status_code,
                {"body": response.text[:2000]},
            ) from e
        return body if isinstance(body, dict) else {"data": body}

    # Email templates

    async def create_email_template(
        self, payload: dict[str, Any], location_id: str
    ) -> dict[str, Any]:
        return await self._request(
            "POST", "/emails/builder", json={**payload, "locationId": location_id}
        )

    async def update_email_template(
        self, template_id: str, payload: dict[str, Any], location_id: str
    ) -> dict[str, Any]:
        return await self._request(
            "PUT",
            f"/emails/builder/{template_id}",
            json={**payload, "locationId": location_id},
        )

    async def get_email_template(self, template_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/emails/builder/{template_id}")

    # SMS templates

    async def create_sms_template(
        self, payload: dict[str, Any], location_id: str
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/locations/{location_id}/templates",
            json={**payload, "locationId": location_id},
        )

    async def update_sms_template(
        self, template_id: str, payload: dict[str, Any], location_id: str
    ) -> dict[str, Any]:
        return await self._request(
            "PUT",
            f"/locations/{location_id}/templates/{template_id}",
            json={**payload, "locationId": location_id},
        )

    async def get_sms_template(self, template_id: str, location_id: str) -> dict[str, Any]:
        return await self._request(
            "GET", f"/locations/{location_id}/templates/{template_id}"
        )

    # Dispatch by template kind

    async def create_template(
        self, kind: str, payload: dict[str, Any], location_id: str
    ) -> dict[str, Any]:
        if kind == "email":
            return await self.create_email_template(payload, location_id)
        return await self.create_sms_template(payload, location_id)

    async def update_template(
        self, kind: str, template_id: str, payload: dict[str, Any], location_id: str
    ) -> dict[str, Any]:
        if kind == "email":
            return await self.update_email_template(template_id, payload, location_id)
        return await self.update_sms_template(template_id, payload, location_id)

    async def get_template(
        self, kind: str, template_id: str, location_id: str
    ) -> dict[str, Any] | None:
        """Read back a template; None when the platform reports it missing."""
        try:
            if kind == "email":
                body = await self.get_email_template(template_id)
            else:
                body = await self.get_sms_template(template_id, location_id)
        except RemoteNotFound:
            return None
        # Some endpoints wrap the object in a "template" envelope
        if isinstance(body.get("template"), dict):
            return body["template"]
        return body

    # Workflows and connectivity

    async def get_workflow(self, workflow_id: str) -> dict[str, Any] | None:
        """Read a workflow; None when it no longer exists."""
        try:
            body = await self._request("GET", f"/workflows/{workflow_id}")
        except RemoteNotFound:
            return None
        if isinstance(body.get("workflow"), dict):
            return body["workflow"]
        return body

    async def test_connection(self, location_id: str) -> dict[str, Any]:
        """Fetch the location record to verify key and location access.

        Raises:
            PlatformError: If the platform rejects the request.
        """
        return await self._request("GET", f"/locations/{location_id}")
