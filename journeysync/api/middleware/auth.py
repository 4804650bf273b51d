"""X-API-Key gate for the journey sync API.

Off unless JOURNEYSYNC_API_KEY is set. Once set, journey, client,
touchpoint and sync routes under /api/ require the key; /health and the
OpenAPI docs stay open so monitors and browsers can reach them.
"""

import hmac
import logging
import os

from fastapi import Request
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

API_KEY_ENV = "JOURNEYSYNC_API_KEY"
API_KEY_HEADER = "X-API-Key"

_OPEN_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")


def get_expected_api_key() -> str:
    """Key from the environment; empty when the gate is off."""
    return os.environ.get(API_KEY_ENV, "").strip()


def should_authenticate(path: str) -> bool:
    """True for /api/ routes outside the open paths."""
    return path.startswith("/api/") and not path.startswith(_OPEN_PATHS)


async def maybe_require_api_key(request: Request, call_next) -> Response:
    """Middleware: reject API calls whose X-API-Key does not match.

    CORS preflight requests pass through untouched.
    """
    expected = get_expected_api_key()
    if (
        not expected
        or request.method.upper() == "OPTIONS"
        or not should_authenticate(request.url.path)
    ):
        return await call_next(request)

    provided = request.headers.get(API_KEY_HEADER, "")
    if provided and hmac.compare_digest(provided, expected):
        return await call_next(request)

    caller = request.client.host if request.client else "unknown"
    logger.warning(
        "Journey sync API refused %s %s from %s: %s",
        request.method, request.url.path, caller,
        "wrong key" if provided else "no key",
    )
    return JSONResponse(
        status_code=401,
        content={"detail": f"Missing or invalid {API_KEY_HEADER} for the journey sync API"},
    )
