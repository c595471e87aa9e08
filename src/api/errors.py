"""
Error envelope - Maps domain errors to HTTP responses.

Every identity failure is rendered as ``{"kind", "message", "reason"}``.
Exception chains are attached as ``debug`` only outside production.
"""

import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.domain.exceptions import IdentityError, TokenExpired

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "invalid_input": status.HTTP_400_BAD_REQUEST,
    "conflict": status.HTTP_409_CONFLICT,
    "unauthorized": status.HTTP_401_UNAUTHORIZED,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "locked": status.HTTP_423_LOCKED,
    "not_found": status.HTTP_404_NOT_FOUND,
    "rate_limited": status.HTTP_429_TOO_MANY_REQUESTS,
    "expired": status.HTTP_400_BAD_REQUEST,
    "internal": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: IdentityError) -> int:
    """HTTP status for a domain error. Expired bearer credentials are 401."""
    if isinstance(exc, TokenExpired):
        return status.HTTP_401_UNAUTHORIZED
    return STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_body(exc: IdentityError, include_debug: bool) -> dict:
    body: dict = {"kind": exc.kind, "message": exc.message, "reason": exc.reason}
    if include_debug:
        body["debug"] = "".join(traceback.format_exception(exc)).strip()
    return body


def register_exception_handlers(app: FastAPI, *, include_debug: bool) -> None:
    """Install the identity error handler on ``app``."""

    async def handle_identity_error(request: Request, exc: IdentityError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("Internal error on %s %s", request.method, request.url.path, exc_info=exc)
        headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(
            status_code=status_code,
            content=error_body(exc, include_debug),
            headers=headers,
        )

    app.add_exception_handler(IdentityError, handle_identity_error)
