"""HTTP error builders and exception handlers.

Every rejection carries a machine-readable ``code`` next to the
human-readable ``message`` inside ``detail``. Raw API keys and internal
ids other than the tenant-facing ones are never echoed back.
"""

import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


def api_error(status_code: int, code: str, message: str, **extra: Any) -> HTTPException:
    """HTTPException with a ``{"code", "message", ...}`` detail payload."""
    headers = extra.pop("headers", None)
    return HTTPException(
        status_code=status_code,
        detail={"code": code, "message": message, **extra},
        headers=headers,
    )


def not_found(message: str) -> HTTPException:
    return api_error(status.HTTP_404_NOT_FOUND, "NOT_FOUND", message)


def conflict(message: str) -> HTTPException:
    return api_error(status.HTTP_409_CONFLICT, "CONFLICT", message)


def bad_request(code: str, message: str) -> HTTPException:
    return api_error(status.HTTP_400_BAD_REQUEST, code, message)


def is_unique_violation(exc: IntegrityError, *markers: str) -> bool:
    """True when ``exc`` is a unique-constraint failure mentioning one of ``markers``.

    Markers are constraint names (PostgreSQL) or ``table.column`` (SQLite).
    """
    message = str(exc.orig)
    if "unique" not in message.lower():
        return False
    return any(marker in message for marker in markers)


def unavailable(code: str, message: str) -> HTTPException:
    return api_error(status.HTTP_503_SERVICE_UNAVAILABLE, code, message)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies and queries are client errors (400), not 422."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "code": "VALIDATION_FAILED",
                "message": "Request validation failed",
                "errors": jsonable_encoder(
                    [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]
                ),
            }
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Avoid leaking stack traces; return a stable internal error payload."""
    logger.error(
        "unhandled_exception method=%s path=%s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"code": "INTERNAL_ERROR", "message": "Internal server error"}},
    )
