"""Global error handlers mapping engine errors to HTTP responses.

Every body carries ``detail`` (the machine-readable reason) and the
``request_id`` of the failing request.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from trustpass.api.request_id import get_request_id
from trustpass.domain.common.errors import (
    EngineError,
    Forbidden,
    NotFound,
    RateLimited,
    StateConflict,
    TransientStoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_FAMILY = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (StateConflict, status.HTTP_409_CONFLICT),
    (RateLimited, status.HTTP_429_TOO_MANY_REQUESTS),
    (TransientStoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def map_error(exc: EngineError) -> Tuple[int, Optional[Dict[str, str]]]:
    """Status code and extra headers for an engine error."""
    headers: Optional[Dict[str, str]] = None
    if isinstance(exc, RateLimited) and exc.retry_after_seconds is not None:
        headers = {"Retry-After": str(int(exc.retry_after_seconds))}
    for family, code in _STATUS_BY_FAMILY:
        if isinstance(exc, family):
            return code, headers
    return status.HTTP_400_BAD_REQUEST, headers


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(EngineError)
    async def engine_exc_handler(request: Request, exc: EngineError):  # type: ignore[override]
        code, headers = map_error(exc)
        if code >= 500:
            logger.warning("engine_error", extra={"reason": exc.reason, "path": request.url.path})
        payload = {"detail": exc.reason, "request_id": get_request_id(request)}
        return JSONResponse(status_code=code, content=payload, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        payload = {"detail": exc.detail, "request_id": get_request_id(request)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        payload = {
            "detail": "validation_error",
            "errors": jsonable_errors(exc),
            "request_id": get_request_id(request),
        }
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=payload)


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic v2 puts the raw exception object in ctx; keep only its message
    cleaned = []
    for error in exc.errors():
        item = dict(error)
        ctx = item.get("ctx")
        if isinstance(ctx, dict):
            item["ctx"] = {key: str(value) for key, value in ctx.items()}
        cleaned.append(item)
    return cleaned
