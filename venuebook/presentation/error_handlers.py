"""Maps scheduler errors onto HTTP responses."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from venuebook.core.errors import (
    ConflictError,
    NotFoundError,
    RepositoryError,
    SchedulingError,
    StateError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[SchedulingError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    StateError: 409,
    RepositoryError: 503,
}


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content=exc.to_report())

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
        status_code = next(
            (code for error_type, code in _STATUS_CODES.items() if isinstance(exc, error_type)),
            500,
        )
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
