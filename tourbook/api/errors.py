# tourbook/api/errors.py
"""Map scheduling errors onto HTTP responses"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tourbook.core.exceptions import (
    ConcurrencyError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    SchedulingError,
    TransientStoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases
STATUS_CODES = (
    (ValidationError, 422),
    (ConflictError, 409),
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (ConcurrencyError, 503),
    (TransientStoreError, 503),
)


def status_for(exc: SchedulingError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    status_code = status_for(exc)

    if status_code == 503:
        # retries were already exhausted by the route
        logger.error(f"{request.method} {request.url.path} gave up after retries: {exc}")
        return JSONResponse(
            status_code=503,
            content={"error": "ServiceUnavailable", "message": "The calendar is busy. Please try again."},
        )

    if status_code >= 500:
        logger.error(f"Unmapped scheduling error on {request.method} {request.url.path}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
