# tourbook/core/middleware.py
"""Request tracing: correlation ids and access logging"""
import logging
import time
import uuid

from starlette.requests import Request

from tourbook.utils.my_logging import correlation_id_var

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


async def correlation_id_middleware(request: Request, call_next):
    """Reuse the caller's correlation id or mint one; every log line of the request carries it"""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    token = correlation_id_var.set(correlation_id)

    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


async def request_logging_middleware(request: Request, call_next):
    started = time.perf_counter()
    logger.info(f"{request.method} {request.url.path} started")

    response = await call_next(request)

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    log = logger.warning if response.status_code >= 500 else logger.info
    log(f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms}ms")
    return response
