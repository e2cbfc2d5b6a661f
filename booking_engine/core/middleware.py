# booking_engine/core/middleware.py
"""Request tracing and access logging"""
import uuid
import time
import logging
from starlette.requests import Request

from booking_engine.utils.my_logging import correlation_id_var

logger = logging.getLogger(__name__)


async def correlation_id_middleware(request: Request, call_next):
    """Tag the request with a correlation id, reusing the caller's when given"""
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    token = correlation_id_var.set(correlation_id)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token)

    response.headers["X-Correlation-ID"] = correlation_id
    return response


async def request_logging_middleware(request: Request, call_next):
    """One line per request: who called what, the outcome and how long it took"""
    started = time.perf_counter()
    actor = request.headers.get("X-Actor-Id", "anonymous")

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    # 4xx here is mostly slot conflicts and deadline refusals, not faults
    log = logger.error if response.status_code >= 500 else logger.info
    log(
        f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms}ms) actor={actor}",
        extra={"status_code": response.status_code, "duration_ms": duration_ms},
    )
    return response
