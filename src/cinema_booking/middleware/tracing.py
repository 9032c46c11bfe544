"""
Per-request trace ids and access logging
"""
import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from cinema_booking.core.logging_config import generate_trace_id, set_trace_id

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-ID"


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Binds a trace id to the request's context so every log line emitted while
    handling it carries the same id. An incoming X-Trace-ID is reused.
    """

    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or generate_trace_id()
        set_trace_id(trace_id)

        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                f"{route} raised",
                extra={"duration_ms": _elapsed_ms(started)},
            )
            raise

        logger.info(
            f"{route} -> {response.status_code}",
            extra={
                "duration_ms": _elapsed_ms(started),
                "status_code": response.status_code,
                "client_ip": request.client.host if request.client else None,
            },
        )
        response.headers[TRACE_HEADER] = trace_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
