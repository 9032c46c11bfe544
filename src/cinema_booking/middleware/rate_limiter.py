"""
Per-caller request limits (slowapi)
"""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from cinema_booking.core.config import settings


def rate_limit_key(request: Request) -> str:
    """Callers are identified by their user id; anonymous reads fall back to the client address"""
    user_id = request.query_params.get("user_id")
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)
