"""
Shared slowapi limiter.

Counters live in the configured storage (process memory by default, so limits
are per instance and best effort). Point RATE_LIMIT_STORAGE_URI at a shared
store such as redis:// when limits must hold across instances.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings


def get_caller_key(request: Request) -> str:
    """Caller identity set during authentication, else the client address"""
    key = getattr(request.state, "rate_limit_key", None)
    if key:
        return key
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_caller_key,
    storage_uri=settings.rate_limit_storage_uri,
    strategy="fixed-window",
)
