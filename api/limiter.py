"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware) and by api/routes/v1/auth.py
(per-route limit on POST /auth/login). One shared instance means one counter
store; separate instances per module would never trip.

RATE_LIMIT_ENABLED=false turns every limit into a no-op (used by the tests,
which log in far more than 10 times a minute from the same client).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)


def login_rate_limit() -> str:
    return get_settings().login_rate_limit
