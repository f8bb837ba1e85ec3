"""
api/offload.py -- Run password hashing off the event loop.

scrypt blocks for tens of milliseconds per derivation. Routes that hash
(login, register, admin create and password reset) are async and hand the
whole blocking operation to run_hashing(), which runs it on a worker thread
under app.state.hash_limiter, an anyio CapacityLimiter sized by
MAX_CONCURRENT_HASHES.

A request waiting for a hashing slot is parked on the event loop, not on a
thread, so a login burst can never take the threads that sync routes such as
GET /users need.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Callable, TypeVar

import anyio.to_thread
from fastapi import Request

T = TypeVar("T")


async def run_hashing(request: Request, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run func(*args, **kwargs) on a worker thread under the hashing limiter."""
    limiter = request.app.state.hash_limiter
    return await anyio.to_thread.run_sync(partial(func, *args, **kwargs), limiter=limiter)
