"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and roles.

Two layers, always in this order:
  1. Authentication -- the session cookie must resolve to a Principal (else 401).
  2. Role -- the Principal's role must be in the operation's role set (else 403).

try_get_current_principal() is the soft variant (returns None on failure).
get_current_principal() wraps it and raises Unauthenticated.
require_role(...) wraps get_current_principal() and raises Forbidden.

Resource ownership ("a student may only see their own record") is not a role
question and lives in auth/policies.py, evaluated inside each route.

The raised AuthError subclasses are turned into 401/403 responses by the
exception handler in api/main.py.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Request

from auth.errors import Forbidden, Unauthenticated
from auth.models import Principal, Role
from auth.sessions import COOKIE_NAME

logger = logging.getLogger("edumanage.auth")

_UNSET = object()


def try_get_current_principal(request: Request) -> Principal | None:
    """Resolve the session cookie to a Principal, or None.

    Never raises for a missing, expired or tampered cookie. The result is
    memoized on request.state so stacked dependencies resolve the session
    only once per request.
    """
    cached = getattr(request.state, "principal", _UNSET)
    if cached is not _UNSET:
        return cached
    authenticator = request.app.state.authenticator
    principal = authenticator.current_principal(request.cookies.get(COOKIE_NAME))
    request.state.principal = principal
    return principal


def get_current_principal(request: Request) -> Principal:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = try_get_current_principal(request)
    if principal is None:
        raise Unauthenticated()
    return principal


def require_role(*roles: Role | str) -> Callable[[Request], Principal]:
    """Build a dependency that admits only the given roles.

    Roles are coerced to Role when the route module is imported, so a typo
    like require_role("admn") fails at startup instead of silently denying
    everyone.

        @router.post("/courses")
        async def route(principal: Principal = Depends(require_role(Role.admin, Role.teacher))): ...
    """
    allowed = frozenset(Role(r) for r in roles)
    if not allowed:
        raise ValueError("require_role() needs at least one role")

    def dependency(request: Request) -> Principal:
        principal = get_current_principal(request)
        if principal.role not in allowed:
            logger.info(
                "Denied %s %s for user_id=%s (role=%s)",
                request.method,
                request.url.path,
                principal.user_id,
                principal.role.value,
            )
            raise Forbidden()
        return principal

    dependency.__name__ = "require_" + "_or_".join(sorted(r.value for r in allowed))
    return dependency


require_admin = require_role(Role.admin)
require_staff = require_role(Role.admin, Role.teacher)
