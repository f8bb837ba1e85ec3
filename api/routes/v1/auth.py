"""
api/routes/v1/auth.py -- Session authentication endpoints.

Routes:
  POST /api/v1/auth/login     -- password login; sets session cookie
  POST /api/v1/auth/logout    -- destroys the session, clears cookie; 200
  GET  /api/v1/auth/me        -- current principal (requires auth)
  POST /api/v1/auth/register  -- self-service student sign-up; logs the new user in

Security:
  POST /login is rate-limited (LOGIN_RATE_LIMIT, default 10/minute per IP).
  Authenticator.login() provides timing equalization -- use it, never inline.
  Wrong username and wrong password return the same 401 body.
  Cache-Control: no-store on every response that sets a session cookie.

login and register are async and hand their blocking work (scrypt plus the
store calls) to run_hashing() in api/offload.py, which caps concurrent
derivations without holding a worker thread per waiting request. logout is a
plain `def` route: it only touches the store, and FastAPI runs sync routes on
its worker thread pool instead of the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import LoginRequest, PrincipalResponse, RegisterRequest
from api.offload import run_hashing
from auth.accounts import AccountService
from auth.authenticator import Authenticator, LoginResult
from auth.dependencies import get_current_principal
from auth.models import Principal
from auth.sessions import COOKIE_NAME, clear_session_cookie, set_session_cookie
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/login:     public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:    public -- logging out without a session is a no-op
# - POST /api/v1/auth/register:  public, unless SELF_REGISTRATION_ENABLED=false
# - GET  /api/v1/auth/me:        requires auth (get_current_principal)
router = APIRouter()


def _session_response(result: LoginResult, status_code: int) -> JSONResponse:
    settings = get_settings()
    resp = JSONResponse(
        status_code=status_code,
        content=PrincipalResponse.from_principal(result.principal).model_dump(mode="json"),
    )
    set_session_cookie(resp, result.session_id, settings.session_ttl_seconds, settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/login", response_model=PrincipalResponse)
@limiter.limit(login_rate_limit)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set the session cookie.

    InvalidCredentials propagates to the AuthError handler in api/main.py,
    which answers 401 "bad_credentials" for both unknown user and wrong
    password.
    """
    authenticator: Authenticator = request.app.state.authenticator
    result = await run_hashing(request, authenticator.login, body.username, body.password)
    return _session_response(result, status_code=200)


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Destroy the server-side session and clear the cookie."""
    authenticator: Authenticator = request.app.state.authenticator
    authenticator.logout(request.cookies.get(COOKIE_NAME))
    resp = JSONResponse(content={"message": "Logged out."})
    clear_session_cookie(resp, secure=get_settings().secure_cookies)
    return resp


@router.get("/auth/me", response_model=PrincipalResponse)
async def me(principal: Principal = Depends(get_current_principal)) -> PrincipalResponse:
    """Return the principal as re-derived from the session for this request."""
    return PrincipalResponse.from_principal(principal)


@router.post("/auth/register", response_model=PrincipalResponse, status_code=201)
async def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a student account and start a session for it.

    Returns 404 when self-registration is disabled so the endpoint is
    indistinguishable from one that does not exist.
    """
    if not get_settings().self_registration_enabled:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Not found."},
        )
    accounts: AccountService = request.app.state.accounts
    authenticator: Authenticator = request.app.state.authenticator

    def sign_up() -> LoginResult:
        user = accounts.register(**body.model_dump())
        return authenticator.start_session(user)

    result = await run_hashing(request, sign_up)
    return _session_response(result, status_code=201)
