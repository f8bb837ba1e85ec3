"""
api/routes/v1/users.py -- User management and audit feed (admin only).

Routes:
  GET   /api/v1/users                     -- list users, optional ?role= filter
  POST  /api/v1/users                     -- create a user of any role
  GET   /api/v1/users/{id}                -- user detail
  PATCH /api/v1/users/{id}                -- update profile fields / role
  POST  /api/v1/users/{id}/password       -- reset password, ends the user's sessions
  GET   /api/v1/activities                -- most recent audit entries

Every route depends on require_admin, which answers 401 without a session and
403 for teachers and students.

Routes that hash a password (create, password reset) are async and offload
through run_hashing(); the rest are plain `def` so their store calls run on
the worker thread pool.

[Self-demotion guard] An admin cannot remove their own admin role; otherwise
the last admin could lock everyone out of user management.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.models import ActivityResponse, PasswordReset, UserCreate, UserPatch, UserResponse
from api.offload import run_hashing
from auth.accounts import AccountService
from auth.dependencies import require_admin
from auth.interfaces import ActivitySink, UserRepository
from auth.models import Principal, Role

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "not_found", "message": "User not found."},
    )


@router.get("/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    role: Optional[Role] = Query(default=None),
    principal: Principal = Depends(require_admin),
) -> list[UserResponse]:
    users: UserRepository = request.app.state.user_store
    return [UserResponse.from_user(u) for u in users.list_users(role)]


@router.post("/users", response_model=UserResponse, status_code=201)
async def create_user(
    request: Request,
    body: UserCreate,
    principal: Principal = Depends(require_admin),
) -> UserResponse:
    """Create an account. A student profile is created when role is student."""
    accounts: AccountService = request.app.state.accounts
    user = await run_hashing(request, accounts.create_user, principal, **body.model_dump())
    return UserResponse.from_user(user)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int,
    principal: Principal = Depends(require_admin),
) -> UserResponse:
    users: UserRepository = request.app.state.user_store
    user = users.get_by_id(user_id)
    if user is None:
        raise _not_found()
    return UserResponse.from_user(user)


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    principal: Principal = Depends(require_admin),
) -> UserResponse:
    """Update a user. A role change applies to the user's next request."""
    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    if user_id == principal.user_id and updates.get("role", Role.admin) is not Role.admin:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_demotion", "message": "You cannot remove your own admin role."},
        )
    accounts: AccountService = request.app.state.accounts
    user = accounts.update_user(principal, user_id, **updates)
    if user is None:
        raise _not_found()
    return UserResponse.from_user(user)


@router.post("/users/{user_id}/password", status_code=204)
async def reset_password(
    request: Request,
    user_id: int,
    body: PasswordReset,
    principal: Principal = Depends(require_admin),
) -> Response:
    accounts: AccountService = request.app.state.accounts
    if not await run_hashing(request, accounts.reset_password, principal, user_id, body.password):
        raise _not_found()
    return Response(status_code=204)


@router.get("/activities", response_model=list[ActivityResponse])
def list_activities(
    request: Request,
    limit: int = Query(default=10, ge=1, le=100),
    principal: Principal = Depends(require_admin),
) -> list[ActivityResponse]:
    activity: ActivitySink = request.app.state.activity_log
    return [ActivityResponse.from_activity(a) for a in activity.list_recent(limit)]
