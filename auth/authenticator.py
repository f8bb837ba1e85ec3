"""
auth/authenticator.py -- Username/password login, logout and principal lookup.

The three operations route handlers call around business logic:
    login(username, password)  -> LoginResult (principal + new session id)
    logout(session_id)         -> None
    current_principal(sid)     -> Principal | None

Timing equalization:
  authenticate() always performs exactly one scrypt verification. An unknown
  username is checked against DUMMY_DIGEST, so "no such user" and "wrong
  password" cost the same and raise the same InvalidCredentials. Do NOT
  inline get_by_username() + verify_password() elsewhere -- that
  re-introduces the username enumeration side-channel.

Audit:
  Successful logins and logouts are recorded to the ActivitySink. Recording
  is fire-and-forget: a failing audit sink is logged and never turns a
  successful login into an error.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.errors import InvalidCredentials
from auth.interfaces import ActivitySink, StudentRepository, UserRepository
from auth.models import Activity, ActivityType, Principal, User
from auth.passwords import DUMMY_DIGEST, verify_password
from auth.sessions import SessionManager, load_principal

logger = logging.getLogger("edumanage.auth")


@dataclass(frozen=True)
class LoginResult:
    principal: Principal
    session_id: str


def record_activity(sink: ActivitySink, activity: Activity) -> None:
    """Write an audit entry without letting a sink failure reach the caller."""
    try:
        sink.record(activity)
    except Exception:
        logger.exception("Failed to record %s activity for user_id=%s", activity.activity_type, activity.user_id)


class Authenticator:
    """Verifies credentials and binds principals to sessions.

    Stateless per call: every method is a single lookup + verify (+ session
    write) with no retries. All collaborators are injected.
    """

    def __init__(
        self,
        users: UserRepository,
        students: StudentRepository,
        activity: ActivitySink,
        sessions: SessionManager,
    ) -> None:
        self.users = users
        self.students = students
        self.activity = activity
        self.sessions = sessions

    def authenticate(self, username: str, password: str) -> User:
        """Return the user whose credentials match, or raise InvalidCredentials."""
        user = self.users.get_by_username(username)
        if user is None:
            # Equalize timing -- do NOT return before running scrypt.
            verify_password(password, DUMMY_DIGEST)
            raise InvalidCredentials()
        if not verify_password(password, user.password_digest):
            raise InvalidCredentials()
        return user

    def start_session(self, user: User) -> LoginResult:
        """Bind a verified (or just-registered) user to a new session."""
        principal = load_principal(user, self.students)
        session_id = self.sessions.create(principal)
        return LoginResult(principal=principal, session_id=session_id)

    def login(self, username: str, password: str) -> LoginResult:
        try:
            user = self.authenticate(username, password)
        except InvalidCredentials:
            logger.info("Failed login attempt")
            raise
        self.users.update_last_login(user.id)
        result = self.start_session(user)
        record_activity(
            self.activity,
            Activity(
                activity_type=ActivityType.login,
                description=f"User {user.username} logged in",
                user_id=user.id,
                metadata={"id": user.id, "role": result.principal.role.value},
            ),
        )
        logger.info("User %s logged in", user.username)
        return result

    def logout(self, session_id: str | None) -> None:
        """End the session. Logging out without a valid session is a no-op."""
        principal = self.sessions.resolve(session_id)
        if principal is not None:
            record_activity(
                self.activity,
                Activity(
                    activity_type=ActivityType.logout,
                    description=f"User {principal.username} logged out",
                    user_id=principal.user_id,
                    metadata={"id": principal.user_id, "role": principal.role.value},
                ),
            )
        self.sessions.destroy(session_id)

    def current_principal(self, session_id: str | None) -> Principal | None:
        return self.sessions.resolve(session_id)
