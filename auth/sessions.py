"""
auth/sessions.py -- Server-side session lifecycle and principal reconstruction.

Security design decisions:
  Session ids: secrets.token_urlsafe(32) -- 256 bits from the OS CSPRNG,
       43 URL-safe characters. Anything else presented as a session id is
       rejected before touching the store (MalformedSession), and the caller
       sees it as "not logged in".

  Storage key: HMAC-SHA256(SECRET_KEY, session_id). Same approach as API key
       lookup hashing: deterministic, so the backend can look it up in O(1),
       but a leaked sessions table does not contain usable cookies.

  Principal: the session record holds only user_id and expiry. resolve()
       re-reads the user and its linked student profile on every call, so an
       admin changing someone's role takes effect on their next request.

  Cookie: httpOnly (no JS access), SameSite=Strict (never sent on cross-site
       requests), Secure in production, max_age equal to the session TTL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
from datetime import datetime, timedelta
from typing import Callable

from auth.clock import now_iso, utcnow
from auth.errors import MalformedSession
from auth.interfaces import SessionBackend, StudentRepository, UserRepository
from auth.models import Principal, Role, SessionRecord, Student, User

logger = logging.getLogger("edumanage.auth.sessions")

COOKIE_NAME = "session_id"

_SESSION_ID_BYTES = 32
_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{43}$")


# ---------------------------------------------------------------------------
# Principal reconstruction
# ---------------------------------------------------------------------------


def _no_linked_data(user: User, students: StudentRepository) -> Student | None:
    return None


def _student_profile(user: User, students: StudentRepository) -> Student | None:
    return students.get_by_user_id(user.id)


# One loader per role. tests/test_sessions.py asserts every Role member is covered.
LINKED_DATA_LOADERS: dict[Role, Callable[[User, StudentRepository], Student | None]] = {
    Role.admin: _no_linked_data,
    Role.teacher: _no_linked_data,
    Role.student: _student_profile,
}


def load_principal(user: User, students: StudentRepository) -> Principal:
    """Build a Principal from a freshly loaded user record."""
    role = Role(user.role)
    return Principal(
        user_id=user.id,
        username=user.username,
        role=role,
        student=LINKED_DATA_LOADERS[role](user, students),
    )


# ---------------------------------------------------------------------------
# Session manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Create, resolve and destroy sessions against an injected backend.

    Usage:
        manager = SessionManager(backend, users, students, secret_key=settings.secret_key)
        sid = manager.create(principal)
        manager.resolve(sid)     # -> Principal | None
        manager.destroy(sid)

    clock is injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        backend: SessionBackend,
        users: UserRepository,
        students: StudentRepository,
        secret_key: str,
        ttl_seconds: int = 60 * 60 * 24,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.backend = backend
        self.users = users
        self.students = students
        self.ttl_seconds = ttl_seconds
        self._secret = secret_key.encode()
        self._clock = clock

    def _key_for(self, session_id: str | None) -> str:
        """Map a client-presented session id to its storage key.

        Raises MalformedSession if the value could not have come from create().
        """
        if not isinstance(session_id, str) or not _SESSION_ID_RE.fullmatch(session_id):
            raise MalformedSession()
        return hmac.new(self._secret, session_id.encode("ascii"), hashlib.sha256).hexdigest()

    def create(self, principal: Principal) -> str:
        """Start a session for principal and return the opaque session id."""
        session_id = secrets.token_urlsafe(_SESSION_ID_BYTES)
        now = self._clock()
        self.backend.set(
            SessionRecord(
                session_key=self._key_for(session_id),
                user_id=principal.user_id,
                created_at=now_iso(now),
                expires_at=now_iso(now + timedelta(seconds=self.ttl_seconds)),
            )
        )
        logger.debug("Session created for user_id=%s", principal.user_id)
        return session_id

    def resolve(self, session_id: str | None) -> Principal | None:
        """Return the current Principal for session_id, or None.

        None covers every failure: no id, malformed id, unknown id, expired
        record, or a record whose user has since been deleted. Expired and
        orphaned records are removed on the way out.
        """
        if not session_id:
            return None
        try:
            key = self._key_for(session_id)
        except MalformedSession:
            logger.debug("Rejected malformed session id")
            return None

        record = self.backend.get(key)
        if record is None:
            return None
        if datetime.fromisoformat(record.expires_at) <= self._clock():
            self.backend.delete(key)
            return None

        user = self.users.get_by_id(record.user_id)
        if user is None:
            logger.info("Session for missing user_id=%s discarded", record.user_id)
            self.backend.delete(key)
            return None
        return load_principal(user, self.students)

    def destroy(self, session_id: str | None) -> None:
        """End a session. Unknown, expired or malformed ids are ignored."""
        try:
            key = self._key_for(session_id)
        except MalformedSession:
            return
        self.backend.delete(key)

    def destroy_all_for_user(self, user_id: int) -> int:
        """End every session belonging to user_id. Returns how many were removed."""
        records = self.backend.scan_by_user(user_id)
        for record in records:
            self.backend.delete(record.session_key)
        return len(records)

    def purge_expired(self) -> int:
        removed = self.backend.purge_expired(now_iso(self._clock()))
        if removed:
            logger.info("Purged %d expired sessions", removed)
        return removed


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session_id: str, max_age: int, secure: bool) -> None:
    """Write the session id as an httpOnly, SameSite=Strict cookie."""
    response.set_cookie(
        COOKIE_NAME,
        value=session_id,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=max_age,
    )


def clear_session_cookie(response, secure: bool) -> None:
    response.delete_cookie(COOKIE_NAME, httponly=True, samesite="strict", secure=secure)
