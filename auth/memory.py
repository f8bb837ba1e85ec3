"""
auth/memory.py -- In-process stores for development and unit tests.

Same contracts as the SQLAlchemy repositories in auth/store.py, selected with
STORAGE_BACKEND=memory. Records are copied on the way in and out, so a caller
holding a returned object can never mutate stored state.

Uniqueness (username, email, student_code) is checked under each store's
lock, mirroring the UNIQUE constraints of the SQL schema. MemoryUserStore
writes student profiles through its MemoryStudentStore so that a user and
its profile appear together or not at all, like the single transaction in
UserStore.create_user().

Not for production: everything is lost on restart and nothing is shared
between worker processes.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from itertools import count

from auth.clock import now_iso
from auth.errors import StudentCodeTaken, UserExists
from auth.models import Activity, Role, SessionRecord, Student, User

_USER_UPDATABLE = {"first_name", "last_name", "email", "role", "avatar_url", "password_digest"}


class MemoryStudentStore:
    """Student profiles keyed by id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[int, Student] = {}
        self._ids = count(1)

    def create_student(self, student: Student) -> int:
        """Insert a profile. Raises StudentCodeTaken if the code is in use."""
        with self._lock:
            if any(s.student_code == student.student_code for s in self._data.values()):
                raise StudentCodeTaken(student.student_code)
            student_id = next(self._ids)
            self._data[student_id] = replace(
                student, id=student_id, date_enrolled=student.date_enrolled or now_iso()
            )
            return student_id

    def get_by_id(self, student_id: int) -> Student | None:
        with self._lock:
            student = self._data.get(student_id)
            return replace(student) if student else None

    def get_by_user_id(self, user_id: int) -> Student | None:
        with self._lock:
            for student in self._data.values():
                if student.user_id == user_id:
                    return replace(student)
        return None

    def list_students(self) -> list[Student]:
        with self._lock:
            return [replace(s) for _, s in sorted(self._data.items())]


class MemoryUserStore:
    """Users keyed by id.

    Usage:
        students = MemoryStudentStore()
        users = MemoryUserStore(students)
        uid = users.create_user(user, profile=Student(user_id=0, student_code="ST12345"))
    """

    def __init__(self, students: MemoryStudentStore) -> None:
        self._lock = threading.Lock()
        self._data: dict[int, User] = {}
        self._ids = count(1)
        self.students = students

    def has_users(self) -> bool:
        with self._lock:
            return bool(self._data)

    def create_user(self, user: User, profile: Student | None = None) -> int:
        """Insert a user and, if given, its profile. Nothing is stored on failure.

        The profile goes in first, while the user lock is held, so a
        StudentCodeTaken leaves no user behind and no reader can see the
        user without its profile.
        """
        with self._lock:
            for existing in self._data.values():
                if existing.username == user.username or existing.email == user.email:
                    raise UserExists()
            user_id = next(self._ids)
            if profile is not None:
                self.students.create_student(replace(profile, user_id=user_id))
            self._data[user_id] = replace(user, id=user_id, role=Role(user.role), created_at=now_iso())
            return user_id

    def get_by_username(self, username: str) -> User | None:
        with self._lock:
            for user in self._data.values():
                if user.username == username:
                    return replace(user)
        return None

    def get_by_id(self, user_id: int) -> User | None:
        with self._lock:
            user = self._data.get(user_id)
            return replace(user) if user else None

    def list_users(self, role: Role | None = None) -> list[User]:
        """Users ordered by username, optionally filtered by role."""
        with self._lock:
            users = [replace(u) for u in self._data.values() if role is None or u.role == Role(role)]
        return sorted(users, key=lambda u: u.username)

    def update_user(self, user_id: int, **fields) -> bool:
        """Same whitelist and return value as UserStore.update_user()."""
        unknown = set(fields) - _USER_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "role" in fields:
            fields["role"] = Role(fields["role"])
        with self._lock:
            user = self._data.get(user_id)
            if user is None:
                return False
            email = fields.get("email")
            if email and any(u.email == email for uid, u in self._data.items() if uid != user_id):
                raise UserExists()
            self._data[user_id] = replace(user, **fields)
            return True

    def update_last_login(self, user_id: int) -> None:
        with self._lock:
            user = self._data.get(user_id)
            if user is not None:
                self._data[user_id] = replace(user, last_login=now_iso())


class MemoryActivityLog:
    """Append-only audit list."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: list[Activity] = []
        self._ids = count(1)

    def record(self, activity: Activity) -> None:
        with self._lock:
            self._data.append(
                replace(activity, id=next(self._ids), timestamp=activity.timestamp or now_iso())
            )

    def list_recent(self, limit: int = 10) -> list[Activity]:
        """Return the newest activities first."""
        with self._lock:
            return [replace(a) for a in reversed(self._data[-limit:])] if limit > 0 else []


class MemorySessionBackend:
    """Session records keyed by session_key (the HMAC of the session id)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, SessionRecord] = {}

    def get(self, session_key: str) -> SessionRecord | None:
        with self._lock:
            rec = self._data.get(session_key)
            return replace(rec) if rec else None

    def set(self, record: SessionRecord) -> None:
        """Insert or replace a session record."""
        with self._lock:
            self._data[record.session_key] = replace(record, created_at=record.created_at or now_iso())

    def delete(self, session_key: str) -> None:
        with self._lock:
            self._data.pop(session_key, None)

    def scan_by_user(self, user_id: int) -> list[SessionRecord]:
        with self._lock:
            return [replace(r) for r in self._data.values() if r.user_id == user_id]

    def purge_expired(self, cutoff: str) -> int:
        """Delete every record whose expiry is at or before cutoff. Returns the count."""
        with self._lock:
            expired = [key for key, rec in self._data.items() if rec.expires_at <= cutoff]
            for key in expired:
                del self._data[key]
        return len(expired)
