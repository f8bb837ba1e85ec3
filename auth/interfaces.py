"""
auth/interfaces.py -- Store abstractions the auth core depends on.

The authenticator and session manager only ever see these protocols. Two
implementations ship: SQLAlchemy Core (auth/store.py) for real deployments
and in-process dicts (auth/memory.py) for development and unit tests.
Swapping one for the other is a lifespan wiring change in api/main.py.
"""

from __future__ import annotations

from typing import Protocol

from auth.models import Activity, Role, SessionRecord, Student, User


class UserRepository(Protocol):
    def get_by_username(self, username: str) -> User | None: ...

    def get_by_id(self, user_id: int) -> User | None: ...

    def create_user(self, user: User, profile: Student | None = None) -> int:
        """Insert and return the new id, together with profile if given, atomically.

        Raises UserExists on a duplicate username or email and
        StudentCodeTaken on a duplicate profile.student_code. Either way
        nothing is written.
        """
        ...

    def update_user(self, user_id: int, **fields) -> bool: ...

    def list_users(self, role: Role | None = None) -> list[User]: ...

    def has_users(self) -> bool: ...

    def update_last_login(self, user_id: int) -> None: ...


class StudentRepository(Protocol):
    def get_by_user_id(self, user_id: int) -> Student | None: ...

    def get_by_id(self, student_id: int) -> Student | None: ...

    def create_student(self, student: Student) -> int:
        """Insert a profile for an existing user. Raises StudentCodeTaken on a duplicate code."""
        ...

    def list_students(self) -> list[Student]: ...


class SessionBackend(Protocol):
    """Key-value persistence for session records, keyed by session_key."""

    def get(self, session_key: str) -> SessionRecord | None: ...

    def set(self, record: SessionRecord) -> None: ...

    def delete(self, session_key: str) -> None:
        """Remove a record. Deleting a missing key is not an error."""
        ...

    def scan_by_user(self, user_id: int) -> list[SessionRecord]: ...

    def purge_expired(self, cutoff: str) -> int: ...


class ActivitySink(Protocol):
    def record(self, activity: Activity) -> None: ...

    def list_recent(self, limit: int = 10) -> list[Activity]: ...
