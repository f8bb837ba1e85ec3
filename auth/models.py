"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
session layer do the work; these types only own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """Closed set of roles. Role("Admin") or Role("teachr") raises ValueError."""

    admin = "admin"
    teacher = "teacher"
    student = "student"


class StudentStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    pending = "pending"


class ActivityType(str, Enum):
    login = "USER_LOGIN"
    logout = "USER_LOGOUT"
    registered = "USER_REGISTERED"
    created = "USER_CREATED"
    updated = "USER_UPDATED"


@dataclass
class User:
    """A person who can sign in.

    password_digest is "{scrypt_hash_hex}.{salt_hex}" -- see auth/passwords.py.
    It must never appear in an API response; api/models.py has no field for it.
    """

    username: str
    password_digest: str
    first_name: str
    last_name: str
    email: str
    role: Role = Role.student
    id: int | None = None
    avatar_url: str | None = None
    created_at: str | None = None
    last_login: str | None = None


@dataclass
class Student:
    """Student profile linked to a User with role=student.

    student_code is the human-facing identifier ("ST12345"); id is the
    primary key referenced by grades, attendance, and ownership checks.
    """

    user_id: int
    student_code: str
    grade: str = "Not assigned"
    status: StudentStatus = StudentStatus.active
    id: int | None = None
    date_enrolled: str | None = None
    parent_name: str | None = None
    parent_email: str | None = None
    parent_phone: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class Principal:
    """The authenticated identity for one request.

    Rebuilt from the user store on every session resolution, never cached in
    the session record, so a role change takes effect on the next request.
    user_id is None only for the CLI's system actor.
    """

    user_id: int | None
    username: str
    role: Role
    student: Student | None = None

    @property
    def linked_student_id(self) -> int | None:
        return self.student.id if self.student is not None else None


@dataclass
class SessionRecord:
    """Server-side session row.

    session_key is HMAC-SHA256(SECRET_KEY, session_id). The raw session id is
    only ever held by the client cookie.
    """

    session_key: str
    user_id: int
    expires_at: str  # ISO 8601, UTC
    created_at: str | None = None


@dataclass
class Activity:
    """Audit log entry."""

    activity_type: ActivityType
    description: str
    user_id: int | None = None
    metadata: dict = field(default_factory=dict)
    id: int | None = None
    timestamp: str | None = None
