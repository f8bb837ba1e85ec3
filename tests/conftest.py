"""
tests/conftest.py -- Shared test fixtures for EduManage.

This module provides:
  - clock: controllable UTC clock for session expiry tests
  - memory_stores: fresh in-memory user/student/activity/session stores
  - sql_stores: fresh SQLAlchemy stores on a private in-memory SQLite DB
  - api_env / api: TestClient over the real app with isolated SQL stores and
    seeded admin / teacher / student accounts

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API client because TestClient runs sync route handlers in a thread
pool. Plain :memory: DBs are per-connection and would present a blank schema
to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

Environment variables must be set before any auth/core import:
  DEBUG=true              -- get_settings() auto-generates SECRET_KEY
  RATE_LIMIT_ENABLED=false -- tests log in far more than 10 times a minute
  ALLOWED_HOSTS           -- TestClient sends Host: testserver
"""

from __future__ import annotations

import asyncio
import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_auth
from auth.memory import MemoryActivityLog, MemorySessionBackend, MemoryStudentStore, MemoryUserStore
from auth.models import Role, Student, User
from auth.passwords import hash_password
from auth.store import ActivityLog, SqlSessionBackend, StudentStore, UserStore, create_db_engine

_db_counter = itertools.count()

ADMIN = ("admin", "adminpass123")
TEACHER = ("tina", "teacherpass1")
STUDENT = ("sam", "studentpass1")
OTHER_STUDENT = ("olga", "studentpass2")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable returning a fixed UTC time until advanced."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_user(username: str, password: str, role: Role = Role.student) -> User:
    return User(
        username=username,
        password_digest=hash_password(password),
        first_name=username.capitalize(),
        last_name="Tester",
        email=f"{username}@school.test",
        role=role,
    )


def seed_user(users, students, username: str, password: str, role: Role) -> tuple[int, int | None]:
    """Create a user (and a student profile for students). Returns (user_id, student_id)."""
    user_id = users.create_user(make_user(username, password, role))
    student_id = None
    if role is Role.student:
        student_id = students.create_student(Student(user_id=user_id, student_code=f"ST{10000 + user_id}"))
    return user_id, student_id


def _sql_stores(name: str):
    engine = create_db_engine(f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true")
    return engine, UserStore(engine), StudentStore(engine), ActivityLog(engine), SqlSessionBackend(engine)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_stores():
    """(users, students, activity, session_backend) -- all in-memory."""
    students = MemoryStudentStore()
    return MemoryUserStore(students), students, MemoryActivityLog(), MemorySessionBackend()


@pytest.fixture
def sql_stores():
    """(users, students, activity, session_backend) on a private in-memory SQLite DB."""
    engine, users, students, activity, backend = _sql_stores(f"test_unit_{next(_db_counter)}")
    yield users, students, activity, backend
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def stores(request):
    """Run the same test against both store implementations."""
    return request.getfixturevalue(f"{request.param}_stores")


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(engine, users, students, activity, backend):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores through the same wire_auth() the real
    lifespan uses. The purge_task is a long-sleeping coroutine so shutdown's
    .cancel() has a real asyncio.Task to act on.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_auth(app, users, students, activity, backend)
        app.state.engine = engine
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_env() -> Generator[dict, None, None]:
    """Start the app against isolated stores with seeded accounts.

    Yields a dict with the client, the stores, and seeded ids:
      admin_id, teacher_id, student_user_id, student_id, other_student_id
    """
    engine, users, students, activity, backend = _sql_stores(f"test_api_{next(_db_counter)}")
    admin_id, _ = seed_user(users, students, *ADMIN, Role.admin)
    teacher_id, _ = seed_user(users, students, *TEACHER, Role.teacher)
    student_user_id, student_id = seed_user(users, students, *STUDENT, Role.student)
    _, other_student_id = seed_user(users, students, *OTHER_STUDENT, Role.student)

    app.router.lifespan_context = _patch_lifespan(engine, users, students, activity, backend)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield {
            "client": client,
            "users": users,
            "students": students,
            "activity": activity,
            "backend": backend,
            "admin_id": admin_id,
            "teacher_id": teacher_id,
            "student_user_id": student_user_id,
            "student_id": student_id,
            "other_student_id": other_student_id,
        }

    engine.dispose()


@pytest.fixture
def api(api_env) -> dict:
    """Per-test view of api_env with an empty cookie jar."""
    api_env["client"].cookies.clear()
    return api_env


def login(client: TestClient, username: str, password: str):
    return client.post("/api/v1/auth/login", json={"username": username, "password": password})
