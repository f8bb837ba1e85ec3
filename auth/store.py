"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore, StudentStore, ActivityLog and
SqlSessionBackend are the repositories; the _row_to_* functions are the
mappers. Route, authenticator and session code never touches SQL directly.

All four repositories share one Engine built by create_db_engine(), so a
single DATABASE_URL covers the whole auth schema. SQLite is the default;
any SQLAlchemy URL works (PostgreSQL, MySQL) because only Core constructs
are used.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The sessions table never holds a raw session id -- only its HMAC
  (see auth/sessions.py).

Timestamps are stored as fixed-width ISO 8601 UTC strings so that string
comparison in SQL (expires_at < :now) matches chronological order.
"""

from __future__ import annotations

import json

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.clock import now_iso
from auth.errors import StudentCodeTaken, UserExists
from auth.models import Activity, ActivityType, Role, SessionRecord, Student, StudentStatus, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("password_digest", String(160), nullable=False),  # "{hash_hex}.{salt_hex}"
    Column("first_name", String(50), nullable=False),
    Column("last_name", String(50), nullable=False),
    Column("email", String(100), nullable=False, unique=True),
    Column("role", String(20), nullable=False, server_default=Role.student.value),
    Column("avatar_url", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_students = Table(
    "students",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("student_code", String(50), nullable=False, unique=True),
    Column("grade", String(20), nullable=False),
    Column("date_enrolled", String(32), nullable=False),
    Column("status", String(20), nullable=False, server_default=StudentStatus.active.value),
    Column("parent_name", String(100)),
    Column("parent_email", String(100)),
    Column("parent_phone", String(20)),
    Column("address", Text),
)

_activities = Table(
    "activities",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id")),
    Column("activity_type", String(50), nullable=False),
    Column("description", Text, nullable=False),
    Column("timestamp", String(32), nullable=False),
    Column("metadata", Text),  # JSON object serialized as text
)

_sessions = Table(
    "sessions",
    metadata,
    Column("session_key", String(64), primary_key=True),  # HMAC-SHA256 hex
    Column("user_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
)

_USER_UPDATABLE = {"first_name", "last_name", "email", "role", "avatar_url", "password_digest"}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys on every new SQLite connection.

    PRAGMAs are per-connection in SQLite, so they must be set on connect.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_db_engine(db_url: str) -> Engine:
    """Build the shared Engine and create any missing tables."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    metadata.create_all(engine)
    return engine


def _insert_student(conn, student: Student, user_id: int) -> int:
    """Insert a profile row on an open transaction.

    For a profile of an existing user, UNIQUE(student_code) is the only
    constraint the insert can violate.
    """
    try:
        result = conn.execute(
            _students.insert().values(
                user_id=user_id,
                student_code=student.student_code,
                grade=student.grade,
                date_enrolled=student.date_enrolled or now_iso(),
                status=StudentStatus(student.status).value,
                parent_name=student.parent_name,
                parent_email=student.parent_email,
                parent_phone=student.parent_phone,
                address=student.address,
            )
        )
    except IntegrityError as exc:
        raise StudentCodeTaken(student.student_code) from exc
    return result.inserted_primary_key[0]


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        engine = create_db_engine("sqlite:///edumanage.db")
        users = UserStore(engine)
        uid = users.create_user(User(username="admin", password_digest=hash_password("s3cret"), ...))
        users.get_by_username("admin")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def has_users(self) -> bool:
        """Return True if at least one user exists. Used for first-run detection."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User, profile: Student | None = None) -> int:
        """Insert a new user (and its student profile, if given) and return the user id.

        Both rows are written in one transaction: either the account exists
        with its profile or nothing was written. profile.user_id is ignored
        and set to the new user's id.

        Raises UserExists if the username or email is already taken, and
        StudentCodeTaken if profile.student_code is. The UNIQUE constraints
        are the source of truth, so two concurrent registrations for the
        same name cannot both succeed.
        """
        with self.engine.begin() as conn:
            try:
                result = conn.execute(
                    _users.insert().values(
                        username=user.username,
                        password_digest=user.password_digest,
                        first_name=user.first_name,
                        last_name=user.last_name,
                        email=user.email,
                        role=Role(user.role).value,
                        avatar_url=user.avatar_url,
                        created_at=now_iso(),
                    )
                )
            except IntegrityError as exc:
                raise UserExists() from exc
            user_id = result.inserted_primary_key[0]
            if profile is not None:
                _insert_student(conn, profile, user_id)
            return user_id

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, role: Role | None = None) -> list[User]:
        """Return users ordered by username, optionally filtered by role."""
        query = _users.select().order_by(_users.c.username)
        if role is not None:
            query = query.where(_users.c.role == Role(role).value)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: first_name, last_name, email, role, avatar_url,
        password_digest. Anything else raises ValueError -- column names come
        from this whitelist, never from request input.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _USER_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return self.get_by_id(user_id) is not None
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
                conn.commit()
        except IntegrityError as exc:
            raise UserExists() from exc
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=now_iso()))
            conn.commit()


class StudentStore:
    """Repository for Student profiles (the student link store)."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_student(self, student: Student) -> int:
        """Attach a profile to an existing user. Raises StudentCodeTaken on a code clash."""
        with self.engine.begin() as conn:
            return _insert_student(conn, student, student.user_id)

    def get_by_id(self, student_id: int) -> Student | None:
        with self.engine.connect() as conn:
            row = conn.execute(_students.select().where(_students.c.id == student_id)).fetchone()
        return _row_to_student(row) if row is not None else None

    def get_by_user_id(self, user_id: int) -> Student | None:
        with self.engine.connect() as conn:
            row = conn.execute(_students.select().where(_students.c.user_id == user_id)).fetchone()
        return _row_to_student(row) if row is not None else None

    def list_students(self) -> list[Student]:
        with self.engine.connect() as conn:
            rows = conn.execute(_students.select().order_by(_students.c.id)).fetchall()
        return [_row_to_student(r) for r in rows]


class ActivityLog:
    """Append-only audit log."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def record(self, activity: Activity) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _activities.insert().values(
                    user_id=activity.user_id,
                    activity_type=ActivityType(activity.activity_type).value,
                    description=activity.description,
                    timestamp=activity.timestamp or now_iso(),
                    metadata=json.dumps(activity.metadata or {}),
                )
            )
            conn.commit()

    def list_recent(self, limit: int = 10) -> list[Activity]:
        """Return the newest activities first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_activities.select().order_by(_activities.c.id.desc()).limit(limit)).fetchall()
        return [_row_to_activity(r) for r in rows]


class SqlSessionBackend:
    """Durable session storage. Rows are keyed by the HMAC of the session id."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, session_key: str) -> SessionRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.session_key == session_key)).fetchone()
        return _row_to_session(row) if row is not None else None

    def set(self, record: SessionRecord) -> None:
        """Insert or replace a session row."""
        with self.engine.begin() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.session_key == record.session_key))
            conn.execute(
                _sessions.insert().values(
                    session_key=record.session_key,
                    user_id=record.user_id,
                    created_at=record.created_at or now_iso(),
                    expires_at=record.expires_at,
                )
            )

    def delete(self, session_key: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.session_key == session_key))
            conn.commit()

    def scan_by_user(self, user_id: int) -> list[SessionRecord]:
        with self.engine.connect() as conn:
            rows = conn.execute(_sessions.select().where(_sessions.c.user_id == user_id)).fetchall()
        return [_row_to_session(r) for r in rows]

    def purge_expired(self, cutoff: str) -> int:
        """Delete every session whose expiry is at or before cutoff. Returns the row count."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= cutoff))
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_digest=row.password_digest,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        role=Role(row.role),
        avatar_url=row.avatar_url,
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_student(row) -> Student:
    return Student(
        id=row.id,
        user_id=row.user_id,
        student_code=row.student_code,
        grade=row.grade,
        date_enrolled=row.date_enrolled,
        status=StudentStatus(row.status),
        parent_name=row.parent_name,
        parent_email=row.parent_email,
        parent_phone=row.parent_phone,
        address=row.address,
    )


def _row_to_activity(row) -> Activity:
    return Activity(
        id=row.id,
        user_id=row.user_id,
        activity_type=ActivityType(row.activity_type),
        description=row.description,
        timestamp=row.timestamp,
        metadata=json.loads(row.metadata) if row.metadata else {},
    )


def _row_to_session(row) -> SessionRecord:
    return SessionRecord(
        session_key=row.session_key,
        user_id=row.user_id,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
