"""Unit tests for auth/accounts.py -- registration and admin user maintenance."""

from __future__ import annotations

import re

import pytest

from auth.accounts import AccountService, generate_student_code
from auth.errors import StudentCodeTaken, UserExists
from auth.models import ActivityType, Principal, Role
from auth.passwords import verify_password
from auth.sessions import SessionManager, load_principal
from conftest import seed_user


@pytest.fixture
def env(stores, clock):
    users, students, activity, backend = stores
    sessions = SessionManager(backend, users, students, secret_key="k" * 40, clock=clock)
    accounts = AccountService(users, students, activity, sessions)
    admin_id, _ = seed_user(users, students, "root", "root-pw-123", Role.admin)
    actor = Principal(user_id=admin_id, username="root", role=Role.admin)
    return accounts, actor, users, students, activity, sessions


def _register(accounts, username="newbie", email=None, **extra):
    return accounts.register(
        username=username,
        password="newbie-pw-1",
        first_name="New",
        last_name="Bie",
        email=email or f"{username}@school.test",
        **extra,
    )


class TestRegister:
    def test_register_creates_student_with_profile(self, env):
        accounts, _, users, students, activity, _ = env
        user = _register(accounts, grade="10", parent_name="Pat Bie")

        assert user.role is Role.student
        assert verify_password("newbie-pw-1", user.password_digest)
        profile = students.get_by_user_id(user.id)
        assert profile is not None
        assert profile.grade == "10"
        assert profile.parent_name == "Pat Bie"
        assert activity.list_recent(1)[0].activity_type is ActivityType.registered

    def test_register_default_grade(self, env):
        accounts, _, _, students, _, _ = env
        user = _register(accounts)
        assert students.get_by_user_id(user.id).grade == "Not assigned"

    def test_duplicate_username(self, env):
        accounts, *_ = env
        _register(accounts)
        with pytest.raises(UserExists):
            _register(accounts, email="other@school.test")

    def test_duplicate_email(self, env):
        accounts, *_ = env
        _register(accounts)
        with pytest.raises(UserExists):
            _register(accounts, username="newbie2", email="newbie@school.test")


class TestAdminCreate:
    def test_teacher_has_no_student_profile(self, env):
        accounts, actor, _, students, activity, _ = env
        user = accounts.create_user(
            actor,
            username="tom",
            password="teacher-pw-1",
            first_name="Tom",
            last_name="Teach",
            email="tom@school.test",
            role=Role.teacher,
        )
        assert user.role is Role.teacher
        assert students.get_by_user_id(user.id) is None
        latest = activity.list_recent(1)[0]
        assert latest.activity_type is ActivityType.created
        assert latest.user_id == actor.user_id


class TestUpdate:
    def test_role_change(self, env):
        accounts, actor, users, students, _, _ = env
        uid, _ = seed_user(users, students, "tess", "tess-pw-12", Role.teacher)
        updated = accounts.update_user(actor, uid, role=Role.admin, first_name="Tessa")
        assert updated.role is Role.admin
        assert updated.first_name == "Tessa"

    def test_promotion_to_student_creates_profile(self, env):
        accounts, actor, users, students, _, _ = env
        uid, _ = seed_user(users, students, "ula", "ula-pw-123", Role.teacher)
        accounts.update_user(actor, uid, role=Role.student)
        principal = load_principal(users.get_by_id(uid), students)
        assert principal.linked_student_id is not None

    def test_password_not_updatable_here(self, env):
        accounts, actor, users, students, _, _ = env
        uid, _ = seed_user(users, students, "vic", "vic-pw-123", Role.teacher)
        with pytest.raises(ValueError):
            accounts.update_user(actor, uid, password_digest="x.y")

    def test_unknown_user(self, env):
        accounts, actor, *_ = env
        assert accounts.update_user(actor, 9999, first_name="Ghost") is None


class TestResetPassword:
    def test_reset_ends_existing_sessions(self, env):
        accounts, actor, users, students, _, sessions = env
        uid, _ = seed_user(users, students, "wes", "old-pw-123", Role.teacher)
        sid = sessions.create(load_principal(users.get_by_id(uid), students))

        assert accounts.reset_password(actor, uid, "new-pw-456")

        assert sessions.resolve(sid) is None
        digest = users.get_by_id(uid).password_digest
        assert verify_password("new-pw-456", digest)
        assert not verify_password("old-pw-123", digest)

    def test_reset_unknown_user(self, env):
        accounts, actor, *_ = env
        assert accounts.reset_password(actor, 9999, "whatever-1") is False


class TestStudentCodeCollision:
    """A clashing student_code is retried and never leaves a half-created account."""

    @staticmethod
    def _codes(monkeypatch, *codes):
        sequence = iter(codes)
        monkeypatch.setattr("auth.accounts.generate_student_code", lambda: next(sequence))

    def test_clash_is_retried_with_fresh_code(self, env, monkeypatch):
        accounts, _, _, students, _, _ = env
        self._codes(monkeypatch, "ST11111", "ST11111", "ST22222")
        first = _register(accounts, username="first")
        second = _register(accounts, username="second")

        assert students.get_by_user_id(first.id).student_code == "ST11111"
        assert students.get_by_user_id(second.id).student_code == "ST22222"

    def test_exhausted_retries_leave_no_orphan_user(self, env, monkeypatch):
        accounts, _, users, students, _, _ = env
        monkeypatch.setattr("auth.accounts.generate_student_code", lambda: "ST33333")
        _register(accounts, username="holder")

        with pytest.raises(StudentCodeTaken):
            _register(accounts, username="unlucky")

        assert users.get_by_username("unlucky") is None
        assert len(students.list_students()) == 1

        # The username is still free once a code is available.
        self._codes(monkeypatch, "ST44444")
        user = _register(accounts, username="unlucky")
        assert students.get_by_user_id(user.id).student_code == "ST44444"

    def test_promotion_retries_clashing_code(self, env, monkeypatch):
        accounts, actor, users, students, _, _ = env
        self._codes(monkeypatch, "ST55555", "ST55555", "ST66666")
        _register(accounts, username="pupil")
        uid, _ = seed_user(users, students, "ula", "ula-pw-123", Role.teacher)

        accounts.update_user(actor, uid, role=Role.student)

        assert students.get_by_user_id(uid).student_code == "ST66666"


def test_student_code_format():
    assert re.fullmatch(r"ST\d{5}", generate_student_code())
