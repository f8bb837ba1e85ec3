"""
tests/test_store.py -- Contract tests for the user, student, activity and
session stores. Every test runs against both the SQLAlchemy and the
in-memory implementation through the parametrized `stores` fixture.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from auth.clock import now_iso
from auth.errors import StudentCodeTaken, UserExists
from auth.models import Activity, ActivityType, Role, SessionRecord, Student
from conftest import make_user, seed_user


class TestUserStore:
    def test_first_run_detection(self, stores):
        users, *_ = stores
        assert users.has_users() is False
        users.create_user(make_user("amy", "pw-amy-123"))
        assert users.has_users() is True

    def test_lookup_by_username_and_id(self, stores):
        users, *_ = stores
        uid = users.create_user(make_user("ben", "pw-ben-123", Role.teacher))
        by_name = users.get_by_username("ben")
        assert by_name.id == uid
        assert by_name.role is Role.teacher
        assert by_name.created_at
        assert users.get_by_id(uid).username == "ben"
        assert users.get_by_username("nobody") is None
        assert users.get_by_id(424242) is None

    def test_duplicate_username_rejected(self, stores):
        users, *_ = stores
        users.create_user(make_user("cat", "pw-cat-123"))
        dupe = make_user("cat", "pw-cat-456")
        dupe.email = "another@school.test"
        with pytest.raises(UserExists):
            users.create_user(dupe)

    def test_duplicate_email_rejected(self, stores):
        users, *_ = stores
        users.create_user(make_user("dan", "pw-dan-123"))
        clash = make_user("dana", "pw-dana-12")
        clash.email = "dan@school.test"
        with pytest.raises(UserExists):
            users.create_user(clash)

    def test_list_users_filters_by_role(self, stores):
        users, *_ = stores
        users.create_user(make_user("zoe", "pw-zoe-123", Role.student))
        users.create_user(make_user("abe", "pw-abe-123", Role.teacher))
        users.create_user(make_user("max", "pw-max-123", Role.student))
        assert [u.username for u in users.list_users()] == ["abe", "max", "zoe"]
        assert [u.username for u in users.list_users(Role.student)] == ["max", "zoe"]
        assert users.list_users(Role.admin) == []

    def test_update_user(self, stores):
        users, *_ = stores
        uid = users.create_user(make_user("eve", "pw-eve-123", Role.teacher))
        assert users.update_user(uid, role=Role.admin, first_name="Evelyn") is True
        updated = users.get_by_id(uid)
        assert updated.role is Role.admin
        assert updated.first_name == "Evelyn"
        assert users.update_user(424242, first_name="Ghost") is False

    def test_update_rejects_unknown_fields(self, stores):
        users, *_ = stores
        uid = users.create_user(make_user("fay", "pw-fay-123"))
        with pytest.raises(ValueError):
            users.update_user(uid, username="hijack")
        with pytest.raises(ValueError):
            users.update_user(uid, id=99)

    def test_update_rejects_unknown_role(self, stores):
        users, *_ = stores
        uid = users.create_user(make_user("gus", "pw-gus-123"))
        with pytest.raises(ValueError):
            users.update_user(uid, role="superuser")

    def test_returned_objects_are_detached(self, stores):
        users, *_ = stores
        uid = users.create_user(make_user("hal", "pw-hal-123"))
        fetched = users.get_by_id(uid)
        fetched.role = Role.admin
        assert users.get_by_id(uid).role is Role.student

    def test_update_last_login(self, stores):
        users, *_ = stores
        uid = users.create_user(make_user("ida", "pw-ida-123"))
        users.update_last_login(uid)
        assert users.get_by_id(uid).last_login is not None


class TestStudentStore:
    def test_profile_lookup(self, stores):
        users, students, *_ = stores
        uid, sid = seed_user(users, students, "jon", "pw-jon-123", Role.student)
        by_user = students.get_by_user_id(uid)
        assert by_user.id == sid
        assert by_user.grade == "Not assigned"
        assert by_user.date_enrolled
        assert students.get_by_id(sid).user_id == uid
        assert students.get_by_user_id(424242) is None

    def test_list_students(self, stores):
        users, students, *_ = stores
        seed_user(users, students, "kim", "pw-kim-123", Role.student)
        seed_user(users, students, "lou", "pw-lou-123", Role.teacher)
        seed_user(users, students, "mel", "pw-mel-123", Role.student)
        assert len(students.list_students()) == 2

    def test_explicit_fields_kept(self, stores):
        users, students, *_ = stores
        uid = users.create_user(make_user("ned", "pw-ned-123"))
        sid = students.create_student(
            Student(user_id=uid, student_code="ST55555", grade="11", parent_name="Nora")
        )
        stored = students.get_by_id(sid)
        assert stored.student_code == "ST55555"
        assert stored.grade == "11"
        assert stored.parent_name == "Nora"

    def test_duplicate_code_rejected(self, stores):
        users, students, *_ = stores
        first = users.create_user(make_user("pam", "pw-pam-123"))
        second = users.create_user(make_user("quin", "pw-quin-12"))
        students.create_student(Student(user_id=first, student_code="ST77777"))
        with pytest.raises(StudentCodeTaken):
            students.create_student(Student(user_id=second, student_code="ST77777"))
        assert students.get_by_user_id(second) is None

    def test_user_with_profile_is_all_or_nothing(self, stores):
        users, students, *_ = stores
        owner = users.create_user(make_user("ray", "pw-ray-123"), Student(user_id=0, student_code="ST88888"))
        assert students.get_by_user_id(owner).student_code == "ST88888"

        with pytest.raises(StudentCodeTaken):
            users.create_user(make_user("sal", "pw-sal-123"), Student(user_id=0, student_code="ST88888"))

        assert users.get_by_username("sal") is None
        assert len(students.list_students()) == 1


class TestActivityLog:
    def test_newest_first_with_limit(self, stores):
        users, _, activity, _ = stores
        uid = users.create_user(make_user("oli", "pw-oli-123"))
        for i in range(5):
            activity.record(
                Activity(
                    activity_type=ActivityType.login,
                    description=f"login {i}",
                    user_id=uid,
                    metadata={"n": i},
                )
            )
        recent = activity.list_recent(3)
        assert [a.description for a in recent] == ["login 4", "login 3", "login 2"]
        assert recent[0].metadata == {"n": 4}
        assert recent[0].timestamp

    def test_system_entries_have_no_user(self, stores):
        _, _, activity, _ = stores
        activity.record(Activity(activity_type=ActivityType.created, description="bootstrap"))
        assert activity.list_recent()[0].user_id is None


class TestSessionBackend:
    def _record(self, key, user_id, expires_at):
        return SessionRecord(session_key=key, user_id=user_id, expires_at=expires_at)

    def test_set_get_delete(self, stores):
        *_, backend = stores
        backend.set(self._record("k1", 1, "2026-01-02T00:00:00.000000+00:00"))
        assert backend.get("k1").user_id == 1
        assert backend.get("k1").created_at
        backend.delete("k1")
        assert backend.get("k1") is None
        backend.delete("k1")

    def test_set_replaces(self, stores):
        *_, backend = stores
        backend.set(self._record("k1", 1, "2026-01-02T00:00:00.000000+00:00"))
        backend.set(self._record("k1", 1, "2026-01-03T00:00:00.000000+00:00"))
        assert backend.get("k1").expires_at.startswith("2026-01-03")
        assert len(backend.scan_by_user(1)) == 1

    def test_purge_uses_cutoff(self, stores):
        *_, backend = stores
        backend.set(self._record("old", 1, "2026-01-01T00:00:00.000000+00:00"))
        backend.set(self._record("edge", 1, "2026-01-01T12:00:00.000000+00:00"))
        backend.set(self._record("new", 2, "2026-01-02T00:00:00.000000+00:00"))
        assert backend.purge_expired("2026-01-01T12:00:00.000000+00:00") == 2
        assert backend.get("new") is not None
        assert backend.scan_by_user(1) == []


def test_now_iso_is_fixed_width():
    early = now_iso(datetime(2026, 1, 1, tzinfo=timezone.utc))
    late = now_iso(datetime(2026, 1, 1, 0, 0, 0, 1, tzinfo=timezone.utc))
    assert len(early) == len(late)
    assert early < late
