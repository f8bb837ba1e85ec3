"""
auth/policies.py -- Per-resource ownership rules.

Role checks answer "may this kind of user do this kind of thing?". The
functions here answer "may this particular user touch this particular
record?", which means something different for every resource type. Each
rule table has one entry per Role.
"""

from __future__ import annotations

from typing import Callable

from auth.errors import Forbidden
from auth.models import Principal, Role

_STUDENT_VIEW: dict[Role, Callable[[Principal, int], bool]] = {
    Role.admin: lambda principal, student_id: True,
    Role.teacher: lambda principal, student_id: True,
    Role.student: lambda principal, student_id: principal.linked_student_id == student_id,
}

_COURSE_EDIT: dict[Role, Callable[[Principal, "int | None"], bool]] = {
    Role.admin: lambda principal, teacher_id: True,
    Role.teacher: lambda principal, teacher_id: teacher_id is not None and teacher_id == principal.user_id,
    Role.student: lambda principal, teacher_id: False,
}


def can_view_student(principal: Principal, student_id: int) -> bool:
    """Staff may view any student record; a student only their own (grades, attendance, profile)."""
    return _STUDENT_VIEW[principal.role](principal, student_id)


def can_edit_course(principal: Principal, course_teacher_id: int | None) -> bool:
    """Admins edit any course; a teacher only the courses assigned to them.

    The course CRUD handlers live outside this package and call this with the
    course's teacher_id before any mutation, as in:

        ensure(can_edit_course(principal, course.teacher_id))

    Students never pass, even for a course with no teacher assigned.
    """
    return _COURSE_EDIT[principal.role](principal, course_teacher_id)


def ensure(allowed: bool) -> None:
    """Raise Forbidden unless allowed. The error never says which rule failed."""
    if not allowed:
        raise Forbidden()
