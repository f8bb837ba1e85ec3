"""
auth/accounts.py -- Account creation and maintenance.

Self-registration always produces a student account with a linked Student
profile. Only an admin (via create_user) can create teacher or admin
accounts. Every change is recorded to the activity log.

Passwords are hashed here and nowhere else; callers pass plaintext and the
store only ever sees the digest.
"""

from __future__ import annotations

import logging
import secrets

from auth.authenticator import record_activity
from auth.errors import StudentCodeTaken
from auth.interfaces import ActivitySink, StudentRepository, UserRepository
from auth.models import Activity, ActivityType, Principal, Role, Student, User
from auth.passwords import hash_password
from auth.sessions import SessionManager

logger = logging.getLogger("edumanage.auth.accounts")

_PROFILE_FIELDS = {"first_name", "last_name", "email", "role", "avatar_url"}

# Fresh codes to try before giving up on a student_code collision.
_CODE_ATTEMPTS = 5


def generate_student_code() -> str:
    """Return a display identifier in the form ST + 5 digits."""
    return f"ST{10000 + secrets.randbelow(90000)}"


class AccountService:
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

    def _create(self, user: User, password: str, student_fields: dict) -> User:
        user.password_digest = hash_password(password)
        profile = None
        if Role(user.role) is Role.student:
            profile = Student(
                user_id=0,
                student_code="",
                grade=student_fields.get("grade") or "Not assigned",
                parent_name=student_fields.get("parent_name"),
                parent_email=student_fields.get("parent_email"),
                parent_phone=student_fields.get("parent_phone"),
                address=student_fields.get("address"),
            )
        for attempt in range(1, _CODE_ATTEMPTS + 1):
            if profile is not None:
                profile.student_code = generate_student_code()
            try:
                user_id = self.users.create_user(user, profile)
                break
            except StudentCodeTaken:
                if attempt == _CODE_ATTEMPTS:
                    raise
                logger.warning("Student code %s already taken, generating another", profile.student_code)
        return self.users.get_by_id(user_id)

    def _attach_profile(self, user_id: int) -> None:
        """Give an existing user a fresh student profile."""
        for attempt in range(1, _CODE_ATTEMPTS + 1):
            code = generate_student_code()
            try:
                self.students.create_student(Student(user_id=user_id, student_code=code))
                return
            except StudentCodeTaken:
                if attempt == _CODE_ATTEMPTS:
                    raise
                logger.warning("Student code %s already taken, generating another", code)

    def register(
        self,
        *,
        username: str,
        password: str,
        first_name: str,
        last_name: str,
        email: str,
        **student_fields,
    ) -> User:
        """Self-service sign-up. Raises UserExists on a taken username or email."""
        user = self._create(
            User(
                username=username,
                password_digest="",
                first_name=first_name,
                last_name=last_name,
                email=email,
                role=Role.student,
            ),
            password,
            student_fields,
        )
        record_activity(
            self.activity,
            Activity(
                activity_type=ActivityType.registered,
                description=f"User {user.username} registered with role {user.role.value}",
                user_id=user.id,
                metadata={"id": user.id, "role": user.role.value},
            ),
        )
        logger.info("User %s registered", user.username)
        return user

    def create_user(
        self,
        actor: Principal,
        *,
        username: str,
        password: str,
        first_name: str,
        last_name: str,
        email: str,
        role: Role,
        avatar_url: str | None = None,
        **student_fields,
    ) -> User:
        """Admin-created account of any role."""
        user = self._create(
            User(
                username=username,
                password_digest="",
                first_name=first_name,
                last_name=last_name,
                email=email,
                role=Role(role),
                avatar_url=avatar_url,
            ),
            password,
            student_fields,
        )
        record_activity(
            self.activity,
            Activity(
                activity_type=ActivityType.created,
                description=f"Admin created user {user.username} with role {user.role.value}",
                user_id=actor.user_id,
                metadata={"userId": user.id, "role": user.role.value},
            ),
        )
        return user

    def update_user(self, actor: Principal, user_id: int, **fields) -> User | None:
        """Update profile fields and role. Returns None if user_id does not exist.

        Passwords cannot be changed through this path; use reset_password().
        A role change is visible on the target's very next request because
        sessions never cache the role.
        """
        unknown = set(fields) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable here: {sorted(unknown)!r}")
        if not self.users.update_user(user_id, **fields):
            return None
        user = self.users.get_by_id(user_id)
        if user.role is Role.student and self.students.get_by_user_id(user_id) is None:
            self._attach_profile(user_id)
        record_activity(
            self.activity,
            Activity(
                activity_type=ActivityType.updated,
                description=f"Admin updated user {user.username}",
                user_id=actor.user_id,
                metadata={"userId": user.id, "role": user.role.value},
            ),
        )
        return user

    def reset_password(self, actor: Principal, user_id: int, new_password: str) -> bool:
        """Set a new password and end every existing session of that user."""
        if not self.users.update_user(user_id, password_digest=hash_password(new_password)):
            return False
        ended = self.sessions.destroy_all_for_user(user_id)
        record_activity(
            self.activity,
            Activity(
                activity_type=ActivityType.updated,
                description=f"Admin reset the password of user {user_id}",
                user_id=actor.user_id,
                metadata={"userId": user_id, "sessionsEnded": ended},
            ),
        )
        return True
