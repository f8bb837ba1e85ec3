"""
API request and response models for EduManage REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

No response model has a password or digest field, so a digest can never be
serialized by accident.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Activity, Principal, Role, Student, StudentStatus, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_Email = Annotated[str, Field(max_length=100, pattern=EMAIL_PATTERN)]

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=255)


class _StudentProfileFields(BaseModel):
    grade: Optional[str] = Field(default=None, max_length=20)
    parent_name: Optional[str] = Field(default=None, max_length=100)
    parent_email: Optional[_Email] = None
    parent_phone: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = Field(default=None, max_length=500)


class RegisterRequest(_StudentProfileFields):
    """Body for POST /api/v1/auth/register. Always creates a student account."""

    username: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(min_length=8, max_length=255)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: _Email


class UserCreate(RegisterRequest):
    """Body for POST /api/v1/users (admin only). Any role."""

    role: Role = Role.student
    avatar_url: Optional[str] = Field(default=None, max_length=255)


class UserPatch(BaseModel):
    """Body for PATCH /api/v1/users/{id}. Passwords are not accepted here."""

    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[_Email] = None
    role: Optional[Role] = None
    avatar_url: Optional[str] = Field(default=None, max_length=255)


class PasswordReset(BaseModel):
    password: str = Field(min_length=8, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class StudentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    student_code: str
    grade: str
    status: StudentStatus
    date_enrolled: Optional[str] = None
    parent_name: Optional[str] = None
    parent_email: Optional[str] = None
    parent_phone: Optional[str] = None
    address: Optional[str] = None

    @classmethod
    def from_student(cls, student: Student) -> "StudentResponse":
        return cls(
            id=student.id,
            user_id=student.user_id,
            student_code=student.student_code,
            grade=student.grade,
            status=student.status,
            date_enrolled=student.date_enrolled,
            parent_name=student.parent_name,
            parent_email=student.parent_email,
            parent_phone=student.parent_phone,
            address=student.address,
        )


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    first_name: str
    last_name: str
    email: str
    role: Role
    avatar_url: Optional[str] = None
    created_at: str = ""
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            role=user.role,
            avatar_url=user.avatar_url,
            created_at=user.created_at or "",
            last_login=user.last_login,
        )


class PrincipalResponse(BaseModel):
    """Returned by login, register and GET /auth/me.

    student_info is display data only. Authorization decisions are always
    made against the principal re-derived from the session on each request.
    """

    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    role: Role
    student_info: Optional[StudentResponse] = None

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        return cls(
            user_id=principal.user_id,
            username=principal.username,
            role=principal.role,
            student_info=StudentResponse.from_student(principal.student) if principal.student else None,
        )


class ActivityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: Optional[int]
    activity_type: str
    description: str
    timestamp: str
    metadata: dict = Field(default_factory=dict)

    @classmethod
    def from_activity(cls, activity: Activity) -> "ActivityResponse":
        return cls(
            id=activity.id,
            user_id=activity.user_id,
            activity_type=activity.activity_type.value,
            description=activity.description,
            timestamp=activity.timestamp or "",
            metadata=activity.metadata or {},
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
