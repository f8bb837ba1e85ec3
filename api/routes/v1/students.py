"""
api/routes/v1/students.py -- Student profile lookup.

Routes:
  GET /api/v1/students        -- all student profiles (admin, teacher)
  GET /api/v1/students/{id}   -- one profile (staff, or the student themselves)

The detail route shows the two-layer check: get_current_principal() handles
authentication, then can_view_student() applies the ownership rule for this
resource. A student asking for someone else's record gets the same 403 body
as any other permission failure.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import StudentResponse
from auth.dependencies import get_current_principal, require_staff
from auth.interfaces import StudentRepository
from auth.models import Principal
from auth.policies import can_view_student, ensure

router = APIRouter()


@router.get("/students", response_model=list[StudentResponse])
def list_students(
    request: Request,
    principal: Principal = Depends(require_staff),
) -> list[StudentResponse]:
    students: StudentRepository = request.app.state.student_store
    return [StudentResponse.from_student(s) for s in students.list_students()]


@router.get("/students/{student_id}", response_model=StudentResponse)
def get_student(
    request: Request,
    student_id: int,
    principal: Principal = Depends(get_current_principal),
) -> StudentResponse:
    # Ownership is checked before the lookup so a student cannot tell which ids exist.
    ensure(can_view_student(principal, student_id))
    students: StudentRepository = request.app.state.student_store
    student = students.get_by_id(student_id)
    if student is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Student not found."},
        )
    return StudentResponse.from_student(student)
