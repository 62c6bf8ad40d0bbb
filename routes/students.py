# routes/students.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from core.database import get_session
from core.security import Principal, get_current_principal, get_current_staff
from schemas.booking_schema import (
    PlanSelect,
    ReinstatementCreate,
    ReinstatementRead,
    StudentPlanRead,
    StudentRead,
    WeeklyUsageRead,
)
from services.identity_service import ensure_student
from services.plan_service import select_plan
from services.quota_service import reinstate_for_week, weekly_usage

router = APIRouter(prefix="/students", tags=["Students"])


# ==================================================================
#  ✅ Resolve the caller's Student (created on first contact)
# ==================================================================
@router.post("/me", response_model=StudentRead)
def resolve_me(
    principal: Principal = Depends(get_current_principal),
    session: Session = Depends(get_session),
):
    return StudentRead.model_validate(ensure_student(session, principal))


@router.get("/{student_id}/weekly-usage", response_model=WeeklyUsageRead)
def get_weekly_usage(
    student_id: int,
    reference_date: Optional[date] = Query(default=None, alias="date"),
    session: Session = Depends(get_session),
):
    return WeeklyUsageRead.model_validate(weekly_usage(session, student_id, reference_date))


@router.post(
    "/{student_id}/plan",
    response_model=StudentPlanRead,
    dependencies=[Depends(get_current_principal)],
)
def choose_plan(student_id: int, data: PlanSelect, session: Session = Depends(get_session)):
    plan = select_plan(session, student_id, data.plan_option_id, data.billing)
    return StudentPlanRead.model_validate(plan)


@router.post(
    "/{student_id}/reinstatements",
    response_model=ReinstatementRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_staff)],
)
def add_reinstatement(student_id: int, data: ReinstatementCreate, session: Session = Depends(get_session)):
    credit = reinstate_for_week(session, student_id, data.week_start, data.amount, data.note)
    return ReinstatementRead.model_validate(credit)
