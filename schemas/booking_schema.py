# schemas/booking_schema.py
from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, Field, ConfigDict

from models.models import BookingStatus, PlanBilling, StudentPlanStatus


# ---------------------------
# Student
# ---------------------------
class StudentRead(BaseModel):
    id: int
    principal_id: str
    full_name: str
    email: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Plans
# ---------------------------
class PlanSelect(BaseModel):
    plan_option_id: int
    billing: PlanBilling = PlanBilling.RECURRING


class StudentPlanRead(BaseModel):
    id: int
    student_id: int
    plan_option_id: int
    billing: PlanBilling
    status: StudentPlanStatus
    started_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Bookings & weekly quota
# ---------------------------
class BookRequest(BaseModel):
    student_id: int


class BookResponse(BaseModel):
    booking_id: int
    week_start: datetime


class BookingRead(BaseModel):
    id: int
    student_id: int
    session_id: int
    week_start: datetime
    status: BookingStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WeeklyUsageRead(BaseModel):
    used: int
    limit: int
    remaining: int
    week_start: datetime

    model_config = ConfigDict(from_attributes=True)


class ReinstatementCreate(BaseModel):
    week_start: date
    amount: int = Field(default=1, gt=0)
    note: Optional[str] = Field(default=None, max_length=255)


class ReinstatementRead(BaseModel):
    id: int
    student_id: int
    week_start: datetime
    amount: int
    note: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
