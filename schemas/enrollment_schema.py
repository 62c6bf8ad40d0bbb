# schemas/enrollment_schema.py
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict

from models.models import AttendanceStatus, BillingGateStatus, EnrollmentStatus
from schemas.booking_schema import StudentRead


# ---------------------------
# Enrollment
# ---------------------------
class EnrollRequest(BaseModel):
    student_id: int


class EnrollResponse(BaseModel):
    enrollment_id: int
    status: EnrollmentStatus
    is_waitlist: bool
    already_enrolled: bool


class EnrollmentRead(BaseModel):
    id: int
    student_id: int
    class_id: int
    status: EnrollmentStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EnrollmentStatusUpdate(BaseModel):
    status: EnrollmentStatus


class CapacityRead(BaseModel):
    class_id: int
    active: int
    capacity: int
    available: int


# ---------------------------
# Attendance
# ---------------------------
class CheckInRequest(BaseModel):
    enrollment_id: int
    method: str = Field(default="manual", pattern="^(qr|manual)$")


class AttendanceUpdate(BaseModel):
    enrollment_id: int
    status: AttendanceStatus


class AttendanceRead(BaseModel):
    id: int
    session_id: int
    enrollment_id: int
    status: AttendanceStatus
    checked_in_at: Optional[datetime]
    notes: Optional[str]

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Roster
# ---------------------------
class RosterEntryRead(BaseModel):
    enrollment: EnrollmentRead
    student: StudentRead
    attendance: Optional[AttendanceRead] = None
    payment_status: BillingGateStatus
    payment_label: str

    model_config = ConfigDict(from_attributes=True)
