# routes/sessions.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from core.database import get_session
from core.security import get_current_principal, get_current_staff
from schemas.booking_schema import BookingRead, BookRequest, BookResponse
from schemas.enrollment_schema import AttendanceRead, AttendanceUpdate, CheckInRequest
from services.attendance_service import mark_attendance, record_check_in
from services.quota_service import book_session, cancel_booking

router = APIRouter(tags=["Sessions"])


# ==================================================================
#  ✅ Book a session against the weekly quota
# ==================================================================
@router.post(
    "/sessions/{session_id}/book",
    response_model=BookResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_principal)],
)
def book(session_id: int, data: BookRequest, session: Session = Depends(get_session)):
    booking = book_session(session, session_id, data.student_id)
    return BookResponse(booking_id=booking.id, week_start=booking.week_start)


@router.delete(
    "/bookings/{booking_id}",
    response_model=BookingRead,
    dependencies=[Depends(get_current_principal)],
)
def cancel(booking_id: int, session: Session = Depends(get_session)):
    return BookingRead.model_validate(cancel_booking(session, booking_id))


# ==================================================================
#  ✅ Attendance
# ==================================================================
@router.post(
    "/sessions/{session_id}/check-in",
    response_model=AttendanceRead,
    dependencies=[Depends(get_current_principal)],
)
def check_in(session_id: int, data: CheckInRequest, session: Session = Depends(get_session)):
    attendance = record_check_in(session, session_id, data.enrollment_id, data.method)
    return AttendanceRead.model_validate(attendance)


@router.put(
    "/sessions/{session_id}/attendance",
    response_model=AttendanceRead,
    dependencies=[Depends(get_current_staff)],
)
def set_attendance(session_id: int, data: AttendanceUpdate, session: Session = Depends(get_session)):
    attendance = mark_attendance(session, session_id, data.enrollment_id, data.status)
    return AttendanceRead.model_validate(attendance)
