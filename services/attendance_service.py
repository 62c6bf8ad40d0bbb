# services/attendance_service.py
import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from core.errors import InvalidStateError, PaymentRequiredError, ValidationError
from models.models import (
    ActivityType,
    Attendance,
    AttendanceStatus,
    EnrollmentStatus,
    utcnow,
)
from services.activity_service import record_event, record_rejection
from services.billing_gate import resolve_payment_status
from services.catalog_service import get_class_session
from services.enrollment_service import get_enrollment

logger = logging.getLogger(__name__)

CHECK_IN_NOTES = {
    "qr": "Check-in via QR code",
    "manual": "Manual check-in",
}


def _load_pair(session: Session, session_id: int, enrollment_id: int):
    class_session = get_class_session(session, session_id)
    enrollment = get_enrollment(session, enrollment_id)
    if enrollment.class_id != class_session.class_id:
        raise ValidationError(
            "Enrollment does not belong to this session's class",
            {"session_id": session_id, "enrollment_id": enrollment_id},
        )
    return class_session, enrollment


def _upsert(session: Session, session_id: int, enrollment_id: int, status: AttendanceStatus, notes=None) -> Attendance:
    attendance = session.exec(
        select(Attendance).where(
            Attendance.session_id == session_id,
            Attendance.enrollment_id == enrollment_id,
        )
    ).first()
    if attendance is None:
        attendance = Attendance(session_id=session_id, enrollment_id=enrollment_id)

    attendance.status = status.value
    attendance.checked_in_at = utcnow()
    if notes is not None:
        attendance.notes = notes
    session.add(attendance)
    record_event(
        session,
        ActivityType.ATTENDANCE_MARKED,
        f"Enrollment {enrollment_id} marked {status.value} for session {session_id}",
        {"session_id": session_id, "enrollment_id": enrollment_id, "status": status.value},
    )
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise InvalidStateError("Attendance was recorded concurrently; retry", {"session_id": session_id})
    session.refresh(attendance)
    return attendance


def record_check_in(session: Session, session_id: int, enrollment_id: int, method: str = "manual") -> Attendance:
    """Mark the student present. Refused unless the billing gate reports paid."""
    if method not in CHECK_IN_NOTES:
        raise ValidationError("Check-in method must be 'qr' or 'manual'", {"field": "method"})
    _, enrollment = _load_pair(session, session_id, enrollment_id)
    if enrollment.status == EnrollmentStatus.CANCELLED.value:
        raise InvalidStateError("Enrollment is cancelled", {"enrollment_id": enrollment_id})

    gate = resolve_payment_status(session, enrollment_id)
    if not gate.is_paid:
        record_rejection(
            session,
            f"Check-in refused for enrollment {enrollment_id}: {gate.label}",
            {"enrollment_id": enrollment_id, "session_id": session_id, "payment_status": gate.status.value},
        )
        logger.warning("Check-in refused for enrollment %s (%s)", enrollment_id, gate.status.value)
        raise PaymentRequiredError(
            "Payment required before check-in",
            {"enrollment_id": enrollment_id, "payment_status": gate.status.value},
        )

    return _upsert(session, session_id, enrollment_id, AttendanceStatus.PRESENT, CHECK_IN_NOTES[method])


def mark_attendance(session: Session, session_id: int, enrollment_id: int, status: AttendanceStatus) -> Attendance:
    """Instructor override of an attendance record; not billing-gated."""
    _load_pair(session, session_id, enrollment_id)
    return _upsert(session, session_id, enrollment_id, AttendanceStatus(status))
