# services/roster_service.py
"""
Roster Projector: Enrollment + Student + Attendance + Billing Gate, per class.

Recomputed on every read. Each projection issues a fixed number of
indexed queries (by class_id, enrollment_id, payment_id) instead of
scanning per row.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlmodel import Session, select

from models.models import (
    Attendance,
    BillingGateStatus,
    Enrollment,
    EnrollmentStatus,
    Invoice,
    Payment,
    PaymentStatus,
    Student,
    utcnow,
)
from services.billing_gate import GateResult, classify_payment
from services.catalog_service import get_class


@dataclass
class RosterEntry:
    enrollment: Enrollment
    student: Student
    attendance: Optional[Attendance]
    payment_status: BillingGateStatus
    payment_label: str


@dataclass
class OutstandingBalance:
    payment: Payment
    student: Optional[Student]
    status: BillingGateStatus
    label: str


def _latest_by(rows: Iterable, key: str) -> Dict[int, object]:
    latest: Dict[int, object] = {}
    for row in rows:
        current = latest.get(getattr(row, key))
        if current is None or row.id > current.id:
            latest[getattr(row, key)] = row
    return latest


def _project(
    session: Session,
    enrollments: List[Enrollment],
    session_id: Optional[int],
    now: datetime,
) -> List[RosterEntry]:
    if not enrollments:
        return []
    enrollment_ids = [e.id for e in enrollments]
    student_ids = {e.student_id for e in enrollments}

    students = {
        s.id: s for s in session.exec(select(Student).where(Student.id.in_(student_ids))).all()
    }

    attendance_query = select(Attendance).where(Attendance.enrollment_id.in_(enrollment_ids))
    if session_id is not None:
        attendance_query = attendance_query.where(Attendance.session_id == session_id)
    attendance = _latest_by(session.exec(attendance_query).all(), "enrollment_id")

    payments = _latest_by(
        session.exec(select(Payment).where(Payment.enrollment_id.in_(enrollment_ids))).all(),
        "enrollment_id",
    )
    invoices = {}
    if payments:
        payment_ids = [p.id for p in payments.values()]
        invoices = _latest_by(
            session.exec(select(Invoice).where(Invoice.payment_id.in_(payment_ids))).all(),
            "payment_id",
        )

    entries: List[RosterEntry] = []
    for enrollment in enrollments:
        student = students.get(enrollment.student_id)
        if student is None:
            continue
        payment = payments.get(enrollment.id)
        gate: GateResult = classify_payment(payment, invoices.get(payment.id) if payment else None, now)
        entries.append(
            RosterEntry(
                enrollment=enrollment,
                student=student,
                attendance=attendance.get(enrollment.id),
                payment_status=gate.status,
                payment_label=gate.label,
            )
        )
    return entries


def roster_for(
    session: Session,
    class_id: int,
    session_id: Optional[int] = None,
    include_cancelled: bool = False,
    now: Optional[datetime] = None,
) -> List[RosterEntry]:
    """Roster in enrollment insertion order."""
    get_class(session, class_id)
    statement = select(Enrollment).where(Enrollment.class_id == class_id)
    if not include_cancelled:
        statement = statement.where(Enrollment.status != EnrollmentStatus.CANCELLED.value)
    enrollments = list(session.exec(statement.order_by(Enrollment.id)).all())
    return _project(session, enrollments, session_id, now or utcnow())


def roster_by_class(session: Session, now: Optional[datetime] = None) -> Dict[int, List[RosterEntry]]:
    enrollments = list(
        session.exec(
            select(Enrollment)
            .where(Enrollment.status != EnrollmentStatus.CANCELLED.value)
            .order_by(Enrollment.id)
        ).all()
    )
    grouped: Dict[int, List[RosterEntry]] = {}
    for entry in _project(session, enrollments, None, now or utcnow()):
        grouped.setdefault(entry.enrollment.class_id, []).append(entry)
    return grouped


def outstanding_balances(
    session: Session, student_id: Optional[int] = None, now: Optional[datetime] = None
) -> List[OutstandingBalance]:
    """Every unpaid Payment with its billing classification, newest first."""
    now = now or utcnow()
    statement = select(Payment).where(Payment.status != PaymentStatus.PAID.value)
    if student_id is not None:
        statement = statement.where(Payment.student_id == student_id)
    payments = list(session.exec(statement.order_by(Payment.id.desc())).all())
    if not payments:
        return []

    students = {
        s.id: s
        for s in session.exec(
            select(Student).where(Student.id.in_({p.student_id for p in payments}))
        ).all()
    }
    balances = []
    for payment in payments:
        gate = classify_payment(payment, None, now)
        balances.append(OutstandingBalance(payment, students.get(payment.student_id), gate.status, gate.label))
    return balances
