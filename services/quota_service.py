# services/quota_service.py
"""
Quota Tracker: how many sessions a student may still book in a Monday–Sunday week.

    limit     = weekly_classes of the active plan option (0 without a plan)
    used      = booked sessions in the week − reinstated credit
    remaining = max(limit − used, 0)
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from core.config import settings
from core.errors import ConflictError, NotFoundError, PaymentRequiredError, QuotaExceededError, ValidationError
from core.locks import engine_locks
from models.models import (
    BillingGateStatus,
    BookingStatus,
    CreditReinstatement,
    Payment,
    PaymentStatus,
    SessionBooking,
    utcnow,
)
from services.activity_service import record_rejection
from services.billing_gate import classify_payment
from services.catalog_service import get_class_session
from services.identity_service import get_student
from services.plan_service import active_plan_for

logger = logging.getLogger(__name__)


@dataclass
class WeeklyUsage:
    used: int
    limit: int
    remaining: int
    week_start: datetime


def week_start(value: Union[date, datetime]) -> datetime:
    """Monday 00:00 on or before ``value``."""
    day = value.date() if isinstance(value, datetime) else value
    monday = day - timedelta(days=day.weekday())  # Monday=0, Sunday=6
    return datetime.combine(monday, time.min)


def _booked_count(session: Session, student_id: int, week: datetime) -> int:
    statement = select(func.count(SessionBooking.id)).where(
        SessionBooking.student_id == student_id,
        SessionBooking.week_start == week,
        SessionBooking.status == BookingStatus.BOOKED.value,
    )
    return session.exec(statement).one()


def _reinstated_credit(session: Session, student_id: int, week: datetime) -> int:
    statement = select(func.coalesce(func.sum(CreditReinstatement.amount), 0)).where(
        CreditReinstatement.student_id == student_id,
        CreditReinstatement.week_start == week,
    )
    return session.exec(statement).one()


def weekly_usage(
    session: Session,
    student_id: int,
    reference_date: Optional[Union[date, datetime]] = None,
) -> WeeklyUsage:
    get_student(session, student_id)
    week = week_start(reference_date or utcnow())

    active = active_plan_for(session, student_id)
    limit = active[1].weekly_classes if active else 0

    used = _booked_count(session, student_id, week) - _reinstated_credit(session, student_id, week)
    return WeeklyUsage(used=used, limit=limit, remaining=max(limit - used, 0), week_start=week)


def _has_overdue_balance(session: Session, student_id: int) -> bool:
    unpaid = session.exec(
        select(Payment).where(
            Payment.student_id == student_id,
            Payment.status != PaymentStatus.PAID.value,
        )
    ).all()
    now = utcnow()
    return any(
        classify_payment(payment, now=now).status == BillingGateStatus.OVERDUE
        for payment in unpaid
    )


def book_session(session: Session, session_id: int, student_id: int) -> SessionBooking:
    """Claim one concrete session against the student's weekly quota."""
    class_session = get_class_session(session, session_id)
    get_student(session, student_id)
    week = week_start(class_session.start_time)

    with engine_locks.hold(("quota", student_id, week)):
        duplicate = session.exec(
            select(SessionBooking).where(
                SessionBooking.student_id == student_id,
                SessionBooking.session_id == session_id,
                SessionBooking.status == BookingStatus.BOOKED.value,
            )
        ).first()
        if duplicate:
            raise ConflictError(
                "Session already booked", {"booking_id": duplicate.id, "session_id": session_id}
            )

        if settings.BOOKING_REQUIRES_PAID_BALANCE and _has_overdue_balance(session, student_id):
            record_rejection(
                session,
                f"Booking refused for student {student_id}: overdue balance",
                {"student_id": student_id, "session_id": session_id},
            )
            raise PaymentRequiredError("Settle overdue payments before booking", {"student_id": student_id})

        usage = weekly_usage(session, student_id, week)
        if usage.remaining <= 0:
            record_rejection(
                session,
                f"Weekly quota exceeded for student {student_id}",
                {"student_id": student_id, "session_id": session_id, "week_start": week.isoformat()},
            )
            logger.warning("Quota exceeded: student %s, week %s", student_id, week.date())
            raise QuotaExceededError(
                "Weekly class limit reached",
                {"used": usage.used, "limit": usage.limit, "week_start": week.isoformat()},
            )

        booking = SessionBooking(
            student_id=student_id,
            session_id=session_id,
            week_start=week,
            status=BookingStatus.BOOKED.value,
        )
        session.add(booking)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise ConflictError("Session already booked", {"session_id": session_id})
        session.refresh(booking)

    logger.info("Booking %s: student %s → session %s", booking.id, student_id, session_id)
    return booking


def cancel_booking(session: Session, booking_id: int) -> SessionBooking:
    """Release a booking; its quota slot becomes available again."""
    booking = session.get(SessionBooking, booking_id)
    if not booking:
        raise NotFoundError("SessionBooking", booking_id)
    if booking.status == BookingStatus.CANCELLED.value:
        return booking

    booking.status = BookingStatus.CANCELLED.value
    session.add(booking)
    session.commit()
    session.refresh(booking)
    return booking


def reinstate_for_week(
    session: Session,
    student_id: int,
    week: Union[date, datetime],
    amount: int = 1,
    note: Optional[str] = None,
) -> CreditReinstatement:
    """Grant manual credit for a week (e.g. a class the gym cancelled)."""
    if amount is None or amount <= 0:
        raise ValidationError("Reinstated amount must be positive", {"field": "amount"})
    get_student(session, student_id)

    credit = CreditReinstatement(
        student_id=student_id,
        week_start=week_start(week),
        amount=amount,
        note=note,
    )
    session.add(credit)
    session.commit()
    session.refresh(credit)
    logger.info("Reinstated %s class(es) for student %s, week %s", amount, student_id, credit.week_start.date())
    return credit
