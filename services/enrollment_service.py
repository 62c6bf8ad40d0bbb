# services/enrollment_service.py
"""Enrollment & Capacity Manager."""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from core.config import settings
from core.errors import ConflictError, NotFoundError
from core.locks import engine_locks
from models.models import (
    ActivityType,
    Enrollment,
    EnrollmentStatus,
    TrainingClass,
    utcnow,
)
from services.activity_service import record_event
from services.identity_service import get_student
from services.payment_service import ensure_enrollment_obligation

logger = logging.getLogger(__name__)


@dataclass
class EnrollmentResult:
    enrollment: Enrollment
    is_waitlist: bool
    already_enrolled: bool


@dataclass
class CapacityUsage:
    active: int
    capacity: int
    available: int


def _lock_class(session: Session, class_id: int) -> TrainingClass:
    """Row-lock the class (honoured by PostgreSQL; SQLite serializes writers)."""
    training_class = session.exec(
        select(TrainingClass).where(TrainingClass.id == class_id).with_for_update()
    ).first()
    if not training_class:
        raise NotFoundError("TrainingClass", class_id)
    return training_class


def count_active(session: Session, class_id: int) -> int:
    statement = select(func.count(Enrollment.id)).where(
        Enrollment.class_id == class_id,
        Enrollment.status == EnrollmentStatus.ACTIVE.value,
    )
    return session.exec(statement).one()


def get_enrollment(session: Session, enrollment_id: int) -> Enrollment:
    enrollment = session.get(Enrollment, enrollment_id)
    if not enrollment:
        raise NotFoundError("Enrollment", enrollment_id)
    return enrollment


def get_enrollment_for_student(session: Session, student_id: int, class_id: int) -> Optional[Enrollment]:
    """The student's non-cancelled enrollment in the class, if any."""
    statement = select(Enrollment).where(
        Enrollment.student_id == student_id,
        Enrollment.class_id == class_id,
        Enrollment.status != EnrollmentStatus.CANCELLED.value,
    )
    return session.exec(statement).first()


def capacity_usage(session: Session, class_id: int) -> CapacityUsage:
    training_class = session.get(TrainingClass, class_id)
    if not training_class:
        raise NotFoundError("TrainingClass", class_id)
    active = count_active(session, class_id)
    return CapacityUsage(
        active=active,
        capacity=training_class.capacity,
        available=max(training_class.capacity - active, 0),
    )


def enroll_student(session: Session, student_id: int, class_id: int) -> EnrollmentResult:
    """
    Place a student in a class as active, or on the waitlist when full.
    Idempotent for a live enrollment; every new enrollment is billed.
    """
    get_student(session, student_id)

    with engine_locks.hold(("class", class_id)):
        existing = get_enrollment_for_student(session, student_id, class_id)
        if existing:
            return EnrollmentResult(
                enrollment=existing,
                is_waitlist=existing.status == EnrollmentStatus.WAITLIST.value,
                already_enrolled=True,
            )

        training_class = _lock_class(session, class_id)
        is_waitlist = count_active(session, class_id) >= training_class.capacity

        now = utcnow()
        enrollment = Enrollment(
            student_id=student_id,
            class_id=class_id,
            status=EnrollmentStatus.WAITLIST.value if is_waitlist else EnrollmentStatus.ACTIVE.value,
            created_at=now,
            updated_at=now,
        )
        session.add(enrollment)
        try:
            session.flush()
        except IntegrityError:
            # Live-enrollment unique index: another request won the race
            session.rollback()
            existing = get_enrollment_for_student(session, student_id, class_id)
            if existing is None:
                raise ConflictError("Enrollment could not be created", {"class_id": class_id})
            return EnrollmentResult(existing, existing.status == EnrollmentStatus.WAITLIST.value, True)

        ensure_enrollment_obligation(session, enrollment)
        record_event(
            session,
            ActivityType.ENROLLMENT_CREATED,
            f"Student {student_id} enrolled in class {class_id} as {enrollment.status}",
            {"enrollment_id": enrollment.id, "class_id": class_id, "student_id": student_id},
        )
        session.commit()
        session.refresh(enrollment)

    logger.info(
        "Enrollment %s: student %s → class %s (%s)",
        enrollment.id, student_id, class_id, enrollment.status,
    )
    return EnrollmentResult(enrollment=enrollment, is_waitlist=is_waitlist, already_enrolled=False)


def _promote_next_waitlisted(session: Session, class_id: int) -> Optional[Enrollment]:
    """Move the oldest waitlisted enrollment into a free seat."""
    training_class = _lock_class(session, class_id)
    if count_active(session, class_id) >= training_class.capacity:
        return None

    candidate = session.exec(
        select(Enrollment)
        .where(
            Enrollment.class_id == class_id,
            Enrollment.status == EnrollmentStatus.WAITLIST.value,
        )
        .order_by(Enrollment.created_at, Enrollment.id)
    ).first()
    if not candidate:
        return None

    candidate.status = EnrollmentStatus.ACTIVE.value
    candidate.updated_at = utcnow()
    session.add(candidate)
    ensure_enrollment_obligation(session, candidate)
    logger.info("Waitlisted enrollment %s promoted to active", candidate.id)
    return candidate


def update_enrollment_status(session: Session, enrollment_id: int, status: EnrollmentStatus) -> Enrollment:
    """
    Overwrite an enrollment's status. Freeing an active seat promotes the
    next waitlisted student when ``WAITLIST_AUTO_PROMOTE`` is on.
    """
    status = EnrollmentStatus(status)
    enrollment = get_enrollment(session, enrollment_id)

    with engine_locks.hold(("class", enrollment.class_id)):
        previous = enrollment.status
        if previous == status.value:
            return enrollment

        if previous == EnrollmentStatus.CANCELLED.value:
            clash = get_enrollment_for_student(session, enrollment.student_id, enrollment.class_id)
            if clash:
                raise ConflictError(
                    "Student already has a live enrollment in this class",
                    {"enrollment_id": clash.id},
                )

        if status == EnrollmentStatus.ACTIVE:
            training_class = _lock_class(session, enrollment.class_id)
            if count_active(session, enrollment.class_id) >= training_class.capacity:
                raise ConflictError(
                    "Class is full",
                    {"class_id": enrollment.class_id, "capacity": training_class.capacity},
                )

        enrollment.status = status.value
        enrollment.updated_at = utcnow()
        session.add(enrollment)

        if status == EnrollmentStatus.CANCELLED:
            record_event(
                session,
                ActivityType.ENROLLMENT_CANCELLED,
                f"Enrollment {enrollment.id} cancelled",
                {"enrollment_id": enrollment.id, "class_id": enrollment.class_id},
            )
            if previous == EnrollmentStatus.ACTIVE.value and settings.WAITLIST_AUTO_PROMOTE:
                session.flush()
                _promote_next_waitlisted(session, enrollment.class_id)

        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise ConflictError("Enrollment status change violates a uniqueness rule", {"enrollment_id": enrollment_id})

    session.refresh(enrollment)
    logger.info("Enrollment %s: %s → %s", enrollment.id, previous, enrollment.status)
    return enrollment
