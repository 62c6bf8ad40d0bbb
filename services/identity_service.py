# services/identity_service.py
"""Identity Resolver: binds identity-provider principals to Student rows."""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from core.errors import NotFoundError
from core.security import Principal
from models.models import Student

logger = logging.getLogger(__name__)


def get_student(session: Session, student_id: int) -> Student:
    student = session.get(Student, student_id)
    if not student:
        raise NotFoundError("Student", student_id)
    return student


def find_student_by_principal(session: Session, principal_id: str) -> Optional[Student]:
    return session.exec(select(Student).where(Student.principal_id == principal_id)).first()


def ensure_student(session: Session, principal: Principal) -> Student:
    """
    Return the Student bound to ``principal``, creating it on first contact.
    A concurrent first contact loses the unique-index race and re-reads.
    """
    existing = find_student_by_principal(session, principal.id)
    if existing:
        return existing

    student = Student(
        principal_id=principal.id,
        full_name=principal.display_name or principal.email or principal.id,
        email=principal.email,
    )
    session.add(student)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = find_student_by_principal(session, principal.id)
        if existing:
            return existing
        raise
    session.refresh(student)
    logger.info("Created student %s for principal %s", student.id, principal.id)
    return student
