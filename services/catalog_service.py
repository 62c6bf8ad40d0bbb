# services/catalog_service.py
"""Catalog Store: class, session and plan-option definitions."""
from typing import List

from sqlmodel import Session, select

from core.errors import NotFoundError, ValidationError
from models.models import ClassSession, PlanOption, TrainingClass
from schemas.catalog_schema import ClassSessionCreate, PlanOptionCreate, TrainingClassCreate


def get_class(session: Session, class_id: int) -> TrainingClass:
    training_class = session.get(TrainingClass, class_id)
    if not training_class:
        raise NotFoundError("TrainingClass", class_id)
    return training_class


def get_class_session(session: Session, session_id: int) -> ClassSession:
    class_session = session.get(ClassSession, session_id)
    if not class_session:
        raise NotFoundError("ClassSession", session_id)
    return class_session


def get_plan_option(session: Session, plan_option_id: int) -> PlanOption:
    option = session.get(PlanOption, plan_option_id)
    if not option:
        raise NotFoundError("PlanOption", plan_option_id)
    return option


def create_class(session: Session, data: TrainingClassCreate) -> TrainingClass:
    training_class = TrainingClass(
        title=data.title,
        description=data.description,
        capacity=data.capacity,
        schedule=[slot.model_dump(mode="json") for slot in data.schedule],
    )
    session.add(training_class)
    session.commit()
    session.refresh(training_class)
    return training_class


def list_classes(session: Session) -> List[TrainingClass]:
    return list(session.exec(select(TrainingClass).order_by(TrainingClass.id)).all())


def create_class_session(session: Session, data: ClassSessionCreate) -> ClassSession:
    training_class = get_class(session, data.class_id)
    if data.start_time >= data.end_time:
        raise ValidationError("start_time must be before end_time")

    class_session = ClassSession(
        class_id=training_class.id,
        start_time=data.start_time,
        end_time=data.end_time,
        capacity=data.capacity or training_class.capacity,
        location=data.location,
        coach_notes=data.coach_notes,
    )
    session.add(class_session)
    session.commit()
    session.refresh(class_session)
    return class_session


def list_class_sessions(session: Session, class_id: int) -> List[ClassSession]:
    get_class(session, class_id)
    statement = (
        select(ClassSession)
        .where(ClassSession.class_id == class_id)
        .order_by(ClassSession.start_time)
    )
    return list(session.exec(statement).all())


def create_plan_option(session: Session, data: PlanOptionCreate) -> PlanOption:
    option = PlanOption(**data.model_dump())
    session.add(option)
    session.commit()
    session.refresh(option)
    return option


def list_plan_options(session: Session) -> List[PlanOption]:
    statement = select(PlanOption).order_by(PlanOption.weekly_classes, PlanOption.duration_months)
    return list(session.exec(statement).all())
