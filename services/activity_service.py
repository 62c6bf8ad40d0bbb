# services/activity_service.py
import logging
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from models.models import ActivityEvent, ActivityType

logger = logging.getLogger(__name__)


def record_event(
    session: Session,
    event_type: ActivityType,
    message: str,
    context: Optional[Dict[str, Any]] = None,
) -> ActivityEvent:
    """Append an activity event. Caller owns the commit."""
    event = ActivityEvent(type=event_type.value, message=message, context=context or {})
    session.add(event)
    logger.debug("activity %s: %s", event_type.value, message)
    return event


def record_rejection(session: Session, message: str, context: Optional[Dict[str, Any]] = None) -> None:
    """
    Persist a ``validation_error`` event in its own commit, so it
    survives the rollback of the rejected operation.
    """
    session.rollback()
    record_event(session, ActivityType.VALIDATION_ERROR, message, context)
    session.commit()


def recent_events(session: Session, limit: int = 50, event_type: Optional[str] = None) -> List[ActivityEvent]:
    statement = select(ActivityEvent)
    if event_type:
        statement = statement.where(ActivityEvent.type == event_type)
    statement = statement.order_by(ActivityEvent.id.desc()).limit(limit)
    return list(session.exec(statement).all())
