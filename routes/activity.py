# routes/activity.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from core.database import get_session
from models.models import ActivityType
from schemas.payment_schema import ActivityRead
from services.activity_service import recent_events

router = APIRouter(prefix="/activity", tags=["Activity"])


@router.get("", response_model=List[ActivityRead])
def list_activity(
    limit: int = Query(default=50, ge=1, le=500),
    event_type: Optional[ActivityType] = Query(default=None, alias="type"),
    session: Session = Depends(get_session),
):
    events = recent_events(session, limit=limit, event_type=event_type.value if event_type else None)
    return [ActivityRead.model_validate(e) for e in events]
