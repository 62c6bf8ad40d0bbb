# routes/classes.py
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from core.database import get_session
from core.security import get_current_principal
from schemas.enrollment_schema import CapacityRead, EnrollRequest, EnrollResponse, RosterEntryRead
from services.enrollment_service import capacity_usage, enroll_student
from services.roster_service import roster_by_class, roster_for

router = APIRouter(prefix="/classes", tags=["Classes"])


# ==================================================================
#  ✅ Rosters for every class (grouped)
# ==================================================================
@router.get("/rosters", response_model=Dict[int, List[RosterEntryRead]])
def get_all_rosters(session: Session = Depends(get_session)):
    grouped = roster_by_class(session)
    return {
        class_id: [RosterEntryRead.model_validate(entry) for entry in entries]
        for class_id, entries in grouped.items()
    }


# ==================================================================
#  ✅ Enroll a student (active or waitlist)
# ==================================================================
@router.post(
    "/{class_id}/enroll",
    response_model=EnrollResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_principal)],
)
def enroll(class_id: int, data: EnrollRequest, session: Session = Depends(get_session)):
    result = enroll_student(session, data.student_id, class_id)
    return EnrollResponse(
        enrollment_id=result.enrollment.id,
        status=result.enrollment.status,
        is_waitlist=result.is_waitlist,
        already_enrolled=result.already_enrolled,
    )


# ==================================================================
#  ✅ Capacity usage
# ==================================================================
@router.get("/{class_id}/capacity", response_model=CapacityRead)
def get_capacity(class_id: int, session: Session = Depends(get_session)):
    usage = capacity_usage(session, class_id)
    return CapacityRead(class_id=class_id, active=usage.active, capacity=usage.capacity, available=usage.available)


# ==================================================================
#  ✅ Roster for one class
# ==================================================================
@router.get("/{class_id}/roster", response_model=List[RosterEntryRead])
def get_roster(
    class_id: int,
    session_id: Optional[int] = None,
    include_cancelled: bool = False,
    session: Session = Depends(get_session),
):
    entries = roster_for(session, class_id, session_id=session_id, include_cancelled=include_cancelled)
    return [RosterEntryRead.model_validate(entry) for entry in entries]
