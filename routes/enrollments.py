# routes/enrollments.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from core.database import get_session
from core.security import get_current_staff
from schemas.enrollment_schema import EnrollmentRead, EnrollmentStatusUpdate
from schemas.payment_schema import AdHocIntentRequest, IntentRead
from services.enrollment_service import update_enrollment_status
from services.payment_service import create_intent_for_enrollment

router = APIRouter(prefix="/enrollments", tags=["Enrollments"])


@router.patch("/{enrollment_id}", response_model=EnrollmentRead, dependencies=[Depends(get_current_staff)])
def update_status(enrollment_id: int, data: EnrollmentStatusUpdate, session: Session = Depends(get_session)):
    """Overwrite the status; cancelling an active seat may promote the waitlist."""
    enrollment = update_enrollment_status(session, enrollment_id, data.status)
    return EnrollmentRead.model_validate(enrollment)


@router.post(
    "/{enrollment_id}/intent",
    response_model=IntentRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_staff)],
)
def create_adhoc_intent(enrollment_id: int, data: AdHocIntentRequest, session: Session = Depends(get_session)):
    intent = create_intent_for_enrollment(
        session, enrollment_id, data.amount, data.method.value, data.description
    )
    return IntentRead.model_validate(intent)
