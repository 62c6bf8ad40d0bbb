# routes/payments.py
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from core.database import get_session
from core.security import get_current_principal, get_current_staff
from schemas.payment_schema import (
    BillingStatusRead,
    ChargeCardRequest,
    ExpireSessionsResponse,
    IntentRead,
    OneTimePaymentRequest,
    OutstandingBalanceRead,
    PaymentRead,
    PayNowResponse,
    SessionRead,
)
from services.billing_gate import resolve_payment_status
from services.enrollment_service import get_enrollment
from services.payment_service import (
    charge_stored_card,
    create_intent_for_payment,
    create_one_time_payment,
    expire_stale_sessions,
    get_payment,
    pay_outstanding,
    start_session,
)
from services.roster_service import outstanding_balances

router = APIRouter(tags=["Payments"])


# ==================================================================
#  ✅ Outstanding balances (unpaid, newest first)
# ==================================================================
@router.get("/payments/outstanding", response_model=List[OutstandingBalanceRead])
def list_outstanding(student_id: Optional[int] = None, session: Session = Depends(get_session)):
    return [
        OutstandingBalanceRead(
            payment=PaymentRead.model_validate(item.payment),
            student_name=item.student.full_name if item.student else None,
            status=item.status,
            label=item.label,
        )
        for item in outstanding_balances(session, student_id=student_id)
    ]


@router.post(
    "/payments/charge-card",
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_staff)],
)
def charge_card(data: ChargeCardRequest, session: Session = Depends(get_session)):
    payment = charge_stored_card(session, data.student_id, data.amount, data.description)
    return PaymentRead.model_validate(payment)


@router.post(
    "/payments/one-time",
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_staff)],
)
def one_time(data: OneTimePaymentRequest, session: Session = Depends(get_session)):
    payment = create_one_time_payment(session, data.student_id, data.amount, data.method.value, data.description)
    return PaymentRead.model_validate(payment)


@router.post(
    "/payments/sessions/expire",
    response_model=ExpireSessionsResponse,
    dependencies=[Depends(get_current_staff)],
)
def expire_sessions(session: Session = Depends(get_session)):
    return ExpireSessionsResponse(expired=expire_stale_sessions(session))


@router.get("/payments/{payment_id}", response_model=PaymentRead)
def read_payment(payment_id: int, session: Session = Depends(get_session)):
    return PaymentRead.model_validate(get_payment(session, payment_id))


@router.get("/payments/{enrollment_id}/billing-status", response_model=BillingStatusRead)
def billing_status(enrollment_id: int, session: Session = Depends(get_session)):
    get_enrollment(session, enrollment_id)
    gate = resolve_payment_status(session, enrollment_id)
    return BillingStatusRead(enrollment_id=enrollment_id, status=gate.status, label=gate.label)


# ==================================================================
#  ✅ Checkout: intent → session
# ==================================================================
@router.post(
    "/payments/{payment_id}/intent",
    response_model=IntentRead,
    dependencies=[Depends(get_current_principal)],
)
def create_intent(payment_id: int, session: Session = Depends(get_session)):
    return IntentRead.model_validate(create_intent_for_payment(session, payment_id))


@router.post(
    "/intents/{intent_id}/session",
    response_model=SessionRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_principal)],
)
def open_session(intent_id: int, session: Session = Depends(get_session)):
    return SessionRead.model_validate(start_session(session, intent_id))


# ==================================================================
#  ✅ Pay now (synchronous settlement)
# ==================================================================
@router.post(
    "/payments/{payment_id}/pay-now",
    response_model=PayNowResponse,
    dependencies=[Depends(get_current_principal)],
)
def pay_now(payment_id: int, session: Session = Depends(get_session)):
    checkout, intent = pay_outstanding(session, payment_id)
    return PayNowResponse(session=SessionRead.model_validate(checkout), intent=IntentRead.model_validate(intent))
