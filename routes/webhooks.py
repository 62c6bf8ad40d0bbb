# routes/webhooks.py
import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from core.config import settings
from core.database import get_session
from schemas.payment_schema import ReceiptRead, SettlementRead, WebhookPayload, WebhookResponse
from services.payment_service import process_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

SIGNATURE_TOLERANCE_SECONDS = 300


def verify_signature(payload: str, sig_header: Optional[str]) -> None:
    """Check the ``Stripe-Signature`` header when a webhook secret is configured."""
    secret = settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        return
    if not sig_header:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing Stripe-Signature header")
    try:
        stripe.WebhookSignature.verify_header(payload, sig_header, secret, SIGNATURE_TOLERANCE_SECONDS)
    except stripe.SignatureVerificationError as e:
        logger.warning("Rejected webhook with invalid signature: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")


# ==================================================================
#  ✅ Checkout outcome webhook (idempotent per session)
# ==================================================================
@router.post("/payment", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    session: Session = Depends(get_session),
):
    try:
        raw = (await request.body()).decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Webhook body must be UTF-8 JSON")
    verify_signature(raw, stripe_signature)

    try:
        payload = WebhookPayload.model_validate_json(raw)
    except PydanticValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))

    result = await run_in_threadpool(
        process_webhook, session, payload.session_id, payload.outcome, payload.failure_reason
    )
    return WebhookResponse(
        session_id=result.checkout.id,
        payment_id=result.payment.id,
        payment_status=result.payment.status,
        intent_status=result.intent.status,
        duplicate=result.duplicate,
        receipt=ReceiptRead.model_validate(result.receipt) if result.receipt else None,
        settlement=SettlementRead.model_validate(result.settlement) if result.settlement else None,
    )
