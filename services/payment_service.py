# ================================================================
# services/payment_service.py : Payment lifecycle engine
# ================================================================
"""
Payment → Invoice → PaymentIntent → PaymentSession → webhook → Receipt/Settlement.

Two ways to settle a Payment are kept apart on purpose:

* asynchronous checkout: ``create_intent_for_payment`` / ``start_session``,
  then ``process_webhook`` once the gateway reports back;
* synchronous settlement: ``pay_outstanding`` walks the whole pipeline in
  one call, and ``charge_stored_card`` / ``create_one_time_payment`` skip
  it entirely.

Every function here takes the caller's ``Session``; the public operations
commit, the ``_``-prefixed helpers only flush.
"""
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from core.config import settings
from core.errors import InvalidStateError, NotFoundError, ValidationError
from core.locks import engine_locks
from models.models import (
    ActivityType,
    CheckoutSessionStatus,
    Enrollment,
    IntentStatus,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentIntent,
    PaymentMethod,
    PaymentSession,
    PaymentStatus,
    Receipt,
    Settlement,
    Student,
    WebhookEvent,
    WebhookOutcome,
    utcnow,
)
from services.activity_service import record_event

logger = logging.getLogger(__name__)

BPS_SCALE = 10_000
OPEN_INTENT_STATUSES = (
    IntentStatus.REQUIRES_PAYMENT_METHOD.value,
    IntentStatus.PROCESSING.value,
)


@dataclass
class WebhookResult:
    checkout: PaymentSession
    intent: PaymentIntent
    payment: Payment
    receipt: Optional[Receipt] = None
    settlement: Optional[Settlement] = None
    duplicate: bool = False


# ------------------------
# Money helpers
# ------------------------
def settlement_fee(amount: int, fee_bps: Optional[int] = None) -> int:
    """Flat-rate fee in minor units, rounded half-up."""
    bps = settings.SETTLEMENT_FEE_BPS if fee_bps is None else fee_bps
    return (amount * bps + BPS_SCALE // 2) // BPS_SCALE


def _require_positive(amount: int) -> None:
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be a positive number of minor units", {"field": "amount"})


# ------------------------
# Lookups
# ------------------------
def get_payment(session: Session, payment_id: int) -> Payment:
    payment = session.get(Payment, payment_id)
    if not payment:
        raise NotFoundError("Payment", payment_id)
    return payment


def get_intent(session: Session, intent_id: int) -> PaymentIntent:
    intent = session.get(PaymentIntent, intent_id)
    if not intent:
        raise NotFoundError("PaymentIntent", intent_id)
    return intent


def get_checkout_session(session: Session, checkout_id: int) -> PaymentSession:
    checkout = session.get(PaymentSession, checkout_id)
    if not checkout:
        raise NotFoundError("PaymentSession", checkout_id)
    return checkout


def invoices_for_payment(session: Session, payment_id: int) -> List[Invoice]:
    return list(session.exec(select(Invoice).where(Invoice.payment_id == payment_id)).all())


def find_open_intent(session: Session, payment_id: int) -> Optional[PaymentIntent]:
    """Most recent intent that can still move forward."""
    statement = (
        select(PaymentIntent)
        .where(
            PaymentIntent.payment_id == payment_id,
            PaymentIntent.status.in_(OPEN_INTENT_STATUSES),
        )
        .order_by(PaymentIntent.id.desc())
    )
    return session.exec(statement).first()


# ------------------------
# Payment + Invoice creation
# ------------------------
def _create_payment_with_invoice(
    session: Session,
    student_id: int,
    amount: int,
    *,
    enrollment_id: Optional[int] = None,
    method: str = PaymentMethod.PIX.value,
    description: Optional[str] = None,
    due_date: Optional[datetime] = None,
    paid: bool = False,
) -> Payment:
    now = utcnow()
    payment = Payment(
        student_id=student_id,
        enrollment_id=enrollment_id,
        amount=amount,
        currency=settings.CURRENCY,
        method=method,
        status=PaymentStatus.PAID.value if paid else PaymentStatus.PENDING.value,
        due_date=due_date or now + timedelta(days=settings.PAYMENT_DUE_DAYS),
        paid_at=now if paid else None,
        description=description,
    )
    session.add(payment)
    session.flush()

    invoice = Invoice(
        payment_id=payment.id,
        enrollment_id=enrollment_id,
        reference=f"INV-{now:%Y%m}-{payment.id:06d}",
        total=amount,
        currency=settings.CURRENCY,
        status=InvoiceStatus.PAID.value if paid else InvoiceStatus.OPEN.value,
        issue_date=now,
        paid_at=now if paid else None,
    )
    session.add(invoice)
    session.flush()
    return payment


def ensure_enrollment_obligation(session: Session, enrollment: Enrollment) -> Optional[Payment]:
    """
    Create the enrollment's first Payment/Invoice unless one already exists.
    Returns the new Payment, or None when the enrollment was already billed.
    """
    existing = session.exec(select(Payment.id).where(Payment.enrollment_id == enrollment.id)).first()
    if existing is not None:
        return None

    payment = _create_payment_with_invoice(
        session,
        enrollment.student_id,
        settings.DEFAULT_ENROLLMENT_FEE_CENTS,
        enrollment_id=enrollment.id,
        description="Enrollment fee",
    )
    logger.info("Billing obligation %s created for enrollment %s", payment.id, enrollment.id)
    return payment


# ------------------------
# Intents
# ------------------------
def _build_intent(payment: Payment, method: Optional[str] = None) -> PaymentIntent:
    return PaymentIntent(
        payment_id=payment.id,
        enrollment_id=payment.enrollment_id,
        amount=payment.amount,
        currency=payment.currency,
        payment_method=method or payment.method,
        status=IntentStatus.REQUIRES_PAYMENT_METHOD.value,
        client_secret=f"pi_secret_{secrets.token_urlsafe(24)}",
    )


def _retire_failed_intents(session: Session, payment: Payment) -> None:
    """A fresh attempt supersedes failed intents. The payment stays failed until settled."""
    failed = session.exec(
        select(PaymentIntent).where(
            PaymentIntent.payment_id == payment.id,
            PaymentIntent.status == IntentStatus.FAILED.value,
        )
    ).all()
    now = utcnow()
    for intent in failed:
        intent.status = IntentStatus.CANCELED.value
        intent.updated_at = now
        session.add(intent)


def create_intent_for_enrollment(
    session: Session,
    enrollment_id: int,
    amount: int,
    method: str,
    description: Optional[str] = None,
) -> PaymentIntent:
    """Ad-hoc charge: new Payment + Invoice + Intent for an enrollment."""
    _require_positive(amount)
    enrollment = session.get(Enrollment, enrollment_id)
    if not enrollment:
        raise NotFoundError("Enrollment", enrollment_id)

    payment = _create_payment_with_invoice(
        session,
        enrollment.student_id,
        amount,
        enrollment_id=enrollment.id,
        method=method,
        description=description or "Quick charge",
    )
    intent = _build_intent(payment, method)
    session.add(intent)
    session.commit()
    session.refresh(intent)
    logger.info("Intent %s created for enrollment %s (%s)", intent.id, enrollment_id, amount)
    return intent


def create_intent_for_payment(session: Session, payment_id: int) -> PaymentIntent:
    """Return the payment's open intent, or start a fresh attempt."""
    with engine_locks.hold(("payment", payment_id)):
        payment = get_payment(session, payment_id)
        if payment.is_paid:
            raise InvalidStateError("Payment already paid", {"payment_id": payment_id})

        intent = find_open_intent(session, payment.id)
        if intent:
            return intent

        _retire_failed_intents(session, payment)
        intent = _build_intent(payment)
        session.add(intent)
        session.commit()
        session.refresh(intent)
        return intent


# ------------------------
# Checkout sessions
# ------------------------
def start_session(
    session: Session,
    intent_id: Optional[int],
    fallback_intent: Optional[PaymentIntent] = None,
) -> PaymentSession:
    """
    Open a checkout session for an intent and move the intent to processing.

    ``fallback_intent`` covers the case where the caller built the intent
    but it has not been persisted yet; it is saved here.
    """
    intent = session.get(PaymentIntent, intent_id) if intent_id is not None else None
    if intent is None and fallback_intent is not None:
        if session.get(Payment, fallback_intent.payment_id) is None:
            raise NotFoundError("Payment", fallback_intent.payment_id)
        intent = fallback_intent
        session.add(intent)
        session.flush()
    if intent is None:
        raise NotFoundError("PaymentIntent", intent_id)

    if intent.status not in OPEN_INTENT_STATUSES:
        raise InvalidStateError(
            f"Intent is {intent.status}; start a new intent instead",
            {"intent_id": intent.id, "intent_status": intent.status},
        )

    now = utcnow()
    current = session.exec(
        select(PaymentSession).where(
            PaymentSession.intent_id == intent.id,
            PaymentSession.status == CheckoutSessionStatus.OPEN.value,
            PaymentSession.expires_at > now,
        )
    ).first()
    if current:
        return current

    checkout = PaymentSession(
        intent_id=intent.id,
        status=CheckoutSessionStatus.OPEN.value,
        checkout_url="",
        created_at=now,
        expires_at=now + timedelta(minutes=settings.CHECKOUT_SESSION_TTL_MINUTES),
    )
    session.add(checkout)
    session.flush()
    checkout.checkout_url = f"{settings.CHECKOUT_BASE_URL}/{checkout.id}?t={secrets.token_urlsafe(16)}"

    intent.status = IntentStatus.PROCESSING.value
    intent.updated_at = now
    session.add(intent)
    session.add(checkout)
    session.commit()
    session.refresh(checkout)
    logger.info("Checkout session %s opened for intent %s", checkout.id, intent.id)
    return checkout


def expire_stale_sessions(session: Session, now: Optional[datetime] = None) -> int:
    """Expire open sessions past ``expires_at`` and cancel their intents."""
    now = now or utcnow()
    stale = session.exec(
        select(PaymentSession).where(
            PaymentSession.status == CheckoutSessionStatus.OPEN.value,
            PaymentSession.expires_at <= now,
        )
    ).all()
    for checkout in stale:
        checkout.status = CheckoutSessionStatus.EXPIRED.value
        session.add(checkout)
        intent = session.get(PaymentIntent, checkout.intent_id)
        if intent and intent.status == IntentStatus.PROCESSING.value:
            intent.status = IntentStatus.CANCELED.value
            intent.updated_at = now
            session.add(intent)
    if stale:
        session.commit()
        logger.info("Expired %d stale checkout sessions", len(stale))
    return len(stale)


# ------------------------
# Webhook
# ------------------------
def _mint_receipt_and_settlement(
    session: Session, payment: Payment, now: datetime
) -> Tuple[Receipt, Settlement]:
    receipt = Receipt(
        payment_id=payment.id,
        enrollment_id=payment.enrollment_id,
        reference=f"REC-{now:%Y%m}-{payment.id:06d}",
        download_url=f"{settings.RECEIPT_BASE_URL}/{payment.id}.pdf",
        issued_at=now,
    )
    session.add(receipt)
    session.flush()

    fees = settlement_fee(payment.amount)
    settlement = Settlement(
        period=f"{now:%Y-%m-%d}",
        gross=payment.amount,
        fees=fees,
        net=payment.amount - fees,
        receipt_ids=[receipt.id],
        deposited_at=now,
    )
    session.add(settlement)
    return receipt, settlement


def _duplicate_result(session: Session, checkout: PaymentSession) -> WebhookResult:
    intent = get_intent(session, checkout.intent_id)
    payment = get_payment(session, intent.payment_id)
    receipt = session.exec(select(Receipt).where(Receipt.payment_id == payment.id)).first()
    return WebhookResult(checkout, intent, payment, receipt=receipt, duplicate=True)


def process_webhook(
    session: Session,
    checkout_id: int,
    outcome: WebhookOutcome,
    failure_reason: Optional[str] = None,
) -> WebhookResult:
    """
    Resolve a checkout session. Single-fire per session: a repeated
    delivery returns the recorded result and changes nothing.
    """
    outcome = WebhookOutcome(outcome)
    with engine_locks.hold(("webhook", checkout_id)):
        checkout = get_checkout_session(session, checkout_id)

        already = session.exec(select(WebhookEvent).where(WebhookEvent.session_id == checkout.id)).first()
        if already or checkout.status == CheckoutSessionStatus.COMPLETED.value:
            logger.info("Duplicate webhook for session %s ignored", checkout.id)
            return _duplicate_result(session, checkout)

        if checkout.status == CheckoutSessionStatus.EXPIRED.value:
            raise InvalidStateError("Checkout session expired", {"session_id": checkout.id})

        intent = session.get(PaymentIntent, checkout.intent_id)
        payment = session.get(Payment, intent.payment_id) if intent else None
        if intent is None or payment is None:
            raise InvalidStateError(
                "Webhook session has no resolvable intent", {"session_id": checkout.id}
            )

        now = utcnow()
        event = WebhookEvent(
            session_id=checkout.id,
            outcome=outcome.value,
            payload=json.dumps(
                {"session_id": checkout.id, "outcome": outcome.value, "failure_reason": failure_reason}
            ),
        )
        session.add(event)

        receipt = settlement = None
        if outcome == WebhookOutcome.SUCCEEDED:
            if payment.is_paid:
                # Settled through another path; nothing left to collect
                intent.status = IntentStatus.CANCELED.value
            else:
                intent.status = IntentStatus.SUCCEEDED.value
                payment.status = PaymentStatus.PAID.value
                payment.paid_at = now
                for invoice in invoices_for_payment(session, payment.id):
                    if invoice.status == InvoiceStatus.OPEN.value:
                        invoice.status = InvoiceStatus.PAID.value
                        invoice.paid_at = now
                        session.add(invoice)
                receipt, settlement = _mint_receipt_and_settlement(session, payment, now)
                record_event(
                    session,
                    ActivityType.PAYMENT_POSTED,
                    f"Payment {payment.id} settled via checkout session {checkout.id}",
                    {"payment_id": payment.id, "amount": payment.amount, "session_id": checkout.id},
                )
        else:
            if intent.status != IntentStatus.SUCCEEDED.value:
                intent.status = IntentStatus.FAILED.value
            if payment.status == PaymentStatus.PENDING.value:
                payment.status = PaymentStatus.FAILED.value
                if failure_reason:
                    base = payment.description or "Charge"
                    payment.description = f"{base} (failed: {failure_reason})"
                for invoice in invoices_for_payment(session, payment.id):
                    if invoice.status == InvoiceStatus.OPEN.value and failure_reason:
                        invoice.notes = f"Payment attempt failed: {failure_reason}"
                        session.add(invoice)

        intent.updated_at = now
        payment.updated_at = now
        checkout.status = CheckoutSessionStatus.COMPLETED.value
        checkout.completed_at = now
        checkout.last_webhook_status = outcome.value
        checkout.failure_reason = failure_reason
        event.processed = True
        session.add_all([intent, payment, checkout, event])

        try:
            session.commit()
        except IntegrityError:
            # Another worker recorded this session first
            session.rollback()
            logger.warning("Concurrent webhook for session %s; keeping the first", checkout_id)
            return _duplicate_result(session, get_checkout_session(session, checkout_id))

        for obj in (checkout, intent, payment, receipt, settlement):
            if obj is not None:
                session.refresh(obj)
        logger.info(
            "Webhook %s for session %s → payment %s is %s",
            outcome.value, checkout.id, payment.id, payment.status,
        )
        return WebhookResult(checkout, intent, payment, receipt=receipt, settlement=settlement)


# ------------------------
# Synchronous shortcuts
# ------------------------
def pay_outstanding(session: Session, payment_id: int) -> Tuple[PaymentSession, PaymentIntent]:
    """'Pay now': intent → session → succeeded webhook in one call."""
    payment = get_payment(session, payment_id)
    if payment.is_paid:
        raise InvalidStateError("Payment already paid", {"payment_id": payment_id})

    intent = find_open_intent(session, payment.id)
    if intent is None:
        _retire_failed_intents(session, payment)
        intent = _build_intent(payment)

    checkout = start_session(session, intent.id, fallback_intent=intent)
    result = process_webhook(session, checkout.id, WebhookOutcome.SUCCEEDED)
    return result.checkout, result.intent


def _get_student(session: Session, student_id: int) -> Student:
    student = session.get(Student, student_id)
    if not student:
        raise NotFoundError("Student", student_id)
    return student


def charge_stored_card(session: Session, student_id: int, amount: int, description: str) -> Payment:
    """Direct on-file charge: the Payment is born paid, no intent or session."""
    _require_positive(amount)
    _get_student(session, student_id)
    payment = _create_payment_with_invoice(
        session,
        student_id,
        amount,
        method=PaymentMethod.CREDIT_CARD.value,
        description=description,
        due_date=utcnow(),
        paid=True,
    )
    record_event(
        session,
        ActivityType.PAYMENT_POSTED,
        f"Stored card charged for student {student_id}",
        {"payment_id": payment.id, "amount": amount},
    )
    session.commit()
    session.refresh(payment)
    return payment


def create_one_time_payment(
    session: Session, student_id: int, amount: int, method: str, description: str
) -> Payment:
    """Paid immediately for credit cards, otherwise left pending for manual settlement."""
    _require_positive(amount)
    _get_student(session, student_id)
    method = PaymentMethod(method).value
    paid = method == PaymentMethod.CREDIT_CARD.value
    payment = _create_payment_with_invoice(
        session,
        student_id,
        amount,
        method=method,
        description=description,
        due_date=utcnow() if paid else None,
        paid=paid,
    )
    if paid:
        record_event(
            session,
            ActivityType.PAYMENT_POSTED,
            f"One-time card payment for student {student_id}",
            {"payment_id": payment.id, "amount": amount},
        )
    session.commit()
    session.refresh(payment)
    return payment
