# services/billing_gate.py
"""
Billing Gate: classify an enrollment's billing state as paid / pending / overdue.

``classify_payment`` is a pure function of the Payment and its Invoice;
``resolve_payment_status`` loads the most recent Payment for an enrollment
and applies it.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from models.models import (
    BillingGateStatus,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentStatus,
    utcnow,
)

GATE_LABELS = {
    "none": "No active charge",
    BillingGateStatus.PAID: "Paid",
    BillingGateStatus.PENDING: "Pending",
    BillingGateStatus.OVERDUE: "Overdue",
}


@dataclass(frozen=True)
class GateResult:
    status: BillingGateStatus
    label: str

    @property
    def is_paid(self) -> bool:
        return self.status == BillingGateStatus.PAID


def classify_payment(
    payment: Optional[Payment],
    invoice: Optional[Invoice] = None,
    now: Optional[datetime] = None,
) -> GateResult:
    if payment is None:
        # Permissive default: nothing has been charged yet
        return GateResult(BillingGateStatus.PAID, GATE_LABELS["none"])

    if payment.status == PaymentStatus.PAID.value or (
        invoice is not None and invoice.status == InvoiceStatus.PAID.value
    ):
        return GateResult(BillingGateStatus.PAID, GATE_LABELS[BillingGateStatus.PAID])

    if payment.status == PaymentStatus.FAILED.value:
        return GateResult(BillingGateStatus.OVERDUE, GATE_LABELS[BillingGateStatus.OVERDUE])

    now = now or utcnow()
    if payment.due_date < now:
        return GateResult(BillingGateStatus.OVERDUE, GATE_LABELS[BillingGateStatus.OVERDUE])
    return GateResult(BillingGateStatus.PENDING, GATE_LABELS[BillingGateStatus.PENDING])


def latest_payment_for_enrollment(session: Session, enrollment_id: int) -> Optional[Payment]:
    statement = (
        select(Payment)
        .where(Payment.enrollment_id == enrollment_id)
        .order_by(Payment.id.desc())
    )
    return session.exec(statement).first()


def latest_invoice_for_payment(session: Session, payment_id: int) -> Optional[Invoice]:
    statement = select(Invoice).where(Invoice.payment_id == payment_id).order_by(Invoice.id.desc())
    return session.exec(statement).first()


def resolve_payment_status(session: Session, enrollment_id: int, now: Optional[datetime] = None) -> GateResult:
    payment = latest_payment_for_enrollment(session, enrollment_id)
    invoice = latest_invoice_for_payment(session, payment.id) if payment else None
    return classify_payment(payment, invoice, now)
