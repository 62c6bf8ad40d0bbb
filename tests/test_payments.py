import hashlib
import hmac
import json
import threading
import time
from datetime import datetime

import pytest
from sqlmodel import Session, select

from core.config import settings
from core.database import build_engine, create_db_and_tables
from core.errors import InvalidStateError, NotFoundError
from models.models import (
    ActivityEvent,
    Invoice,
    Payment,
    PaymentIntent,
    PaymentSession,
    Receipt,
    Settlement,
    Student,
    TrainingClass,
)
from services.billing_gate import latest_payment_for_enrollment
from services.enrollment_service import enroll_student
from services.payment_service import (
    _build_intent,
    create_intent_for_payment,
    process_webhook,
    settlement_fee,
    start_session,
)


@pytest.fixture()
def enrolled_payment(session, make_class, make_student):
    """The pending 9500-cent obligation created by a fresh enrollment."""
    result = enroll_student(session, make_student().id, make_class().id)
    return latest_payment_for_enrollment(session, result.enrollment.id)


def _checkout(client, payment_id):
    intent = client.post(f"/payments/{payment_id}/intent").json()
    return intent, client.post(f"/intents/{intent['intent_id']}/session").json()


def test_settlement_fee_rounds_half_up():
    assert settlement_fee(9500) == 475
    assert settlement_fee(10) == 1  # 0.5 rounds up
    assert settlement_fee(9) == 0


def test_webhook_success_settles_payment(client, session, enrolled_payment):
    intent, checkout = _checkout(client, enrolled_payment.id)
    assert intent["status"] == "requires_payment_method"
    assert intent["amount"] == 9500
    assert intent["client_secret"]
    assert checkout["status"] == "open"
    assert checkout["checkout_url"].startswith(settings.CHECKOUT_BASE_URL)

    r = client.post("/webhooks/payment", json={"session_id": checkout["session_id"], "outcome": "succeeded"})
    assert r.status_code == 200
    body = r.json()
    assert body["payment_status"] == "paid"
    assert body["intent_status"] == "succeeded"
    assert body["duplicate"] is False
    assert body["settlement"]["gross"] == 9500
    assert body["settlement"]["fees"] == 475
    assert body["settlement"]["net"] == 9025
    assert body["settlement"]["receipt_ids"] == [body["receipt"]["id"]]

    session.expire_all()
    payment = session.get(Payment, enrolled_payment.id)
    assert payment.status == "paid"
    assert payment.paid_at is not None
    invoice = session.exec(select(Invoice).where(Invoice.payment_id == payment.id)).one()
    assert invoice.status == "paid"
    checkout_row = session.get(PaymentSession, checkout["session_id"])
    assert checkout_row.status == "completed"
    assert checkout_row.last_webhook_status == "succeeded"
    posted = session.exec(select(ActivityEvent).where(ActivityEvent.type == "payment_posted")).all()
    assert len(posted) == 1


def test_webhook_is_idempotent(client, session, enrolled_payment):
    _, checkout = _checkout(client, enrolled_payment.id)
    payload = {"session_id": checkout["session_id"], "outcome": "succeeded"}

    first = client.post("/webhooks/payment", json=payload).json()
    second = client.post("/webhooks/payment", json=payload).json()
    # a late contradicting delivery changes nothing either
    third = client.post("/webhooks/payment", json={**payload, "outcome": "failed"}).json()

    assert first["duplicate"] is False
    assert second["duplicate"] is True
    assert third["duplicate"] is True
    assert third["payment_status"] == "paid"
    assert second["receipt"]["id"] == first["receipt"]["id"]
    assert len(session.exec(select(Receipt)).all()) == 1
    assert len(session.exec(select(Settlement)).all()) == 1


def test_webhook_failure_then_retry(client, session, enrolled_payment):
    intent, checkout = _checkout(client, enrolled_payment.id)
    r = client.post(
        "/webhooks/payment",
        json={"session_id": checkout["session_id"], "outcome": "failed", "failure_reason": "card_declined"},
    )
    assert r.json()["payment_status"] == "failed"
    assert r.json()["intent_status"] == "failed"

    session.expire_all()
    payment = session.get(Payment, enrolled_payment.id)
    assert "card_declined" in payment.description
    invoice = session.exec(select(Invoice).where(Invoice.payment_id == payment.id)).one()
    assert invoice.status == "open"
    assert "card_declined" in invoice.notes

    enrollment_id = payment.enrollment_id
    gate = client.get(f"/payments/{enrollment_id}/billing-status").json()
    assert gate["status"] == "overdue"

    retry = client.post(f"/payments/{payment.id}/intent").json()
    assert retry["intent_id"] != intent["intent_id"]
    session.expire_all()
    # a new attempt alone does not clear the debt
    assert session.get(Payment, payment.id).status == "failed"
    assert session.get(PaymentIntent, intent["intent_id"]).status == "canceled"
    assert client.get(f"/payments/{enrollment_id}/billing-status").json()["status"] == "overdue"

    checkout = client.post(f"/intents/{retry['intent_id']}/session").json()
    settled = client.post("/webhooks/payment", json={"session_id": checkout["session_id"], "outcome": "succeeded"})
    assert settled.json()["payment_status"] == "paid"
    assert client.get(f"/payments/{enrollment_id}/billing-status").json()["status"] == "paid"


def test_open_intent_and_session_are_reused(client, enrolled_payment):
    intent, checkout = _checkout(client, enrolled_payment.id)
    again = client.post(f"/payments/{enrolled_payment.id}/intent").json()
    assert again["intent_id"] == intent["intent_id"]
    assert again["status"] == "processing"

    same = client.post(f"/intents/{intent['intent_id']}/session").json()
    assert same["session_id"] == checkout["session_id"]


def test_intent_for_paid_payment_is_invalid(client, enrolled_payment):
    assert client.post(f"/payments/{enrolled_payment.id}/pay-now").status_code == 200
    r = client.post(f"/payments/{enrolled_payment.id}/intent")
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_state"


def test_session_for_unknown_intent_is_404(client):
    assert client.post("/intents/777/session").status_code == 404


def test_start_session_persists_fallback_intent(session, enrolled_payment):
    intent = _build_intent(enrolled_payment)
    checkout = start_session(session, None, fallback_intent=intent)
    assert intent.id is not None
    assert checkout.intent_id == intent.id
    assert intent.status == "processing"

    with pytest.raises(NotFoundError):
        start_session(session, 9999)


def test_webhook_without_resolvable_intent(session, enrolled_payment):
    intent = create_intent_for_payment(session, enrolled_payment.id)
    checkout = start_session(session, intent.id)
    checkout.intent_id = 99999
    session.add(checkout)
    session.commit()

    with pytest.raises(InvalidStateError):
        process_webhook(session, checkout.id, "succeeded")


def test_webhook_unknown_session_is_404(client):
    r = client.post("/webhooks/payment", json={"session_id": 31337, "outcome": "succeeded"})
    assert r.status_code == 404


def test_pay_now_runs_the_whole_pipeline(client, session, enrolled_payment):
    r = client.post(f"/payments/{enrolled_payment.id}/pay-now")
    assert r.status_code == 200
    assert r.json()["intent"]["status"] == "succeeded"
    assert r.json()["session"]["status"] == "completed"

    session.expire_all()
    assert session.get(Payment, enrolled_payment.id).status == "paid"
    assert len(session.exec(select(Receipt)).all()) == 1

    assert client.post(f"/payments/{enrolled_payment.id}/pay-now").status_code == 409


def test_expired_session_sweep(client, session, enrolled_payment):
    intent, checkout = _checkout(client, enrolled_payment.id)
    row = session.get(PaymentSession, checkout["session_id"])
    row.expires_at = datetime(2000, 1, 1)
    session.add(row)
    session.commit()

    assert client.post("/payments/sessions/expire").json() == {"expired": 1}
    session.expire_all()
    assert session.get(PaymentIntent, intent["intent_id"]).status == "canceled"

    late = client.post("/webhooks/payment", json={"session_id": checkout["session_id"], "outcome": "succeeded"})
    assert late.status_code == 409

    fresh = client.post(f"/payments/{enrolled_payment.id}/intent").json()
    assert fresh["intent_id"] != intent["intent_id"]


def test_adhoc_enrollment_intent(client, session, enrolled_payment):
    r = client.post(
        f"/enrollments/{enrolled_payment.enrollment_id}/intent",
        json={"amount": 4500, "method": "credit_card", "description": "Drop-in"},
    )
    assert r.status_code == 201
    assert r.json()["amount"] == 4500
    payments = session.exec(select(Payment).where(Payment.enrollment_id == enrolled_payment.enrollment_id)).all()
    assert len(payments) == 2


def test_charge_stored_card_is_paid_immediately(client, session, make_student):
    student = make_student()
    r = client.post("/payments/charge-card", json={"student_id": student.id, "amount": 12000})
    assert r.status_code == 201
    assert r.json()["status"] == "paid"
    assert r.json()["method"] == "credit_card"
    assert session.exec(select(PaymentIntent)).all() == []


def test_one_time_payment_paid_only_for_cards(client, make_student):
    student = make_student()
    card = client.post("/payments/one-time", json={"student_id": student.id, "amount": 5000, "method": "credit_card"})
    pix = client.post("/payments/one-time", json={"student_id": student.id, "amount": 5000, "method": "pix"})
    assert card.json()["status"] == "paid"
    assert pix.json()["status"] == "pending"

    outstanding = client.get("/payments/outstanding", params={"student_id": student.id}).json()
    assert [item["payment"]["id"] for item in outstanding] == [pix.json()["id"]]
    assert outstanding[0]["status"] == "pending"


def test_non_positive_amount_is_rejected(client, make_student):
    r = client.post("/payments/charge-card", json={"student_id": make_student().id, "amount": 0})
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"


def _sign(payload: str, secret: str) -> str:
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def test_signed_webhook(client, enrolled_payment, monkeypatch):
    secret = "whsec_test_secret"
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", secret)
    _, checkout = _checkout(client, enrolled_payment.id)
    payload = json.dumps({"session_id": checkout["session_id"], "outcome": "succeeded"})
    headers = {"Content-Type": "application/json"}

    missing = client.post("/webhooks/payment", content=payload, headers=headers)
    assert missing.status_code == 400

    forged = client.post(
        "/webhooks/payment", content=payload, headers={**headers, "Stripe-Signature": _sign(payload, "wrong")}
    )
    assert forged.status_code == 400

    ok = client.post(
        "/webhooks/payment", content=payload, headers={**headers, "Stripe-Signature": _sign(payload, secret)}
    )
    assert ok.status_code == 200
    assert ok.json()["payment_status"] == "paid"


def test_non_utf8_webhook_body_is_rejected(client):
    r = client.post(
        "/webhooks/payment", content=b"\xff\xfe{}", headers={"Content-Type": "application/json"}
    )
    assert r.status_code == 400


def test_concurrent_webhook_deliveries_settle_once(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'webhooks.db'}")
    create_db_and_tables(engine)
    with Session(engine) as db:
        training_class = TrainingClass(title="Popular", capacity=5, schedule=[])
        student = Student(principal_id="p-webhook", full_name="Ana")
        db.add_all([training_class, student])
        db.commit()
        enrollment = enroll_student(db, student.id, training_class.id).enrollment
        payment = latest_payment_for_enrollment(db, enrollment.id)
        checkout_id = start_session(db, create_intent_for_payment(db, payment.id).id).id

    results, errors = [], []

    def deliver():
        try:
            with Session(engine) as db:
                results.append(process_webhook(db, checkout_id, "succeeded").duplicate)
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=deliver) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sorted(results) == [False] + [True] * 7
    with Session(engine) as db:
        assert len(db.exec(select(Receipt)).all()) == 1
        assert len(db.exec(select(Settlement)).all()) == 1
        assert db.exec(select(Payment)).one().status == "paid"
    engine.dispose()
