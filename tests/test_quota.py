import threading
from datetime import date, datetime, timedelta

import pytest
from sqlmodel import Session, select

from core.config import settings
from core.database import build_engine, create_db_and_tables
from core.errors import QuotaExceededError
from models.models import ActivityEvent, ClassSession, Payment, PlanOption, SessionBooking, Student, TrainingClass
from services.enrollment_service import enroll_student
from services.plan_service import select_plan
from services.quota_service import book_session, reinstate_for_week, week_start, weekly_usage

# 2030-01-07 is a Monday
WEEK_W = datetime(2030, 1, 7)


def test_week_start_is_monday_midnight():
    assert week_start(date(2030, 1, 7)) == datetime(2030, 1, 7)
    assert week_start(datetime(2030, 1, 9, 18, 30)) == datetime(2030, 1, 7)
    # Sunday belongs to the week that started six days earlier
    assert week_start(date(2030, 1, 13)) == datetime(2030, 1, 7)


def test_two_per_week_plan(client, make_class, make_session, make_student, subscribe):
    training_class = make_class()
    student = make_student()
    subscribe(student, weekly=2)

    monday = make_session(training_class, WEEK_W + timedelta(hours=6))
    wednesday = make_session(training_class, WEEK_W + timedelta(days=2, hours=18))
    friday = make_session(training_class, WEEK_W + timedelta(days=4, hours=6))
    next_monday = make_session(training_class, WEEK_W + timedelta(days=7, hours=6))

    assert client.post(f"/sessions/{monday.id}/book", json={"student_id": student.id}).status_code == 201
    r = client.post(f"/sessions/{wednesday.id}/book", json={"student_id": student.id})
    assert r.status_code == 201
    assert r.json()["week_start"].startswith("2030-01-07T00:00:00")

    third = client.post(f"/sessions/{friday.id}/book", json={"student_id": student.id})
    assert third.status_code == 409
    assert third.json()["error"] == "quota_exceeded"
    assert third.json()["limit"] == 2

    assert client.post(f"/sessions/{next_monday.id}/book", json={"student_id": student.id}).status_code == 201

    usage = client.get(f"/students/{student.id}/weekly-usage", params={"date": "2030-01-09"}).json()
    assert usage["used"] == 2
    assert usage["limit"] == 2
    assert usage["remaining"] == 0


def test_quota_rejection_is_logged(session, make_class, make_session, make_student, subscribe):
    training_class = make_class()
    student = make_student()
    subscribe(student, weekly=1)
    book_session(session, make_session(training_class).id, student.id)

    with pytest.raises(QuotaExceededError):
        book_session(session, make_session(training_class, WEEK_W + timedelta(days=1)).id, student.id)

    rejections = session.exec(select(ActivityEvent).where(ActivityEvent.type == "validation_error")).all()
    assert len(rejections) == 1


def test_no_plan_means_no_allowance(client, make_class, make_session, make_student):
    student = make_student()
    class_session = make_session(make_class())
    r = client.post(f"/sessions/{class_session.id}/book", json={"student_id": student.id})
    assert r.status_code == 409
    assert r.json()["limit"] == 0


def test_double_booking_same_session_conflicts(client, make_class, make_session, make_student, subscribe):
    student = make_student()
    subscribe(student, weekly=3)
    class_session = make_session(make_class())

    assert client.post(f"/sessions/{class_session.id}/book", json={"student_id": student.id}).status_code == 201
    r = client.post(f"/sessions/{class_session.id}/book", json={"student_id": student.id})
    assert r.status_code == 409
    assert r.json()["error"] == "conflict"


def test_book_unknown_session_is_404(client, make_student):
    r = client.post("/sessions/404/book", json={"student_id": make_student().id})
    assert r.status_code == 404


def test_cancel_booking_returns_the_slot(client, make_class, make_session, make_student, subscribe):
    student = make_student()
    subscribe(student, weekly=1)
    training_class = make_class()
    first = make_session(training_class)
    second = make_session(training_class, WEEK_W + timedelta(days=3))

    booking_id = client.post(f"/sessions/{first.id}/book", json={"student_id": student.id}).json()["booking_id"]
    assert client.post(f"/sessions/{second.id}/book", json={"student_id": student.id}).status_code == 409

    r = client.delete(f"/bookings/{booking_id}")
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"
    # idempotent
    assert client.delete(f"/bookings/{booking_id}").status_code == 200

    assert client.post(f"/sessions/{second.id}/book", json={"student_id": student.id}).status_code == 201


def test_reinstated_credit_raises_remaining(client, session, make_class, make_session, make_student, subscribe):
    student = make_student()
    subscribe(student, weekly=1)
    training_class = make_class()
    book_session(session, make_session(training_class).id, student.id)
    assert weekly_usage(session, student.id, WEEK_W).remaining == 0

    r = client.post(
        f"/students/{student.id}/reinstatements",
        json={"week_start": "2030-01-10", "amount": 1, "note": "Class cancelled by the gym"},
    )
    assert r.status_code == 201
    assert r.json()["week_start"].startswith("2030-01-07")

    usage = weekly_usage(session, student.id, WEEK_W)
    assert usage.used == 0
    assert usage.remaining == 1


def test_reinstatement_amount_must_be_positive(session, make_student):
    from core.errors import ValidationError

    with pytest.raises(ValidationError):
        reinstate_for_week(session, make_student().id, WEEK_W, amount=0)


def test_switching_plan_changes_limit(client, session, make_student, subscribe):
    student = make_student()
    subscribe(student, weekly=2)
    subscribe(student, weekly=4)
    assert weekly_usage(session, student.id, WEEK_W).limit == 4


def test_overdue_balance_blocks_booking_when_enabled(
    client, session, make_class, make_session, make_student, subscribe, monkeypatch
):
    monkeypatch.setattr(settings, "BOOKING_REQUIRES_PAID_BALANCE", True)
    student = make_student()
    subscribe(student, weekly=3)
    training_class = make_class()
    enroll_student(session, student.id, training_class.id)

    payment = session.exec(select(Payment).where(Payment.student_id == student.id)).one()
    payment.due_date = datetime(2000, 1, 1)
    session.add(payment)
    session.commit()

    r = client.post(f"/sessions/{make_session(training_class).id}/book", json={"student_id": student.id})
    assert r.status_code == 402
    assert r.json()["error"] == "payment_required"


def test_credit_before_any_booking_extends_the_week(session, make_class, make_session, make_student, subscribe):
    student = make_student()
    subscribe(student, weekly=2)
    reinstate_for_week(session, student.id, WEEK_W, amount=1)

    usage = weekly_usage(session, student.id, WEEK_W)
    assert usage.used == -1
    assert usage.remaining == 3

    training_class = make_class()
    for day in range(3):
        book_session(session, make_session(training_class, WEEK_W + timedelta(days=day)).id, student.id)
    assert weekly_usage(session, student.id, WEEK_W).remaining == 0

    with pytest.raises(QuotaExceededError):
        book_session(session, make_session(training_class, WEEK_W + timedelta(days=3)).id, student.id)


def test_new_intent_on_failed_payment_keeps_booking_blocked(
    client, session, make_class, make_session, make_student, subscribe, monkeypatch
):
    monkeypatch.setattr(settings, "BOOKING_REQUIRES_PAID_BALANCE", True)
    student = make_student()
    subscribe(student, weekly=3)
    training_class = make_class()
    enroll_student(session, student.id, training_class.id)
    payment = session.exec(select(Payment).where(Payment.student_id == student.id)).one()

    intent = client.post(f"/payments/{payment.id}/intent").json()
    checkout = client.post(f"/intents/{intent['intent_id']}/session").json()
    client.post("/webhooks/payment", json={"session_id": checkout["session_id"], "outcome": "failed"})

    class_session = make_session(training_class)
    assert client.post(f"/sessions/{class_session.id}/book", json={"student_id": student.id}).status_code == 402

    client.post(f"/payments/{payment.id}/intent")
    assert client.post(f"/sessions/{class_session.id}/book", json={"student_id": student.id}).status_code == 402


def test_concurrent_bookings_respect_the_last_slot(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'quota.db'}")
    create_db_and_tables(engine)
    with Session(engine) as db:
        training_class = TrainingClass(title="Popular", capacity=20, schedule=[])
        student = Student(principal_id="p-quota", full_name="Ana")
        option = PlanOption(name="2x per week", weekly_classes=2)
        db.add_all([training_class, student, option])
        db.commit()
        select_plan(db, student.id, option.id)
        class_sessions = [
            ClassSession(
                class_id=training_class.id,
                start_time=WEEK_W + timedelta(days=day, hours=6),
                end_time=WEEK_W + timedelta(days=day, hours=7),
                capacity=20,
            )
            for day in range(6)
        ]
        db.add_all(class_sessions)
        db.commit()
        student_id = student.id
        session_ids = [s.id for s in class_sessions]
        # one slot left
        book_session(db, session_ids[0], student_id)

    accepted, refused, errors = [], [], []

    def worker(session_id):
        try:
            with Session(engine) as db:
                accepted.append(book_session(db, session_id, student_id).id)
        except QuotaExceededError:
            refused.append(session_id)
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(sid,)) for sid in session_ids[1:]]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(accepted) == 1
    assert len(refused) == 4
    with Session(engine) as db:
        booked = db.exec(select(SessionBooking).where(SessionBooking.status == "booked")).all()
    assert len(booked) == 2
    engine.dispose()
