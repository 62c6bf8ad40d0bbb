# models/models.py
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum

from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, JSON, Index, UniqueConstraint, text


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention for every datetime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================
# ENUMS
# ============================================================
class EnrollmentStatus(str, Enum):
    ACTIVE = "active"
    WAITLIST = "waitlist"
    CANCELLED = "cancelled"


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"


class BookingStatus(str, Enum):
    BOOKED = "booked"
    CANCELLED = "cancelled"


class PlanBilling(str, Enum):
    UPFRONT = "upfront"
    RECURRING = "recurring"


class StudentPlanStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    PAUSED = "paused"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    PIX = "pix"
    CASH = "cash"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class InvoiceStatus(str, Enum):
    OPEN = "open"
    PAID = "paid"
    VOID = "void"


class IntentStatus(str, Enum):
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class CheckoutSessionStatus(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"
    EXPIRED = "expired"


class WebhookOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class BillingGateStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"


class ActivityType(str, Enum):
    ENROLLMENT_CREATED = "enrollment_created"
    ENROLLMENT_CANCELLED = "enrollment_cancelled"
    PAYMENT_POSTED = "payment_posted"
    ATTENDANCE_MARKED = "attendance_marked"
    VALIDATION_ERROR = "validation_error"




# ============================================================
# STUDENT (identity-bound profile)
# ============================================================
class Student(SQLModel, table=True):
    __tablename__ = "student"

    id: Optional[int] = Field(default=None, primary_key=True)
    principal_id: str = Field(max_length=128, unique=True, index=True, nullable=False)
    full_name: str = Field(max_length=120)
    email: Optional[str] = Field(default=None, max_length=120, index=True)
    created_at: datetime = Field(default_factory=utcnow)

    enrollments: List["Enrollment"] = Relationship(back_populates="student")
    payments: List["Payment"] = Relationship(back_populates="student")
    plans: List["StudentPlan"] = Relationship(back_populates="student")


# ============================================================
# CATALOG: TRAINING CLASS / CLASS SESSION / PLAN OPTION
# ============================================================
class TrainingClass(SQLModel, table=True):
    __tablename__ = "training_class"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=120)
    description: Optional[str] = Field(default=None, max_length=1000)
    capacity: int = Field(gt=0)
    # [{day, start, end, location, start_date?, end_date?}]
    schedule: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    sessions: List["ClassSession"] = Relationship(back_populates="training_class")
    enrollments: List["Enrollment"] = Relationship(back_populates="training_class")


class ClassSession(SQLModel, table=True):
    __tablename__ = "class_session"

    id: Optional[int] = Field(default=None, primary_key=True)
    class_id: int = Field(foreign_key="training_class.id", nullable=False, index=True)
    start_time: datetime = Field(index=True)
    end_time: datetime
    capacity: int = Field(gt=0)
    location: str = Field(default="", max_length=120)
    coach_notes: Optional[str] = Field(default=None, max_length=500)

    training_class: Optional["TrainingClass"] = Relationship(back_populates="sessions")


class PlanOption(SQLModel, table=True):
    __tablename__ = "plan_option"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=80)
    weekly_classes: int = Field(gt=0)
    duration_months: int = Field(default=1, gt=0)
    price_monthly: int = Field(default=0, ge=0)
    price_upfront: int = Field(default=0, ge=0)


# ============================================================
# ENROLLMENT / ATTENDANCE
# ============================================================
class Enrollment(SQLModel, table=True):
    __tablename__ = "enrollment"
    __table_args__ = (
        Index(
            "uq_enrollment_live",
            "student_id",
            "class_id",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="student.id", nullable=False, index=True)
    class_id: int = Field(foreign_key="training_class.id", nullable=False, index=True)
    status: str = Field(default=EnrollmentStatus.ACTIVE.value, max_length=20, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    student: Optional["Student"] = Relationship(back_populates="enrollments")
    training_class: Optional["TrainingClass"] = Relationship(back_populates="enrollments")

    @property
    def is_live(self) -> bool:
        return self.status != EnrollmentStatus.CANCELLED.value


class Attendance(SQLModel, table=True):
    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("session_id", "enrollment_id", name="uq_attendance_session_enrollment"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: int = Field(foreign_key="class_session.id", nullable=False, index=True)
    enrollment_id: int = Field(foreign_key="enrollment.id", nullable=False, index=True)
    status: str = Field(default=AttendanceStatus.PRESENT.value, max_length=20)
    checked_in_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=255)


# ============================================================
# WEEKLY QUOTA LEDGER
# ============================================================
class StudentPlan(SQLModel, table=True):
    __tablename__ = "student_plan"
    __table_args__ = (
        Index(
            "uq_student_plan_active",
            "student_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="student.id", nullable=False, index=True)
    plan_option_id: int = Field(foreign_key="plan_option.id", nullable=False)
    billing: str = Field(default=PlanBilling.RECURRING.value, max_length=20)
    status: str = Field(default=StudentPlanStatus.ACTIVE.value, max_length=20, index=True)
    started_at: datetime = Field(default_factory=utcnow)

    student: Optional["Student"] = Relationship(back_populates="plans")
    plan_option: Optional["PlanOption"] = Relationship()


class SessionBooking(SQLModel, table=True):
    __tablename__ = "session_booking"
    __table_args__ = (
        Index(
            "uq_session_booking_live",
            "student_id",
            "session_id",
            unique=True,
            sqlite_where=text("status = 'booked'"),
            postgresql_where=text("status = 'booked'"),
        ),
        Index("ix_session_booking_student_week", "student_id", "week_start"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="student.id", nullable=False)
    session_id: int = Field(foreign_key="class_session.id", nullable=False, index=True)
    week_start: datetime
    status: str = Field(default=BookingStatus.BOOKED.value, max_length=20)
    created_at: datetime = Field(default_factory=utcnow)


class CreditReinstatement(SQLModel, table=True):
    __tablename__ = "credit_reinstatement"
    __table_args__ = (Index("ix_credit_reinstatement_student_week", "student_id", "week_start"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="student.id", nullable=False)
    week_start: datetime
    amount: int = Field(gt=0)
    note: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utcnow)


# ============================================================
# PAYMENT PIPELINE
# ============================================================
class Payment(SQLModel, table=True):
    __tablename__ = "payment"

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="student.id", nullable=False, index=True)
    enrollment_id: Optional[int] = Field(default=None, foreign_key="enrollment.id", index=True)

    amount: int = Field(ge=0)  # minor units
    currency: str = Field(default="BRL", max_length=3)
    method: str = Field(default=PaymentMethod.PIX.value, max_length=20)
    status: str = Field(default=PaymentStatus.PENDING.value, max_length=20, index=True)
    due_date: datetime
    paid_at: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    student: Optional["Student"] = Relationship(back_populates="payments")
    invoices: List["Invoice"] = Relationship(back_populates="payment")
    intents: List["PaymentIntent"] = Relationship(back_populates="payment")

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID.value


class Invoice(SQLModel, table=True):
    __tablename__ = "invoice"

    id: Optional[int] = Field(default=None, primary_key=True)
    payment_id: int = Field(foreign_key="payment.id", nullable=False, index=True)
    enrollment_id: Optional[int] = Field(default=None, foreign_key="enrollment.id", index=True)

    reference: str = Field(unique=True, index=True, max_length=100)
    total: int = Field(ge=0)
    currency: str = Field(default="BRL", max_length=3)
    status: str = Field(default=InvoiceStatus.OPEN.value, max_length=20)
    issue_date: datetime = Field(default_factory=utcnow)
    paid_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    payment: "Payment" = Relationship(back_populates="invoices")


class PaymentIntent(SQLModel, table=True):
    __tablename__ = "payment_intent"

    id: Optional[int] = Field(default=None, primary_key=True)
    payment_id: int = Field(foreign_key="payment.id", nullable=False, index=True)
    enrollment_id: Optional[int] = Field(default=None, foreign_key="enrollment.id", index=True)

    amount: int = Field(ge=0)
    currency: str = Field(default="BRL", max_length=3)
    payment_method: str = Field(default=PaymentMethod.PIX.value, max_length=20)
    status: str = Field(default=IntentStatus.REQUIRES_PAYMENT_METHOD.value, max_length=30)
    client_secret: str = Field(max_length=255)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    payment: "Payment" = Relationship(back_populates="intents")
    sessions: List["PaymentSession"] = Relationship(back_populates="intent")


class PaymentSession(SQLModel, table=True):
    __tablename__ = "payment_session"

    id: Optional[int] = Field(default=None, primary_key=True)
    intent_id: int = Field(foreign_key="payment_intent.id", nullable=False, index=True)
    status: str = Field(default=CheckoutSessionStatus.OPEN.value, max_length=20, index=True)
    checkout_url: str = Field(max_length=500)
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    completed_at: Optional[datetime] = None
    last_webhook_status: Optional[str] = Field(default=None, max_length=20)
    failure_reason: Optional[str] = Field(default=None, max_length=500)

    intent: "PaymentIntent" = Relationship(back_populates="sessions")


# ============================================================
# WEBHOOK EVENT LOG (idempotency record, one per checkout session)
# ============================================================
class WebhookEvent(SQLModel, table=True):
    __tablename__ = "webhook_event"

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: int = Field(foreign_key="payment_session.id", unique=True, index=True)
    outcome: str = Field(max_length=20)
    payload: str = Field()
    processed: bool = Field(default=False)
    processing_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Receipt(SQLModel, table=True):
    __tablename__ = "receipt"

    id: Optional[int] = Field(default=None, primary_key=True)
    payment_id: int = Field(foreign_key="payment.id", nullable=False, unique=True, index=True)
    enrollment_id: Optional[int] = Field(default=None, foreign_key="enrollment.id")
    reference: str = Field(unique=True, max_length=100)
    download_url: str = Field(max_length=500)
    issued_at: datetime = Field(default_factory=utcnow)


class Settlement(SQLModel, table=True):
    __tablename__ = "settlement"

    id: Optional[int] = Field(default=None, primary_key=True)
    period: str = Field(max_length=50)
    gross: int
    fees: int
    net: int
    receipt_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    deposited_at: datetime = Field(default_factory=utcnow)


# ============================================================
# ACTIVITY LOG
# ============================================================
class ActivityEvent(SQLModel, table=True):
    __tablename__ = "activity_event"

    id: Optional[int] = Field(default=None, primary_key=True)
    type: str = Field(max_length=40, index=True)
    message: str = Field(max_length=500)
    context: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)


# ============================================================
# EXPORTS
# ============================================================
__all__ = [
    "utcnow",
    "Student",
    "TrainingClass",
    "ClassSession",
    "PlanOption",
    "Enrollment",
    "Attendance",
    "StudentPlan",
    "SessionBooking",
    "CreditReinstatement",
    "Payment",
    "Invoice",
    "PaymentIntent",
    "PaymentSession",
    "WebhookEvent",
    "Receipt",
    "Settlement",
    "ActivityEvent",
    "EnrollmentStatus",
    "AttendanceStatus",
    "BookingStatus",
    "PlanBilling",
    "StudentPlanStatus",
    "PaymentMethod",
    "PaymentStatus",
    "InvoiceStatus",
    "IntentStatus",
    "CheckoutSessionStatus",
    "WebhookOutcome",
    "BillingGateStatus",
    "ActivityType",
]
