from .booking_schema import (
    StudentRead,
    PlanSelect, StudentPlanRead,
    BookRequest, BookResponse, BookingRead, WeeklyUsageRead,
    ReinstatementCreate, ReinstatementRead,
)
from .catalog_schema import (
    ScheduleSlot,
    TrainingClassCreate, TrainingClassRead,
    ClassSessionCreate, ClassSessionRead,
    PlanOptionCreate, PlanOptionRead,
)
from .enrollment_schema import (
    EnrollRequest, EnrollResponse, EnrollmentRead, EnrollmentStatusUpdate, CapacityRead,
    CheckInRequest, AttendanceUpdate, AttendanceRead,
    RosterEntryRead,
)
from .payment_schema import (
    PaymentRead, ChargeCardRequest, OneTimePaymentRequest, OutstandingBalanceRead, BillingStatusRead,
    AdHocIntentRequest, IntentRead,
    SessionRead, PayNowResponse, ExpireSessionsResponse,
    WebhookPayload, ReceiptRead, SettlementRead, WebhookResponse,
    ActivityRead,
)

__all__ = [
    # Students, plans, bookings
    "StudentRead",
    "PlanSelect", "StudentPlanRead",
    "BookRequest", "BookResponse", "BookingRead", "WeeklyUsageRead",
    "ReinstatementCreate", "ReinstatementRead",

    # Catalog
    "ScheduleSlot",
    "TrainingClassCreate", "TrainingClassRead",
    "ClassSessionCreate", "ClassSessionRead",
    "PlanOptionCreate", "PlanOptionRead",

    # Enrollment, attendance, roster
    "EnrollRequest", "EnrollResponse", "EnrollmentRead", "EnrollmentStatusUpdate", "CapacityRead",
    "CheckInRequest", "AttendanceUpdate", "AttendanceRead",
    "RosterEntryRead",

    # Payments
    "PaymentRead", "ChargeCardRequest", "OneTimePaymentRequest", "OutstandingBalanceRead", "BillingStatusRead",
    "AdHocIntentRequest", "IntentRead",
    "SessionRead", "PayNowResponse", "ExpireSessionsResponse",
    "WebhookPayload", "ReceiptRead", "SettlementRead", "WebhookResponse",
    "ActivityRead",
]
