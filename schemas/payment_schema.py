# payment_schema.py
from pydantic import AliasChoices, BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime

from models.models import (
    BillingGateStatus,
    CheckoutSessionStatus,
    IntentStatus,
    PaymentMethod,
    PaymentStatus,
    WebhookOutcome,
)


# ---------------------------
# Payment
# ---------------------------
class PaymentRead(BaseModel):
    id: int
    student_id: int
    enrollment_id: Optional[int]
    amount: int
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    due_date: datetime
    paid_at: Optional[datetime]
    description: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChargeCardRequest(BaseModel):
    student_id: int
    amount: int = Field(..., description="Minor units")
    description: str = Field(default="Stored card charge", max_length=500)


class OneTimePaymentRequest(BaseModel):
    student_id: int
    amount: int = Field(..., description="Minor units")
    method: PaymentMethod = PaymentMethod.PIX
    description: str = Field(default="One-time payment", max_length=500)


class OutstandingBalanceRead(BaseModel):
    payment: PaymentRead
    student_name: Optional[str]
    status: BillingGateStatus
    label: str


class BillingStatusRead(BaseModel):
    enrollment_id: int
    status: BillingGateStatus
    label: str


# ---------------------------
# Intent
# ---------------------------
class AdHocIntentRequest(BaseModel):
    amount: int = Field(..., description="Minor units")
    method: PaymentMethod = PaymentMethod.PIX
    description: Optional[str] = Field(default=None, max_length=500)


class IntentRead(BaseModel):
    intent_id: int = Field(validation_alias=AliasChoices("intent_id", "id"))
    payment_id: int
    amount: int
    currency: str
    client_secret: str
    status: IntentStatus

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Checkout session
# ---------------------------
class SessionRead(BaseModel):
    session_id: int = Field(validation_alias=AliasChoices("session_id", "id"))
    intent_id: int
    status: CheckoutSessionStatus
    checkout_url: str
    expires_at: datetime
    completed_at: Optional[datetime] = None
    last_webhook_status: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PayNowResponse(BaseModel):
    session: SessionRead
    intent: IntentRead


class ExpireSessionsResponse(BaseModel):
    expired: int


# ---------------------------
# Webhook
# ---------------------------
class WebhookPayload(BaseModel):
    session_id: int
    outcome: WebhookOutcome
    failure_reason: Optional[str] = Field(default=None, max_length=500)


class ReceiptRead(BaseModel):
    id: int
    payment_id: int
    reference: str
    download_url: str
    issued_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SettlementRead(BaseModel):
    id: int
    period: str
    gross: int
    fees: int
    net: int
    receipt_ids: List[int]
    deposited_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WebhookResponse(BaseModel):
    session_id: int
    payment_id: int
    payment_status: PaymentStatus
    intent_status: IntentStatus
    duplicate: bool
    receipt: Optional[ReceiptRead] = None
    settlement: Optional[SettlementRead] = None


# ---------------------------
# Activity
# ---------------------------
class ActivityRead(BaseModel):
    id: int
    type: str
    message: str
    context: Dict[str, Any]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
