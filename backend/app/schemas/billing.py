"""Monthly billing schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.schemas.pagination import PageMeta


class GenerateBillingsRequest(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2020, le=2100)


class BillingLineItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: int
    subject: str
    tutor_name: str
    date: datetime
    duration_minutes: int
    price_per_hour: Decimal
    amount: Decimal


class BillingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    subscription_id: int
    billing_month: int
    billing_year: int
    period_start: datetime
    period_end: datetime
    invoice_number: str

    subscription_tier: str
    price_per_hour: Decimal
    line_items: List[BillingLineItemRead]
    total_sessions: int
    total_hours: Decimal
    subtotal: Decimal
    tax: Decimal
    total: Decimal

    status: str
    payment_intent_ref: Optional[str] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    notes: Optional[str] = None

    created_at: datetime
    updated_at: datetime


class GenerateBillingsResponse(BaseModel):
    count: int
    billings: List[BillingRead]


class BillingMarkPaid(BaseModel):
    payment_intent_ref: Optional[str] = None
    payment_method: Optional[str] = None


class BillingMarkFailed(BaseModel):
    failure_reason: str = Field(min_length=1)


class BillingRefund(BaseModel):
    notes: Optional[str] = None


class BillingPage(BaseModel):
    meta: PageMeta
    data: List[BillingRead]
