"""Tutor earnings and payout schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.schemas.pagination import PageMeta


class GenerateEarningsRequest(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2020, le=2100)
    commission_rate: Optional[Decimal] = Field(default=None, ge=0, le=1)


class EarningLineItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: int
    student_name: str
    subject: str
    completed_at: datetime
    duration_minutes: int
    session_price: Decimal
    tutor_earning: Decimal


class TutorEarningsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tutor_id: int
    payout_month: int
    payout_year: int
    period_start: datetime
    period_end: datetime
    payout_reference: str

    line_items: List[EarningLineItemRead]
    total_sessions: int
    total_hours: Decimal
    gross_earnings: Decimal
    commission_rate: Decimal
    platform_commission: Decimal
    net_earnings: Decimal

    status: str
    transfer_ref: Optional[str] = None
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    notes: Optional[str] = None

    created_at: datetime
    updated_at: datetime


class GenerateEarningsResponse(BaseModel):
    count: int
    earnings: List[TutorEarningsRead]


class InitiatePayoutRequest(BaseModel):
    notes: Optional[str] = None


class PayoutMarkPaid(BaseModel):
    transfer_ref: Optional[str] = None
    payment_method: Optional[str] = None


class PayoutMarkFailed(BaseModel):
    failure_reason: str = Field(min_length=1)


class PayoutSettings(BaseModel):
    recipient: Optional[str] = None
    iban: Optional[str] = None


class PayoutSettingsUpdate(BaseModel):
    recipient: str = Field(min_length=2)
    iban: str = Field(min_length=15, max_length=34)


class TutorEarningsPage(BaseModel):
    meta: PageMeta
    data: List[TutorEarningsRead]
