"""Monthly tutor earnings (payout) records."""

from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, event
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Session as OrmSession
from sqlalchemy.orm import relationship

from backend.app.db.base_class import Base
from backend.app.core.time import utc_now
from backend.app.services.billing import generate_reference, quantize_money, sum_hours

PAYOUT_STATUS_PENDING = "PENDING"
PAYOUT_STATUS_PROCESSING = "PROCESSING"
PAYOUT_STATUS_PAID = "PAID"
PAYOUT_STATUS_FAILED = "FAILED"
PAYOUT_STATUS_REFUNDED = "REFUNDED"
PAYOUT_STATUSES = (
    PAYOUT_STATUS_PENDING,
    PAYOUT_STATUS_PROCESSING,
    PAYOUT_STATUS_PAID,
    PAYOUT_STATUS_FAILED,
    PAYOUT_STATUS_REFUNDED,
)


class TutorEarnings(Base):
    __tablename__ = "tutor_earnings"
    __table_args__ = (
        UniqueConstraint("tutor_id", "payout_month", "payout_year", name="uq_earnings_tutor_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    payout_month = Column(Integer, nullable=False)
    payout_year = Column(Integer, nullable=False)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)

    commission_rate = Column(Numeric(5, 4), nullable=False, default=Decimal("0"))
    # Derived from line_items on every flush
    total_sessions = Column(Integer, nullable=False, default=0)
    total_hours = Column(Numeric(8, 2), nullable=False, default=Decimal("0.00"))
    gross_earnings = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    platform_commission = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    net_earnings = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    status = Column(String(20), nullable=False, default=PAYOUT_STATUS_PENDING, index=True)
    payout_reference = Column(String(32), unique=True, nullable=False, index=True)
    transfer_ref = Column(String(100), nullable=True, index=True)
    payment_method = Column(String(50), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    tutor = relationship("User", back_populates="earnings", foreign_keys=[tutor_id])
    line_items = relationship(
        "EarningLineItem",
        back_populates="earnings",
        order_by="EarningLineItem.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    def recalculate_totals(self) -> None:
        items = list(self.line_items)
        rate = Decimal(str(self.commission_rate or 0))
        gross = quantize_money(sum((Decimal(str(item.session_price)) for item in items), Decimal("0.00")))
        self.total_sessions = len(items)
        self.total_hours = sum_hours(item.duration_minutes for item in items)
        self.gross_earnings = gross
        self.platform_commission = quantize_money(gross * rate)
        self.net_earnings = gross - self.platform_commission


class EarningLineItem(Base):
    __tablename__ = "earning_line_items"

    id = Column(Integer, primary_key=True, index=True)
    earnings_id = Column(Integer, ForeignKey("tutor_earnings.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    session_id = Column(Integer, ForeignKey("sessions.id"), nullable=False)
    student_name = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    completed_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    session_price = Column(Numeric(10, 2), nullable=False)
    tutor_earning = Column(Numeric(10, 2), nullable=False)

    earnings = relationship("TutorEarnings", back_populates="line_items")


@event.listens_for(OrmSession, "before_flush")
def _derive_earnings_fields(session, flush_context, instances):
    touched = set()
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, EarningLineItem) and obj.earnings is not None:
            touched.add(obj.earnings)
        elif isinstance(obj, TutorEarnings):
            touched.add(obj)
    for earnings in touched:
        if earnings.payout_reference is None:
            earnings.payout_reference = generate_reference("PAYOUT", earnings.payout_month, earnings.payout_year)
        earnings.recalculate_totals()
