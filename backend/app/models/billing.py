"""Monthly billing records and their line items."""

from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, event
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Session as OrmSession
from sqlalchemy.orm import relationship

from backend.app.db.base_class import Base
from backend.app.core.time import utc_now
from backend.app.services.billing import generate_reference, quantize_money, sum_hours

BILLING_STATUS_PENDING = "PENDING"
BILLING_STATUS_PAID = "PAID"
BILLING_STATUS_FAILED = "FAILED"
BILLING_STATUS_REFUNDED = "REFUNDED"
BILLING_STATUSES = (BILLING_STATUS_PENDING, BILLING_STATUS_PAID, BILLING_STATUS_FAILED, BILLING_STATUS_REFUNDED)


class Billing(Base):
    __tablename__ = "monthly_billings"
    __table_args__ = (
        UniqueConstraint("student_id", "billing_month", "billing_year", name="uq_billing_student_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("student_subscriptions.id"), nullable=False)
    billing_month = Column(Integer, nullable=False)
    billing_year = Column(Integer, nullable=False)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)

    subscription_tier = Column(String(20), nullable=False)
    price_per_hour = Column(Numeric(10, 2), nullable=False)

    # Derived from line_items on every flush
    total_sessions = Column(Integer, nullable=False, default=0)
    total_hours = Column(Numeric(8, 2), nullable=False, default=Decimal("0.00"))
    subtotal = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    tax = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    status = Column(String(20), nullable=False, default=BILLING_STATUS_PENDING, index=True)
    payment_intent_ref = Column(String(100), nullable=True, index=True)
    payment_method = Column(String(50), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)
    invoice_number = Column(String(32), unique=True, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    student = relationship("User", back_populates="billings", foreign_keys=[student_id])
    subscription = relationship("Subscription")
    line_items = relationship(
        "BillingLineItem",
        back_populates="billing",
        order_by="BillingLineItem.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    def recalculate_totals(self) -> None:
        items = list(self.line_items)
        self.total_sessions = len(items)
        self.total_hours = sum_hours(item.duration_minutes for item in items)
        self.subtotal = quantize_money(sum((Decimal(str(item.amount)) for item in items), Decimal("0.00")))
        self.total = quantize_money(self.subtotal + Decimal(str(self.tax or 0)))


class BillingLineItem(Base):
    __tablename__ = "billing_line_items"

    id = Column(Integer, primary_key=True, index=True)
    billing_id = Column(Integer, ForeignKey("monthly_billings.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    session_id = Column(Integer, ForeignKey("sessions.id"), nullable=False)
    subject = Column(String, nullable=False)
    tutor_name = Column(String, nullable=False)
    date = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price_per_hour = Column(Numeric(10, 2), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)

    billing = relationship("Billing", back_populates="line_items")


@event.listens_for(OrmSession, "before_flush")
def _derive_billing_fields(session, flush_context, instances):
    touched = set()
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, BillingLineItem) and obj.billing is not None:
            touched.add(obj.billing)
        elif isinstance(obj, Billing):
            touched.add(obj)
    for billing in touched:
        if billing.invoice_number is None:
            billing.invoice_number = generate_reference("INV", billing.billing_month, billing.billing_year)
        billing.recalculate_totals()
