"""Tutoring session model (the session ledger)."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, event
from sqlalchemy.orm import relationship

from backend.app.db.base_class import Base
from backend.app.core.time import utc_now
from backend.app.services.billing import calculate_session_cost

SESSION_STATUS_SCHEDULED = "SCHEDULED"
SESSION_STATUS_IN_PROGRESS = "IN_PROGRESS"
SESSION_STATUS_COMPLETED = "COMPLETED"
SESSION_STATUS_CANCELLED = "CANCELLED"
SESSION_STATUS_NO_SHOW = "NO_SHOW"

COMPLETION_STATUS_PENDING = "PENDING"
COMPLETION_STATUS_COMPLETED = "COMPLETED"
COMPLETION_STATUS_NOT_APPLICABLE = "NOT_APPLICABLE"


class Session(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    subject = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=60)
    price_per_hour = Column(Numeric(10, 2), nullable=True)
    total_price = Column(Numeric(10, 2), nullable=True)
    status = Column(String(20), nullable=False, default=SESSION_STATUS_SCHEDULED)
    is_trial = Column(Boolean, nullable=False, default=False)

    student_completion_status = Column(String(20), nullable=False, default=COMPLETION_STATUS_PENDING)
    student_completed_at = Column(DateTime, nullable=True, index=True)
    teacher_completion_status = Column(String(20), nullable=False, default=COMPLETION_STATUS_PENDING)
    teacher_completed_at = Column(DateTime, nullable=True, index=True)
    completed_at = Column(DateTime, nullable=True)

    is_paid_upfront = Column(Boolean, nullable=False, default=False)
    # Set once when the session is put on a billing; never cleared
    billing_id = Column(Integer, ForeignKey("monthly_billings.id"), nullable=True, index=True)
    billed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    student = relationship("User", foreign_keys=[student_id])
    tutor = relationship("User", foreign_keys=[tutor_id])
    billing = relationship("Billing", foreign_keys=[billing_id])


@event.listens_for(Session, "before_insert")
def _default_total_price(mapper, connection, target):
    if target.total_price is None:
        target.total_price = calculate_session_cost(target.duration_minutes, target.price_per_hour)
