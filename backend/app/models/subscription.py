"""Student subscription plans."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from backend.app.db.base_class import Base
from backend.app.core.time import utc_now

TIER_FLEXIBLE = "FLEXIBLE"
TIER_REGULAR = "REGULAR"
TIER_LONG_TERM = "LONG_TERM"
SUBSCRIPTION_TIERS = (TIER_FLEXIBLE, TIER_REGULAR, TIER_LONG_TERM)

SUBSCRIPTION_STATUS_PENDING = "PENDING"
SUBSCRIPTION_STATUS_ACTIVE = "ACTIVE"
SUBSCRIPTION_STATUS_EXPIRED = "EXPIRED"
SUBSCRIPTION_STATUS_CANCELLED = "CANCELLED"


class Subscription(Base):
    __tablename__ = "student_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tier = Column(String(20), nullable=False, default=TIER_FLEXIBLE)
    price_per_hour = Column(Numeric(10, 2), nullable=False)
    commitment_months = Column(Integer, nullable=False, default=0)
    # 0 for FLEXIBLE; sessions up to this count per period are covered by the upfront payment
    minimum_hours = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default=SUBSCRIPTION_STATUS_ACTIVE, index=True)
    total_hours_taken = Column(Integer, nullable=False, default=0)
    # Running total, informational only. Period usage is counted from flagged sessions.
    prepaid_hours_used = Column(Integer, nullable=False, default=0)
    payment_customer_ref = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    student = relationship("User", back_populates="subscriptions")

    @property
    def has_prepaid_allotment(self) -> bool:
        return self.tier != TIER_FLEXIBLE and (self.minimum_hours or 0) > 0
