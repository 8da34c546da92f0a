from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from backend.app.db.base_class import Base

ROLE_STUDENT = "student"
ROLE_TUTOR = "tutor"
ROLE_ADMIN = "admin"
USER_ROLES = (ROLE_STUDENT, ROLE_TUTOR, ROLE_ADMIN)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=True)
    role = Column(String(20), nullable=False, default=ROLE_STUDENT, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    payout_recipient = Column(String(255), nullable=True)
    payout_iban = Column(String(34), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    subscriptions = relationship("Subscription", back_populates="student", cascade="all, delete-orphan")
    billings = relationship("Billing", back_populates="student", foreign_keys="Billing.student_id")
    earnings = relationship("TutorEarnings", back_populates="tutor", foreign_keys="TutorEarnings.tutor_id")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def display_name(self) -> str:
        return self.full_name or self.email
