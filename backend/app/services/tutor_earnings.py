"""Tutor earnings generation and the payout lifecycle."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.errors import InvalidAmountError, NotFoundError, StateConflictError
from backend.app.core.time import billing_period, utc_now_naive
from backend.app.models.session import COMPLETION_STATUS_COMPLETED
from backend.app.models.session import Session as SessionModel
from backend.app.models.tutor_earnings import (
    PAYOUT_STATUS_FAILED,
    PAYOUT_STATUS_PAID,
    PAYOUT_STATUS_PENDING,
    PAYOUT_STATUS_PROCESSING,
    EarningLineItem,
    TutorEarnings,
)
from backend.app.models.user import ROLE_TUTOR, User
from backend.app.services.billing import quantize_money

logger = logging.getLogger(__name__)


def find_tutors(db: Session) -> List[User]:
    return db.query(User).filter(User.role == ROLE_TUTOR).order_by(User.id.asc()).all()


def earnings_exist(db: Session, tutor_id: int, month: int, year: int) -> bool:
    query = db.query(TutorEarnings.id).filter(
        TutorEarnings.tutor_id == tutor_id,
        TutorEarnings.payout_month == month,
        TutorEarnings.payout_year == year,
    )
    return query.first() is not None


def get_completed_sessions_for_tutor(
    db: Session, tutor_id: int, period_start: datetime, period_end: datetime
) -> List[SessionModel]:
    return (
        db.query(SessionModel)
        .filter(
            SessionModel.tutor_id == tutor_id,
            SessionModel.teacher_completion_status == COMPLETION_STATUS_COMPLETED,
            SessionModel.teacher_completed_at >= period_start,
            SessionModel.teacher_completed_at <= period_end,
        )
        .order_by(SessionModel.teacher_completed_at.asc(), SessionModel.id.asc())
        .all()
    )


def build_earning_line_items(sessions: Sequence[SessionModel], commission_rate: Decimal) -> List[EarningLineItem]:
    share = Decimal("1") - commission_rate
    items = []
    for session in sessions:
        price = quantize_money(session.total_price)
        student = session.student
        items.append(
            EarningLineItem(
                session_id=session.id,
                student_name=student.display_name if student is not None else "",
                subject=session.subject,
                completed_at=session.teacher_completed_at,
                duration_minutes=session.duration_minutes,
                session_price=price,
                tutor_earning=quantize_money(price * share),
            )
        )
    return items


def _earnings_for_tutor(
    db: Session,
    tutor: User,
    month: int,
    year: int,
    period_start: datetime,
    period_end: datetime,
    commission_rate: Decimal,
) -> Optional[TutorEarnings]:
    if earnings_exist(db, tutor.id, month, year):
        return None
    sessions = get_completed_sessions_for_tutor(db, tutor.id, period_start, period_end)
    if not sessions:
        return None

    earnings = TutorEarnings(
        tutor_id=tutor.id,
        payout_month=month,
        payout_year=year,
        period_start=period_start,
        period_end=period_end,
        commission_rate=commission_rate,
        status=PAYOUT_STATUS_PENDING,
        line_items=build_earning_line_items(sessions, commission_rate),
    )
    db.add(earnings)
    db.commit()
    db.refresh(earnings)
    return earnings


def generate_tutor_earnings(
    db: Session, month: int, year: int, commission_rate: Decimal | float | str = 0
) -> List[TutorEarnings]:
    """Create one PENDING earnings record per tutor with completed sessions in the month."""
    rate = Decimal(str(commission_rate))
    if not Decimal("0") <= rate <= Decimal("1"):
        raise ValueError(f"Commission rate must be between 0 and 1, got {rate}")
    period_start, period_end = billing_period(month, year)

    results: List[TutorEarnings] = []
    for tutor in find_tutors(db):
        tutor_id = tutor.id
        try:
            earnings = _earnings_for_tutor(db, tutor, month, year, period_start, period_end, rate)
        except IntegrityError:
            db.rollback()
            if earnings_exist(db, tutor_id, month, year):
                logger.info("Earnings for tutor %s %02d/%d were generated concurrently, skipping", tutor_id, month, year)
            else:
                logger.exception("Could not create earnings for tutor %s (%02d/%d)", tutor_id, month, year)
            continue
        except Exception:
            db.rollback()
            logger.exception("Error generating earnings for tutor %s (%02d/%d)", tutor_id, month, year)
            continue
        if earnings is not None:
            results.append(earnings)

    logger.info("Generated %d tutor earnings for %02d/%d", len(results), month, year)
    return results


def get_earnings(db: Session, earnings_id: int) -> TutorEarnings:
    earnings = db.query(TutorEarnings).filter(TutorEarnings.id == earnings_id).first()
    if earnings is None:
        raise NotFoundError("Earnings record not found")
    return earnings


def initiate_payout(db: Session, earnings_id: int, notes: str | None = None) -> TutorEarnings:
    earnings = get_earnings(db, earnings_id)
    if earnings.status != PAYOUT_STATUS_PENDING:
        raise StateConflictError(f"Cannot initiate payout. Current status: {earnings.status}")
    if Decimal(str(earnings.net_earnings or 0)) <= 0:
        raise InvalidAmountError("Cannot initiate payout with zero or negative earnings")

    earnings.status = PAYOUT_STATUS_PROCESSING
    if notes:
        earnings.notes = notes
    db.commit()
    db.refresh(earnings)
    logger.info("Payout %s initiated for tutor %s", earnings.payout_reference, earnings.tutor_id)
    return earnings


def mark_payout_paid(
    db: Session,
    earnings_id: int,
    transfer_ref: str | None = None,
    payment_method: str | None = None,
) -> TutorEarnings:
    earnings = get_earnings(db, earnings_id)
    if earnings.status not in (PAYOUT_STATUS_PENDING, PAYOUT_STATUS_PROCESSING):
        raise StateConflictError(f"Cannot mark payout as paid. Current status: {earnings.status}")
    earnings.status = PAYOUT_STATUS_PAID
    earnings.paid_at = utc_now_naive()
    earnings.failure_reason = None
    if transfer_ref:
        earnings.transfer_ref = transfer_ref
    if payment_method:
        earnings.payment_method = payment_method
    db.commit()
    db.refresh(earnings)
    return earnings


def mark_payout_failed(db: Session, earnings_id: int, failure_reason: str) -> TutorEarnings:
    earnings = get_earnings(db, earnings_id)
    if earnings.status not in (PAYOUT_STATUS_PENDING, PAYOUT_STATUS_PROCESSING):
        raise StateConflictError(f"Cannot mark payout as failed. Current status: {earnings.status}")
    earnings.status = PAYOUT_STATUS_FAILED
    earnings.failure_reason = failure_reason
    db.commit()
    db.refresh(earnings)
    logger.warning("Payout %s failed: %s", earnings.payout_reference, failure_reason)
    return earnings


def get_payout_settings(tutor: User) -> dict:
    return {"recipient": tutor.payout_recipient, "iban": tutor.payout_iban}


def update_payout_settings(db: Session, tutor: User, recipient: str, iban: str) -> dict:
    tutor.payout_recipient = recipient.strip()
    tutor.payout_iban = iban.replace(" ", "").upper()
    db.commit()
    db.refresh(tutor)
    return get_payout_settings(tutor)
