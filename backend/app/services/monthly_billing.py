"""Monthly billing generation for student subscriptions.

For every active subscription the generator carves the period's completed
sessions into those covered by the prepaid allotment and those billed at the
subscription's hourly rate, writes one billing per student and period, and then
tries to capture the total off-session.

Each student is processed in its own transaction; a failure for one student is
logged and never stops the batch.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.errors import NotFoundError, StateConflictError
from backend.app.core.settings import get_settings
from backend.app.core.time import billing_period, utc_now_naive
from backend.app.models.billing import (
    BILLING_STATUS_FAILED,
    BILLING_STATUS_PAID,
    BILLING_STATUS_PENDING,
    BILLING_STATUS_REFUNDED,
    Billing,
    BillingLineItem,
)
from backend.app.models.session import COMPLETION_STATUS_COMPLETED
from backend.app.models.session import Session as SessionModel
from backend.app.models.subscription import SUBSCRIPTION_STATUS_ACTIVE, Subscription
from backend.app.services.billing import quantize_money
from backend.app.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


def find_active_subscriptions(db: Session) -> List[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.status == SUBSCRIPTION_STATUS_ACTIVE)
        .order_by(Subscription.id.asc())
        .all()
    )


def increment_prepaid_hours_used(subscription: Subscription, count: int) -> None:
    subscription.prepaid_hours_used = (subscription.prepaid_hours_used or 0) + count


def billing_exists(db: Session, student_id: int, month: int, year: int) -> bool:
    query = db.query(Billing.id).filter(
        Billing.student_id == student_id,
        Billing.billing_month == month,
        Billing.billing_year == year,
    )
    return query.first() is not None


def get_billable_candidates(
    db: Session, student_id: int, period_start: datetime, period_end: datetime
) -> List[SessionModel]:
    """Student-completed, non-trial sessions in the period not yet prepaid or billed, oldest first."""
    return (
        db.query(SessionModel)
        .filter(
            SessionModel.student_id == student_id,
            SessionModel.student_completion_status == COMPLETION_STATUS_COMPLETED,
            SessionModel.is_trial.is_(False),
            SessionModel.is_paid_upfront.is_(False),
            SessionModel.billing_id.is_(None),
            SessionModel.student_completed_at >= period_start,
            SessionModel.student_completed_at <= period_end,
        )
        .order_by(SessionModel.student_completed_at.asc(), SessionModel.id.asc())
        .all()
    )


def count_prepaid_sessions(db: Session, student_id: int, period_start: datetime, period_end: datetime) -> int:
    return (
        db.query(SessionModel)
        .filter(
            SessionModel.student_id == student_id,
            SessionModel.is_paid_upfront.is_(True),
            SessionModel.student_completed_at >= period_start,
            SessionModel.student_completed_at <= period_end,
        )
        .count()
    )


def mark_prepaid(sessions: Sequence[SessionModel]) -> None:
    for session in sessions:
        session.is_paid_upfront = True


def attach_billing(sessions: Sequence[SessionModel], billing: Billing, billed_at: datetime | None = None) -> None:
    billed_at = billed_at or utc_now_naive()
    for session in sessions:
        session.billing_id = billing.id
        session.billed_at = billed_at


def split_prepaid(
    sessions: List[SessionModel], subscription: Subscription, already_prepaid: int
) -> tuple[List[SessionModel], List[SessionModel]]:
    """Return (prepaid, billable); the earliest sessions consume what is left of the allotment."""
    if not subscription.has_prepaid_allotment:
        return [], list(sessions)
    remaining = max(0, subscription.minimum_hours - already_prepaid)
    return list(sessions[:remaining]), list(sessions[remaining:])


def build_billing_line_items(sessions: Sequence[SessionModel], subscription: Subscription) -> List[BillingLineItem]:
    # Every session is charged one hour at the subscription rate, whatever its duration.
    rate = quantize_money(subscription.price_per_hour)
    items = []
    for session in sessions:
        tutor = session.tutor
        items.append(
            BillingLineItem(
                session_id=session.id,
                subject=session.subject,
                tutor_name=tutor.display_name if tutor is not None else "",
                date=session.student_completed_at or session.completed_at,
                duration_minutes=session.duration_minutes,
                price_per_hour=rate,
                amount=rate,
            )
        )
    return items


def _bill_subscription(
    db: Session,
    subscription: Subscription,
    month: int,
    year: int,
    period_start: datetime,
    period_end: datetime,
) -> Optional[Billing]:
    """Flag prepaid sessions and create the billing in a single transaction."""
    student_id = subscription.student_id
    if billing_exists(db, student_id, month, year):
        logger.debug("Billing for student %s %02d/%d already exists, skipping", student_id, month, year)
        return None

    candidates = get_billable_candidates(db, student_id, period_start, period_end)
    already_prepaid = 0
    if subscription.has_prepaid_allotment:
        already_prepaid = count_prepaid_sessions(db, student_id, period_start, period_end)
    prepaid, billable = split_prepaid(candidates, subscription, already_prepaid)

    if prepaid:
        mark_prepaid(prepaid)
        increment_prepaid_hours_used(subscription, len(prepaid))

    if not billable:
        db.commit()
        logger.debug("No billable sessions for student %s in %02d/%d", student_id, month, year)
        return None

    billing = Billing(
        student_id=student_id,
        subscription_id=subscription.id,
        billing_month=month,
        billing_year=year,
        period_start=period_start,
        period_end=period_end,
        subscription_tier=subscription.tier,
        price_per_hour=subscription.price_per_hour,
        status=BILLING_STATUS_PENDING,
        line_items=build_billing_line_items(billable, subscription),
    )
    db.add(billing)
    db.flush()
    attach_billing(billable, billing)
    db.commit()
    db.refresh(billing)
    return billing


def capture_payment(
    db: Session,
    billing: Billing,
    subscription: Subscription,
    gateway: Optional[PaymentGateway],
    currency: str,
) -> Billing:
    """Charge the billing total off-session; a decline or error marks the billing FAILED."""
    if gateway is None or not subscription.payment_customer_ref:
        return billing
    if Decimal(str(billing.total)) <= 0:
        return billing

    metadata = {
        "billing_id": str(billing.id),
        "student_id": str(billing.student_id),
        "billing_month": str(billing.billing_month),
        "billing_year": str(billing.billing_year),
        "invoice_number": billing.invoice_number,
    }
    try:
        result = gateway.charge_off_session(
            subscription.payment_customer_ref,
            Decimal(str(billing.total)),
            currency,
            metadata,
        )
    except Exception as exc:
        logger.warning("Charge for billing %s (student %s) failed: %s", billing.invoice_number, billing.student_id, exc)
        billing.status = BILLING_STATUS_FAILED
        billing.failure_reason = str(exc) or exc.__class__.__name__
    else:
        billing.payment_intent_ref = result.reference
        billing.payment_method = result.payment_method
        if result.succeeded:
            billing.status = BILLING_STATUS_PAID
            billing.paid_at = utc_now_naive()
        else:
            logger.warning("Charge for billing %s ended with status %s", billing.invoice_number, result.status)
            billing.status = BILLING_STATUS_FAILED
            billing.failure_reason = f"Charge ended with status {result.status}"
    db.commit()
    db.refresh(billing)
    return billing


def generate_monthly_billings(
    db: Session,
    month: int,
    year: int,
    gateway: Optional[PaymentGateway] = None,
    currency: Optional[str] = None,
) -> List[Billing]:
    """Generate billings for every active subscription for the given month.

    Returns the billings created by this run, whatever their payment outcome.
    Students that already have a billing for the period, or have nothing left
    to bill, are skipped.
    """
    period_start, period_end = billing_period(month, year)
    currency = currency or get_settings().billing_currency

    billings: List[Billing] = []
    for subscription in find_active_subscriptions(db):
        student_id = subscription.student_id
        try:
            billing = _bill_subscription(db, subscription, month, year, period_start, period_end)
            if billing is None:
                continue
            billing = capture_payment(db, billing, subscription, gateway, currency)
        except IntegrityError:
            db.rollback()
            if billing_exists(db, student_id, month, year):
                logger.info("Billing for student %s %02d/%d was generated concurrently, skipping", student_id, month, year)
            else:
                logger.exception("Could not create billing for student %s (%02d/%d)", student_id, month, year)
            continue
        except Exception:
            db.rollback()
            logger.exception("Error generating billing for student %s (%02d/%d)", student_id, month, year)
            continue
        billings.append(billing)

    logger.info("Generated %d billings for %02d/%d", len(billings), month, year)
    return billings


def get_billing(db: Session, billing_id: int) -> Billing:
    billing = db.query(Billing).filter(Billing.id == billing_id).first()
    if billing is None:
        raise NotFoundError("Billing not found")
    return billing


def mark_billing_paid(
    db: Session,
    billing_id: int,
    payment_intent_ref: str | None = None,
    payment_method: str | None = None,
) -> Billing:
    billing = get_billing(db, billing_id)
    if billing.status not in (BILLING_STATUS_PENDING, BILLING_STATUS_FAILED):
        raise StateConflictError(f"Cannot mark billing as paid. Current status: {billing.status}")
    billing.status = BILLING_STATUS_PAID
    billing.paid_at = utc_now_naive()
    billing.failure_reason = None
    if payment_intent_ref:
        billing.payment_intent_ref = payment_intent_ref
    if payment_method:
        billing.payment_method = payment_method
    db.commit()
    db.refresh(billing)
    return billing


def mark_billing_failed(db: Session, billing_id: int, failure_reason: str) -> Billing:
    billing = get_billing(db, billing_id)
    if billing.status != BILLING_STATUS_PENDING:
        raise StateConflictError(f"Cannot mark billing as failed. Current status: {billing.status}")
    billing.status = BILLING_STATUS_FAILED
    billing.failure_reason = failure_reason
    db.commit()
    db.refresh(billing)
    return billing


def mark_billing_refunded(db: Session, billing_id: int, notes: str | None = None) -> Billing:
    billing = get_billing(db, billing_id)
    if billing.status != BILLING_STATUS_PAID:
        raise StateConflictError(f"Only paid billings can be refunded. Current status: {billing.status}")
    billing.status = BILLING_STATUS_REFUNDED
    if notes:
        billing.notes = notes
    db.commit()
    db.refresh(billing)
    return billing
