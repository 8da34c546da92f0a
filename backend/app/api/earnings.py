"""Tutor earnings and payout endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from backend.app.core.errors import PermissionDeniedError
from backend.app.core.settings import get_settings
from backend.app.db.session import get_db
from backend.app.dependencies.auth import get_current_admin, get_current_tutor, get_current_user
from backend.app.models.tutor_earnings import PAYOUT_STATUSES, TutorEarnings
from backend.app.models.user import User
from backend.app.schemas.tutor_earnings import (
    GenerateEarningsRequest,
    GenerateEarningsResponse,
    InitiatePayoutRequest,
    PayoutMarkFailed,
    PayoutMarkPaid,
    PayoutSettings,
    PayoutSettingsUpdate,
    TutorEarningsPage,
    TutorEarningsRead,
)
from backend.app.services import tutor_earnings
from backend.app.services.pagination import paginate

router = APIRouter(prefix="/earnings", tags=["earnings"])


def _filter_earnings(query, status_filter: str | None, month: int | None, year: int | None):
    if status_filter is not None:
        if status_filter not in PAYOUT_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid status value")
        query = query.filter(TutorEarnings.status == status_filter)
    if month is not None:
        query = query.filter(TutorEarnings.payout_month == month)
    if year is not None:
        query = query.filter(TutorEarnings.payout_year == year)
    return query


@router.get("/my-earnings", response_model=TutorEarningsPage)
def list_my_earnings(
    status: str | None = None,
    month: int | None = None,
    year: int | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_tutor: User = Depends(get_current_tutor),
):
    query = db.query(TutorEarnings).filter(TutorEarnings.tutor_id == current_tutor.id)
    query = _filter_earnings(query, status, month, year)
    query = query.order_by(TutorEarnings.payout_year.desc(), TutorEarnings.payout_month.desc())
    return paginate(query, page, limit)


@router.get("/payout-settings", response_model=PayoutSettings)
def read_payout_settings(current_tutor: User = Depends(get_current_tutor)):
    return tutor_earnings.get_payout_settings(current_tutor)


@router.patch("/payout-settings", response_model=PayoutSettings)
def update_payout_settings(
    payload: PayoutSettingsUpdate,
    db: Session = Depends(get_db),
    current_tutor: User = Depends(get_current_tutor),
):
    return tutor_earnings.update_payout_settings(db, current_tutor, payload.recipient, payload.iban)


@router.post("/generate", response_model=GenerateEarningsResponse, status_code=status.HTTP_201_CREATED)
def generate_earnings(
    payload: GenerateEarningsRequest,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    commission_rate = payload.commission_rate
    if commission_rate is None:
        commission_rate = get_settings().default_commission_rate
    earnings = tutor_earnings.generate_tutor_earnings(db, payload.month, payload.year, commission_rate)
    return {"count": len(earnings), "earnings": earnings}


@router.get("/", response_model=TutorEarningsPage)
def list_all_earnings(
    status: str | None = None,
    tutor_id: int | None = None,
    month: int | None = None,
    year: int | None = None,
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    query = _filter_earnings(db.query(TutorEarnings), status, month, year)
    if tutor_id is not None:
        query = query.filter(TutorEarnings.tutor_id == tutor_id)
    if search:
        query = query.filter(TutorEarnings.payout_reference.ilike(f"%{search}%"))
    query = query.order_by(TutorEarnings.created_at.desc(), TutorEarnings.id.desc())
    return paginate(query, page, limit)


@router.get("/{earnings_id}", response_model=TutorEarningsRead)
def get_earnings(
    earnings_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    earnings = tutor_earnings.get_earnings(db, earnings_id)
    if not current_user.is_admin and earnings.tutor_id != current_user.id:
        raise PermissionDeniedError("Not allowed to view these earnings")
    return earnings


@router.patch("/{earnings_id}/initiate-payout", response_model=TutorEarningsRead)
def initiate_payout(
    earnings_id: int,
    payload: InitiatePayoutRequest,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return tutor_earnings.initiate_payout(db, earnings_id, notes=payload.notes)


@router.patch("/{earnings_id}/mark-paid", response_model=TutorEarningsRead)
def mark_payout_paid(
    earnings_id: int,
    payload: PayoutMarkPaid,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return tutor_earnings.mark_payout_paid(
        db,
        earnings_id,
        transfer_ref=payload.transfer_ref,
        payment_method=payload.payment_method,
    )


@router.patch("/{earnings_id}/mark-failed", response_model=TutorEarningsRead)
def mark_payout_failed(
    earnings_id: int,
    payload: PayoutMarkFailed,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return tutor_earnings.mark_payout_failed(db, earnings_id, payload.failure_reason)
