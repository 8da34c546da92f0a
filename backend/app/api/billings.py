"""Monthly billing endpoints for students and admins."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from backend.app.core.errors import PermissionDeniedError
from backend.app.db.session import get_db
from backend.app.dependencies.auth import get_current_admin, get_current_student, get_current_user
from backend.app.models.billing import BILLING_STATUSES, Billing
from backend.app.models.user import User
from backend.app.schemas.billing import (
    BillingMarkFailed,
    BillingMarkPaid,
    BillingPage,
    BillingRead,
    BillingRefund,
    GenerateBillingsRequest,
    GenerateBillingsResponse,
)
from backend.app.services import monthly_billing
from backend.app.services.pagination import paginate
from backend.app.services.payment_gateway import PaymentGateway, get_payment_gateway

router = APIRouter(prefix="/billings", tags=["billings"])


def _filter_billings(query, status_filter: str | None, month: int | None, year: int | None):
    if status_filter is not None:
        if status_filter not in BILLING_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid status value")
        query = query.filter(Billing.status == status_filter)
    if month is not None:
        query = query.filter(Billing.billing_month == month)
    if year is not None:
        query = query.filter(Billing.billing_year == year)
    return query


@router.get("/my-billings", response_model=BillingPage)
def list_my_billings(
    status: str | None = None,
    month: int | None = None,
    year: int | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
):
    query = db.query(Billing).filter(Billing.student_id == current_student.id)
    query = _filter_billings(query, status, month, year)
    query = query.order_by(Billing.billing_year.desc(), Billing.billing_month.desc(), Billing.id.desc())
    return paginate(query, page, limit)


@router.post("/generate", response_model=GenerateBillingsResponse, status_code=status.HTTP_201_CREATED)
def generate_billings(
    payload: GenerateBillingsRequest,
    db: Session = Depends(get_db),
    gateway: Optional[PaymentGateway] = Depends(get_payment_gateway),
    current_admin: User = Depends(get_current_admin),
):
    billings = monthly_billing.generate_monthly_billings(db, payload.month, payload.year, gateway=gateway)
    return {"count": len(billings), "billings": billings}


@router.get("/", response_model=BillingPage)
def list_all_billings(
    status: str | None = None,
    student_id: int | None = None,
    month: int | None = None,
    year: int | None = None,
    search: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    query = _filter_billings(db.query(Billing), status, month, year)
    if student_id is not None:
        query = query.filter(Billing.student_id == student_id)
    if search:
        query = query.filter(Billing.invoice_number.ilike(f"%{search}%"))

    supported_sort_fields = {
        "created_at": [Billing.created_at],
        "total": [Billing.total],
        "status": [Billing.status],
        "period": [Billing.billing_year, Billing.billing_month],
    }
    if sort_by not in supported_sort_fields:
        raise HTTPException(status_code=400, detail="Invalid sort_by value")
    sort_order_normalized = (sort_order or "desc").lower()
    if sort_order_normalized not in {"asc", "desc"}:
        raise HTTPException(status_code=400, detail="Invalid sort_order value")
    if sort_order_normalized == "asc":
        order_by_clause = [column.asc() for column in supported_sort_fields[sort_by]] + [Billing.id.asc()]
    else:
        order_by_clause = [column.desc() for column in supported_sort_fields[sort_by]] + [Billing.id.desc()]

    return paginate(query.order_by(*order_by_clause), page, limit)


@router.get("/{billing_id}", response_model=BillingRead)
def get_billing(
    billing_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    billing = monthly_billing.get_billing(db, billing_id)
    if not current_user.is_admin and billing.student_id != current_user.id:
        raise PermissionDeniedError("Not allowed to view this billing")
    return billing


@router.patch("/{billing_id}/mark-paid", response_model=BillingRead)
def mark_billing_paid(
    billing_id: int,
    payload: BillingMarkPaid,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return monthly_billing.mark_billing_paid(
        db,
        billing_id,
        payment_intent_ref=payload.payment_intent_ref,
        payment_method=payload.payment_method,
    )


@router.patch("/{billing_id}/mark-failed", response_model=BillingRead)
def mark_billing_failed(
    billing_id: int,
    payload: BillingMarkFailed,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return monthly_billing.mark_billing_failed(db, billing_id, payload.failure_reason)


@router.patch("/{billing_id}/mark-refunded", response_model=BillingRead)
def mark_billing_refunded(
    billing_id: int,
    payload: BillingRefund,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return monthly_billing.mark_billing_refunded(db, billing_id, notes=payload.notes)
