from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from backend.app.core.security import get_password_hash
from backend.app.db.base import Base
from backend.app.db.session import SessionLocal, engine
from backend.app.main import app
from backend.app.models.session import COMPLETION_STATUS_COMPLETED
from backend.app.models.session import Session as TutoringSession
from backend.app.models.subscription import TIER_FLEXIBLE, Subscription
from backend.app.models.user import ROLE_ADMIN, User
from backend.app.services.payment_gateway import get_payment_gateway


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_payment_gateway] = lambda: None
    yield
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


def auth_headers(client, email, password="secret", role="student"):
    if role == ROLE_ADMIN:
        with SessionLocal() as db:
            db.add(User(email=email, hashed_password=get_password_hash(password), role=ROLE_ADMIN))
            db.commit()
    else:
        client.post("/auth/register", json={"email": email, "password": password, "role": role})
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def seed_completed_sessions(student_email, days=(5, 6)):
    with SessionLocal() as db:
        student = db.query(User).filter(User.email == student_email).first()
        tutor = User(email=f"tutor-{student.id}@example.com", hashed_password="x", role="tutor", full_name="Tina")
        db.add(tutor)
        db.add(Subscription(student_id=student.id, tier=TIER_FLEXIBLE, price_per_hour=Decimal("28.00")))
        db.commit()
        for day in days:
            completed_at = datetime(2030, 1, day, 10, 0)
            db.add(
                TutoringSession(
                    student_id=student.id,
                    tutor_id=tutor.id,
                    subject="Math",
                    price_per_hour=Decimal("28.00"),
                    student_completion_status=COMPLETION_STATUS_COMPLETED,
                    student_completed_at=completed_at,
                    teacher_completion_status=COMPLETION_STATUS_COMPLETED,
                    teacher_completed_at=completed_at,
                )
            )
        db.commit()


def generate(client, headers, month=1, year=2030):
    return client.post("/billings/generate", json={"month": month, "year": year}, headers=headers)


def test_admin_generates_billings_once(client):
    student_headers = auth_headers(client, "student@example.com")
    admin_headers = auth_headers(client, "admin@example.com", role=ROLE_ADMIN)
    seed_completed_sessions("student@example.com")

    response = generate(client, admin_headers)
    assert response.status_code == 201
    body = response.json()
    assert body["count"] == 1
    billing = body["billings"][0]
    assert billing["status"] == "PENDING"
    assert Decimal(billing["total"]) == Decimal("56.00")
    assert len(billing["line_items"]) == 2
    assert billing["invoice_number"].startswith("INV-3001-")

    again = generate(client, admin_headers)
    assert again.status_code == 201
    assert again.json()["count"] == 0

    mine = client.get("/billings/my-billings", headers=student_headers)
    assert mine.status_code == 200
    assert [item["id"] for item in mine.json()["data"]] == [billing["id"]]


def test_generate_requires_admin(client):
    student_headers = auth_headers(client, "student@example.com")
    assert generate(client, student_headers).status_code == 403


def test_generate_rejects_invalid_month(client):
    admin_headers = auth_headers(client, "admin@example.com", role=ROLE_ADMIN)
    assert generate(client, admin_headers, month=13).status_code == 422


def test_students_only_see_their_own_billing(client):
    auth_headers(client, "owner@example.com")
    other_headers = auth_headers(client, "other@example.com")
    admin_headers = auth_headers(client, "admin@example.com", role=ROLE_ADMIN)
    seed_completed_sessions("owner@example.com")
    billing_id = generate(client, admin_headers).json()["billings"][0]["id"]

    assert client.get(f"/billings/{billing_id}", headers=other_headers).status_code == 403
    assert client.get(f"/billings/{billing_id}", headers=admin_headers).status_code == 200


def test_unknown_billing_returns_404(client):
    admin_headers = auth_headers(client, "admin@example.com", role=ROLE_ADMIN)
    response = client.get("/billings/999", headers=admin_headers)
    assert response.status_code == 404
    assert response.json() == {"detail": "Billing not found"}


def test_admin_list_filters_and_search(client):
    auth_headers(client, "student@example.com")
    admin_headers = auth_headers(client, "admin@example.com", role=ROLE_ADMIN)
    seed_completed_sessions("student@example.com")
    invoice_number = generate(client, admin_headers).json()["billings"][0]["invoice_number"]

    found = client.get("/billings/", params={"search": invoice_number[-6:]}, headers=admin_headers)
    assert [item["invoice_number"] for item in found.json()["data"]] == [invoice_number]

    paid = client.get("/billings/", params={"status": "PAID"}, headers=admin_headers)
    assert paid.json()["data"] == []

    assert client.get("/billings/", params={"status": "BOGUS"}, headers=admin_headers).status_code == 400
    assert client.get("/billings/", params={"sort_by": "nope"}, headers=admin_headers).status_code == 400


def test_manual_transitions(client):
    auth_headers(client, "student@example.com")
    admin_headers = auth_headers(client, "admin@example.com", role=ROLE_ADMIN)
    seed_completed_sessions("student@example.com")
    billing_id = generate(client, admin_headers).json()["billings"][0]["id"]

    paid = client.patch(
        f"/billings/{billing_id}/mark-paid",
        json={"payment_intent_ref": "pi_manual", "payment_method": "bank_transfer"},
        headers=admin_headers,
    )
    assert paid.status_code == 200
    assert paid.json()["status"] == "PAID"

    conflict = client.patch(f"/billings/{billing_id}/mark-failed", json={"failure_reason": "x"}, headers=admin_headers)
    assert conflict.status_code == 409

    refunded = client.patch(f"/billings/{billing_id}/mark-refunded", json={"notes": "Duplicate"}, headers=admin_headers)
    assert refunded.status_code == 200
    assert refunded.json()["status"] == "REFUNDED"
    assert refunded.json()["notes"] == "Duplicate"


def test_admin_list_is_paginated(client):
    admin_headers = auth_headers(client, "admin@example.com", role=ROLE_ADMIN)
    for index in range(3):
        email = f"student{index}@example.com"
        auth_headers(client, email)
        seed_completed_sessions(email)
    assert generate(client, admin_headers).json()["count"] == 3

    second_page = client.get("/billings/", params={"page": 2, "limit": 2}, headers=admin_headers)

    assert second_page.status_code == 200
    body = second_page.json()
    assert body["meta"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}
    assert len(body["data"]) == 1
    assert client.get("/billings/", params={"limit": 0}, headers=admin_headers).status_code == 422
