import pytest
from fastapi.testclient import TestClient

from backend.app.db.base import Base
from backend.app.db.session import SessionLocal, engine
from backend.app.main import app
from backend.app.models.user import User


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def register_and_login(client: TestClient, email: str, password: str, role: str = "student") -> str:
    client.post("/auth/register", json={"email": email, "password": password, "role": role})
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return response.json()["access_token"]


def test_register_defaults_to_student_role():
    client = TestClient(app)
    response = client.post("/auth/register", json={"email": "student@example.com", "password": "secret"})
    assert response.status_code == 200
    data = response.json()
    assert data["role"] == "student"
    assert "hashed_password" not in data


def test_register_tutor_and_fetch_me():
    client = TestClient(app)
    token = register_and_login(client, "tutor@example.com", "secret", role="tutor")
    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["role"] == "tutor"


def test_cannot_self_register_as_admin():
    client = TestClient(app)
    response = client.post(
        "/auth/register",
        json={"email": "sneaky@example.com", "password": "secret", "role": "admin"},
    )
    assert response.status_code == 422


def test_duplicate_email_returns_400():
    client = TestClient(app)
    payload = {"email": "dup@example.com", "password": "secret"}
    assert client.post("/auth/register", json=payload).status_code == 200
    assert client.post("/auth/register", json=payload).status_code == 400


def test_wrong_password_returns_400():
    client = TestClient(app)
    client.post("/auth/register", json={"email": "wrongpw@example.com", "password": "secret"})
    response = client.post("/auth/login", json={"email": "wrongpw@example.com", "password": "bad"})
    assert response.status_code == 400


def test_inactive_user_token_is_rejected():
    client = TestClient(app)
    token = register_and_login(client, "inactive@example.com", "secret")
    with SessionLocal() as db:
        user = db.query(User).filter(User.email == "inactive@example.com").first()
        user.is_active = False
        db.commit()
    response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_me_with_invalid_token_returns_401():
    client = TestClient(app)
    response = client.get("/auth/me", headers={"Authorization": "Bearer invalid"})
    assert response.status_code == 401


def test_me_without_token_returns_401():
    client = TestClient(app)
    response = client.get("/auth/me")
    assert response.status_code == 401


def test_login_returns_bearer_token():
    client = TestClient(app)
    client.post("/auth/register", json={"email": "bearer@example.com", "password": "secret"})
    response = client.post("/auth/login", json={"email": "bearer@example.com", "password": "secret"})
    assert response.status_code == 200
    assert response.json()["token_type"] == "bearer"
