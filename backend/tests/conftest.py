"""
Pytest configuration and shared fixtures for backend tests.

WHAT: Centralized test configuration with markers and marketplace helpers
WHY: Enable test organization, filtering, and shared test utilities
HOW: Point settings at a throwaway SQLite file before the app is imported,
     recreate tables per test, provide user/product factories
"""

import os
import tempfile
from dataclasses import dataclass

import pytest

# Settings are read at import time, so configure the environment first
_TEST_DIR = tempfile.mkdtemp(prefix="thriftly-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/test.db"
os.environ["LOG_FILE"] = f"{_TEST_DIR}/logs/app.log"
os.environ["UPLOAD_DIR"] = f"{_TEST_DIR}/uploads"
os.environ["ADMIN_EMAILS"] = "admin@thriftly.test"
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["ESEWA_VERIFY_REMOTE"] = "false"
os.environ["JWT_SECRET"] = "test-secret"

from fastapi.testclient import TestClient  # noqa: E402

from app.core.database import Base, engine, get_db  # noqa: E402
from app.core import models  # noqa: E402,F401
from app.core.models import User  # noqa: E402
from app.main import app  # noqa: E402

DEFAULT_PASSWORD = "secret123"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (isolated component tests)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (HTTP API against a real database)"
    )
    config.addinivalue_line(
        "markers", "realtime: Tests that exercise the pub/sub hub or WebSocket channel"
    )
    config.addinivalue_line(
        "markers", "payments: eSewa payment flow tests"
    )


@pytest.fixture(autouse=True)
def reset_database():
    """
    Fresh schema for every test.

    WHAT: Drop and recreate all tables
    WHY: Ensure test isolation
    HOW: Base.metadata on the shared test engine
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    """TestClient with the lifespan running (hub started, tables created)."""
    with TestClient(app) as test_client:
        yield test_client


@dataclass
class Account:
    id: int
    username: str
    email: str
    token: str
    role: str

    @property
    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"}


def read_otp(email: str) -> str:
    with get_db() as db:
        return db.query(User).filter(User.email == email).one().otp_code


def register_and_login(client: TestClient, username: str, email: str = None,
                       password: str = DEFAULT_PASSWORD) -> Account:
    """Register, verify with the stored OTP, log in; returns a Bearer-token user."""
    email = email or f"{username.lower()}@thriftly.test"
    response = client.post("/api/v1/auth/register", json={
        "username": username, "email": email, "password": password, "phone": "9800000000",
    })
    assert response.status_code == 200, response.json()

    response = client.post("/api/v1/auth/verify", json={"email": email, "otp": read_otp(email)})
    assert response.status_code == 200, response.json()

    response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.json()
    body = response.json()

    # Requests authenticate with the Bearer header; a shared cookie would
    # make every request look like the last user who logged in
    client.cookies.clear()
    return Account(id=body["user"]["id"], username=username, email=email,
                   token=body["token"], role=body["user"]["role"])


@pytest.fixture
def make_user(client):
    def _make(username: str, email: str = None) -> Account:
        return register_and_login(client, username, email)
    return _make


@pytest.fixture
def make_product(client):
    """Create a listing owned by the given user."""
    def _make(owner: Account, title: str = "Denim Jacket", price: float = 1000,
              category: str = "Clothing", **fields) -> dict:
        data = {"title": title, "price": str(price), "category": category}
        data.update({k: str(v) for k, v in fields.items()})
        response = client.post(
            "/api/v1/products",
            data=data,
            files={"image": ("jacket.jpg", b"\xff\xd8\xff\xe0fake-jpeg", "image/jpeg")},
            headers=owner.headers,
        )
        assert response.status_code == 200, response.json()
        return response.json()["product"]
    return _make


@pytest.fixture
def make_story(client):
    def _make(owner: Account, caption: str = "Thrift haul") -> dict:
        response = client.post(
            "/api/v1/stories",
            data={"caption": caption},
            files={"media": ("haul.png", b"\x89PNGfake", "image/png")},
            headers=owner.headers,
        )
        assert response.status_code == 200, response.json()
        return response.json()["story"]
    return _make
