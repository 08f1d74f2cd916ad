# bookkeeper/tests/conftest.py
# Test configuration and fixtures for pytest

import os
import tempfile

# Settings are read once at import time, so configure them before importing the app
os.environ.setdefault("BOOKKEEPER_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("BOOKKEEPER_BCRYPT_ROUNDS", "4")
os.environ.setdefault("BOOKKEEPER_RATE_LIMIT_REQUESTS", "100000")
os.environ.setdefault("BOOKKEEPER_BACKUP_DIR", tempfile.mkdtemp(prefix="bookkeeper-backups-"))
os.environ.setdefault("BOOKKEEPER_ENVIRONMENT", "test")
os.environ.setdefault("BOOKKEEPER_ADMIN_EMAILS", '["owner@example.com"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bookkeeper import models
from bookkeeper.dependencies import get_db
from bookkeeper.main import app

# --- Test Database Setup ---
# One in-memory SQLite connection shared by every session of a test


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    models.init_database(bind=engine)
    yield engine
    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client(db_session):
    """TestClient whose requests use the test database session."""

    def override_get_db():
        try:
            yield db_session
        finally:
            db_session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.rate_limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()

# --- Users ---


@pytest.fixture
def register(client):
    """Factory: register a user and return ``(headers, user)``."""

    def _register(email="owner@example.com", password="secret123", company_name="Acme", name="Owner"):
        response = client.post("/api/auth/register", json={
            "email": email,
            "password": password,
            "companyName": company_name,
            "name": name,
        })
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return {"Authorization": f"Bearer {data['token']}"}, data["user"]

    return _register


@pytest.fixture
def auth_headers(register):
    headers, _ = register()
    return headers


@pytest.fixture
def user_id(client, auth_headers):
    return client.get("/api/auth/verify", headers=auth_headers).json()["data"]["user"]["id"]


@pytest.fixture
def other_headers(register):
    headers, _ = register(email="intruder@example.com", company_name="Other Co", name="Intruder")
    return headers

# --- Ledger rows ---


@pytest.fixture
def add_income(client, auth_headers):
    def _add(headers=None, **fields):
        body = {
            "date": "2024-08-01",
            "customer": "Globex",
            "description": "Consulting",
            "amount": 1000,
            "taxRate": 5,
            "status": "received",
        }
        body.update(fields)
        response = client.post("/api/income", json=body, headers=headers or auth_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _add


@pytest.fixture
def add_expense(client, auth_headers):
    def _add(headers=None, **fields):
        body = {
            "date": "2024-08-01",
            "vendor": "Office Depot",
            "category": "office",
            "description": "Paper",
            "amount": 1000,
            "taxRate": 5,
        }
        body.update(fields)
        response = client.post("/api/expense", json=body, headers=headers or auth_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _add
