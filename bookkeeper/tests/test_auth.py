# bookkeeper/tests/test_auth.py
# Registration, login and token verification

from datetime import timedelta

from fastapi.testclient import TestClient

from bookkeeper import auth, models


def test_register_then_login(client: TestClient):
    response = client.post("/api/auth/register", json={
        "email": "a@b.com", "password": "123456", "companyName": "X", "name": "Y",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["token"]
    assert body["data"]["user"]["email"] == "a@b.com"
    assert body["data"]["user"]["companyName"] == "X"
    assert "password" not in body["data"]["user"]

    response = client.post("/api/auth/login", json={"email": "a@b.com", "password": "123456"})
    assert response.status_code == 200
    assert response.json()["data"]["token"]


def test_login_with_wrong_password_is_generic(client: TestClient, register):
    register(email="a@b.com", password="123456")

    wrong_password = client.post("/api/auth/login", json={"email": "a@b.com", "password": "nope!!"})
    unknown_user = client.post("/api/auth/login", json={"email": "z@b.com", "password": "123456"})

    assert wrong_password.status_code == 401
    assert unknown_user.status_code == 401
    assert wrong_password.json()["success"] is False
    assert wrong_password.json()["message"] == unknown_user.json()["message"]


def test_register_reports_every_invalid_field(client: TestClient):
    response = client.post("/api/auth/register", json={
        "email": "not-an-email", "password": "123", "companyName": "", "name": "",
    })
    assert response.status_code == 400
    fields = {item["field"] for item in response.json()["details"]}
    assert fields == {"email", "password", "companyName", "name"}


def test_duplicate_email_conflicts(client: TestClient, register):
    register(email="a@b.com")
    response = client.post("/api/auth/register", json={
        "email": "A@B.com", "password": "123456", "companyName": "X", "name": "Y",
    })
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_password_is_stored_hashed(client: TestClient, register, db_session):
    register(email="a@b.com", password="123456")
    user = db_session.query(models.User).filter(models.User.email == "a@b.com").one()
    assert user.hashed_password != "123456"
    assert auth.auth_manager.verify_password("123456", user.hashed_password)


def test_login_stamps_last_login(client: TestClient, register, db_session):
    register(email="a@b.com", password="123456")
    client.post("/api/auth/login", json={"email": "a@b.com", "password": "123456"})
    user = db_session.query(models.User).filter(models.User.email == "a@b.com").one()
    assert user.last_login is not None


def test_verify_returns_identity(client: TestClient, auth_headers):
    response = client.get("/api/auth/verify", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["email"] == "owner@example.com"
    assert data["claims"]["userId"] == data["user"]["id"]


def test_missing_token_is_401(client: TestClient):
    response = client.get("/api/income")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_garbage_token_is_403(client: TestClient):
    response = client.get("/api/income", headers={"Authorization": "Bearer not.a.token"})
    assert response.status_code == 403


def test_expired_token_is_401(client: TestClient, register, db_session):
    register(email="a@b.com")
    user = db_session.query(models.User).filter(models.User.email == "a@b.com").one()
    token = auth.auth_manager.create_access_token(user, expires_delta=timedelta(seconds=-10))

    response = client.get("/api/income", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert "expired" in response.json()["message"].lower()


def test_logout_is_stateless(client: TestClient, auth_headers):
    response = client.post("/api/auth/logout")
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["data"]["authenticated"] is False

    response = client.post("/api/auth/logout", headers=auth_headers)
    assert response.json()["data"]["authenticated"] is True

    response = client.post("/api/auth/logout", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 200
    assert response.json()["data"]["authenticated"] is False
