# bookkeeper/tests/test_app.py
# Application edge: health, error envelopes, auth gate, rate limiting, body limit, receipt scanner

import pytest
from fastapi.testclient import TestClient

from bookkeeper import main
from bookkeeper.errors import ReceiptScanError
from bookkeeper.main import app
from bookkeeper.middleware import RateLimiter
from bookkeeper.receipt_scanner import SimulatedReceiptScanner, decode_image, get_receipt_scanner


def test_health(client: TestClient):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "OK"
    assert body["data"]["version"] == "1.0.0"
    assert "timestamp" in body["data"]


def test_unknown_route_uses_envelope(client: TestClient):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Route /api/does-not-exist not found"


@pytest.mark.parametrize("path", [
    "/api/income",
    "/api/expense",
    "/api/dashboard/overview",
    "/api/reports/income-statement",
    "/api/budget",
    "/api/cashflow/forecast",
    "/api/analytics/performance",
    "/api/assistant/reminders",
    "/api/settings/company-info",
    "/api/tax/calculation-history",
])
def test_protected_routes_need_a_token(client: TestClient, path):
    response = client.get(path)
    assert response.status_code == 401
    assert response.json()["success"] is False

    response = client.get(path, headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 403


def test_validation_errors_name_the_field(client: TestClient, auth_headers):
    response = client.post("/api/income", json={
        "date": "2024-08-01", "customer": "Globex", "description": "Consulting", "amount": 100, "taxRate": 500,
    }, headers=auth_headers)
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Input validation failed"
    assert [detail["field"] for detail in body["details"]] == ["taxRate"]

# --- Rate limiting ---


def test_rate_limit_returns_429(client: TestClient, monkeypatch):
    monkeypatch.setattr(app.state, "rate_limiter", RateLimiter(2, 60))

    first = client.get("/api/health")
    assert first.headers["X-RateLimit-Remaining"] == "1"
    client.get("/api/health")
    blocked = client.get("/api/health")
    assert blocked.status_code == 429
    assert blocked.json()["success"] is False
    assert int(blocked.headers["Retry-After"]) <= 60


def test_rate_limit_only_covers_api_paths(client: TestClient, monkeypatch):
    monkeypatch.setattr(app.state, "rate_limiter", RateLimiter(0, 60))
    assert client.get("/docs").status_code == 200
    assert client.get("/api/health").status_code == 429


def test_rate_limiter_window():
    now = [0.0]
    limiter = RateLimiter(2, 60, clock=lambda: now[0])

    assert limiter.hit("a") == (True, 1, 60)
    assert limiter.hit("a") == (True, 0, 60)
    assert limiter.hit("b")[0] is True
    now[0] = 30.0
    assert limiter.hit("a") == (False, 0, 30)

    now[0] = 60.0
    assert limiter.hit("a") == (True, 1, 60)

    limiter.reset()
    assert limiter.hit("a") == (True, 1, 60)


def test_rate_limiter_drops_expired_clients():
    now = [0.0]
    limiter = RateLimiter(5, 60, clock=lambda: now[0])
    for address in ("10.0.0.1", "10.0.0.2", "10.0.0.3"):
        limiter.hit(address)
    assert len(limiter._windows) == 3

    now[0] = 30.0
    limiter.hit("10.0.0.4")
    assert len(limiter._windows) == 4

    now[0] = 75.0
    limiter.hit("10.0.0.5")
    assert set(limiter._windows) == {"10.0.0.4", "10.0.0.5"}

# --- Body size ---


def test_oversized_body_is_rejected(client: TestClient, monkeypatch):
    monkeypatch.setattr(main.app_settings, "max_body_bytes", 16)
    response = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "secret123"})
    assert response.status_code == 413
    assert response.json()["success"] is False


def test_chunked_body_is_counted(client: TestClient, monkeypatch):
    monkeypatch.setattr(main.app_settings, "max_body_bytes", 16)

    def chunks():
        yield b'{"email": "owner@example.com", '
        yield b'"password": "secret123"}'

    response = client.post("/api/auth/login", content=chunks(), headers={"Content-Type": "application/json"})
    assert "content-length" not in response.request.headers
    assert response.status_code == 413
    assert response.json()["success"] is False

# --- Receipt scanner ---


def test_decode_image_accepts_data_urls():
    assert decode_image("data:image/png;base64,aGVsbG8=") == b"hello"
    assert decode_image("aGVsbG8=") == b"hello"


@pytest.mark.parametrize("payload", ["not base64!!", ""])
def test_decode_image_rejects_bad_payloads(payload):
    with pytest.raises(ReceiptScanError):
        decode_image(payload)


def test_simulated_scanner():
    scanner = SimulatedReceiptScanner()
    first = scanner.scan("aGVsbG8=", "office_supplies")
    assert first == scanner.scan("aGVsbG8=", "office_supplies")
    assert first["vendor"] == "辦公用品店"
    assert 50 <= first["amount"] < 250
    assert first["ocrEngine"] == "simulated-ocr"

    assert scanner.scan("aGVsbG8=", "spaceship")["vendor"] == "一般商店"
    assert scanner.scan("aGVsbG8=")["vendor"] in {t["vendor"] for t in SimulatedReceiptScanner.TEMPLATES.values()}


def test_default_scanner_is_simulated():
    assert isinstance(get_receipt_scanner(), SimulatedReceiptScanner)
