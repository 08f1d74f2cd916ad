# bookkeeper/tests/test_assistant.py
# Assistant: classification, reminders, scoring, chat, reports, backups and receipts

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from bookkeeper import periods
from bookkeeper.assistant import (
    _similar, backup_recommendation, classify_intent, next_month_projection, score_health
)

TODAY = date.today()


def days_ago(days: int) -> str:
    return (TODAY - timedelta(days=days)).isoformat()


def classify(client, headers, **body):
    response = client.post("/api/assistant/classify-transaction", json=body, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]

# --- Classification ---


def test_classify_prefers_history(client: TestClient, auth_headers, add_expense):
    add_expense(description="Printer paper", vendor="Staples", category="marketing")
    add_expense(description="Printer paper", vendor="Staples", category="marketing")

    data = classify(client, auth_headers, description="Printer paper")
    assert data["suggestedCategory"] == "marketing"
    assert data["source"] == "history"
    assert data["confidence"] == 0.5
    assert data["amountInsights"] == {"message": "No amount given"}


def test_classify_matches_similar_vendor(client: TestClient, auth_headers, add_expense):
    add_expense(description="Brochures", vendor="Office Depot", category="marketing")

    data = classify(client, auth_headers, description="Toner cartridge", vendor="Office Depot Inc")
    assert data["suggestedCategory"] == "marketing"
    assert data["source"] == "vendor_history"
    assert data["confidence"] == 0.4


def test_classify_falls_back_to_keywords_then_other(client: TestClient, auth_headers):
    keywords = classify(client, auth_headers, description="Monthly office rent")
    assert keywords["suggestedCategory"] == "office"
    assert keywords["source"] == "keywords"
    assert keywords["confidence"] == 0.7

    fallback = classify(client, auth_headers, description="Mystery item")
    assert fallback["suggestedCategory"] == "other"
    assert fallback["source"] == "default"
    assert fallback["confidence"] == 0.3


def test_classify_income_uses_income_keywords(client: TestClient, auth_headers):
    data = classify(client, auth_headers, description="Quarterly dividend", type="income")
    assert data["suggestedCategory"] == "interest"


def test_history_is_per_user(client: TestClient, auth_headers, other_headers, add_expense):
    add_expense(description="Printer paper", category="marketing")
    data = classify(client, other_headers, description="Printer paper")
    assert data["source"] != "history"


def test_history_match_treats_wildcards_literally(client: TestClient, auth_headers, add_expense):
    add_expense(description="Printer paper", vendor="Staples", category="marketing")
    data = classify(client, auth_headers, description="%")
    assert data["source"] != "history"
    assert data["suggestedCategory"] == "other"


@pytest.mark.parametrize("left, right, expected", [
    ("Printer paper", "printer paper.", True),
    ("Office Depot", "Office Depot", True),
    (None, "", True),
    ("Printer paper", "Catering", False),
    ("Office Depot", None, False),
])
def test_similar(left, right, expected):
    assert _similar(left, right) is expected

# --- Reminders ---


def test_reminders_flag_overdue_income_and_duplicates(client: TestClient, auth_headers, add_income, add_expense):
    add_income(customer="Slow Payer", status="pending", date=days_ago(40))
    add_income(customer="Recent", status="pending", date=days_ago(2))
    add_expense(description="Printer paper", vendor="Office Depot", amount=250, date=days_ago(1))
    add_expense(description="Printer paper.", vendor="Office Depot", amount=250, date=days_ago(1))
    add_expense(description="Printer paper", vendor="Office Depot", amount=999, date=days_ago(1))

    response = client.get("/api/assistant/reminders", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["data"]

    overdue = [item for item in data["reminders"] if item["type"] == "overdue_income"]
    assert len(overdue) == 1
    assert overdue[0]["priority"] == "high"
    assert overdue[0]["data"]["customer"] == "Slow Payer"

    duplicates = [item for item in data["reminders"] if item["type"] == "duplicate_expense"]
    assert len(duplicates) == 1
    assert duplicates[0]["data"]["count"] == 2
    assert len(duplicates[0]["data"]["ids"]) == 2

    priorities = [item["priority"] for item in data["reminders"]]
    assert priorities == sorted(priorities, key={"high": 0, "medium": 1, "low": 2}.get)
    assert data["summary"]["total"] == len(data["reminders"])

# --- Health score ---


def test_score_health_with_two_months():
    months = [
        {"month": "2024-07", "income": 100000, "expense": 50000},
        {"month": "2024-08", "income": 120000, "expense": 60000},
    ]
    result = score_health(months, balance=100000)
    assert result["scores"]["profitability"] == 25
    assert result["scores"]["stability"] == pytest.approx(24.5)
    assert result["scores"]["growth"] == 20
    assert result["scores"]["efficiency"] == pytest.approx(10)
    assert result["scores"]["cashFlow"] == pytest.approx(11)
    assert result["totalScore"] == 91
    assert result["grade"] == "A"


def test_health_score_without_data(client: TestClient, auth_headers):
    data = client.get("/api/assistant/health-score", headers=auth_headers).json()["data"]
    assert data["hasEnoughData"] is False
    assert data["totalScore"] == 0
    assert data["grade"] == "F"
    assert data["interpretation"]["poor"] is True
    assert {s["category"] for s in data["suggestions"]} == {
        "profitability", "stability", "growth", "efficiency", "cashFlow"
    }


def test_next_month_projection():
    assert next_month_projection([])["hasEnoughData"] is False
    projection = next_month_projection([
        {"income": 1000, "expense": 500},
        {"income": 2000, "expense": 500},
    ])
    assert projection == {"income": 2000, "expense": 500, "profit": 1500, "hasEnoughData": True}

# --- Chat ---


@pytest.mark.parametrize("message, intent", [
    ("balance and health status", "financial_status"),
    ("expense cost", "expense_analysis"),
    ("revenue per customer", "income_analysis"),
    ("cash flow liquidity", "cash_flow"),
    ("forecast the trend", "forecasting"),
    ("optimize and save", "optimization"),
    ("hello there", "general"),
])
def test_classify_intent(message, intent):
    assert classify_intent(message)[0] == intent


def test_chat_without_keywords_is_general(client: TestClient, auth_headers):
    response = client.post("/api/assistant/chat", json={"message": "hello there"}, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["intent"] == "general"
    assert data["confidence"] == 0
    assert data["suggestions"]


def test_chat_expense_analysis_on_empty_month(client: TestClient, auth_headers):
    data = client.post("/api/assistant/chat", json={"message": "expense cost"}, headers=auth_headers).json()["data"]
    assert data["intent"] == "expense_analysis"
    assert data["response"] == "No expenses recorded this month."


def test_chat_rejects_empty_message(client: TestClient, auth_headers):
    assert client.post("/api/assistant/chat", json={"message": ""}, headers=auth_headers).status_code == 400

# --- Insights, tasks, goals, automation ---


def test_insights_compare_with_last_month(client: TestClient, auth_headers, add_income):
    this_month = TODAY.replace(day=1)
    add_income(amount=1200, date=this_month.isoformat())
    add_income(amount=1000, date=periods.add_months(this_month, -1).isoformat())

    found = client.get("/api/assistant/insights", headers=auth_headers).json()["data"]["insights"]
    income_change = next(item for item in found if item["type"] == "income_change")
    assert income_change["data"]["change"] == 20.0
    assert income_change["impact"] == "positive"


def test_task_suggestions(client: TestClient, auth_headers, add_income, add_expense):
    add_income(status="pending", amount=1000, date=days_ago(40))
    add_expense(category="other")

    data = client.get("/api/assistant/task-suggestions", headers=auth_headers).json()["data"]
    types = [task["type"] for task in data["tasks"]]
    assert types[0] == "overdue_collection"
    assert {"pending_items", "categorize_expenses"} <= set(types)
    assert [task["type"] for task in data["priority_tasks"]] == ["overdue_collection"]
    assert data["total_potential_savings"] == 1000


def test_smart_report(client: TestClient, auth_headers, add_income, add_expense):
    add_income(amount=1000, date=TODAY.isoformat())
    add_expense(amount=400, date=TODAY.isoformat())

    response = client.post("/api/assistant/generate-smart-report",
                           json={"reportType": "business_insights", "dateRange": "this_month"},
                           headers=auth_headers)
    assert response.status_code == 200
    summary = response.json()["data"]["report"]["summary"]
    assert summary["netProfit"] == 600
    assert summary["profitMargin"] == 60.0


def test_smart_report_rejects_unknown_type(client: TestClient, auth_headers):
    response = client.post("/api/assistant/generate-smart-report",
                           json={"reportType": "horoscope"}, headers=auth_headers)
    assert response.status_code == 400


def test_financial_goals_without_data(client: TestClient, auth_headers):
    data = client.get("/api/assistant/financial-goals", headers=auth_headers).json()["data"]
    assert data["goals"]["monthly_profit"]["suggested"] == 50000
    assert data["progress"] == {"monthly_profit": 0, "cash_reserve": 0, "expense_ratio": 70}
    assert data["summary"]["achieved_goals"] == 0
    assert data["summary"]["total_goals"] == 3


def test_automation_suggestions(client: TestClient, auth_headers, add_expense):
    for amount in (100, 200, 300):
        add_expense(vendor="Landlord", category="rent", amount=amount, date=days_ago(5))

    data = client.get("/api/assistant/automation-suggestions", headers=auth_headers).json()["data"]
    recurring = next(s for s in data["suggestions"] if s["type"] == "recurring_transaction")
    assert recurring["data"]["vendor"] == "Landlord"
    assert recurring["data"]["frequency"] == 3
    assert recurring["data"]["averageAmount"] == 200
    assert any(s["type"] == "backup_reminder" for s in data["suggestions"])

# --- Backups ---


@pytest.mark.parametrize("records, days, priority", [
    (0, None, "low"), (5, None, "high"), (5, 31, "high"), (60, 20, "medium"), (30, 10, "medium"), (10, 3, "low"),
])
def test_backup_recommendation(records, days, priority):
    assert backup_recommendation(records, days)["priority"] == priority


def test_smart_backup_create_status_and_verify(client: TestClient, auth_headers, add_income):
    add_income()

    created = client.post("/api/assistant/create-smart-backup", json={"note": "before audit"},
                          headers=auth_headers)
    assert created.status_code == 200
    backup = created.json()["data"]
    assert backup["backupId"].startswith("smart_")
    assert backup["metadata"]["totalRecords"] == 1

    status = client.get("/api/assistant/backup-status", headers=auth_headers).json()["data"]
    assert status["backupCount"] == 1
    assert status["daysSinceBackup"] == 0
    assert status["recommendation"]["priority"] == "low"

    verified = client.post("/api/assistant/verify-backup", json={"backupId": backup["backupId"]},
                           headers=auth_headers).json()["data"]
    assert verified["isValid"] is True
    assert verified["dataIntegrity"] == 100


def test_verify_backup_rejects_other_users_ids(client: TestClient, auth_headers, other_headers):
    backup_id = client.post("/api/assistant/create-smart-backup", json={},
                            headers=auth_headers).json()["data"]["backupId"]
    response = client.post("/api/assistant/verify-backup", json={"backupId": backup_id}, headers=other_headers)
    assert response.status_code == 404
    response = client.post("/api/assistant/verify-backup", json={"backupId": "../etc/passwd"},
                           headers=auth_headers)
    assert response.status_code == 404


def test_verify_uploaded_document(client: TestClient, auth_headers):
    data = client.post("/api/assistant/verify-backup", json={"backupData": {}},
                       headers=auth_headers).json()["data"]
    assert data["isValid"] is False
    assert data["dataIntegrity"] == 0
    assert "Backup contains no records" in data["issues"]

# --- Receipts ---


def test_scan_receipt_is_deterministic(client: TestClient, auth_headers):
    body = {"imageData": "data:image/png;base64,aGVsbG8gcmVjZWlwdA==", "receiptType": "gas_station"}
    first = client.post("/api/assistant/scan-receipt", json=body, headers=auth_headers)
    second = client.post("/api/assistant/scan-receipt", json=body, headers=auth_headers)
    assert first.status_code == 200

    data = first.json()["data"]
    assert data["extractedData"]["amount"] == second.json()["data"]["extractedData"]["amount"]
    assert 300 <= data["extractedData"]["amount"] < 1300
    assert data["confidence"] == 0.92
    assert data["suggestedRecord"]["category"] == "travel"


def test_scan_receipt_rejects_invalid_image(client: TestClient, auth_headers):
    response = client.post("/api/assistant/scan-receipt", json={"imageData": "not base64!!"}, headers=auth_headers)
    assert response.status_code == 422
    assert response.json()["success"] is False


def test_batch_scan_reports_errors_per_receipt(client: TestClient, auth_headers):
    response = client.post("/api/assistant/batch-scan-receipts", json={"receipts": [
        {"imageData": "aGVsbG8=", "receiptType": "restaurant", "filename": "lunch.jpg"},
        {"imageData": "???", "filename": "bad.jpg"},
    ]}, headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["processedCount"] == 1
    assert data["errorCount"] == 1
    assert data["errors"][0]["id"] == "bad.jpg"
    assert data["batchSummary"]["totalItems"] == 1


def test_batch_scan_limits_receipts(client: TestClient, auth_headers):
    receipts = [{"imageData": "aGVsbG8="}] * 11
    response = client.post("/api/assistant/batch-scan-receipts", json={"receipts": receipts}, headers=auth_headers)
    assert response.status_code == 400


def test_receipt_templates(client: TestClient, auth_headers, add_expense):
    for amount in (100, 200, 300):
        add_expense(vendor="Landlord", category="rent", amount=amount)
    add_expense(vendor="One-off", category="office")

    data = client.get("/api/assistant/receipt-templates", headers=auth_headers).json()["data"]
    assert len(data["templates"]) == 1
    template = data["templates"][0]
    assert template["priceRange"] == {"min": 100, "max": 300, "avg": 200}
    assert template["confidence"] == 0.8
    assert data["summary"]["mostFrequentCategory"] == "rent"
