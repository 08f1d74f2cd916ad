# bookkeeper/tests/test_expense.py
# Expense ledger CRUD, category statistics and month-over-month trend

from datetime import date

from fastapi.testclient import TestClient

from bookkeeper import periods


def test_create_expense_defaults_to_pending(client: TestClient, add_expense):
    record = add_expense(amount=1000, taxRate=5)
    assert record["tax_amount"] == 50
    assert record["total_amount"] == 1050
    assert record["status"] == "pending"
    assert record["expense_id"] == "EXP001"


def test_category_is_required(client: TestClient, auth_headers):
    response = client.post("/api/expense", headers=auth_headers, json={
        "date": "2024-08-01", "vendor": "Shop", "description": "Pens", "amount": 10,
    })
    assert response.status_code == 400
    assert "category" in {item["field"] for item in response.json()["details"]}


def test_income_status_is_not_valid_for_expenses(client: TestClient, auth_headers):
    response = client.post("/api/expense", headers=auth_headers, json={
        "date": "2024-08-01", "vendor": "Shop", "category": "office",
        "description": "Pens", "amount": 10, "status": "received",
    })
    assert response.status_code == 400


def test_vendor_and_category_filters(client: TestClient, auth_headers, add_expense):
    add_expense(vendor="Office Depot", category="office")
    add_expense(vendor="Landlord", category="rent", amount=20000)

    rows = client.get("/api/expense", headers=auth_headers, params={"category": "rent"}).json()["data"]
    assert [row["vendor"] for row in rows] == ["Landlord"]
    rows = client.get("/api/expense", headers=auth_headers, params={"vendor": "depot"}).json()["data"]
    assert [row["category"] for row in rows] == ["office"]


def test_vendor_filter_treats_wildcards_literally(client: TestClient, auth_headers, add_expense):
    add_expense(vendor="50% Off Store", category="office")
    add_expense(vendor="500 Corp", category="rent")
    add_expense(vendor="Paper_Co", category="marketing")

    rows = client.get("/api/expense", headers=auth_headers, params={"vendor": "50%"}).json()["data"]
    assert [row["vendor"] for row in rows] == ["50% Off Store"]
    rows = client.get("/api/expense", headers=auth_headers, params={"vendor": "_"}).json()["data"]
    assert [row["vendor"] for row in rows] == ["Paper_Co"]


def test_stats_by_category_ordered_by_amount(client: TestClient, auth_headers, add_expense):
    add_expense(category="office", amount=100)
    add_expense(category="office", amount=200)
    add_expense(category="rent", amount=5000, status="paid")

    rows = client.get("/api/expense/stats/by-category", headers=auth_headers).json()["data"]
    assert [row["category"] for row in rows] == ["rent", "office"]
    assert rows[1]["total_count"] == 2
    assert rows[1]["amount_sum"] == 300
    assert rows[1]["total_with_tax"] == 315
    assert rows[0]["paid_amount"] == 5250


def test_expense_trend_compares_calendar_months(client: TestClient, auth_headers, add_expense):
    today = date.today()
    last_month = periods.add_months(today.replace(day=1), -1)
    add_expense(date=last_month.isoformat(), amount=1000, taxRate=0)
    add_expense(date=today.isoformat(), amount=1500, taxRate=0)

    trend = client.get("/api/expense/insights/expense-trend", headers=auth_headers).json()["data"]
    assert trend["currentTotal"] == 1500
    assert trend["previousTotal"] == 1000
    assert trend["percentageChange"] == 50
    assert trend["trend"] == "increase"


def test_expense_trend_without_history_is_stable(client: TestClient, auth_headers):
    trend = client.get("/api/expense/insights/expense-trend", headers=auth_headers).json()["data"]
    assert trend["percentageChange"] == 0
    assert trend["trend"] == "stable"


def test_expenses_are_isolated_between_users(client: TestClient, add_expense, other_headers):
    record = add_expense()
    response = client.put(f"/api/expense/{record['id']}", headers=other_headers, json={
        "date": "2024-08-01", "vendor": "X", "category": "office", "description": "Y", "amount": 1,
    })
    assert response.status_code == 404
