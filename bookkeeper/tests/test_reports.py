# bookkeeper/tests/test_reports.py
# Income statement and expense breakdown

from fastapi.testclient import TestClient

AUGUST = {"startDate": "2024-08-01", "endDate": "2024-08-31"}


def test_income_statement(client: TestClient, auth_headers, add_income, add_expense):
    add_income(amount=8000, taxRate=5)
    add_expense(amount=2000, taxRate=5)

    data = client.get("/api/reports/income-statement", headers=auth_headers, params=AUGUST).json()["data"]
    assert data["revenue"] == {"amount": 8000, "tax": 400}
    assert data["expenses"] == {"amount": 2000, "tax": 100}
    assert data["grossProfit"] == 6000
    assert data["netIncome"] == 6000
    assert data["profitMargin"] == 75


def test_income_statement_without_revenue(client: TestClient, auth_headers):
    data = client.get("/api/reports/income-statement", headers=auth_headers, params=AUGUST).json()["data"]
    assert data["profitMargin"] == 0


def test_expense_breakdown_percentages(client: TestClient, auth_headers, add_expense):
    add_expense(amount=750, category="rent")
    add_expense(amount=250, category="office")

    data = client.get("/api/reports/expense-breakdown", headers=auth_headers, params=AUGUST).json()["data"]
    assert data["total"] == 1000
    assert [(item["category"], item["percentage"]) for item in data["categories"]] == [
        ("rent", 75), ("office", 25),
    ]
