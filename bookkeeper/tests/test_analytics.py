# bookkeeper/tests/test_analytics.py
# Yearly performance, comparisons, monthly forecasts, anomalies and profitability

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from bookkeeper import analytics, periods


@pytest.fixture
def two_years(add_income, add_expense):
    add_income(amount=20000, customer="Globex", status="received", date="2022-05-01")
    add_income(amount=10000, customer="Globex", status="received", date="2023-03-01")
    add_income(amount=30000, customer="Initech", status="pending", date="2023-06-01")
    add_expense(amount=8000, category="rent", status="paid", date="2023-03-15")


def test_performance_uses_recorded_data_only(client: TestClient, auth_headers, two_years):
    data = client.get("/api/analytics/performance", headers=auth_headers, params={"year": 2023}).json()["data"]
    performance = data["performanceData"]
    assert performance["totalRevenue"] == 40000
    assert performance["netProfit"] == 32000
    assert performance["profitMargin"] == 80
    assert performance["revenueGrowth"] == 100
    assert performance["collectionRate"] == 25
    for fabricated in ("currentRatio", "quickRatio", "debtToEquity", "inventoryTurnover"):
        assert fabricated not in performance

    assert [row["month"] for row in data["trendData"]] == ["2023-03", "2023-06"]
    assert data["summary"]["topCustomer"] == "Initech"
    assert data["summary"]["topExpenseCategory"] == "rent"
    assert data["summary"]["healthScore"] == 70


def test_performance_for_empty_year(client: TestClient, auth_headers):
    data = client.get("/api/analytics/performance", headers=auth_headers, params={"year": 2001}).json()["data"]
    assert data["performanceData"]["totalRevenue"] == 0
    assert data["performanceData"]["revenueGrowth"] == 0
    assert data["summary"]["topCustomer"] == "N/A"


def test_comparison(client: TestClient, auth_headers, two_years):
    data = client.get("/api/analytics/comparison", headers=auth_headers,
                      params={"year": 2023, "compareYear": 2022}).json()["data"]
    assert data["currentYear"]["profit"] == 32000
    assert data["previousYear"]["profit"] == 20000
    assert data["growth"] == {"revenue": 100, "expense": 0, "profit": 60}


def test_percent_change_uses_magnitude_of_base():
    assert analytics._percent_change(50, -100) == 150
    assert analytics._percent_change(10, 0) == 0


def test_monthly_forecast_needs_three_months(client: TestClient, auth_headers):
    data = client.get("/api/analytics/cashflow-forecast", headers=auth_headers).json()["data"]
    assert data["forecast"] == []
    assert "message" in data["insights"]


def test_monthly_forecast_projection(client: TestClient, auth_headers, add_income):
    today = date.today()
    for offset in (1, 2, 3):
        add_income(amount=1000, date=periods.add_months(today, -offset).isoformat())

    data = client.get("/api/analytics/cashflow-forecast", headers=auth_headers,
                      params={"months": 2}).json()["data"]
    assert len(data["historical"]) == 3
    first = data["forecast"][0]
    assert first["predicted_flow"] == 1200
    assert first["confidence"] == 0.9
    assert first["scenario"] == {"optimistic": 1440, "realistic": 1200, "pessimistic": 960}
    assert data["insights"]["trend"] == "stable"


def test_anomaly_detection_flags_outlier(client: TestClient, auth_headers, add_expense):
    today = date.today().isoformat()
    for _ in range(20):
        add_expense(amount=100, date=today)
    outlier = add_expense(amount=10000, date=today, vendor="Big Spender")

    data = client.get("/api/analytics/anomaly-detection", headers=auth_headers).json()["data"]
    assert [item["id"] for item in data["anomalies"]] == [outlier["id"]]
    assert data["anomalies"][0]["severity"] == "high"
    assert data["anomalies"][0]["description"] == "Big Spender"
    assert data["summary"]["totalAnomalies"] == 1
    weekday = (date.today().weekday() + 1) % 7
    assert data["patterns"][0]["day_of_week"] == weekday
    assert data["patterns"][0]["transaction_count"] == 21


def test_anomaly_detection_single_row_is_not_flagged(client: TestClient, auth_headers, add_expense):
    add_expense(amount=5000, date=date.today().isoformat())
    data = client.get("/api/analytics/anomaly-detection", headers=auth_headers).json()["data"]
    assert data["anomalies"] == []


@pytest.mark.parametrize("revenue, segment", [(50001, "vip"), (50000, "regular"), (10000, "regular"), (9999, "occasional")])
def test_customer_segments(revenue, segment):
    assert analytics.customer_segment(revenue) == segment


@pytest.mark.parametrize("days, risk", [(91, "high"), (90, "medium"), (31, "medium"), (30, "low")])
def test_churn_risk(days, risk):
    assert analytics.churn_risk(days) == risk


def test_profitability_analysis(client: TestClient, auth_headers, add_income, add_expense):
    today = date.today()
    add_income(amount=60000, customer="Globex", date=(today - timedelta(days=100)).isoformat())
    add_income(amount=5000, customer="Initech", date=today.isoformat())
    add_expense(amount=2000, category="rent", date=today.isoformat())

    data = client.get("/api/analytics/profitability-analysis", headers=auth_headers,
                      params={"period": "quarter"}).json()["data"]
    customers = {row["customer"]: row for row in data["customerProfitability"]}
    assert customers["Globex"]["segment"] == "vip"
    assert customers["Globex"]["churn_risk"] == "high"
    assert customers["Initech"]["segment"] == "occasional"
    assert data["insights"]["topCustomer"] == "Globex"
    assert data["insights"]["topCategory"] == "rent"
    assert data["insights"]["highRiskCustomers"] == 1
    assert all("-Q" in row["period"] for row in data["periodProfitability"])


def test_profitability_rejects_unknown_period(client: TestClient, auth_headers):
    response = client.get("/api/analytics/profitability-analysis", headers=auth_headers,
                          params={"period": "decade"})
    assert response.status_code == 400
