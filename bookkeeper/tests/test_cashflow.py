# bookkeeper/tests/test_cashflow.py
# Daily cash-flow forecast, trend statistics, analysis and alerts

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from bookkeeper import forecasting


def test_trend_is_least_squares_slope():
    assert forecasting.calculate_trend([1, 2, 3, 4]) == pytest.approx(1)
    assert forecasting.calculate_trend([10, 8, 6]) == pytest.approx(-2)
    assert forecasting.calculate_trend([5]) == 0


def test_volatility_is_coefficient_of_variation():
    assert forecasting.calculate_volatility([10, 10, 10]) == 0
    assert forecasting.calculate_volatility([0, 0]) == 0
    # mean 5, population stdev 5
    assert forecasting.calculate_volatility([0, 10]) == pytest.approx(1)
    assert forecasting.calculate_volatility([10, 20, 30, 40]) == pytest.approx(11.1803 / 25, rel=1e-4)


@pytest.mark.parametrize("balance, initial, level", [
    (-1, 1000, "critical"),
    (100, 1000, "high"),
    (300, 1000, "medium"),
    (800, 1000, "low"),
    (10, 0, "low"),
    (-5, -10, "critical"),
])
def test_daily_risk(balance, initial, level):
    assert forecasting.assess_daily_risk(balance, initial) == level


def test_confidence_decays_over_time():
    assert forecasting.calculate_confidence(0, 90, 120) == 100
    assert forecasting.calculate_confidence(15, 90, 90) == 50
    assert forecasting.calculate_confidence(30, 90, 90) == 0
    assert forecasting.calculate_confidence(0, 0, 50) == 0


def test_forecast_without_history_has_zero_confidence():
    result = forecasting.cash_flow_forecast(30, 0, {}, {}, today=date(2024, 4, 1))
    assert result["forecastPeriod"] == 30
    assert len(result["dailyForecast"]) == 30
    assert all(day["confidence"] == 0 for day in result["dailyForecast"])
    assert result["summary"]["finalBalance"] == 0


def test_forecast_applies_seasonality_and_pending_rows():
    today = date(2024, 4, 1)  # April factors are 1.0 / 1.0
    result = forecasting.cash_flow_forecast(
        3, 1000,
        income_history={date(2024, 3, 1): 100, date(2024, 3, 2): 300},
        expense_history={date(2024, 3, 1): 50},
        pending_income={date(2024, 4, 2): 500},
        today=today,
    )
    days = result["dailyForecast"]
    assert [day["predictedIncome"] for day in days] == [200, 700, 200]
    assert [day["predictedExpense"] for day in days] == [50, 50, 50]
    assert [day["cumulativeBalance"] for day in days] == [1150, 1800, 1950]
    assert result["summary"]["totalPredictedIncome"] == 1100
    assert result["summary"]["worstCaseBalance"] == 1150


def test_forecast_flags_shortfall():
    result = forecasting.cash_flow_forecast(
        5, 100, {date(2024, 3, 1): 0}, {date(2024, 3, 1): 60}, today=date(2024, 4, 1)
    )
    levels = [day["riskLevel"] for day in result["dailyForecast"]]
    assert levels[0] == "medium"
    assert levels[-1] == "critical"
    alerts = forecasting.forecast_alerts(result)
    assert alerts[0]["type"] == "critical"


def test_risk_assessment_factors():
    risk = forecasting.assess_cash_flow_risk([100, 0, 200], [150, 150, 150])
    assert risk["factors"] == ["negative_cash_flow", "unstable_income"]
    assert risk["score"] == 55
    assert risk["level"] == "medium"
    assert len(risk["recommendations"]) == 2


def test_risk_assessment_without_income():
    risk = forecasting.assess_cash_flow_risk([0, 0], [0, 0])
    assert risk["factors"] == ["low_cash_flow_ratio"]
    assert risk["level"] == "low"


def test_forecast_endpoint_with_empty_ledgers(client: TestClient, auth_headers):
    response = client.get("/api/cashflow/forecast", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["forecastPeriod"] == 30
    assert data["dailyForecast"][0]["confidence"] == 0


def test_forecast_days_bounds(client: TestClient, auth_headers):
    assert client.get("/api/cashflow/forecast/7", headers=auth_headers).json()["data"]["forecastPeriod"] == 7
    assert client.get("/api/cashflow/forecast/0", headers=auth_headers).status_code == 400
    assert client.get("/api/cashflow/forecast/366", headers=auth_headers).status_code == 400


def test_forecast_starts_from_settled_balance(client: TestClient, auth_headers, add_income, add_expense):
    add_income(amount=10000, taxRate=0, status="received", date="2020-01-01")
    add_income(amount=99999, taxRate=0, status="pending", date="2020-01-01")
    add_expense(amount=4000, taxRate=0, status="paid", date="2020-01-01")

    data = client.get("/api/cashflow/forecast/1", headers=auth_headers).json()["data"]
    assert data["currentBalance"] == 6000


def test_analysis_endpoint_shape(client: TestClient, auth_headers, add_income):
    add_income(amount=1000, status="received", date=date.today().isoformat())
    data = client.get("/api/cashflow/analysis", headers=auth_headers).json()["data"]
    assert len(data["monthlyIncome"]) == 12
    assert data["monthlyIncome"][-1]["total_income"] == 1050
    assert set(data["patterns"]) == {"income", "expense"}
    assert len(data["seasonal"]) == 12
    assert data["risk"]["level"] in ("low", "medium", "high")


def test_alerts_include_overdue_receivables(client: TestClient, auth_headers, add_income):
    overdue_day = (date.today() - timedelta(days=10)).isoformat()
    add_income(amount=500, status="pending", date=overdue_day)

    alerts = client.get("/api/cashflow/alerts", headers=auth_headers).json()["data"]
    assert any(alert["title"] == "Overdue receivables" for alert in alerts)
