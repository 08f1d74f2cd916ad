# bookkeeper/tests/test_tax.py
# Tax calculators, filing reminders and calculation history

from datetime import date

from fastapi.testclient import TestClient

from bookkeeper import tax


def test_reference_data_is_public(client: TestClient):
    rates = client.get("/api/tax/rates").json()["data"]
    assert {item["type"]: item["rate"] for item in rates} == {
        "business_tax": 0.05, "income_tax": 0.20, "withholding_tax": 0.10,
    }
    assert len(client.get("/api/tax/resources").json()["data"]) == 6
    assert client.get("/api/tax/filing-reminders").status_code == 200


def test_calculators_require_authentication(client: TestClient):
    response = client.post("/api/tax/calculate-business-tax", json={"monthlyRevenue": 1000})
    assert response.status_code == 401


def test_business_tax_regular_business():
    result = tax.calculate_business_tax(
        100000, [{"description": "Farm produce", "amount": 10000}], [], today=date(2024, 8, 20)
    )
    assert result["isSmallBusiness"] is False
    assert result["taxableRevenue"] == 90000
    assert result["monthlyTax"] == 4500
    assert result["annualTax"] == 54000
    assert result["filingFrequency"] == "monthly"
    assert result["nextFilingDate"] == "2024-09-15"


def test_business_tax_small_business_files_quarterly():
    result = tax.calculate_business_tax(5000, [], [], today=date(2024, 11, 3))
    assert result["annualRevenue"] == 60000
    assert result["isSmallBusiness"] is True
    assert result["filingFrequency"] == "quarterly"
    assert result["nextFilingDate"] == "2025-02-15"


def test_business_tax_exemptions_never_go_negative():
    result = tax.calculate_business_tax(1000, [{"amount": 5000}], [], today=date(2024, 1, 1))
    assert result["taxableRevenue"] == 0
    assert result["monthlyTax"] == 0


def test_income_tax():
    result = tax.calculate_income_tax(500000, [{"amount": 100000}, {"amount": 50000}], depreciation=50000)
    assert result["totalExpenses"] == 200000
    assert result["taxableIncome"] == 300000
    assert result["incomeTax"] == 60000
    assert result["effectiveTaxRate"] == 12


def test_income_tax_exempt_below_limit():
    result = tax.calculate_income_tax(120000, [], 0)
    assert result["isExempt"] is True
    assert result["incomeTax"] == 0
    assert result["effectiveTaxRate"] == 0


def test_round_half_up():
    assert tax.round_half_up(2.5) == 3
    assert tax.round_half_up(3.5) == 4
    assert tax.round_half_up(2.49) == 2


def test_filing_reminders_by_month():
    may = tax.filing_reminders(date(2024, 5, 20))
    assert [item["type"] for item in may] == ["business_tax", "income_tax"]
    assert may[1]["deadline"] == "2024-05-31"
    assert may[1]["status"] == "urgent"

    january = tax.filing_reminders(date(2024, 1, 10))
    assert [item["type"] for item in january] == ["business_tax", "withholding"]

    august = tax.filing_reminders(date(2024, 8, 20))
    assert august[0]["deadline"] == "2024-09-15"
    assert august[0]["status"] == "upcoming"


def test_calculations_are_logged_per_user(client: TestClient, auth_headers, other_headers):
    client.post("/api/tax/calculate-business-tax", headers=auth_headers, json={"monthlyRevenue": 100000})
    response = client.post("/api/tax/calculate-income-tax", headers=auth_headers, json={
        "annualRevenue": 500000, "expenses": [{"description": "Rent", "amount": 100000}],
    })
    assert response.status_code == 200
    assert response.json()["data"]["incomeTax"] == 80000

    history = client.get("/api/tax/calculation-history", headers=auth_headers).json()
    assert history["pagination"]["total"] == 2
    assert {item["type"] for item in history["data"]} == {"business_tax", "income_tax"}

    only_income = client.get("/api/tax/calculation-history", headers=auth_headers,
                             params={"type": "income_tax"}).json()["data"]
    assert len(only_income) == 1
    assert only_income[0]["input"]["annualRevenue"] == 500000
    assert only_income[0]["result"]["taxableIncome"] == 400000

    assert client.get("/api/tax/calculation-history", headers=other_headers).json()["data"] == []


def test_negative_revenue_is_rejected(client: TestClient, auth_headers):
    response = client.post("/api/tax/calculate-business-tax", headers=auth_headers,
                           json={"monthlyRevenue": -1})
    assert response.status_code == 400
