# bookkeeper/analytics.py
# Yearly performance, comparisons, monthly forecasting, anomalies and profitability

import statistics
from collections import defaultdict
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from . import models, periods
from .forecasting import calculate_trend
from .tax import round_half_up

ANOMALY_THRESHOLD = 2
HIGH_SEVERITY_THRESHOLD = 3
VIP_REVENUE = 50000
REGULAR_REVENUE = 10000
WEEKDAYS = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def year_bounds(year: int) -> Tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


def _percent_change(current: float, previous: float) -> float:
    return round((current - previous) / abs(previous) * 100, 1) if previous else 0


def _totals(db: Session, model, user_id: str, start: date, end: date) -> dict:
    count, total, average = db.query(
        func.count(model.id),
        func.coalesce(func.sum(model.amount), 0),
        func.avg(model.amount),
    ).filter(model.user_id == user_id, model.date >= start, model.date <= end).one()
    return {"count": count, "total": float(total or 0), "average": float(average or 0)}


def monthly_amounts(db: Session, model, user_id: str, start: date, end: date) -> dict:
    rows = db.query(model.date, model.amount).filter(
        model.user_id == user_id, model.date >= start, model.date <= end
    ).all()
    totals = defaultdict(float)
    for day, amount in rows:
        totals[periods.month_key(day)] += amount or 0
    return totals


def grouped_totals(db: Session, column, model, user_id: str, start: date, end: date, limit=None) -> List[dict]:
    query = db.query(
        column,
        func.count(model.id).label("transactionCount"),
        func.sum(model.amount).label("totalAmount"),
        func.avg(model.amount).label("averageAmount"),
    ).filter(
        model.user_id == user_id,
        column.isnot(None),
        model.date >= start,
        model.date <= end,
    ).group_by(column).order_by(desc("totalAmount"))
    if limit:
        query = query.limit(limit)
    return [
        {
            column.key: row[0],
            "transactionCount": row.transactionCount,
            "totalAmount": round(row.totalAmount or 0, 2),
            "averageAmount": round(row.averageAmount or 0, 2),
        }
        for row in query.all()
    ]

# ===== PERFORMANCE =====

def performance(db: Session, user_id: str, year: int) -> dict:
    """Yearly KPIs computed only from recorded income and expense rows."""
    start, end = year_bounds(year)
    income = _totals(db, models.Income, user_id, start, end)
    expense = _totals(db, models.Expense, user_id, start, end)
    previous_income = _totals(db, models.Income, user_id, *year_bounds(year - 1))
    previous_expense = _totals(db, models.Expense, user_id, *year_bounds(year - 1))

    revenue, spent = income["total"], expense["total"]
    net_profit = revenue - spent
    profit_margin = net_profit / revenue * 100 if revenue > 0 else 0
    expense_ratio = spent / revenue * 100 if revenue > 0 else 0
    revenue_growth = _percent_change(revenue, previous_income["total"])
    expense_growth = _percent_change(spent, previous_expense["total"])

    received = db.query(func.coalesce(func.sum(models.Income.amount), 0)).filter(
        models.Income.user_id == user_id,
        models.Income.status == "received",
        models.Income.date >= start,
        models.Income.date <= end,
    ).scalar() or 0
    collection_rate = received / revenue * 100 if revenue > 0 else 0

    customers = grouped_totals(db, models.Income.customer, models.Income, user_id, start, end, limit=10)
    expense_categories = grouped_totals(db, models.Expense.category, models.Expense, user_id, start, end)

    monthly_revenue = monthly_amounts(db, models.Income, user_id, start, end)
    monthly_expense = monthly_amounts(db, models.Expense, user_id, start, end)
    trend_data = []
    for month in sorted(set(monthly_revenue) | set(monthly_expense)):
        month_revenue, month_expense = monthly_revenue[month], monthly_expense[month]
        trend_data.append({
            "month": month,
            "revenue": round(month_revenue, 2),
            "expense": round(month_expense, 2),
            "profit": round(month_revenue - month_expense, 2),
            "profitMargin": round((month_revenue - month_expense) / month_revenue * 100, 1)
            if month_revenue > 0 else 0,
        })

    kpis = [
        {
            "key": "profitability",
            "score": min(100, max(0, 60 + profit_margin)),
            "trend": "up" if profit_margin > 20 else "stable" if profit_margin > 10 else "down",
            "metrics": [{"name": "profitMargin", "value": round(profit_margin, 1), "target": 20, "unit": "%"}],
        },
        {
            "key": "collection",
            "score": min(100, max(0, collection_rate)),
            "trend": "up" if collection_rate >= 80 else "stable" if collection_rate >= 50 else "down",
            "metrics": [{"name": "collectionRate", "value": round(collection_rate, 1), "target": 80, "unit": "%"}],
        },
        {
            "key": "efficiency",
            "score": min(100, max(0, 50 + income["count"] * 2)),
            "trend": "up" if income["count"] > 20 else "stable",
            "metrics": [{"name": "operatingExpenseRatio", "value": round(expense_ratio, 1), "target": 70, "unit": "%"}],
        },
        {
            "key": "growth",
            "score": min(100, max(0, 50 + revenue_growth)),
            "trend": "up" if revenue_growth > 0 else "down" if revenue_growth < 0 else "stable",
            "metrics": [
                {"name": "revenueGrowth", "value": revenue_growth, "target": 10, "unit": "%"},
                {"name": "averageOrderValue", "value": round(income["average"], 2), "target": None, "unit": ""},
            ],
        },
    ]
    for kpi in kpis:
        kpi["score"] = round(kpi["score"], 1)

    return {
        "year": year,
        "performanceData": {
            "totalRevenue": round(revenue, 2),
            "totalExpense": round(spent, 2),
            "netProfit": round(net_profit, 2),
            "profitMargin": round(profit_margin, 1),
            "cashFlow": round(net_profit, 2),
            "averageOrderValue": round(income["average"], 2),
            "operatingExpenseRatio": round(expense_ratio, 1),
            "collectionRate": round(collection_rate, 1),
            "revenueGrowth": revenue_growth,
            "expenseGrowth": expense_growth,
        },
        "kpiData": kpis,
        "trendData": trend_data,
        "customerAnalysis": customers,
        "expenseCategories": expense_categories,
        "summary": {
            "totalTransactions": income["count"] + expense["count"],
            "topCustomer": customers[0]["customer"] if customers else "N/A",
            "topExpenseCategory": expense_categories[0]["category"] if expense_categories else "N/A",
            "healthScore": round_half_up(sum(kpi["score"] for kpi in kpis) / len(kpis)),
        },
    }

# ===== COMPARISON =====

def comparison(db: Session, user_id: str, year: int, compare_year: Optional[int] = None) -> dict:
    compare_year = compare_year or year - 1

    def summarize(target: int) -> dict:
        start, end = year_bounds(target)
        revenue = _totals(db, models.Income, user_id, start, end)["total"]
        spent = _totals(db, models.Expense, user_id, start, end)["total"]
        return {"year": target, "revenue": round(revenue, 2), "expense": round(spent, 2),
                "profit": round(revenue - spent, 2)}

    current, previous = summarize(year), summarize(compare_year)
    return {
        "currentYear": current,
        "previousYear": previous,
        "growth": {
            "revenue": _percent_change(current["revenue"], previous["revenue"]),
            "expense": _percent_change(current["expense"], previous["expense"]),
            "profit": _percent_change(current["profit"], previous["profit"]),
        },
    }

# ===== MONTHLY FORECAST =====

def monthly_net_flows(db: Session, user_id: str, today: date) -> List[dict]:
    """Net (income - expense) per month with activity in the last 12 months."""
    start = periods.add_months(today, -12)
    income = monthly_amounts(db, models.Income, user_id, start, today)
    expense = monthly_amounts(db, models.Expense, user_id, start, today)
    return [
        {"month": month, "net_flow": round(income[month] - expense[month], 2)}
        for month in sorted(set(income) | set(expense))
    ]


def monthly_forecast(db: Session, user_id: str, months: int = 6, today: Optional[date] = None) -> dict:
    today = today or date.today()
    historical = monthly_net_flows(db, user_id, today)
    if len(historical) < 3:
        return {"historical": historical, "forecast": [],
                "insights": {"message": "At least three months of history are needed for a forecast"}}

    recent = [row["net_flow"] for row in historical[-6:]]
    weighted = sum(flow * (index + 1) for index, flow in enumerate(recent)) / len(recent)
    average = sum(recent) / len(recent)

    forecast = []
    for step in range(1, months + 1):
        predicted = average + weighted * step * 0.1
        forecast.append({
            "month": periods.month_key(periods.add_months(today, step)),
            "predicted_flow": round_half_up(predicted),
            "confidence": round(max(0.5, 1 - step * 0.1), 2),
            "scenario": {
                "optimistic": round_half_up(predicted * 1.2),
                "realistic": round_half_up(predicted),
                "pessimistic": round_half_up(predicted * 0.8),
            },
        })

    slope = calculate_trend(recent)
    volatility = statistics.pstdev(recent)
    return {
        "historical": historical,
        "forecast": forecast,
        "insights": {
            "trend": "positive" if slope > 0 else "negative" if slope < 0 else "stable",
            "avgMonthlyFlow": round_half_up(average),
            "volatility": round_half_up(volatility),
        },
    }

# ===== ANOMALIES =====

def _z_scores(db: Session, model, ledger: str, party_column, user_id: str, since: date) -> List[dict]:
    amounts = [row[0] or 0 for row in db.query(model.amount).filter(model.user_id == user_id).all()]
    if not amounts:
        return []
    mean = statistics.fmean(amounts)
    stdev = 1.0
    if len(amounts) > 1:
        stdev = statistics.stdev(amounts, xbar=mean) or 1.0

    recent = db.query(model.id, model.date, model.amount, party_column).filter(
        model.user_id == user_id, model.date >= since
    ).all()
    return [
        {
            "type": ledger,
            "id": row[0],
            "date": row[1].isoformat(),
            "amount": row[2],
            "description": row[3],
            "z_score": ((row[2] or 0) - mean) / stdev,
        }
        for row in recent
    ]


def _weekday_patterns(db: Session, model, ledger: str, user_id: str, since: date) -> List[dict]:
    buckets = defaultdict(list)
    for day, amount in db.query(model.date, model.amount).filter(
        model.user_id == user_id, model.date >= since
    ).all():
        buckets[(day.weekday() + 1) % 7].append(amount or 0)
    return [
        {
            "type": ledger,
            "day_of_week": weekday,
            "day_name": WEEKDAYS[weekday],
            "transaction_count": len(buckets[weekday]),
            "avg_amount": round(sum(buckets[weekday]) / len(buckets[weekday]), 2),
        }
        for weekday in sorted(buckets)
    ]


def detect_anomalies(db: Session, user_id: str, today: Optional[date] = None) -> dict:
    """Flag rows from the last three months whose amount is far from the ledger mean."""
    today = today or date.today()
    since = periods.add_months(today, -3)
    scored = (
        _z_scores(db, models.Income, "income", models.Income.customer, user_id, since)
        + _z_scores(db, models.Expense, "expense", models.Expense.vendor, user_id, since)
    )
    flagged = sorted(
        (item for item in scored if abs(item["z_score"]) > ANOMALY_THRESHOLD),
        key=lambda item: abs(item["z_score"]),
        reverse=True,
    )[:10]
    for item in flagged:
        item["severity"] = "high" if abs(item["z_score"]) > HIGH_SEVERITY_THRESHOLD else "medium"
        item["z_score"] = round(item["z_score"], 2)

    high = sum(1 for item in flagged if item["severity"] == "high")
    return {
        "anomalies": flagged,
        "patterns": (
            _weekday_patterns(db, models.Expense, "expense", user_id, since)
            + _weekday_patterns(db, models.Income, "income", user_id, since)
        ),
        "summary": {
            "totalAnomalies": len(flagged),
            "highSeverity": high,
            "recommendedActions": (
                ["Review unusual transactions", "Update the budget plan", "Revisit the cash-flow forecast"]
                if len(flagged) > 5 else ["Keep monitoring transaction patterns"]
            ),
        },
    }

# ===== PROFITABILITY =====

def churn_risk(days_since_last: int) -> str:
    if days_since_last > 90:
        return "high"
    if days_since_last > 30:
        return "medium"
    return "low"


def customer_segment(total_revenue: float) -> str:
    if total_revenue > VIP_REVENUE:
        return "vip"
    if total_revenue >= REGULAR_REVENUE:
        return "regular"
    return "occasional"


def _period_key(day: date, period: str) -> str:
    if period == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == "quarter":
        return f"{day.year}-Q{(day.month - 1) // 3 + 1}"
    return periods.month_key(day)


def profitability(db: Session, user_id: str, period: str = "month",
                  today: Optional[date] = None) -> dict:
    today = today or date.today()
    since = periods.add_months(today, -12)

    rows = db.query(
        models.Income.customer,
        func.count(models.Income.id),
        func.sum(models.Income.amount),
        func.avg(models.Income.amount),
        func.min(models.Income.date),
        func.max(models.Income.date),
    ).filter(
        models.Income.user_id == user_id,
        models.Income.customer.isnot(None),
        models.Income.date >= since,
    ).group_by(models.Income.customer).order_by(desc(func.sum(models.Income.amount))).limit(20).all()

    customers = []
    for customer, count, total, average, first, last in rows:
        days_since_last = (today - last).days
        customers.append({
            "customer": customer,
            "transaction_count": count,
            "total_revenue": round(total or 0, 2),
            "avg_revenue": round(average or 0, 2),
            "first_transaction": first.isoformat(),
            "last_transaction": last.isoformat(),
            "days_since_last": days_since_last,
            "segment": customer_segment(total or 0),
            "churn_risk": churn_risk(days_since_last),
        })

    categories = grouped_totals(db, models.Expense.category, models.Expense, user_id, since, today)

    buckets = defaultdict(lambda: {"revenue": 0.0, "expense": 0.0})
    for model, key in ((models.Income, "revenue"), (models.Expense, "expense")):
        for day, amount in db.query(model.date, model.amount).filter(
            model.user_id == user_id, model.date >= since
        ).all():
            buckets[_period_key(day, period)][key] += amount or 0
    period_rows = [
        {"period": key, "revenue": round(value["revenue"], 2), "expense": round(value["expense"], 2),
         "profit": round(value["revenue"] - value["expense"], 2)}
        for key, value in sorted(buckets.items())
    ]

    segments = {"vip": 0, "regular": 0, "occasional": 0}
    for customer in customers:
        segments[customer["segment"]] += 1

    return {
        "customerProfitability": customers,
        "categoryProfitability": categories,
        "periodProfitability": period_rows,
        "insights": {
            "topCustomer": customers[0]["customer"] if customers else "N/A",
            "topCategory": categories[0]["category"] if categories else "N/A",
            "customerSegments": segments,
            "highRiskCustomers": sum(1 for customer in customers if customer["churn_risk"] == "high"),
            "avgCustomerValue": round_half_up(
                sum(customer["total_revenue"] for customer in customers) / len(customers)
            ) if customers else 0,
        },
    }
