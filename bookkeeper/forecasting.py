# bookkeeper/forecasting.py
# Cash-flow forecasting, trend and risk statistics

import logging
import statistics
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models, periods
from .query_builder import ledger_stats
from .tax import round_half_up

logger = logging.getLogger(__name__)

HISTORY_MONTHS = 3
FULL_CONFIDENCE_DAYS = 90
CONFIDENCE_DECAY_DAYS = 30

# Month -> (income multiplier, expense multiplier)
SEASONAL_FACTORS = {
    1: (0.85, 0.9),
    2: (0.9, 0.95),
    3: (1.05, 1.0),
    4: (1.0, 1.0),
    5: (1.1, 1.05),
    6: (1.15, 1.1),
    7: (1.1, 1.05),
    8: (1.05, 1.0),
    9: (1.1, 1.05),
    10: (1.15, 1.1),
    11: (1.2, 1.15),
    12: (1.25, 1.2),
}

RISK_RECOMMENDATIONS = {
    "negative_cash_flow": "Chase receivables and postpone non-essential spending",
    "unstable_income": "Diversify revenue sources and build a stable customer base",
    "uncontrolled_expenses": "Set a detailed budget and control variable costs",
    "low_cash_flow_ratio": "Improve gross margin and optimise the cost structure",
}

# ===== STATISTICS =====

def calculate_trend(values: Sequence[float]) -> float:
    """Least-squares slope of ``values`` against x = 1..n."""
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n + 1) / 2
    sum_y = sum(values)
    sum_xy = sum((index + 1) * value for index, value in enumerate(values))
    sum_x2 = n * (n + 1) * (2 * n + 1) / 6
    return (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)


def calculate_volatility(values: Sequence[float]) -> float:
    """Coefficient of variation (population stdev / mean), 0 when the mean is 0."""
    if len(values) < 2:
        return 0.0
    mean = statistics.fmean(values)
    if mean == 0:
        return 0.0
    return statistics.pstdev(values) / mean


def seasonal_multiplier(day: date) -> Dict[str, float]:
    income, expense = SEASONAL_FACTORS.get(day.month, (1.0, 1.0))
    return {"income": income, "expense": expense}


def assess_daily_risk(balance: float, initial_balance: float) -> str:
    if balance < 0:
        return "critical"
    if initial_balance <= 0:
        return "low"
    ratio = balance / initial_balance
    if ratio < 0.2:
        return "high"
    if ratio < 0.5:
        return "medium"
    return "low"


def calculate_confidence(day_index: int, income_points: int, expense_points: int) -> int:
    data_quality = min(income_points, expense_points) / FULL_CONFIDENCE_DAYS
    time_decay = max(0.0, 1 - day_index / CONFIDENCE_DECAY_DAYS)
    return round_half_up(min(1.0, data_quality * time_decay) * 100)


def _average(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0

# ===== DAILY FORECAST =====

def cash_flow_forecast(days: int, current_balance: float,
                       income_history: Dict[date, float],
                       expense_history: Dict[date, float],
                       pending_income: Optional[Dict[date, float]] = None,
                       pending_expense: Optional[Dict[date, float]] = None,
                       today: Optional[date] = None) -> dict:
    """Project the running balance ``days`` ahead from daily history averages.

    History maps are ``{date: settled amount}`` with one entry per day that
    had activity; pending maps hold committed amounts keyed by their due date.
    """
    today = today or date.today()
    pending_income = pending_income or {}
    pending_expense = pending_expense or {}
    daily_income = _average(list(income_history.values()))
    daily_expense = _average(list(expense_history.values()))

    forecast = []
    balance = current_balance
    for index in range(days):
        day = today + timedelta(days=index)
        predicted_income = daily_income + pending_income.get(day, 0)
        predicted_expense = daily_expense + pending_expense.get(day, 0)

        multiplier = seasonal_multiplier(day)
        predicted_income *= multiplier["income"]
        predicted_expense *= multiplier["expense"]

        net = predicted_income - predicted_expense
        balance += net
        forecast.append({
            "date": day.isoformat(),
            "predictedIncome": round_half_up(predicted_income),
            "predictedExpense": round_half_up(predicted_expense),
            "netCashFlow": round_half_up(net),
            "cumulativeBalance": round_half_up(balance),
            "riskLevel": assess_daily_risk(balance, current_balance),
            "confidence": calculate_confidence(index, len(income_history), len(expense_history)),
        })

    balances = [day["cumulativeBalance"] for day in forecast]
    return {
        "currentBalance": round_half_up(current_balance),
        "forecastPeriod": days,
        "dailyForecast": forecast,
        "summary": {
            "totalPredictedIncome": sum(day["predictedIncome"] for day in forecast),
            "totalPredictedExpense": sum(day["predictedExpense"] for day in forecast),
            "finalBalance": balances[-1] if balances else round_half_up(current_balance),
            "worstCaseBalance": min(balances) if balances else round_half_up(current_balance),
            "riskDays": sum(1 for day in forecast if day["riskLevel"] == "high"),
        },
    }

# ===== PATTERNS & RISK =====

def analyze_patterns(monthly_income: List[float], monthly_expense: List[float]) -> dict:
    def describe(values: List[float]) -> dict:
        trend = calculate_trend(values)
        return {
            "trend": "increasing" if trend > 0 else "decreasing" if trend < 0 else "stable",
            "trendValue": round(trend, 2),
            "volatility": round(calculate_volatility(values), 4),
            "averageMonthly": round(_average(values), 2),
        }
    return {"income": describe(monthly_income), "expense": describe(monthly_expense)}


def analyze_seasonality(series: List[dict]) -> dict:
    """Average income/expense per calendar month over a ``month_series`` result."""
    averages = {}
    for month in range(1, 13):
        suffix = f"-{month:02d}"
        matching = [row for row in series if row["month"].endswith(suffix)]
        averages[month] = {
            "income": round(_average([row["income"] for row in matching]), 2),
            "expense": round(_average([row["expense"] for row in matching]), 2),
        }
    return averages


def assess_cash_flow_risk(monthly_income: List[float], monthly_expense: List[float]) -> dict:
    total_income = sum(monthly_income)
    net_cash_flow = total_income - sum(monthly_expense)

    score = 0
    factors = []
    if net_cash_flow < 0:
        score += 30
        factors.append("negative_cash_flow")
    if calculate_volatility(monthly_income) > 0.3:
        score += 25
        factors.append("unstable_income")
    if calculate_volatility(monthly_expense) > 0.2:
        score += 20
        factors.append("uncontrolled_expenses")
    ratio = abs(net_cash_flow) / total_income if total_income > 0 else 0
    if ratio < 0.1:
        score += 15
        factors.append("low_cash_flow_ratio")

    score = min(score, 100)
    return {
        "score": score,
        "level": "high" if score > 70 else "medium" if score > 40 else "low",
        "factors": factors,
        "recommendations": [RISK_RECOMMENDATIONS[factor] for factor in factors],
    }


def forecast_alerts(forecast: dict, overdue_count: int = 0, overdue_amount: float = 0) -> List[dict]:
    alerts = []
    daily = forecast["dailyForecast"]

    critical_days = [day for day in daily if day["riskLevel"] == "critical"]
    if critical_days:
        alerts.append({
            "type": "critical",
            "title": "Cash shortfall warning",
            "message": f"Balance is projected to go negative on {critical_days[0]['date']}",
            "urgency": "immediate",
            "recommendations": ["Collect receivables now", "Pause non-essential spending",
                                "Consider short-term financing"],
        })

    high_risk_days = [day for day in daily if day["riskLevel"] == "high"]
    if len(high_risk_days) > 5:
        alerts.append({
            "type": "warning",
            "title": "Cash-flow risk",
            "message": f"{len(high_risk_days)} of the next {forecast['forecastPeriod']} days are high risk",
            "urgency": "high",
            "recommendations": ["Review budget execution", "Tighten cash management",
                                "Prepare an emergency reserve"],
        })

    if overdue_count > 0:
        alerts.append({
            "type": "warning",
            "title": "Overdue receivables",
            "message": f"{overdue_count} receivables are overdue, totalling {overdue_amount:,.2f}",
            "urgency": "medium",
            "recommendations": ["Contact overdue customers", "Review credit terms"],
        })
    return alerts

# ===== DATABASE INPUTS =====

def daily_totals(db: Session, model, user_id: str, start: date, end: date,
                 status: str) -> Dict[date, float]:
    """``{date: sum(amount)}`` for rows with ``status`` inside the range."""
    rows = db.query(model.date, func.sum(model.amount)).filter(
        model.user_id == user_id,
        model.status == status,
        model.date >= start,
        model.date <= end,
    ).group_by(model.date).all()
    return {row[0]: float(row[1] or 0) for row in rows}


def pending_from(db: Session, model, user_id: str, start: date) -> Dict[date, float]:
    rows = db.query(model.date, func.sum(model.amount)).filter(
        model.user_id == user_id,
        model.status == "pending",
        model.date >= start,
    ).group_by(model.date).all()
    return {row[0]: float(row[1] or 0) for row in rows}


def settled_balance(db: Session, user_id: str) -> float:
    """All-time received income minus paid expense."""
    income = ledger_stats(db, models.Income, user_id)
    expense = ledger_stats(db, models.Expense, user_id)
    return income["received_amount"] - expense["paid_amount"]


def build_forecast(db: Session, user_id: str, days: int, today: Optional[date] = None) -> dict:
    today = today or date.today()
    history_start = periods.add_months(today, -HISTORY_MONTHS)
    yesterday = today - timedelta(days=1)

    forecast = cash_flow_forecast(
        days,
        settled_balance(db, user_id),
        daily_totals(db, models.Income, user_id, history_start, yesterday, "received"),
        daily_totals(db, models.Expense, user_id, history_start, yesterday, "paid"),
        pending_from(db, models.Income, user_id, today),
        pending_from(db, models.Expense, user_id, today),
        today,
    )
    logger.debug("Forecast for %s over %d days: final balance %s",
                 user_id, days, forecast["summary"]["finalBalance"])
    return forecast


def month_series(db: Session, user_id: str, months: int = 12,
                 today: Optional[date] = None) -> List[dict]:
    """Settled income and paid expense per month, oldest first."""
    series = []
    for start, end in periods.trailing_months(months, today):
        income = ledger_stats(db, models.Income, user_id, start, end)
        expense = ledger_stats(db, models.Expense, user_id, start, end)
        series.append({
            "month": periods.month_key(start),
            "income": income["received_amount"],
            "expense": expense["paid_amount"],
        })
    return series


def cash_flow_analysis(db: Session, user_id: str, today: Optional[date] = None) -> dict:
    series = month_series(db, user_id, 12, today)
    monthly_income = [row["income"] for row in series]
    monthly_expense = [row["expense"] for row in series]
    return {
        "monthlyIncome": [{"month": row["month"], "total_income": row["income"]} for row in series],
        "monthlyExpenses": [{"month": row["month"], "total_expense": row["expense"]} for row in series],
        "patterns": analyze_patterns(monthly_income, monthly_expense),
        "seasonal": analyze_seasonality(series),
        "risk": assess_cash_flow_risk(monthly_income, monthly_expense),
    }
