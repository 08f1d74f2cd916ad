# bookkeeper/reporting.py
# Read-side aggregations shared by the dashboard, reports and assistant routers

from datetime import date
from typing import Optional

from sqlalchemy import desc, func, literal
from sqlalchemy.orm import Session

from . import models, periods
from .query_builder import ledger_stats


def overview(db: Session, user_id: str, start: date, end: date) -> dict:
    """Income/expense totals and the derived balance figures for a range."""
    income = ledger_stats(db, models.Income, user_id, start, end)
    expense = ledger_stats(db, models.Expense, user_id, start, end)

    return {
        "period": {"startDate": start.isoformat(), "endDate": end.isoformat()},
        "income": {
            "count": income["total_count"],
            "totalAmount": income["amount_sum"],
            "totalTax": income["total_tax"],
            "totalWithTax": income["total_with_tax"],
            "receivedAmount": income["received_amount"],
            "pendingAmount": income["pending_amount"],
            "overdueAmount": income["overdue_amount"],
        },
        "expense": {
            "count": expense["total_count"],
            "totalAmount": expense["amount_sum"],
            "totalTax": expense["total_tax"],
            "totalWithTax": expense["total_with_tax"],
            "paidAmount": expense["paid_amount"],
            "pendingAmount": expense["pending_amount"],
            "overdueAmount": expense["overdue_amount"],
        },
        "summary": {
            "netIncome": round(income["amount_sum"] - expense["amount_sum"], 2),
            "currentBalance": round(income["received_amount"] - expense["paid_amount"], 2),
            "accountsReceivable": income["pending_amount"],
            "accountsPayable": expense["pending_amount"],
        },
    }


def monthly_cash_flow(db: Session, user_id: str, months: int = 6,
                      today: Optional[date] = None) -> list:
    """Per-month income/expense over a sliding window, oldest month first."""
    series = []
    for start, end in periods.trailing_months(months, today):
        income = ledger_stats(db, models.Income, user_id, start, end)
        expense = ledger_stats(db, models.Expense, user_id, start, end)
        series.append({
            "month": periods.month_key(start),
            "year": start.year,
            "income": income["amount_sum"],
            "expense": expense["amount_sum"],
            "balance": round(income["amount_sum"] - expense["amount_sum"], 2),
            "receivedIncome": income["received_amount"],
            "paidExpense": expense["paid_amount"],
        })
    return series


def recent_transactions(db: Session, user_id: str, limit: int = 10) -> list:
    """Latest income and expense rows merged into one date-ordered list."""
    income_rows = db.query(
        models.Income.id,
        models.Income.income_id.label("transaction_id"),
        models.Income.date,
        models.Income.customer.label("party"),
        models.Income.description,
        models.Income.amount,
        models.Income.total_amount,
        models.Income.status,
        literal("income").label("type"),
        models.Income.created_at,
    ).filter(models.Income.user_id == user_id).order_by(
        desc(models.Income.date), desc(models.Income.created_at)
    ).limit(limit).all()

    expense_rows = db.query(
        models.Expense.id,
        models.Expense.expense_id.label("transaction_id"),
        models.Expense.date,
        models.Expense.vendor.label("party"),
        models.Expense.description,
        models.Expense.amount,
        models.Expense.total_amount,
        models.Expense.status,
        literal("expense").label("type"),
        models.Expense.created_at,
    ).filter(models.Expense.user_id == user_id).order_by(
        desc(models.Expense.date), desc(models.Expense.created_at)
    ).limit(limit).all()

    merged = sorted(
        (dict(row._mapping) for row in income_rows + expense_rows),
        key=lambda row: (row["date"], row["created_at"]),
        reverse=True,
    )[:limit]
    for row in merged:
        row["date"] = row["date"].isoformat()
        row["created_at"] = row["created_at"].isoformat() if row["created_at"] else None
    return merged


def expense_categories(db: Session, user_id: str, start: date, end: date) -> list:
    rows = db.query(
        models.Expense.category,
        func.count(models.Expense.id).label("count"),
        func.sum(models.Expense.amount).label("amount_sum"),
    ).filter(
        models.Expense.user_id == user_id,
        models.Expense.date >= start,
        models.Expense.date <= end
    ).group_by(models.Expense.category).order_by(desc("amount_sum")).all()
    return [
        {"category": r.category, "count": r.count, "amount_sum": round(r.amount_sum or 0, 2)}
        for r in rows
    ]


def top_customers(db: Session, user_id: str, start: date, end: date, limit: int = 10) -> list:
    rows = db.query(
        models.Income.customer,
        func.count(models.Income.id).label("count"),
        func.sum(models.Income.amount).label("amount_sum"),
    ).filter(
        models.Income.user_id == user_id,
        models.Income.date >= start,
        models.Income.date <= end
    ).group_by(models.Income.customer).order_by(desc("amount_sum")).limit(limit).all()
    return [
        {"customer": r.customer, "count": r.count, "amount_sum": round(r.amount_sum or 0, 2)}
        for r in rows
    ]

# ===== FINANCIAL HEALTH =====

def score_financial_health(total_income: float, total_expense: float,
                           received_income: float, paid_expense: float) -> dict:
    """Weighted 0-100 score from profit margin, cash-flow ratio and expense ratio."""
    net_income = total_income - total_expense
    profit_margin = net_income / total_income * 100 if total_income > 0 else 0
    expense_ratio = total_expense / total_income * 100 if total_income > 0 else 0
    cash_flow_ratio = received_income / (paid_expense or 1) if received_income > 0 else 0

    score = 0
    if profit_margin >= 20:
        score += 30
        health_status, message = "excellent", "Financial position is excellent"
    elif profit_margin >= 10:
        score += 20
        health_status, message = "good", "Financial position is good"
    elif profit_margin >= 0:
        score += 10
        health_status, message = "fair", "Financial position is fair"
    else:
        health_status, message = "poor", "Financial position needs improvement"

    if cash_flow_ratio >= 1.5:
        score += 40
    elif cash_flow_ratio >= 1.0:
        score += 30
    elif cash_flow_ratio >= 0.5:
        score += 20

    if expense_ratio <= 70:
        score += 30
    elif expense_ratio <= 85:
        score += 20
    elif expense_ratio <= 95:
        score += 10

    return {
        "metrics": {
            "totalIncome": round(total_income, 2),
            "totalExpense": round(total_expense, 2),
            "netIncome": round(net_income, 2),
            "profitMargin": round(profit_margin, 2),
            "expenseRatio": round(expense_ratio, 2),
            "cashFlowRatio": round(cash_flow_ratio, 2),
        },
        "health": {"score": score, "status": health_status, "message": message},
    }


def financial_health(db: Session, user_id: str, start: date, end: date) -> dict:
    income = ledger_stats(db, models.Income, user_id, start, end)
    expense = ledger_stats(db, models.Expense, user_id, start, end)
    result = score_financial_health(
        income["amount_sum"], expense["amount_sum"],
        income["received_amount"], expense["paid_amount"],
    )
    result["period"] = {"startDate": start.isoformat(), "endDate": end.isoformat()}
    result["summary"] = {
        "incomeCount": income["total_count"],
        "expenseCount": expense["total_count"],
        "receivedIncome": income["received_amount"],
        "paidExpense": expense["paid_amount"],
    }
    return result

# ===== REPORTS =====

def income_statement(db: Session, user_id: str, start: date, end: date) -> dict:
    income = ledger_stats(db, models.Income, user_id, start, end)
    expense = ledger_stats(db, models.Expense, user_id, start, end)
    gross_profit = income["amount_sum"] - expense["amount_sum"]
    net_income = gross_profit
    return {
        "period": {"startDate": start.isoformat(), "endDate": end.isoformat()},
        "revenue": {"amount": income["amount_sum"], "tax": income["total_tax"]},
        "expenses": {"amount": expense["amount_sum"], "tax": expense["total_tax"]},
        "grossProfit": round(gross_profit, 2),
        "netIncome": round(net_income, 2),
        "profitMargin": round(gross_profit / income["amount_sum"] * 100, 2)
        if income["amount_sum"] else 0,
    }


def expense_breakdown(db: Session, user_id: str, start: date, end: date) -> dict:
    categories = expense_categories(db, user_id, start, end)
    total = sum(item["amount_sum"] for item in categories)
    for item in categories:
        item["percentage"] = round(item["amount_sum"] / total * 100, 2) if total else 0
    return {
        "period": {"startDate": start.isoformat(), "endDate": end.isoformat()},
        "total": round(total, 2),
        "categories": categories,
    }
