# bookkeeper/assistant.py
# Rule-based financial assistant: classification, reminders, scoring, chat and backups

import json
import logging
import math
import statistics
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple

from fuzzywuzzy import fuzz
from sqlalchemy import desc, func, or_
from sqlalchemy.orm import Session

from . import analytics, categories, forecasting, models, periods
from .errors import NotFoundError, ValidationError
from .ledger import serialize
from .receipt_scanner import ReceiptScanner
from .settings_store import backup_dir
from .tax import round_half_up

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}
LOW_BALANCE_THRESHOLD = 50000
BACKUP_FORMAT_VERSION = "1.0"
BACKUP_TABLES = ("income", "expense", "budget", "tax_calculations")
VENDOR_MATCH_THRESHOLD = 85
DUPLICATE_MATCH_THRESHOLD = 90

# Ordered: ties go to the earlier intent
INTENT_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("financial_status", ["狀況", "財務狀況", "收支", "盈虧", "現金", "餘額", "健康",
                          "status", "balance", "health"]),
    ("expense_analysis", ["支出", "花費", "成本", "開銷", "費用", "分析", "expense", "spending", "cost"]),
    ("income_analysis", ["收入", "營收", "獲利", "賺錢", "客戶", "業績", "income", "revenue", "customer"]),
    ("cash_flow", ["現金流", "資金流", "週轉", "流動性", "cash flow", "liquidity"]),
    ("forecasting", ["預測", "未來", "趨勢", "預估", "預計", "展望", "forecast", "predict", "trend"]),
    ("optimization", ["優化", "改善", "提升", "節省", "效率", "建議", "optimize", "improve", "save"]),
    ("general", ["幫助", "如何", "什麼", "怎麼", "問題", "help", "how", "what"]),
]


def _month_range(today: date) -> Tuple[date, date]:
    return periods.month_bounds(today.year, today.month)


def _sum_amount(db: Session, model, user_id: str, *criteria) -> float:
    total = db.query(func.coalesce(func.sum(model.amount), 0)).filter(
        model.user_id == user_id, *criteria
    ).scalar()
    return float(total or 0)


def _range_total(db: Session, model, user_id: str, start: date, end: date) -> float:
    return _sum_amount(db, model, user_id, model.date >= start, model.date <= end)

# ===== CLASSIFICATION =====

def amount_insights(db: Session, model, user_id: str, amount: Optional[float],
                    category: Optional[str] = None, today: Optional[date] = None) -> dict:
    """Compare ``amount`` with the recent average of the ledger (or category)."""
    if amount is None:
        return {"message": "No amount given"}
    today = today or date.today()
    query = db.query(func.avg(model.amount), func.min(model.amount), func.max(model.amount),
                     func.count(model.id)).filter(
        model.user_id == user_id,
        model.date >= periods.add_months(today, -3),
    )
    if category and model is models.Expense:
        query = query.filter(model.category == category)
    average, minimum, maximum, count = query.one()
    if not count or not average:
        return {"message": "Not enough history to compare"}

    deviation = abs(amount - average) / average
    return {
        "isUnusual": deviation > 0.5,
        "comparison": "above_average" if amount > average else "below_average",
        "avgAmount": round_half_up(average),
        "minAmount": minimum,
        "maxAmount": maximum,
        "deviation": round_half_up(deviation * 100),
    }


def match_vendor_history(db: Session, user_id: str, vendor: str) -> Optional[Tuple[str, int]]:
    """Most frequent category among past vendors whose name closely resembles ``vendor``."""
    rows = db.query(
        models.Expense.vendor, models.Expense.category, func.count(models.Expense.id)
    ).filter(
        models.Expense.user_id == user_id,
        models.Expense.vendor.isnot(None),
    ).group_by(models.Expense.vendor, models.Expense.category).all()

    best = None
    best_key = (0, 0)
    for past_vendor, category, frequency in rows:
        score = fuzz.ratio(vendor.lower().strip(), past_vendor.lower().strip())
        if score >= VENDOR_MATCH_THRESHOLD and (score, frequency) > best_key:
            best_key = (score, frequency)
            best = (category, frequency)
    return best


def classify_transaction(db: Session, user_id: str, description: str, amount: Optional[float] = None,
                         vendor: Optional[str] = None, ledger: str = "expense") -> dict:
    """Suggest a category: matching history first, then keyword rules, then ``other``."""
    history = []
    if ledger == "expense":
        history = db.query(
            models.Expense.category, func.count(models.Expense.id).label("frequency")
        ).filter(
            models.Expense.user_id == user_id,
            or_(models.Expense.description.contains(description, autoescape=True),
                models.Expense.vendor.contains(description, autoescape=True)),
        ).group_by(models.Expense.category).order_by(desc("frequency")).limit(5).all()

    vendor_match = None
    if not history and vendor and ledger == "expense":
        vendor_match = match_vendor_history(db, user_id, vendor)

    if history:
        category, frequency = history[0]
        confidence = min(0.9, frequency * 0.1 + 0.3)
        source = "history"
    elif vendor_match:
        category, frequency = vendor_match
        confidence = min(0.9, frequency * 0.1 + 0.3)
        source = "vendor_history"
    else:
        category = categories.match_keywords(f"{description} {vendor or ''}", ledger)
        confidence, source = (0.7, "keywords") if category else (0.3, "default")
        category = category or "other"

    model = models.Expense if ledger == "expense" else models.Income
    explanation = (
        f"Matched {frequency} similar past transactions" if source == "history"
        else f"Vendor resembles one used {frequency} times before" if source == "vendor_history"
        else f"Description matched keywords for '{category}'" if source == "keywords"
        else "No history or keyword match"
    )
    return {
        "suggestedCategory": category,
        "categoryLabel": categories.category_label(category, ledger),
        "confidence": round(confidence, 2),
        "source": source,
        "alternatives": [row[0] for row in history[1:4]],
        "amountInsights": amount_insights(db, model, user_id, amount, category),
        "explanation": explanation,
    }

# ===== REMINDERS =====

def _similar(left: Optional[str], right: Optional[str]) -> bool:
    left, right = (left or "").lower().strip(), (right or "").lower().strip()
    if not left or not right:
        return left == right
    return fuzz.ratio(left, right) >= DUPLICATE_MATCH_THRESHOLD


def find_duplicate_expenses(expenses: List[models.Expense]) -> List[List[models.Expense]]:
    """Group expenses with the same amount whose description and vendor nearly match."""
    groups = []
    processed = set()
    for i, first in enumerate(expenses):
        if first.id in processed:
            continue
        similar = [first]
        for second in expenses[i + 1:]:
            if second.id in processed or abs(first.amount - second.amount) > 0.005:
                continue
            if _similar(first.description, second.description) and _similar(first.vendor, second.vendor):
                similar.append(second)
        if len(similar) > 1:
            processed.update(expense.id for expense in similar)
            groups.append(similar)
    return groups


def reminders(db: Session, user_id: str, today: Optional[date] = None) -> dict:
    today = today or date.today()
    items = []

    overdue = db.query(models.Income).filter(
        models.Income.user_id == user_id,
        models.Income.status == "pending",
        models.Income.date <= today - timedelta(days=7),
    ).order_by(desc(models.Income.date)).limit(5).all()
    for income in overdue:
        days_past = (today - income.date).days
        items.append({
            "type": "overdue_income",
            "priority": "high" if days_past > 30 else "medium",
            "title": "Overdue receivable",
            "message": f"{income.customer} is {days_past} days overdue on {income.amount:,.2f}",
            "action": "contact_customer",
            "data": serialize(income),
        })

    recent_expenses = db.query(models.Expense).filter(
        models.Expense.user_id == user_id,
        models.Expense.date >= today - timedelta(days=7),
    ).order_by(models.Expense.date, models.Expense.created_at).all()
    for group in find_duplicate_expenses(recent_expenses):
        first = group[0]
        description, vendor, amount, count = first.description, first.vendor, first.amount, len(group)
        items.append({
            "type": "duplicate_expense",
            "priority": "medium",
            "title": "Possible duplicate expense",
            "message": f"'{description}' from {vendor} for {amount:,.2f} was recorded {count} times",
            "action": "review_records",
            "data": {"description": description, "vendor": vendor, "amount": amount, "count": count,
                     "ids": [expense.id for expense in group]},
        })

    balance = forecasting.settled_balance(db, user_id)
    if balance < LOW_BALANCE_THRESHOLD:
        items.append({
            "type": "cash_flow_warning",
            "priority": "high" if balance < 0 else "medium",
            "title": "Low cash balance",
            "message": f"Current balance is {balance:,.2f}",
            "action": "view_cash_flow_forecast",
            "data": {"balance": round(balance, 2)},
        })

    if today.day > 25:
        start, end = _month_range(today)
        income = _range_total(db, models.Income, user_id, start, end)
        expense = _range_total(db, models.Expense, user_id, start, end)
        items.append({
            "type": "monthly_summary",
            "priority": "low",
            "title": "Month-end summary",
            "message": f"Income {income:,.2f}, expenses {expense:,.2f}, net {income - expense:,.2f}",
            "action": "view_monthly_report",
            "data": {"income": income, "expense": expense},
        })

    items.sort(key=lambda item: PRIORITY_ORDER[item["priority"]], reverse=True)
    return {
        "reminders": items,
        "summary": {
            "total": len(items),
            "high": sum(1 for item in items if item["priority"] == "high"),
            "medium": sum(1 for item in items if item["priority"] == "medium"),
            "low": sum(1 for item in items if item["priority"] == "low"),
        },
    }

# ===== HEALTH SCORE =====

def health_grade(score: float) -> str:
    if score >= 85:
        return "A"
    if score >= 70:
        return "B"
    if score >= 50:
        return "C"
    if score >= 30:
        return "D"
    return "F"


def recent_months(db: Session, user_id: str, today: date, months: int = 3) -> List[dict]:
    """Income/expense per month with activity in the trailing window, oldest first."""
    start = periods.add_months(today, -months)
    income = analytics.monthly_amounts(db, models.Income, user_id, start, today)
    expense = analytics.monthly_amounts(db, models.Expense, user_id, start, today)
    return [
        {"month": month, "income": income[month], "expense": expense[month]}
        for month in sorted(set(income) | set(expense))
    ]


def score_health(months: List[dict], balance: float) -> dict:
    scores = {"profitability": 0.0, "stability": 0.0, "growth": 0.0, "efficiency": 0.0, "cashFlow": 0.0}
    if len(months) >= 2:
        count = len(months)
        profits = [month["income"] - month["expense"] for month in months]
        avg_profit = sum(profits) / count
        avg_income = sum(month["income"] for month in months) / count
        margin = avg_profit / avg_income * 100 if avg_income > 0 else 0
        scores["profitability"] = min(25, max(0, 15 + margin * 0.5 if margin > 0 else 0))

        scores["stability"] = min(25, max(0, 25 - statistics.pstdev(profits) / 10000))

        first, last = months[0]["income"], months[-1]["income"]
        growth = (last - first) / first * 100 if first > 0 else 0
        scores["growth"] = min(20, max(0, 10 + growth * 0.5))

        ratio = sum(month["expense"] / month["income"] if month["income"] > 0 else 1
                    for month in months) / count
        scores["efficiency"] = min(15, max(0, 15 - ratio * 10))

        if balance > 0:
            scores["cashFlow"] = min(15, max(0, 10 + math.log10(balance / 10000)))

    total = sum(scores.values())
    return {"totalScore": round_half_up(total), "grade": health_grade(total), "scores": scores,
            "hasEnoughData": len(months) >= 2}


def health_suggestions(scores: dict) -> List[dict]:
    rules = [
        ("profitability", 15, "Low profit margin", "Review revenue sources and the cost structure", "high"),
        ("stability", 15, "Volatile monthly results", "Build recurring revenue and steady spending", "medium"),
        ("growth", 10, "Flat revenue", "Develop new customers and services", "medium"),
        ("efficiency", 10, "High expense ratio", "Streamline operations and cut unnecessary spending", "high"),
        ("cashFlow", 10, "Thin cash reserves", "Tighten receivables and build an emergency fund", "high"),
    ]
    return [
        {"category": key, "issue": issue, "suggestion": suggestion, "priority": priority}
        for key, threshold, issue, suggestion, priority in rules
        if scores[key] < threshold
    ]


def health_score(db: Session, user_id: str, today: Optional[date] = None) -> dict:
    today = today or date.today()
    result = score_health(recent_months(db, user_id, today), forecasting.settled_balance(db, user_id))
    total = result["totalScore"]
    return {
        "totalScore": total,
        "grade": result["grade"],
        "scores": {key: round_half_up(value) for key, value in result["scores"].items()},
        "suggestions": health_suggestions(result["scores"]),
        "hasEnoughData": result["hasEnoughData"],
        "interpretation": {
            "excellent": total >= 85,
            "good": 70 <= total < 85,
            "fair": 50 <= total < 70,
            "poor": total < 50,
        },
    }

# ===== CHAT =====

def classify_intent(message: str) -> Tuple[str, float]:
    """Intent whose keyword list has the largest matched fraction; ``general`` when nothing matches."""
    text = message.lower()
    best, best_confidence = "general", 0.0
    for intent, keywords in INTENT_KEYWORDS:
        confidence = sum(1 for keyword in keywords if keyword in text) / len(keywords)
        if confidence > best_confidence:
            best, best_confidence = intent, confidence
    return best, round(best_confidence, 2)


def _health_advice(total: int, enough_data: bool) -> str:
    if not enough_data:
        return "Record at least two months of transactions for a meaningful score."
    if total >= 85:
        return "Finances are in excellent shape."
    if total >= 70:
        return "Finances are good with room to improve."
    if total >= 50:
        return "Finances are fair; watch costs and grow revenue."
    return "Finances need attention; review the business strategy."


def _respond_financial_status(db: Session, user_id: str, today: date) -> dict:
    score = health_score(db, user_id, today)
    balance = forecasting.settled_balance(db, user_id)
    return {
        "text": (f"Current balance: {balance:,.2f}\n"
                 f"Health score: {score['totalScore']} (grade {score['grade']})\n"
                 f"{_health_advice(score['totalScore'], score['hasEnoughData'])}"),
        "suggestions": ["Show the detailed health score", "How can I improve?", "Cash-flow forecast"],
        "actions": [{"type": "view_health_score"}, {"type": "view_cash_flow"}],
    }


def _respond_expense_analysis(db: Session, user_id: str, today: date) -> dict:
    start, end = _month_range(today)
    rows = analytics.grouped_totals(db, models.Expense.category, models.Expense, user_id, start, end)
    total = sum(row["totalAmount"] for row in rows)
    if not rows:
        return {"text": "No expenses recorded this month.", "suggestions": ["Record an expense"]}
    top = rows[0]
    share = top["totalAmount"] / total * 100 if total else 0
    return {
        "text": (f"Expenses this month: {total:,.2f}\n"
                 f"Largest category: {categories.category_label(top['category'])} "
                 f"({top['totalAmount']:,.2f}, {share:.1f}% of the total)"),
        "suggestions": ["Expense trend", "Cost optimisation ideas", "Set a budget"],
    }


def _respond_income_analysis(db: Session, user_id: str, today: date) -> dict:
    start, end = _month_range(today)
    rows = analytics.grouped_totals(db, models.Income.customer, models.Income, user_id, start, end)
    if not rows:
        return {"text": "No income recorded this month.", "suggestions": ["Record income"]}
    total = sum(row["totalAmount"] for row in rows)
    transactions = sum(row["transactionCount"] for row in rows)
    spread = (f"{len(rows)} active customers this month" if len(rows) > 1
              else "Revenue depends on a single customer")
    return {
        "text": (f"Income this month: {total:,.2f}\n"
                 f"Top customer: {rows[0]['customer']}\n"
                 f"Average order value: {total / transactions:,.2f}\n{spread}"),
        "suggestions": ["Customer concentration", "Diversify revenue", "Customer value analysis"],
    }


def _respond_cash_flow(db: Session, user_id: str, today: date) -> dict:
    summary = forecasting.build_forecast(db, user_id, 30, today)["summary"]
    return {
        "text": (f"Projected balance in 30 days: {summary['finalBalance']:,}\n"
                 f"Lowest projected balance: {summary['worstCaseBalance']:,}\n"
                 f"High-risk days: {summary['riskDays']}"),
        "suggestions": ["Cash-flow alerts", "Cash-flow analysis"],
        "actions": [{"type": "view_cash_flow"}],
    }


def next_month_projection(months: List[dict]) -> dict:
    if len(months) < 2:
        return {"income": 0, "expense": 0, "profit": 0, "hasEnoughData": False}
    count = len(months)
    income = max(0, sum(m["income"] for m in months) / count + (months[-1]["income"] - months[0]["income"]) / count)
    expense = max(0, sum(m["expense"] for m in months) / count + (months[-1]["expense"] - months[0]["expense"]) / count)
    return {"income": round_half_up(income), "expense": round_half_up(expense),
            "profit": round_half_up(income - expense), "hasEnoughData": True}


def _respond_forecasting(db: Session, user_id: str, today: date) -> dict:
    projection = next_month_projection(recent_months(db, user_id, today))
    if not projection["hasEnoughData"]:
        return {"text": "Not enough history for a forecast yet; record at least two months of data.",
                "suggestions": ["Record income", "Record an expense"]}
    outlook = ("A positive month is expected." if projection["profit"] > 0
               else "A negative month is possible; prepare funds or adjust plans.")
    return {
        "text": (f"Next month income: {projection['income']:,}\n"
                 f"Next month expenses: {projection['expense']:,}\n"
                 f"Expected net: {projection['profit']:,}\n{outlook}"),
        "suggestions": ["Detailed forecast", "Set goals"],
    }


def optimization_ideas(db: Session, user_id: str, today: date) -> List[dict]:
    ideas = []
    recurring = db.query(
        models.Expense.description, func.count(models.Expense.id).label("frequency")
    ).filter(
        models.Expense.user_id == user_id,
        models.Expense.date >= today - timedelta(days=90),
    ).group_by(
        models.Expense.description, models.Expense.vendor, models.Expense.amount
    ).having(func.count(models.Expense.id) > 3).order_by(desc(models.Expense.amount)).limit(3).all()
    for description, frequency in recurring:
        ideas.append({"title": f"Automate recording of '{description}'", "savings": frequency * 50,
                      "type": "automation"})

    top = db.query(models.Expense.category, func.sum(models.Expense.amount).label("total")).filter(
        models.Expense.user_id == user_id,
        models.Expense.date >= today - timedelta(days=30),
    ).group_by(models.Expense.category).order_by(desc("total")).first()
    if top and top.total > 10000:
        ideas.append({"title": f"Reduce {categories.category_label(top.category)} spending",
                      "savings": round(top.total * 0.1, 2), "type": "cost_reduction"})

    if not ideas:
        ideas = [
            {"title": "Set monthly budget limits", "savings": 1000, "type": "budget_control"},
            {"title": "Classify expenses automatically", "savings": 500, "type": "automation"},
        ]
    return ideas


def _respond_optimization(db: Session, user_id: str, today: date) -> dict:
    ideas = optimization_ideas(db, user_id, today)
    lines = [f"{index}. {idea['title']} (potential saving {idea['savings']:,}/month)"
             for index, idea in enumerate(ideas, 1)]
    return {"text": "\n".join(lines), "suggestions": [idea["title"] for idea in ideas]}


def _respond_general(db: Session, user_id: str, today: date) -> dict:
    return {
        "text": ("I can analyse your financial status, track income and expenses, "
                 "forecast cash flow and suggest cost savings. What would you like to know?"),
        "suggestions": ["How are my finances?", "Expense analysis this month", "Income sources",
                        "Cash-flow forecast", "How can I cut costs?"],
    }


RESPONDERS = {
    "financial_status": _respond_financial_status,
    "expense_analysis": _respond_expense_analysis,
    "income_analysis": _respond_income_analysis,
    "cash_flow": _respond_cash_flow,
    "forecasting": _respond_forecasting,
    "optimization": _respond_optimization,
    "general": _respond_general,
}


def chat(db: Session, user_id: str, message: str, today: Optional[date] = None) -> dict:
    intent, confidence = classify_intent(message)
    response = RESPONDERS[intent](db, user_id, today or date.today())
    return {
        "response": response["text"],
        "suggestions": response.get("suggestions", []),
        "actions": response.get("actions", []),
        "intent": intent,
        "confidence": confidence,
    }

# ===== INSIGHTS & TASKS =====

def insights(db: Session, user_id: str, today: Optional[date] = None) -> List[dict]:
    today = today or date.today()
    start, end = _month_range(today)
    previous_start = periods.add_months(start, -1)
    previous_end = start - timedelta(days=1)
    found = []

    for model, label in ((models.Income, "income"), (models.Expense, "expense")):
        current = _range_total(db, model, user_id, start, end)
        previous = _range_total(db, model, user_id, previous_start, previous_end)
        if previous > 0:
            change = (current - previous) / previous * 100
            good = change >= 0 if label == "income" else change <= 0
            found.append({
                "type": f"{label}_change",
                "title": f"Monthly {label} {'up' if change >= 0 else 'down'} {abs(change):.1f}%",
                "message": f"{label.capitalize()} this month is {current:,.2f} against {previous:,.2f} last month",
                "impact": "positive" if good else "negative",
                "data": {"current": current, "previous": previous, "change": round(change, 1)},
            })

    rows = analytics.grouped_totals(db, models.Expense.category, models.Expense, user_id, start, end)
    total_expense = sum(row["totalAmount"] for row in rows)
    if rows and total_expense > 0:
        share = rows[0]["totalAmount"] / total_expense * 100
        found.append({
            "type": "top_expense_category",
            "title": f"{categories.category_label(rows[0]['category'])} is {share:.1f}% of spending",
            "message": "Concentrated spending is worth reviewing" if share > 50 else "Spending is spread across categories",
            "impact": "negative" if share > 50 else "neutral",
            "data": {"category": rows[0]["category"], "share": round(share, 1)},
        })

    pending_count, pending_amount = db.query(
        func.count(models.Income.id), func.coalesce(func.sum(models.Income.amount), 0)
    ).filter(models.Income.user_id == user_id, models.Income.status == "pending").one()
    if pending_count:
        found.append({
            "type": "pending_receivables",
            "title": f"{pending_count} receivables outstanding",
            "message": f"{float(pending_amount):,.2f} has not been collected yet",
            "impact": "negative" if pending_count > 5 else "neutral",
            "data": {"count": pending_count, "amount": float(pending_amount)},
        })
    return found


def task_suggestions(db: Session, user_id: str, today: Optional[date] = None) -> dict:
    today = today or date.today()
    tasks = []

    pending_income = db.query(func.count(models.Income.id)).filter(
        models.Income.user_id == user_id, models.Income.status == "pending").scalar()
    pending_expense = db.query(func.count(models.Expense.id)).filter(
        models.Expense.user_id == user_id, models.Expense.status == "pending").scalar()
    if pending_income or pending_expense:
        tasks.append({
            "type": "pending_items",
            "priority": "medium",
            "title": "Settle pending transactions",
            "description": f"{pending_income} receivables and {pending_expense} payables are pending",
            "count": pending_income + pending_expense,
        })

    overdue = db.query(func.count(models.Income.id), func.coalesce(func.sum(models.Income.amount), 0)).filter(
        models.Income.user_id == user_id,
        or_(models.Income.status == "overdue",
            (models.Income.status == "pending") & (models.Income.date < today - timedelta(days=30))),
    ).one()
    if overdue[0]:
        tasks.append({
            "type": "overdue_collection",
            "priority": "high",
            "title": "Collect overdue receivables",
            "description": f"{overdue[0]} receivables totalling {float(overdue[1]):,.2f} are overdue",
            "count": overdue[0],
            "potential_savings": float(overdue[1]),
        })

    period = periods.month_key(today)
    flagged = db.query(models.Budget, models.BudgetExecution).join(
        models.BudgetExecution, models.BudgetExecution.budget_id == models.Budget.id
    ).filter(
        models.Budget.user_id == user_id,
        models.BudgetExecution.period == period,
        models.BudgetExecution.status.in_(["warning", "exceeded"]),
    ).all()
    for budget, execution in flagged:
        tasks.append({
            "type": "budget_warning",
            "priority": "high" if execution.status == "exceeded" else "medium",
            "title": f"Budget '{budget.name}' is {execution.status}",
            "description": f"{execution.usage_percentage:.1f}% of {budget.amount:,.2f} used in {period}",
            "count": 1,
            "potential_savings": max(0.0, round(execution.actual_amount - budget.amount, 2)),
        })

    uncategorized = db.query(func.count(models.Expense.id)).filter(
        models.Expense.user_id == user_id, models.Expense.category == "other").scalar()
    if uncategorized:
        tasks.append({
            "type": "categorize_expenses",
            "priority": "low",
            "title": "Categorise expenses",
            "description": f"{uncategorized} expenses are filed under 'other'",
            "count": uncategorized,
        })

    tasks.sort(key=lambda task: PRIORITY_ORDER[task["priority"]], reverse=True)
    return {
        "tasks": tasks,
        "priority_tasks": [task for task in tasks if task["priority"] == "high"],
        "total_potential_savings": round(sum(task.get("potential_savings", 0) for task in tasks), 2),
    }

# ===== SMART REPORTS =====

def _business_insights(db: Session, user_id: str, start: date, end: date) -> dict:
    customers = analytics.grouped_totals(db, models.Income.customer, models.Income, user_id, start, end)
    expense_rows = analytics.grouped_totals(db, models.Expense.category, models.Expense, user_id, start, end)
    total_income = sum(row["totalAmount"] for row in customers)
    total_expense = sum(row["totalAmount"] for row in expense_rows)
    transactions = sum(row["transactionCount"] for row in customers)
    net = total_income - total_expense
    margin = net / total_income * 100 if total_income > 0 else 0
    concentration = customers[0]["totalAmount"] / total_income if customers and total_income else 0

    return {
        "summary": {
            "totalIncome": round(total_income, 2),
            "totalExpense": round(total_expense, 2),
            "netProfit": round(net, 2),
            "profitMargin": round(margin, 1),
            "avgOrderValue": round_half_up(total_income / transactions) if transactions else 0,
        },
        "income_analysis": {"topCustomers": customers[:5]},
        "expense_analysis": {
            "topCategories": expense_rows[:5],
            "costStructure": [
                {"category": row["category"], "amount": row["totalAmount"],
                 "percentage": round(row["totalAmount"] / total_expense * 100, 1) if total_expense else 0}
                for row in expense_rows
            ],
        },
        "recommendations": [
            "Profitable period; consider investing in growth" if net > 0
            else "Review the cost structure to restore profitability",
            "Margin below 20%; revisit pricing or costs" if margin < 20 else "Healthy margin",
            "Revenue is concentrated in one customer" if concentration > 0.5 else "Customer mix is healthy",
        ],
    }


def _cash_flow_report(db: Session, user_id: str, start: date, end: date) -> dict:
    flows = {}
    for model, sign in ((models.Income, 1), (models.Expense, -1)):
        for day, total in db.query(model.date, func.sum(model.amount)).filter(
            model.user_id == user_id, model.date >= start, model.date <= end
        ).group_by(model.date).all():
            flows[day] = flows.get(day, 0) + sign * float(total or 0)

    balance = 0.0
    daily = []
    for day in sorted(flows):
        balance += flows[day]
        daily.append({"date": day.isoformat(), "dailyFlow": round(flows[day], 2),
                      "cumulativeBalance": round(balance, 2)})

    values = list(flows.values())
    average = sum(values) / len(values) if values else 0
    negative_days = sum(1 for day in daily if day["cumulativeBalance"] < 0)
    return {
        "summary": {
            "avgDailyFlow": round_half_up(average),
            "maxDailyInflow": max([value for value in values if value > 0], default=0),
            "maxDailyOutflow": abs(min([value for value in values if value < 0], default=0)),
            "finalBalance": round(balance, 2),
            "volatility": round_half_up(statistics.pstdev(values))
            if values else 0,
        },
        "daily_analysis": daily,
        "insights": [
            "Net cash flow is positive" if average > 0 else "Net cash flow is negative; watch liquidity",
            "Balance swings often below zero" if daily and negative_days > len(daily) * 0.3
            else "Cash flow is relatively steady",
        ],
    }


def _profitability_report(db: Session, user_id: str, start: date, end: date) -> dict:
    customers = analytics.grouped_totals(db, models.Income.customer, models.Income, user_id, start, end)
    total_income = sum(row["totalAmount"] for row in customers)
    total_expense = _range_total(db, models.Expense, user_id, start, end)
    concentration = customers[0]["totalAmount"] / total_income * 100 if customers and total_income else 0
    return {
        "customer_profitability": customers[:10],
        "profitability_metrics": {
            "grossMargin": round((total_income - total_expense) / total_income * 100, 1) if total_income else 0,
            "avgCustomerValue": round_half_up(total_income / len(customers)) if customers else 0,
            "customerConcentration": round(concentration, 1),
        },
        "recommendations": [
            "Broaden the customer base to reduce concentration risk" if concentration > 50
            else "Customer mix is healthy",
        ],
    }


REPORT_BUILDERS = {
    "business_insights": _business_insights,
    "cash_flow_analysis": _cash_flow_report,
    "profitability_report": _profitability_report,
}


def smart_report(db: Session, user_id: str, report_type: str, date_range: str,
                 today: Optional[date] = None) -> dict:
    builder = REPORT_BUILDERS.get(report_type)
    if builder is None:
        raise ValidationError(f"Unsupported report type '{report_type}'")
    start, end = periods.named_range(date_range, today)
    return {
        "reportType": report_type,
        "dateRange": {"startDate": start.isoformat(), "endDate": end.isoformat()},
        "generatedAt": datetime.now().isoformat(),
        "report": builder(db, user_id, start, end),
    }

# ===== GOALS & AUTOMATION =====

def financial_goals(db: Session, user_id: str, today: Optional[date] = None) -> dict:
    today = today or date.today()
    start, end = _month_range(today)
    month_income = _range_total(db, models.Income, user_id, start, end)
    month_expense = _range_total(db, models.Expense, user_id, start, end)
    profit = month_income - month_expense
    balance = _sum_amount(db, models.Income, user_id) - _sum_amount(db, models.Expense, user_id)
    expense_ratio = month_expense / month_income * 100 if month_income > 0 else 100

    goals = {
        "monthly_profit": {
            "current": round(profit, 2),
            "suggested": round(max(profit * 1.1, 50000), 2),
            "description": "Monthly net profit",
            "achievability": "realistic" if profit > 0 else "challenging",
        },
        "cash_reserve": {
            "current": round(balance, 2),
            "suggested": round(max(month_expense * 3, 100000), 2),
            "description": "Cash reserve covering three months of spending",
            "achievability": "realistic" if balance > month_expense * 2 else "challenging",
        },
        "expense_ratio": {
            "current": round(expense_ratio, 1),
            "suggested": 70,
            "description": "Expenses below 70% of income",
            "achievability": "realistic" if month_income > 0 and expense_ratio < 80 else "challenging",
        },
    }
    progress = {
        "monthly_profit": min(100, max(0, profit / goals["monthly_profit"]["suggested"] * 100)),
        "cash_reserve": min(100, max(0, balance / goals["cash_reserve"]["suggested"] * 100)),
        "expense_ratio": min(100, max(0, 100 - (expense_ratio - 70))),
    }
    progress = {key: round(value, 1) for key, value in progress.items()}
    return {
        "goals": goals,
        "progress": progress,
        "summary": {
            "overall_score": round(sum(progress.values()) / len(progress), 1),
            "achieved_goals": sum(1 for value in progress.values() if value >= 100),
            "total_goals": len(progress),
        },
    }


def automation_suggestions(db: Session, user_id: str, today: Optional[date] = None) -> dict:
    today = today or date.today()
    since = today - timedelta(days=90)
    suggestions = []

    recurring = db.query(
        models.Expense.vendor, func.count(models.Expense.id).label("frequency"),
        func.avg(models.Expense.amount).label("average"),
    ).filter(
        models.Expense.user_id == user_id, models.Expense.date >= since
    ).group_by(models.Expense.vendor).having(func.count(models.Expense.id) >= 3).order_by(desc("frequency")).all()
    for vendor, frequency, average in recurring:
        suggestions.append({
            "type": "recurring_transaction",
            "priority": "medium",
            "title": f"Automate recurring payments to {vendor}",
            "description": f"{vendor} appeared {frequency} times in the last 90 days",
            "action": "setup_auto_record",
            "data": {"vendor": vendor, "frequency": frequency, "averageAmount": round(average or 0, 2)},
            "potential_time_savings": frequency * 2,
        })

    uncategorized = db.query(func.count(models.Expense.id)).filter(
        models.Expense.user_id == user_id,
        models.Expense.category == "other",
        models.Expense.date >= today - timedelta(days=30),
    ).scalar()
    if uncategorized > 5:
        suggestions.append({
            "type": "auto_categorization",
            "priority": "high",
            "title": "Enable automatic categorisation",
            "description": f"{uncategorized} expenses in the last 30 days are filed under 'other'",
            "action": "enable_auto_categorization",
            "potential_time_savings": uncategorized,
        })

    status = backup_status(db, user_id, today)
    if status["totalRecords"] and status["recommendation"]["priority"] != "low":
        suggestions.append({
            "type": "backup_reminder",
            "priority": "high",
            "title": "Back up your data",
            "description": status["recommendation"]["message"],
            "action": "setup_auto_backup",
            "data": {"lastBackup": status["lastBackup"]},
        })

    return {
        "suggestions": suggestions,
        "summary": {
            "total": len(suggestions),
            "high_priority": sum(1 for s in suggestions if s["priority"] == "high"),
            "potential_time_savings": sum(s.get("potential_time_savings", 0) for s in suggestions),
        },
    }

# ===== BACKUPS =====

def _user_backup_files(user_id: str) -> List[Path]:
    return sorted(backup_dir().glob(f"smart_{user_id}_*.json"), reverse=True)


def user_snapshot(db: Session, user_id: str) -> dict:
    """Every row the user owns, grouped by table."""
    return {
        "income": [serialize(row) for row in db.query(models.Income).filter(models.Income.user_id == user_id)],
        "expense": [serialize(row) for row in db.query(models.Expense).filter(models.Expense.user_id == user_id)],
        "budget": [serialize(row) for row in db.query(models.Budget).filter(models.Budget.user_id == user_id)],
        "tax_calculations": [
            serialize(row) for row in
            db.query(models.TaxCalculation).filter(models.TaxCalculation.user_id == user_id)
        ],
    }


def backup_recommendation(total_records: int, days_since_backup: Optional[int]) -> dict:
    if total_records == 0:
        return {"priority": "low", "message": "Nothing to back up yet", "reason": "no_data"}
    if days_since_backup is None or days_since_backup > 30:
        return {"priority": "high", "message": "No backup in the last 30 days; back up now",
                "reason": "critical_delay"}
    if total_records > 50 and days_since_backup > 14:
        return {"priority": "medium", "message": "Back up soon; your data has grown",
                "reason": "moderate_delay"}
    if total_records > 20 and days_since_backup > 7:
        return {"priority": "medium", "message": "Back up regularly to protect your records",
                "reason": "regular_maintenance"}
    return {"priority": "low", "message": "Backups are up to date", "reason": "good_status"}


def backup_status(db: Session, user_id: str, today: Optional[date] = None) -> dict:
    today = today or date.today()
    counts = {
        "income_count": db.query(func.count(models.Income.id)).filter(models.Income.user_id == user_id).scalar(),
        "expense_count": db.query(func.count(models.Expense.id)).filter(models.Expense.user_id == user_id).scalar(),
        "tax_count": db.query(func.count(models.TaxCalculation.id)).filter(
            models.TaxCalculation.user_id == user_id).scalar(),
    }
    last_dates = [
        db.query(func.max(model.date)).filter(model.user_id == user_id).scalar()
        for model in (models.Income, models.Expense)
    ]
    last_activity = max((day for day in last_dates if day), default=None)

    files = _user_backup_files(user_id)
    last_backup = datetime.fromtimestamp(files[0].stat().st_mtime) if files else None
    days_since_backup = (today - last_backup.date()).days if last_backup else None
    total = sum(counts.values())

    return {
        "lastActivity": last_activity.isoformat() if last_activity else None,
        "daysSinceActivity": (today - last_activity).days if last_activity else 0,
        "lastBackup": last_backup.isoformat() if last_backup else None,
        "daysSinceBackup": days_since_backup,
        "backupCount": len(files),
        "totalRecords": total,
        "dataStats": counts,
        "recommendation": backup_recommendation(total, days_since_backup),
    }


def create_smart_backup(db: Session, user_id: str, include_settings: bool = True,
                        note: Optional[str] = None) -> dict:
    data = user_snapshot(db, user_id)
    if include_settings:
        company = db.query(models.CompanyInfo).filter(models.CompanyInfo.user_id == user_id).first()
        data["company_info"] = [serialize(company)] if company else []

    created_at = datetime.now()
    backup_id = f"smart_{user_id}_{created_at.strftime('%Y%m%d%H%M%S%f')}"
    document = {
        "version": BACKUP_FORMAT_VERSION,
        "userId": user_id,
        "createdAt": created_at.isoformat(),
        "note": note,
        "metadata": {
            "totalRecords": sum(len(rows) for rows in data.values()),
            "dataTypes": list(data),
        },
        "data": data,
    }
    path = backup_dir() / f"{backup_id}.json"
    path.write_text(json.dumps(document, ensure_ascii=False, default=str), encoding="utf-8")
    logger.info("Smart backup %s written (%d records)", backup_id, document["metadata"]["totalRecords"])
    return {"backupId": backup_id, "filename": path.name, "size": path.stat().st_size,
            "metadata": document["metadata"], "createdAt": document["createdAt"]}


def verify_backup_document(document: dict, today: Optional[date] = None) -> dict:
    """Integrity score (0-100) for a backup document."""
    today = today or date.today()
    issues, recommendations = [], []
    integrity = 100

    if not document.get("version") or not isinstance(document.get("data"), dict) or not document.get("createdAt"):
        issues.append("Backup format is invalid")
        integrity -= 30
    data = document.get("data") if isinstance(document.get("data"), dict) else {}

    for table in BACKUP_TABLES:
        if table not in data:
            issues.append(f"Missing table {table}")
            integrity -= 10
        elif not isinstance(data[table], list):
            issues.append(f"Table {table} is malformed")
            integrity -= 5

    try:
        created = datetime.fromisoformat(document["createdAt"]).date()
        if (today - created).days > 30:
            recommendations.append("Backup is older than 30 days; create a new one")
            integrity -= 10
    except (KeyError, TypeError, ValueError):
        pass

    total = sum(len(rows) for rows in data.values() if isinstance(rows, list))
    if total == 0:
        issues.append("Backup contains no records")
        integrity -= 50

    if integrity >= 90:
        recommendations.append("Backup is complete and reliable")
    elif integrity >= 70:
        recommendations.append("Backup is mostly complete; check the missing items")
    else:
        recommendations.append("Backup has problems; create a new one")

    return {"isValid": integrity >= 70, "issues": issues, "recommendations": recommendations,
            "dataIntegrity": max(0, integrity), "totalRecords": total}


def verify_backup(db: Session, user_id: str, backup_id: Optional[str] = None,
                  backup_data: Optional[dict] = None) -> dict:
    """Verify a stored smart backup, an uploaded document, or the live data."""
    if backup_data is not None:
        return verify_backup_document(backup_data)
    if backup_id:
        if not backup_id.startswith(f"smart_{user_id}_") or "/" in backup_id or "\\" in backup_id:
            raise NotFoundError("Backup not found")
        path = backup_dir() / f"{backup_id}.json"
        if not path.is_file():
            raise NotFoundError("Backup not found")
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except ValueError:
            return {"isValid": False, "issues": ["Backup file is unreadable"],
                    "recommendations": ["Create a new backup"], "dataIntegrity": 0, "totalRecords": 0}
        return verify_backup_document(document)
    return verify_backup_document({
        "version": BACKUP_FORMAT_VERSION,
        "createdAt": datetime.now().isoformat(),
        "data": user_snapshot(db, user_id),
    })

# ===== RECEIPTS =====

def receipt_recommendations(extracted: dict) -> List[dict]:
    found = []
    if extracted.get("confidence", 0) < 0.8:
        found.append({"type": "accuracy", "message": "Double-check the extracted values", "priority": "medium"})
    if extracted.get("amount", 0) > 1000:
        found.append({"type": "approval", "message": "Large amount; consider an approval step", "priority": "high"})
    if extracted.get("tax"):
        found.append({"type": "tax", "message": "Tax information detected for filing", "priority": "low"})
    found.append({"type": "storage", "message": "Keep the original receipt image", "priority": "medium"})
    return found


def scan_receipt(db: Session, user_id: str, scanner: ReceiptScanner, image_data: str,
                 receipt_type: Optional[str] = None) -> dict:
    extracted = scanner.scan(image_data, receipt_type)
    classification = classify_transaction(
        db, user_id, extracted["description"], extracted["amount"], extracted["vendor"]
    )
    suggested = dict(extracted)
    suggested.update({
        "category": classification["suggestedCategory"],
        "categoryConfidence": classification["confidence"],
        "alternatives": classification["alternatives"],
    })
    return {
        "extractedData": extracted,
        "suggestedRecord": suggested,
        "confidence": extracted["confidence"],
        "processedAt": datetime.now().isoformat(),
        "recommendations": receipt_recommendations(extracted),
    }


def batch_summary(results: List[dict]) -> dict:
    total = sum(result["data"]["amount"] for result in results)
    category_counts, vendor_counts = {}, {}
    for result in results:
        category = result["data"]["category"]
        vendor = result["data"]["vendor"]
        category_counts[category] = category_counts.get(category, 0) + 1
        vendor_counts[vendor] = vendor_counts.get(vendor, 0) + 1
    return {
        "totalAmount": total,
        "totalItems": len(results),
        "topCategory": max(category_counts, key=category_counts.get) if category_counts else None,
        "topVendor": max(vendor_counts, key=vendor_counts.get) if vendor_counts else None,
        "categoryDistribution": category_counts,
        "averageAmount": round_half_up(total / len(results)) if results else 0,
    }


def receipt_templates(db: Session, user_id: str) -> dict:
    """Reusable entries for vendors the user has paid at least three times."""
    rows = db.query(
        models.Expense.vendor,
        models.Expense.category,
        func.count(models.Expense.id).label("frequency"),
        func.avg(models.Expense.amount),
        func.min(models.Expense.amount),
        func.max(models.Expense.amount),
    ).filter(
        models.Expense.user_id == user_id,
        models.Expense.vendor.isnot(None),
        models.Expense.vendor != "",
    ).group_by(models.Expense.vendor, models.Expense.category).having(
        func.count(models.Expense.id) >= 3
    ).order_by(desc("frequency")).limit(20).all()

    templates = []
    category_weight = {}
    for vendor, category, frequency, average, minimum, maximum in rows:
        category_weight[category] = category_weight.get(category, 0) + frequency
        templates.append({
            "vendor": vendor,
            "suggestedCategory": category,
            "frequency": frequency,
            "priceRange": {"min": minimum, "max": maximum, "avg": round_half_up(average or 0)},
            "confidence": round(min(0.95, 0.5 + frequency * 0.1), 2),
            "template": {
                "vendor": vendor,
                "category": category,
                "amount": round_half_up(average or 0),
                "description": f"{vendor} - {categories.category_label(category)}",
            },
        })
    return {
        "templates": templates,
        "summary": {
            "totalTemplates": len(templates),
            "topVendors": [template["vendor"] for template in templates[:5]],
            "mostFrequentCategory": max(category_weight, key=category_weight.get) if category_weight else None,
        },
    }
