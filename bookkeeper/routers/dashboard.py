# bookkeeper/routers/dashboard.py
# Dashboard aggregations over the caller's income and expense ledgers

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, periods, reporting
from ..dependencies import get_current_user, get_db

router = APIRouter()


@router.get("/overview")
def dashboard_overview(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Totals for the range (default: this month to date)."""
    start, end = periods.resolve_range(start_date, end_date)
    return {"success": True, "data": reporting.overview(db, current_user.id, start, end)}


@router.get("/cash-flow")
def dashboard_cash_flow(
    months: int = Query(6, ge=1, le=36),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Monthly income/expense trend."""
    return {"success": True, "data": reporting.monthly_cash_flow(db, current_user.id, months)}


@router.get("/recent-transactions")
def dashboard_recent_transactions(
    limit: int = Query(10, ge=1, le=100),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": reporting.recent_transactions(db, current_user.id, limit)}


@router.get("/category-breakdown")
def dashboard_category_breakdown(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Expenses by category and the top ten customers."""
    start, end = periods.resolve_range(start_date, end_date)
    return {
        "success": True,
        "data": {
            "expenseCategories": reporting.expense_categories(db, current_user.id, start, end),
            "incomeCustomers": reporting.top_customers(db, current_user.id, start, end),
            "period": {"startDate": start.isoformat(), "endDate": end.isoformat()},
        },
    }


@router.get("/financial-health")
def dashboard_financial_health(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    start, end = periods.resolve_range(start_date, end_date)
    return {"success": True, "data": reporting.financial_health(db, current_user.id, start, end)}
