# bookkeeper/routers/reports.py
# Income statement and expense breakdown reports

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, periods, reporting
from ..dependencies import get_current_user, get_db

router = APIRouter()


@router.get("/income-statement")
def income_statement(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Revenue, expenses and profit for the range (default: this month to date)."""
    start, end = periods.resolve_range(start_date, end_date)
    return {"success": True, "data": reporting.income_statement(db, current_user.id, start, end)}


@router.get("/expense-breakdown")
def expense_breakdown(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    start, end = periods.resolve_range(start_date, end_date)
    return {"success": True, "data": reporting.expense_breakdown(db, current_user.id, start, end)}
