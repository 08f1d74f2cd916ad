# bookkeeper/routers/expense.py
# Expense ledger endpoints, category stats and month-over-month trend

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..dependencies import get_current_user, get_db, get_pagination_params
from ..ledger import (
    EXPENSE, create_record, delete_record, expense_trend, get_record,
    list_records, serialize, stats_by_category, update_record
)
from ..query_builder import ledger_stats

router = APIRouter()

# ===== EXPENSE CRUD =====

@router.get("")
def list_expenses(
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = Query(None),
    vendor: Optional[str] = Query(None, description="Substring match on vendor"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    pagination: dict = Depends(get_pagination_params),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's expenses, newest first."""
    filters = {
        "status": status_filter,
        "category": category,
        "vendor": vendor,
        "startDate": start_date,
        "endDate": end_date,
    }
    rows, page_info = list_records(
        db, EXPENSE, current_user.id, filters, pagination["page"], pagination["limit"]
    )
    return {"success": True, "data": rows, "pagination": page_info}

# ===== STATS & INSIGHTS =====

@router.get("/stats/summary")
def expense_summary(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    stats = ledger_stats(db, models.Expense, current_user.id, start_date, end_date)
    return {"success": True, "data": stats}


@router.get("/stats/by-category")
def expense_by_category(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Expense aggregates grouped by category, largest first."""
    rows = stats_by_category(db, current_user.id, {"startDate": start_date, "endDate": end_date})
    return {"success": True, "data": rows}


@router.get("/insights/expense-trend")
def expense_trend_insight(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """This month vs last month."""
    return {"success": True, "data": expense_trend(db, current_user.id)}

# ===== SINGLE RECORD =====

@router.get("/{record_id}")
def get_expense(
    record_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    record = get_record(db, EXPENSE, current_user.id, record_id)
    return {"success": True, "data": serialize(record)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_expense(
    payload: schemas.ExpenseCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create an expense; tax and total are derived from amount and rate."""
    record = create_record(db, EXPENSE, current_user.id, payload.model_dump())
    return {"success": True, "message": "Expense record created", "data": serialize(record)}


@router.put("/{record_id}")
def update_expense(
    record_id: int,
    payload: schemas.ExpenseCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    record = update_record(db, EXPENSE, current_user.id, record_id, payload.model_dump())
    return {"success": True, "message": "Expense record updated", "data": serialize(record)}


@router.delete("/{record_id}")
def delete_expense(
    record_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    delete_record(db, EXPENSE, current_user.id, record_id)
    return {"success": True, "message": "Expense record deleted"}
