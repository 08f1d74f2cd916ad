# bookkeeper/routers/income.py
# Income ledger endpoints

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..dependencies import get_current_user, get_db, get_pagination_params
from ..ledger import INCOME, create_record, delete_record, get_record, list_records, serialize, update_record
from ..query_builder import ledger_stats

router = APIRouter()

# ===== INCOME CRUD =====

@router.get("")
def list_income(
    status_filter: Optional[str] = Query(None, alias="status"),
    customer: Optional[str] = Query(None, description="Substring match on customer"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    pagination: dict = Depends(get_pagination_params),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's income records, newest first."""
    filters = {
        "status": status_filter,
        "customer": customer,
        "startDate": start_date,
        "endDate": end_date,
    }
    rows, page_info = list_records(
        db, INCOME, current_user.id, filters, pagination["page"], pagination["limit"]
    )
    return {"success": True, "data": rows, "pagination": page_info}


@router.get("/stats/summary")
def income_summary(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Totals and status breakdown for the caller's income."""
    stats = ledger_stats(db, models.Income, current_user.id, start_date, end_date)
    return {"success": True, "data": stats}


@router.get("/{record_id}")
def get_income(
    record_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    record = get_record(db, INCOME, current_user.id, record_id)
    return {"success": True, "data": serialize(record)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_income(
    payload: schemas.IncomeCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create an income record; tax and total are derived from amount and rate."""
    record = create_record(db, INCOME, current_user.id, payload.model_dump())
    return {"success": True, "message": "Income record created", "data": serialize(record)}


@router.put("/{record_id}")
def update_income(
    record_id: int,
    payload: schemas.IncomeCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    record = update_record(db, INCOME, current_user.id, record_id, payload.model_dump())
    return {"success": True, "message": "Income record updated", "data": serialize(record)}


@router.delete("/{record_id}")
def delete_income(
    record_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    delete_record(db, INCOME, current_user.id, record_id)
    return {"success": True, "message": "Income record deleted"}
