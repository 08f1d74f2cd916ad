# bookkeeper/routers/analytics.py
# Advanced analytics endpoints

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import analytics, models
from ..dependencies import get_current_user, get_db

router = APIRouter()


@router.get("/performance")
def performance(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": analytics.performance(db, current_user.id, year or date.today().year)}


@router.get("/comparison")
def comparison(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    compare_year: Optional[int] = Query(None, alias="compareYear", ge=1900, le=9999),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Year-over-year revenue, expense and profit growth."""
    return {"success": True, "data": analytics.comparison(
        db, current_user.id, year or date.today().year, compare_year
    )}


@router.get("/cashflow-forecast")
def cashflow_forecast(
    months: int = Query(6, ge=1, le=24),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": analytics.monthly_forecast(db, current_user.id, months)}


@router.get("/anomaly-detection")
def anomaly_detection(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": analytics.detect_anomalies(db, current_user.id)}


@router.get("/profitability-analysis")
def profitability_analysis(
    period: str = Query("month", pattern="^(week|month|quarter)$"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": analytics.profitability(db, current_user.id, period)}
