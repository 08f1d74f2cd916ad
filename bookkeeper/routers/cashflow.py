# bookkeeper/routers/cashflow.py
# Cash-flow forecast, historical analysis and alert endpoints

from datetime import date

from fastapi import APIRouter, Depends, Path
from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import forecasting, models
from ..dependencies import get_current_user, get_db

router = APIRouter()

DEFAULT_FORECAST_DAYS = 30


@router.get("/forecast")
def default_forecast(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": forecasting.build_forecast(db, current_user.id, DEFAULT_FORECAST_DAYS)}


@router.get("/forecast/{days}")
def forecast(
    days: int = Path(..., ge=1, le=365),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Daily projection of the settled balance for the next ``days`` days."""
    return {"success": True, "data": forecasting.build_forecast(db, current_user.id, days)}


@router.get("/analysis")
def analysis(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": forecasting.cash_flow_analysis(db, current_user.id)}


@router.get("/alerts")
def alerts(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Shortfall and high-risk warnings from the default forecast plus overdue receivables."""
    projection = forecasting.build_forecast(db, current_user.id, DEFAULT_FORECAST_DAYS)
    overdue_count, overdue_amount = db.query(
        func.count(models.Income.id), func.coalesce(func.sum(models.Income.amount), 0)
    ).filter(
        models.Income.user_id == current_user.id,
        models.Income.status == "pending",
        models.Income.date < date.today()
    ).one()
    data = forecasting.forecast_alerts(projection, overdue_count, float(overdue_amount))
    return {"success": True, "data": data}
