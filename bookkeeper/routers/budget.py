# bookkeeper/routers/budget.py
# Budget management and execution tracking endpoints

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..budget import BudgetService, serialize_budget, serialize_execution
from ..dependencies import get_current_user, get_db

router = APIRouter()


def get_budget_service(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> BudgetService:
    return BudgetService(db, current_user.id)

# ===== CATEGORIES & OVERVIEW =====

@router.get("/categories")
def list_budget_categories(service: BudgetService = Depends(get_budget_service)):
    categories = [
        {
            "id": category.id,
            "name": category.name,
            "icon": category.icon,
            "color": category.color,
            "is_income": category.is_income,
            "sort_order": category.sort_order,
        }
        for category in service.list_categories()
    ]
    return {"success": True, "data": categories}


@router.get("/overview/{period}")
def budget_overview(period: str, service: BudgetService = Depends(get_budget_service)):
    """Recompute every budget in the period and summarise usage."""
    return {"success": True, "data": service.overview(period)}

# ===== BUDGET CRUD =====

@router.get("")
def list_budgets(
    period: Optional[str] = Query(None),
    budget_type: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    service: BudgetService = Depends(get_budget_service)
):
    budgets = service.list_budgets(period=period, budget_type=budget_type, category=category)
    data = []
    for budget in budgets:
        execution = next((e for e in budget.executions if e.period == budget.period), None)
        data.append(serialize_budget(budget, execution))
    return {"success": True, "data": data}


@router.get("/{budget_id}")
def get_budget(budget_id: int, service: BudgetService = Depends(get_budget_service)):
    """Return the budget with a freshly recomputed execution."""
    execution = service.update_execution(budget_id)
    budget = service.get_budget(budget_id)
    return {"success": True, "data": serialize_budget(budget, execution)}


@router.get("/{budget_id}/execution")
def get_budget_execution(
    budget_id: int,
    period: Optional[str] = Query(None),
    service: BudgetService = Depends(get_budget_service)
):
    execution = service.get_execution(budget_id, period)
    return {"success": True, "data": serialize_execution(execution)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_budget(payload: schemas.BudgetCreate, service: BudgetService = Depends(get_budget_service)):
    budget = service.create_budget(payload.model_dump())
    execution = service.get_execution(budget.id)
    return {"success": True, "message": "Budget created", "data": serialize_budget(budget, execution)}


@router.put("/{budget_id}")
def update_budget(
    budget_id: int,
    payload: schemas.BudgetUpdate,
    service: BudgetService = Depends(get_budget_service)
):
    budget = service.update_budget(budget_id, payload.model_dump())
    execution = service.get_execution(budget.id)
    return {"success": True, "message": "Budget updated", "data": serialize_budget(budget, execution)}


@router.delete("/{budget_id}")
def delete_budget(budget_id: int, service: BudgetService = Depends(get_budget_service)):
    service.delete_budget(budget_id)
    return {"success": True, "message": "Budget deleted"}


@router.post("/{budget_id}/update-execution")
def refresh_budget_execution(
    budget_id: int,
    payload: Optional[schemas.ExecutionRefresh] = None,
    service: BudgetService = Depends(get_budget_service)
):
    """Recompute actual spend and status for one budget."""
    period = payload.period if payload else None
    execution = service.update_execution(budget_id, period)
    return {"success": True, "message": "Budget execution updated", "data": serialize_execution(execution)}
