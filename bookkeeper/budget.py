# bookkeeper/budget.py
# Budget persistence and execution tracking against the ledgers

import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import categories, models, periods
from .errors import NotFoundError

logger = logging.getLogger(__name__)

WARNING_THRESHOLD = 80
EXCEEDED_THRESHOLD = 100


def execution_status(usage_percentage: float) -> str:
    if usage_percentage >= EXCEEDED_THRESHOLD:
        return "exceeded"
    if usage_percentage >= WARNING_THRESHOLD:
        return "warning"
    return "normal"


def budget_window(budget: models.Budget, period: str) -> Tuple[date, date]:
    """Date range covered by a budget for the given ``YYYY-MM`` period."""
    start, end = periods.parse_period(period)
    if budget.budget_type == "yearly":
        return date(start.year, 1, 1), date(start.year, 12, 31)
    return start, end


def serialize_budget(budget: models.Budget, execution: Optional[models.BudgetExecution] = None) -> dict:
    data = {
        "id": budget.id,
        "name": budget.name,
        "category": budget.category,
        "budget_type": budget.budget_type,
        "amount": budget.amount,
        "period": budget.period,
        "description": budget.description,
        "created_at": budget.created_at.isoformat() if budget.created_at else None,
        "updated_at": budget.updated_at.isoformat() if budget.updated_at else None,
    }
    if execution is not None:
        data.update(serialize_execution(execution))
    return data


def serialize_execution(execution: models.BudgetExecution) -> dict:
    return {
        "budget_id": execution.budget_id,
        "execution_period": execution.period,
        "actual_amount": round(execution.actual_amount or 0, 2),
        "usage_percentage": round(execution.usage_percentage or 0, 2),
        "status": execution.status,
        "last_updated": execution.updated_at.isoformat() if execution.updated_at else None,
    }


class BudgetService:
    """Budget CRUD scoped to one user plus execution recomputation."""

    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id

    # ===== QUERIES =====

    def list_categories(self) -> List[models.BudgetCategory]:
        return self.db.query(models.BudgetCategory).order_by(
            models.BudgetCategory.is_income, models.BudgetCategory.sort_order
        ).all()

    def list_budgets(self, period: Optional[str] = None, budget_type: Optional[str] = None,
                     category: Optional[str] = None) -> List[models.Budget]:
        query = self.db.query(models.Budget).filter(models.Budget.user_id == self.user_id)
        if period:
            query = query.filter(models.Budget.period == period)
        if budget_type:
            query = query.filter(models.Budget.budget_type == budget_type)
        if category:
            query = query.filter(models.Budget.category == category)
        return query.order_by(models.Budget.period.desc(), models.Budget.id).all()

    def get_budget(self, budget_id: int) -> models.Budget:
        budget = self.db.query(models.Budget).filter(
            models.Budget.id == budget_id,
            models.Budget.user_id == self.user_id
        ).first()
        if budget is None:
            raise NotFoundError("Budget not found")
        return budget

    def get_execution(self, budget_id: int, period: Optional[str] = None) -> models.BudgetExecution:
        budget = self.get_budget(budget_id)
        execution = self.db.query(models.BudgetExecution).filter(
            models.BudgetExecution.budget_id == budget.id,
            models.BudgetExecution.period == (period or budget.period)
        ).first()
        if execution is None:
            raise NotFoundError("Budget execution not found")
        return execution

    # ===== WRITES =====

    def create_budget(self, fields: dict) -> models.Budget:
        """Insert the budget and its first execution row in one transaction."""
        try:
            budget = models.Budget(user_id=self.user_id, **fields)
            self.db.add(budget)
            self.db.flush()
            self._refresh_execution(budget, budget.period)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Budget creation rolled back")
            raise
        self.db.refresh(budget)
        return budget

    def update_budget(self, budget_id: int, fields: dict) -> models.Budget:
        budget = self.get_budget(budget_id)
        try:
            for key, value in fields.items():
                setattr(budget, key, value)
            budget.updated_at = models.utcnow()
            self.db.flush()
            self._refresh_execution(budget, budget.period)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(budget)
        return budget

    def delete_budget(self, budget_id: int):
        """Remove execution rows first, then the budget itself."""
        budget = self.get_budget(budget_id)
        try:
            self.db.query(models.BudgetExecution).filter(
                models.BudgetExecution.budget_id == budget.id
            ).delete(synchronize_session="fetch")
            self.db.delete(budget)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    # ===== EXECUTION =====

    def actual_amount(self, budget: models.Budget, period: str) -> float:
        """Sum the ledger rows a budget tracks for the period."""
        start, end = budget_window(budget, period)
        if categories.is_income_budget(budget.category):
            model = models.Income
            query = self.db.query(func.coalesce(func.sum(model.amount), 0))
        else:
            model = models.Expense
            bucket = categories.budget_bucket(budget.category)
            query = self.db.query(func.coalesce(func.sum(model.amount), 0)).filter(
                model.category.in_([bucket, budget.category])
            )
        total = query.filter(
            model.user_id == self.user_id,
            model.date >= start,
            model.date <= end
        ).scalar()
        return float(total or 0)

    def _refresh_execution(self, budget: models.Budget, period: str) -> models.BudgetExecution:
        actual = self.actual_amount(budget, period)
        usage = actual / budget.amount * 100 if budget.amount > 0 else 0

        execution = self.db.query(models.BudgetExecution).filter(
            models.BudgetExecution.budget_id == budget.id,
            models.BudgetExecution.period == period
        ).first()
        if execution is None:
            execution = models.BudgetExecution(budget_id=budget.id, period=period)
            self.db.add(execution)
        execution.actual_amount = round(actual, 2)
        execution.usage_percentage = round(usage, 2)
        execution.status = execution_status(usage)
        execution.updated_at = models.utcnow()
        self.db.flush()
        return execution

    def update_execution(self, budget_id: int, period: Optional[str] = None) -> models.BudgetExecution:
        budget = self.get_budget(budget_id)
        try:
            execution = self._refresh_execution(budget, period or budget.period)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return execution

    def update_all_executions(self, period: str) -> List[Tuple[models.Budget, models.BudgetExecution]]:
        results = []
        try:
            for budget in self.list_budgets(period=period):
                results.append((budget, self._refresh_execution(budget, period)))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return results

    def overview(self, period: str) -> dict:
        periods.parse_period(period)
        results = self.update_all_executions(period)

        total_budget = sum(budget.amount for budget, _ in results)
        total_actual = sum(execution.actual_amount for _, execution in results)
        exceeded = sum(1 for _, execution in results if execution.status == "exceeded")
        warning = sum(1 for _, execution in results if execution.status == "warning")

        return {
            "period": period,
            "totalBudgets": len(results),
            "totalBudget": round(total_budget, 2),
            "totalActual": round(total_actual, 2),
            "overallUsage": round(total_actual / total_budget * 100, 2) if total_budget > 0 else 0,
            "exceededCount": exceeded,
            "warningCount": warning,
            "normalCount": len(results) - exceeded - warning,
            "budgets": [serialize_budget(budget, execution) for budget, execution in results],
        }
