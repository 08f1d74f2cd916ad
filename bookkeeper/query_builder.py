# bookkeeper/query_builder.py
# Optional filter clauses, pagination and conditional-sum stats for ledger tables

import math
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import case, func, select, desc
from sqlalchemy.orm import Query, Session

from . import models

FILTER_KEYS = ("status", "category", "customer", "vendor", "startDate", "endDate")


def sanitize_params(params: dict, allowed_keys: Iterable[str] = FILTER_KEYS) -> dict:
    """Keep only allowed keys that carry a non-empty value."""
    return {
        key: params[key]
        for key in allowed_keys
        if params.get(key) not in (None, "")
    }


def filter_clauses(model, filters: dict) -> list:
    """Translate a filter dict into SQLAlchemy clauses for ``model``.

    Keys the model has no column for are ignored, as are empty values.
    """
    clauses = []
    for key, value in sanitize_params(filters).items():
        if key in ("status", "category") and hasattr(model, key):
            clauses.append(getattr(model, key) == value)
        elif key in ("customer", "vendor") and hasattr(model, key):
            clauses.append(getattr(model, key).contains(value, autoescape=True))
        elif key == "startDate":
            clauses.append(model.date >= value)
        elif key == "endDate":
            clauses.append(model.date <= value)
    return clauses


def apply_filters(query: Query, model, filters: dict) -> Query:
    clauses = filter_clauses(model, filters)
    if clauses:
        query = query.filter(*clauses)
    return query


def apply_ordering(query: Query, model) -> Query:
    """Newest first; id breaks ties so pages never overlap."""
    return query.order_by(desc(model.date), desc(model.created_at), desc(model.id))


def build_pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def paginate(query: Query, page: int, limit: int):
    """Return ``(rows, pagination)`` for one page of an ordered query."""
    total = query.count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, build_pagination(page, limit, total)

# ===== STATS =====

def settled_status(model) -> str:
    return "received" if model is models.Income else "paid"


def stats_columns(model) -> list:
    """Aggregate columns: counts, sums and status-partitioned sums of total_amount.

    amount_sum is the sum of the amount column, not of the total_amount column.
    """
    settled = settled_status(model)

    def status_sum(status: str):
        return func.coalesce(
            func.sum(case((model.status == status, model.total_amount), else_=0)), 0
        )

    return [
        func.count(model.id).label("total_count"),
        func.coalesce(func.sum(model.amount), 0).label("amount_sum"),
        func.coalesce(func.sum(model.tax_amount), 0).label("total_tax"),
        func.coalesce(func.sum(model.total_amount), 0).label("total_with_tax"),
        status_sum(settled).label(f"{settled}_amount"),
        status_sum("pending").label("pending_amount"),
        status_sum("overdue").label("overdue_amount"),
    ]


def build_stats_query(model, user_id: str, filters: Optional[dict] = None, group_by=None):
    """Select statement with conditional-sum aggregates for one user's ledger."""
    columns = stats_columns(model)
    if group_by is not None:
        columns = [group_by] + columns
    statement = select(*columns).where(model.user_id == user_id)
    clauses = filter_clauses(model, filters or {})
    if clauses:
        statement = statement.where(*clauses)
    if group_by is not None:
        statement = statement.group_by(group_by).order_by(desc("amount_sum"))
    return statement


def ledger_stats(db: Session, model, user_id: str,
                 start_date: Optional[date] = None, end_date: Optional[date] = None) -> dict:
    """One row of aggregates, zeros when the ledger is empty."""
    statement = build_stats_query(model, user_id, {"startDate": start_date, "endDate": end_date})
    row = models.fetch_one(db, statement)
    return {key: (round(value, 2) if isinstance(value, float) else value) for key, value in row.items()}
