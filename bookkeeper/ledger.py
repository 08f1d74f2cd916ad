# bookkeeper/ledger.py
# Income/expense CRUD shared by both ledger routers

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, periods
from .errors import NotFoundError
from .query_builder import apply_filters, apply_ordering, build_stats_query, paginate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ledger:
    """Describes one ledger table and how its rows are identified."""
    name: str
    model: type
    prefix: str
    display_field: str
    party_field: str
    settled_status: str


INCOME = Ledger("income", models.Income, "INC", "income_id", "customer", "received")
EXPENSE = Ledger("expense", models.Expense, "EXP", "expense_id", "vendor", "paid")


def compute_tax(amount: float, tax_rate: float) -> Tuple[float, float]:
    """Return ``(tax_amount, total_amount)`` rounded to cents."""
    tax_amount = round(amount * tax_rate / 100, 2)
    return tax_amount, round(amount + tax_amount, 2)


def serialize(record) -> dict:
    """Row -> response dict, dates as ISO strings."""
    data = {}
    for column in record.__table__.columns:
        value = getattr(record, column.name)
        if isinstance(value, date):
            value = value.isoformat()
        data[column.name] = value
    return data


def next_display_id(db: Session, ledger: Ledger, user_id: str) -> str:
    """Bump the user's counter for this ledger inside the current transaction."""
    counter = models.LedgerCounter
    bumped = models.execute(
        db,
        update(counter)
        .where(counter.user_id == user_id, counter.ledger == ledger.name)
        .values(last_value=counter.last_value + 1),
    )
    if not bumped:
        models.execute(db, insert(counter).values(user_id=user_id, ledger=ledger.name, last_value=1))
    value = db.execute(
        select(counter.last_value).where(counter.user_id == user_id, counter.ledger == ledger.name)
    ).scalar_one()
    return f"{ledger.prefix}{value:03d}"

# ===== CRUD =====

def list_records(db: Session, ledger: Ledger, user_id: str, filters: dict,
                 page: int, limit: int):
    query = db.query(ledger.model).filter(ledger.model.user_id == user_id)
    query = apply_ordering(apply_filters(query, ledger.model, filters), ledger.model)
    rows, pagination = paginate(query, page, limit)
    return [serialize(row) for row in rows], pagination


def get_record(db: Session, ledger: Ledger, user_id: str, record_id: int):
    record = db.query(ledger.model).filter(
        ledger.model.id == record_id,
        ledger.model.user_id == user_id
    ).first()
    if record is None:
        raise NotFoundError(f"{ledger.name.capitalize()} record not found")
    return record


def _apply_fields(record, fields: dict):
    for key, value in fields.items():
        setattr(record, key, value)
    record.tax_amount, record.total_amount = compute_tax(record.amount, record.tax_rate)


def create_record(db: Session, ledger: Ledger, user_id: str, fields: dict, commit: bool = True):
    """Insert a row with its display id; the counter bump shares the transaction."""
    try:
        record = ledger.model(user_id=user_id)
        _apply_fields(record, fields)
        setattr(record, ledger.display_field, next_display_id(db, ledger, user_id))
        db.add(record)
        if commit:
            db.commit()
            db.refresh(record)
        else:
            db.flush()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.debug("Created %s %s for %s", ledger.name, getattr(record, ledger.display_field), user_id)
    return record


def update_record(db: Session, ledger: Ledger, user_id: str, record_id: int, fields: dict):
    record = get_record(db, ledger, user_id, record_id)
    _apply_fields(record, fields)
    record.updated_at = models.utcnow()
    db.commit()
    db.refresh(record)
    return record


def delete_record(db: Session, ledger: Ledger, user_id: str, record_id: int):
    record = get_record(db, ledger, user_id, record_id)
    db.delete(record)
    db.commit()

# ===== STATS =====

def stats_by_category(db: Session, user_id: str, filters: Optional[dict] = None) -> list:
    model = models.Expense
    statement = build_stats_query(model, user_id, filters, group_by=model.category)
    return models.fetch_all(db, statement)


def month_total(db: Session, ledger: Ledger, user_id: str, start: date, end: date,
                column: str = "total_amount") -> float:
    model = ledger.model
    total = db.query(func.coalesce(func.sum(getattr(model, column)), 0)).filter(
        model.user_id == user_id,
        model.date >= start,
        model.date <= end
    ).scalar()
    return float(total or 0)


def expense_trend(db: Session, user_id: str, today: Optional[date] = None) -> dict:
    """Compare this month's expense total_amount with last month's."""
    today = today or date.today()
    current_start, current_end = periods.month_bounds(today.year, today.month)
    previous = periods.add_months(current_start, -1)
    previous_start, previous_end = periods.month_bounds(previous.year, previous.month)

    current_total = month_total(db, EXPENSE, user_id, current_start, current_end)
    previous_total = month_total(db, EXPENSE, user_id, previous_start, previous_end)
    difference = current_total - previous_total
    change = round(difference / previous_total * 100, 2) if previous_total else 0

    if difference > 0:
        trend = "increase"
    elif difference < 0:
        trend = "decrease"
    else:
        trend = "stable"

    return {
        "currentMonth": periods.month_key(current_start),
        "previousMonth": periods.month_key(previous_start),
        "currentTotal": round(current_total, 2),
        "previousTotal": round(previous_total, 2),
        "difference": round(difference, 2),
        "percentageChange": change,
        "trend": trend,
    }
