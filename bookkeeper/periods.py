# bookkeeper/periods.py
# Calendar helpers for month-based reporting windows

import calendar
from datetime import date
from typing import Optional, Tuple

from .errors import ValidationError


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def month_key(day: date) -> str:
    return day.strftime("%Y-%m")


def parse_period(period: str) -> Tuple[date, date]:
    """First and last day of a ``YYYY-MM`` period."""
    try:
        year, month = (int(part) for part in period.split("-"))
        return month_bounds(year, month)
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid period '{period}', expected YYYY-MM")


def current_month_range(today: Optional[date] = None) -> Tuple[date, date]:
    """First of the current month through today."""
    today = today or date.today()
    return today.replace(day=1), today


def resolve_range(start_date: Optional[date], end_date: Optional[date]) -> Tuple[date, date]:
    default_start, default_end = current_month_range()
    return start_date or default_start, end_date or default_end


def trailing_months(count: int, today: Optional[date] = None):
    """Yield ``(first_day, last_day)`` for the last ``count`` months, oldest first."""
    today = today or date.today()
    first_of_month = today.replace(day=1)
    for offset in range(count - 1, -1, -1):
        start = add_months(first_of_month, -offset)
        yield month_bounds(start.year, start.month)


def named_range(name: str, today: Optional[date] = None) -> Tuple[date, date]:
    """Resolve this_month / last_month / this_quarter to a date range."""
    today = today or date.today()
    if name == "last_month":
        previous = add_months(today.replace(day=1), -1)
        return month_bounds(previous.year, previous.month)
    if name == "this_quarter":
        first_month = (today.month - 1) // 3 * 3 + 1
        return date(today.year, first_month, 1), today
    return current_month_range(today)
