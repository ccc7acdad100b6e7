"""Calendar helpers for week and month bucketing."""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Tuple


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""

    return day - timedelta(days=day.weekday())


def week_bounds(day: date) -> Tuple[date, date]:
    start = week_start(day)
    return start, start + timedelta(days=6)


def month_bounds(day: date) -> Tuple[date, date]:
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def shift_months(day: date, months: int) -> date:
    """First day of the month ``months`` away from ``day`` (negative = earlier)."""

    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)
