"""Deterministic cache keys derived from an operation and its parameters."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Tuple

from dairy_analytics.domain.models import DateRange
from dairy_analytics.utils.dates import month_bounds

ALL_FARMS = "all"

RANKING_OPERATIONS = ("top_performers", "recent_high_producers")
FARM_OPERATIONS = (
    "top_performers",
    "recent_high_producers",
    "production_summary",
    "daily_farm_total",
    "monthly_farm_total",
    "weekly_totals",
    "weekly_trend_analysis",
    "monthly_trend_analysis",
    "forecast",
)
COW_OPERATIONS = ("cow_performance_metrics",)
# Swept on the write path so the writer reads its own weekly and monthly data.
WEEK_MONTH_OPERATIONS = (
    "weekly_totals",
    "weekly_trend_analysis",
    "monthly_trend_analysis",
    "forecast",
)


@dataclass(frozen=True)
class CacheKey:
    """A rendered key plus the scope and date window its value depends on."""

    key: str
    operation: str
    scope: str
    window: Optional[DateRange] = None
    index_key: Optional[str] = None

    def __str__(self) -> str:
        return self.key

    @property
    def index_member(self) -> Optional[str]:
        if self.window is None:
            return None
        return format_index_member(self.window, self.key)


def format_index_member(window: DateRange, key: str) -> str:
    return f"{window.start.isoformat()}|{window.end.isoformat()}|{key}"


def parse_index_member(member: str) -> Optional[Tuple[DateRange, str]]:
    """Split an index member into its window and key; None when malformed."""

    try:
        start, end, key = member.split("|", 2)
        return DateRange(start=date.fromisoformat(start), end=date.fromisoformat(end)), key
    except ValueError:
        return None


class CacheKeyBuilder:
    """Builds ``<namespace>:<operation>:name=value|...`` keys.

    Parameters are sorted by name so keyword order never matters, ``None``
    renders as ``all`` and numerically equal values render identically.
    """

    def __init__(self, namespace: str = "dairy") -> None:
        if not namespace:
            raise ValueError("namespace must not be empty")
        self.namespace = namespace

    def build(
        self,
        operation: str,
        *,
        farm_id: Optional[int] = None,
        cow_id: Optional[int] = None,
        window: Optional[DateRange] = None,
        **params: Any,
    ) -> CacheKey:
        values = dict(params)
        if cow_id is not None:
            values["cow_id"] = cow_id
        else:
            values["farm_id"] = farm_id
        rendered = "|".join(
            f"{name}={self.normalize(values[name])}" for name in sorted(values)
        )
        scope = self.scope(farm_id=farm_id, cow_id=cow_id)
        return CacheKey(
            key=f"{self.namespace}:{operation}:{rendered}",
            operation=operation,
            scope=scope,
            window=window,
            index_key=self.index_key(operation, scope) if window is not None else None,
        )

    def daily_total(self, farm_id: Optional[int], day: date) -> CacheKey:
        return self.build(
            "daily_farm_total",
            farm_id=farm_id,
            window=DateRange(start=day, end=day),
            day=day,
        )

    def monthly_total(self, farm_id: Optional[int], year: int, month: int) -> CacheKey:
        start, end = month_bounds(date(year, month, 1))
        return self.build(
            "monthly_farm_total",
            farm_id=farm_id,
            window=DateRange(start=start, end=end),
            year=year,
            month=month,
        )

    def production_summary(self, farm_id: Optional[int], window: DateRange) -> CacheKey:
        return self.build(
            "production_summary", farm_id=farm_id, window=window, date_range=window
        )

    @staticmethod
    def scope(*, farm_id: Optional[int] = None, cow_id: Optional[int] = None) -> str:
        if cow_id is not None:
            return f"cow={cow_id}"
        return f"farm={ALL_FARMS if farm_id is None else farm_id}"

    def index_key(self, operation: str, scope: str) -> str:
        return f"{self.namespace}:index:{operation}:{scope}"

    @classmethod
    def normalize(cls, value: Any) -> str:
        if value is None:
            return ALL_FARMS
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, Enum):
            return cls.normalize(value.value)
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            return str(int(value)) if value.is_integer() else repr(value)
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, DateRange):
            return f"{value.start.isoformat()}..{value.end.isoformat()}"
        return str(value)
