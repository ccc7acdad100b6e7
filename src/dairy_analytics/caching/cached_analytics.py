"""Cached read facade over the aggregation engine and forecaster."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Callable, List, Optional, TypeVar

from pydantic import TypeAdapter

from dairy_analytics.analytics.aggregator import (
    CURRENT_WEEK_BASELINE_WEEKS,
    AggregationEngine,
)
from dairy_analytics.analytics.forecaster import TrendForecaster
from dairy_analytics.core.config import AnalyticsConfig
from dairy_analytics.domain.exceptions import DataUnavailableError, ValidationError
from dairy_analytics.domain.interfaces import IForecaster, IWeeklyTotalsSource
from dairy_analytics.domain.models import (
    CowPerformance,
    DateRange,
    Forecast,
    HighProducerEntry,
    MonthlyBucket,
    PerformerEntry,
    ProductionSummary,
    WeeklyBucket,
)
from dairy_analytics.utils.dates import month_bounds, shift_months, week_start
from dairy_analytics.utils.validators import (
    validate_date_range,
    validate_positive,
    validate_threshold,
)

from .keys import CacheKey, CacheKeyBuilder
from .layer import CacheLayer

T = TypeVar("T")

_PERFORMERS = TypeAdapter(List[PerformerEntry])
_HIGH_PRODUCERS = TypeAdapter(List[HighProducerEntry])
_SUMMARY = TypeAdapter(ProductionSummary)
_TOTAL = TypeAdapter(float)
_WEEKLY = TypeAdapter(List[WeeklyBucket])
_MONTHLY = TypeAdapter(List[MonthlyBucket])
_FORECAST = TypeAdapter(Forecast)
_COW = TypeAdapter(CowPerformance)


class CachedAnalytics(IWeeklyTotalsSource, IForecaster):
    """Same operations as ``AggregationEngine``, memoized through ``CacheLayer``.

    Parameters are validated before the cache is touched. Values computed
    while the store is unavailable are returned as zero defaults and never
    cached.
    """

    def __init__(
        self,
        engine: AggregationEngine,
        cache: CacheLayer,
        *,
        keys: CacheKeyBuilder | None = None,
        config: AnalyticsConfig | None = None,
        forecaster: TrendForecaster | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or AnalyticsConfig()
        self._engine = engine.with_strict_errors()
        self._cache = cache
        self._keys = keys or CacheKeyBuilder(self._config.cache_namespace)
        self._forecaster = forecaster or TrendForecaster(
            self._engine,
            today=self._engine.today,
            history_weeks=self._config.forecast_history_weeks,
            horizon=self._config.forecast_horizon_weeks,
        )
        self._logger = logger or logging.getLogger(__name__)

    @property
    def keys(self) -> CacheKeyBuilder:
        return self._keys

    @property
    def cache(self) -> CacheLayer:
        return self._cache

    def top_performers(
        self, farm_id: Optional[int], date_range: DateRange, limit: int = 5
    ) -> List[PerformerEntry]:
        validate_positive("limit", limit)
        window = validate_date_range(date_range)
        key = self._keys.build(
            "top_performers", farm_id=farm_id, window=window, date_range=window, limit=limit
        )
        return self._fetch(
            key,
            self._config.ttl_ranking_seconds,
            lambda: self._engine.top_performers(farm_id, window, limit),
            _PERFORMERS,
            list,
        )

    def recent_high_producers(
        self,
        farm_id: Optional[int],
        threshold: float = 20,
        limit: int = 5,
        window_days: int = 3,
    ) -> List[HighProducerEntry]:
        validate_threshold(threshold)
        validate_positive("limit", limit)
        validate_positive("window_days", window_days)
        today = self._engine.today()
        window = DateRange.trailing(window_days, today)
        key = self._keys.build(
            "recent_high_producers",
            farm_id=farm_id,
            window=window,
            as_of=today,
            threshold=threshold,
            limit=limit,
            window_days=window_days,
        )
        return self._fetch(
            key,
            self._config.ttl_ranking_seconds,
            lambda: self._engine.recent_high_producers(
                farm_id, threshold, limit, window_days
            ),
            _HIGH_PRODUCERS,
            list,
        )

    def production_summary(
        self, farm_id: Optional[int], date_range: DateRange
    ) -> ProductionSummary:
        window = validate_date_range(date_range)
        return self._fetch(
            self._keys.production_summary(farm_id, window),
            self._config.ttl_summary_seconds,
            lambda: self._engine.production_summary(farm_id, window),
            _SUMMARY,
            ProductionSummary,
        )

    def daily_farm_total(self, farm_id: int, day: date) -> float:
        return self._fetch(
            self._keys.daily_total(farm_id, day),
            self._config.ttl_daily_seconds,
            lambda: self._engine.daily_farm_total(farm_id, day),
            _TOTAL,
            float,
        )

    def monthly_farm_total(self, farm_id: int, year: int, month: int) -> float:
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", context={"month": month})
        return self._fetch(
            self._keys.monthly_total(farm_id, year, month),
            self._config.ttl_monthly_seconds,
            lambda: self._engine.monthly_farm_total(farm_id, year, month),
            _TOTAL,
            float,
        )

    def weekly_totals(
        self, weeks: int = 12, farm_id: Optional[int] = None
    ) -> List[WeeklyBucket]:
        validate_positive("weeks", weeks)
        current = week_start(self._engine.today())
        key = self._keys.build(
            "weekly_totals",
            farm_id=farm_id,
            window=self._weeks_window(current, weeks),
            as_of=current,
            weeks=weeks,
        )
        return self._fetch(
            key,
            self._config.ttl_weekly_seconds,
            lambda: self._engine.weekly_totals(weeks, farm_id),
            _WEEKLY,
            list,
        )

    def weekly_trend_analysis(
        self, weeks_back: int = 8, farm_id: Optional[int] = None
    ) -> List[WeeklyBucket]:
        validate_positive("weeks_back", weeks_back)
        current = week_start(self._engine.today())
        key = self._keys.build(
            "weekly_trend_analysis",
            farm_id=farm_id,
            window=self._weeks_window(current, weeks_back + CURRENT_WEEK_BASELINE_WEEKS),
            as_of=current,
            weeks_back=weeks_back,
        )
        return self._fetch(
            key,
            self._config.ttl_weekly_seconds,
            lambda: self._engine.weekly_trend_analysis(weeks_back, farm_id),
            _WEEKLY,
            list,
        )

    def monthly_trend_analysis(
        self, months_back: int = 6, farm_id: Optional[int] = None
    ) -> List[MonthlyBucket]:
        validate_positive("months_back", months_back)
        today = self._engine.today()
        first = shift_months(today, -(months_back - 1))
        _, last = month_bounds(today)
        key = self._keys.build(
            "monthly_trend_analysis",
            farm_id=farm_id,
            window=DateRange(start=first, end=last),
            as_of=first,
            months_back=months_back,
        )
        return self._fetch(
            key,
            self._config.ttl_monthly_seconds,
            lambda: self._engine.monthly_trend_analysis(months_back, farm_id),
            _MONTHLY,
            list,
        )

    def forecast(self, farm_id: Optional[int] = None) -> Forecast:
        current = week_start(self._engine.today())
        history = self._config.forecast_history_weeks
        key = self._keys.build(
            "forecast",
            farm_id=farm_id,
            window=self._weeks_window(current, history),
            as_of=current,
            history_weeks=history,
            horizon=self._config.forecast_horizon_weeks,
        )
        return self._fetch(
            key,
            self._config.ttl_forecast_seconds,
            lambda: self._forecaster.predict(farm_id),
            _FORECAST,
            Forecast,
        )

    def predict(self, farm_id: Optional[int] = None) -> Forecast:
        return self.forecast(farm_id)

    def cow_performance_metrics(self, cow_id: int, days: int = 30) -> CowPerformance:
        validate_positive("days", days)
        today = self._engine.today()
        key = self._keys.build(
            "cow_performance_metrics",
            cow_id=cow_id,
            window=DateRange.trailing(days, today),
            as_of=today,
            days=days,
        )
        return self._fetch(
            key,
            self._config.ttl_cow_metrics_seconds,
            lambda: self._engine.cow_performance_metrics(cow_id, days),
            _COW,
            lambda: CowPerformance(cow_id=cow_id),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _weeks_window(current_week: date, weeks: int) -> DateRange:
        return DateRange(
            start=current_week - timedelta(weeks=weeks - 1),
            end=current_week + timedelta(days=6),
        )

    def _fetch(
        self,
        key: CacheKey,
        ttl: int,
        compute: Callable[[], T],
        adapter: TypeAdapter[T],
        default: Callable[[], T],
    ) -> T:
        try:
            return self._cache.fetch(key, ttl, compute, adapter)
        except DataUnavailableError as exc:
            self._logger.warning(
                "analytics_unavailable",
                extra={"key": key.key, "operation": key.operation, "error": str(exc)},
            )
            return default()
