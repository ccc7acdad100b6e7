"""Top-level facade tying analytics, forecasting, alerts and cache upkeep together."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional

from dairy_analytics.alerts.engine import AlertEngine
from dairy_analytics.analytics.aggregator import AggregationEngine
from dairy_analytics.analytics.forecaster import TrendForecaster
from dairy_analytics.caching.cached_analytics import CachedAnalytics
from dairy_analytics.caching.invalidation import InvalidationCoordinator
from dairy_analytics.caching.layer import CacheStats
from dairy_analytics.core.config import AnalyticsConfig
from dairy_analytics.domain.interfaces import IForecaster, ISampleWriter
from dairy_analytics.domain.models import DateRange, ProductionSample, SampleChange

WARM_TOP_PERFORMER_DAYS = 7
WARM_SUMMARY_DAYS = 30


class DairyAnalytics:
    """High-level API for dashboards and the sample write path."""

    def __init__(
        self,
        config: AnalyticsConfig,
        engine: AggregationEngine,
        alert_engine: AlertEngine,
        *,
        cached: Optional[CachedAnalytics] = None,
        forecaster: Optional[TrendForecaster] = None,
        invalidator: Optional[InvalidationCoordinator] = None,
        writer: Optional[ISampleWriter] = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if cached is not None and invalidator is None:
            raise ValueError("A cached analytics facade requires an invalidation coordinator")
        self._config = config
        self._engine = engine
        self._alert_engine = alert_engine
        self._cached = cached
        self._forecaster = forecaster or TrendForecaster(
            engine,
            today=engine.today,
            history_weeks=config.forecast_history_weeks,
            horizon=config.forecast_horizon_weeks,
        )
        self._invalidator = invalidator
        self._writer = writer
        self._logger = logger or logging.getLogger(__name__)

    @property
    def config(self) -> AnalyticsConfig:
        return self._config

    @property
    def aggregation(self) -> CachedAnalytics | AggregationEngine:
        return self._cached if self._cached is not None else self._engine

    @property
    def forecaster(self) -> IForecaster:
        return self._cached if self._cached is not None else self._forecaster

    @property
    def alert_engine(self) -> AlertEngine:
        return self._alert_engine

    @property
    def cache_stats(self) -> Optional[CacheStats]:
        return self._cached.cache.stats if self._cached is not None else None

    def invalidate(self, farm_id: int, cow_id: int, day: date) -> Optional[SampleChange]:
        if self._invalidator is None:
            return None
        return self._invalidator.invalidate(farm_id, cow_id, day)

    def record_sample(self, sample: ProductionSample) -> ProductionSample:
        self._require_writer().save_sample(sample)
        self.invalidate(sample.farm_id, sample.cow_id, sample.production_date)
        self._logger.debug(
            "sample_recorded",
            extra={
                "farm_id": sample.farm_id,
                "cow_id": sample.cow_id,
                "day": sample.production_date.isoformat(),
            },
        )
        return sample

    def delete_sample(self, cow_id: int, day: date) -> Optional[ProductionSample]:
        removed = self._require_writer().delete_sample(cow_id, day)
        if removed is not None:
            self.invalidate(removed.farm_id, removed.cow_id, removed.production_date)
        return removed

    def warm_cache(self, farm_id: int) -> Dict[str, Any]:
        """Precompute the dashboard queries for ``farm_id``."""

        analytics = self.aggregation
        today = self._engine.today()
        try:
            warmed: Dict[str, Any] = {
                "top_performers": analytics.top_performers(
                    farm_id, DateRange.trailing(WARM_TOP_PERFORMER_DAYS, today)
                ),
                "recent_high_producers": analytics.recent_high_producers(farm_id),
                "production_summary": analytics.production_summary(
                    farm_id, DateRange.trailing(WARM_SUMMARY_DAYS, today)
                ),
                "weekly_trend_analysis": analytics.weekly_trend_analysis(farm_id=farm_id),
                "forecast": self.forecaster.predict(farm_id),
            }
        except Exception:
            self._logger.exception("cache_warmup_failed", extra={"farm_id": farm_id})
            raise
        self._logger.info(
            "cache_warmed",
            extra={"farm_id": farm_id, "queries": len(warmed)},
        )
        return warmed

    def _require_writer(self) -> ISampleWriter:
        if self._writer is None:
            raise RuntimeError("Sample writer not configured")
        return self._writer
