"""Dependency injection container for building fully-wired analytics instances."""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from dairy_analytics.alerts.engine import AlertEngine
from dairy_analytics.alerts.rules.base import IAlertRule
from dairy_analytics.analytics.aggregator import AggregationEngine
from dairy_analytics.analytics.sqlite_repository import SQLiteHerdStore
from dairy_analytics.caching.cached_analytics import CachedAnalytics
from dairy_analytics.caching.celery_tasks import (
    CeleryDispatcher,
    configure_celery_broker,
)
from dairy_analytics.caching.dispatch import InlineDispatcher, ThreadPoolDispatcher
from dairy_analytics.caching.invalidation import InvalidationCoordinator
from dairy_analytics.caching.keys import CacheKeyBuilder
from dairy_analytics.caching.layer import CacheLayer
from dairy_analytics.caching.stores import InMemoryCacheStore, RedisCacheStore
from dairy_analytics.core.config import AnalyticsConfig
from dairy_analytics.core.service import DairyAnalytics
from dairy_analytics.domain.interfaces import (
    ICacheStore,
    IHerdStore,
    IProductionStore,
    ISampleWriter,
    ISweepDispatcher,
)


class DIContainer:
    """Factory helpers that assemble DairyAnalytics with default wiring."""

    @staticmethod
    def create_analytics(
        *,
        config: Optional[AnalyticsConfig] = None,
        db_path: str | Path = "dairy.db",
        cache_store: Optional[ICacheStore] = None,
        today: Optional[Callable[[], date]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> DairyAnalytics:
        cfg = config or AnalyticsConfig.from_env()
        repository = SQLiteHerdStore(db_path, timeout=cfg.store_timeout_seconds)
        return DIContainer.create_custom_analytics(
            config=cfg,
            store=repository,
            herd_store=repository,
            writer=repository,
            cache_store=cache_store,
            today=today,
            clock=clock,
        )

    @staticmethod
    def create_custom_analytics(
        *,
        config: AnalyticsConfig,
        store: IProductionStore,
        herd_store: IHerdStore,
        writer: Optional[ISampleWriter] = None,
        cache_store: Optional[ICacheStore] = None,
        sweep_dispatcher: ISweepDispatcher | str | None = None,
        rules: Optional[Sequence[IAlertRule]] = None,
        today: Optional[Callable[[], date]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> DairyAnalytics:
        engine = AggregationEngine(
            store,
            herd_store,
            today=today or DIContainer._today_from_clock(clock),
            timeout=config.store_timeout_seconds,
        )
        alert_engine = AlertEngine(
            store,
            herd_store,
            config=config,
            rules=rules,
            clock=clock,
            timeout=config.rule_timeout_seconds,
        )

        cached: Optional[CachedAnalytics] = None
        invalidator: Optional[InvalidationCoordinator] = None
        if DIContainer._cache_enabled(config):
            resolved_store = cache_store or DIContainer._build_cache_store(config)
            cache = CacheLayer(resolved_store, single_flight=config.single_flight)
            keys = CacheKeyBuilder(config.cache_namespace)
            cached = CachedAnalytics(engine, cache, keys=keys, config=config)
            invalidator = DIContainer._build_coordinator(
                config, cache, keys, sweep_dispatcher, engine.today
            )

        return DairyAnalytics(
            config,
            engine,
            alert_engine,
            cached=cached,
            invalidator=invalidator,
            writer=writer,
        )

    @staticmethod
    def create_invalidation_coordinator(
        config: AnalyticsConfig,
        *,
        cache_store: Optional[ICacheStore] = None,
        sweep_dispatcher: ISweepDispatcher | str | None = None,
        today: Optional[Callable[[], date]] = None,
    ) -> InvalidationCoordinator:
        resolved_store = cache_store or DIContainer._build_cache_store(config)
        cache = CacheLayer(resolved_store, single_flight=config.single_flight)
        keys = CacheKeyBuilder(config.cache_namespace)
        return DIContainer._build_coordinator(
            config, cache, keys, sweep_dispatcher, today or date.today
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _cache_enabled(config: AnalyticsConfig) -> bool:
        return config.enable_cache and config.cache_backend != "none"

    @staticmethod
    def _build_cache_store(config: AnalyticsConfig) -> ICacheStore:
        if config.cache_backend == "redis":
            return RedisCacheStore(url=config.redis_url)
        if config.cache_backend == "memory":
            return InMemoryCacheStore()
        raise ValueError(f"Cache backend '{config.cache_backend}' has no store")

    @staticmethod
    def _build_coordinator(
        config: AnalyticsConfig,
        cache: CacheLayer,
        keys: CacheKeyBuilder,
        dispatcher: ISweepDispatcher | str | None,
        today: Callable[[], date],
    ) -> InvalidationCoordinator:
        resolved = (
            dispatcher
            if dispatcher is not None and not isinstance(dispatcher, str)
            else DIContainer._select_dispatcher(
                dispatcher or config.sweep_dispatcher, config
            )
        )
        return InvalidationCoordinator(
            cache,
            keys,
            dispatcher=resolved,
            ranking_window_days=config.sweep_window_days,
            today=today,
        )

    @staticmethod
    def _select_dispatcher(
        name: str, config: Optional[AnalyticsConfig] = None
    ) -> ISweepDispatcher:
        mapping: Dict[str, Callable[[], ISweepDispatcher]] = {
            "inline": InlineDispatcher,
            "thread": ThreadPoolDispatcher,
            "celery": CeleryDispatcher,
        }
        if name.lower() == "celery" and config is not None:
            configure_celery_broker(config.celery_broker_url)
        try:
            return mapping[name.lower()]()
        except KeyError as exc:
            raise ValueError(f"Unknown sweep dispatcher '{name}'") from exc

    @staticmethod
    def _today_from_clock(
        clock: Optional[Callable[[], datetime]],
    ) -> Optional[Callable[[], date]]:
        if clock is None:
            return None
        return lambda: clock().date()
