from datetime import date, timedelta
from pathlib import Path

import pytest

from dairy_analytics.analytics.aggregator import AggregationEngine
from dairy_analytics.analytics.sqlite_repository import SQLiteHerdStore
from dairy_analytics.caching.cached_analytics import CachedAnalytics
from dairy_analytics.caching.invalidation import InvalidationCoordinator
from dairy_analytics.caching.layer import CacheLayer
from dairy_analytics.caching.stores import InMemoryCacheStore
from dairy_analytics.domain.exceptions import DataUnavailableError, ValidationError
from dairy_analytics.domain.models import Cow, DateRange, ProductionSample

TODAY = date(2024, 3, 13)


class _SwitchableStore:
    """Delegates to the SQLite repository until switched off."""

    def __init__(self, repo: SQLiteHerdStore) -> None:
        self.repo = repo
        self.down = False
        self.calls = 0

    def __getattr__(self, name):
        target = getattr(self.repo, name)

        def call(*args, **kwargs):
            self.calls += 1
            if self.down:
                raise DataUnavailableError(context={"call": name})
            return target(*args, **kwargs)

        return call


class _ExplodingCache(CacheLayer):
    def fetch(self, *args, **kwargs):
        raise AssertionError("cache must not be touched")


@pytest.fixture
def repo(tmp_path: Path) -> SQLiteHerdStore:
    store = SQLiteHerdStore(tmp_path / "dairy.db")
    store.save_cow(Cow(id=1, farm_id=1, name="Bella", tag_number="T-1"))
    store.save_cow(Cow(id=2, farm_id=1, name="Daisy", tag_number="T-2"))
    return store


@pytest.fixture
def store(repo) -> _SwitchableStore:
    return _SwitchableStore(repo)


@pytest.fixture
def cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def cached(store, cache_store) -> CachedAnalytics:
    engine = AggregationEngine(store, store, today=lambda: TODAY)
    return CachedAnalytics(engine, CacheLayer(cache_store))


def _add(repo: SQLiteHerdStore, cow_id: int, day: date, total: float) -> None:
    repo.save_sample(
        ProductionSample(cow_id=cow_id, farm_id=1, production_date=day, morning=total)
    )


def test_repeated_reads_are_served_from_cache(repo, store, cached):
    _add(repo, 1, TODAY, 20)

    first = cached.daily_farm_total(1, TODAY)
    calls = store.calls
    second = cached.daily_farm_total(1, TODAY)

    assert first == second == pytest.approx(20.0)
    assert store.calls == calls
    assert cached.cache.stats.hits == 1


def test_cached_results_round_trip_as_models(repo, cached):
    _add(repo, 1, TODAY - timedelta(days=1), 25)
    _add(repo, 2, TODAY - timedelta(days=1), 18)
    window = DateRange.trailing(7, TODAY)

    first = cached.top_performers(1, window)
    second = cached.top_performers(1, window)
    summary = cached.production_summary(1, window)

    assert first == second
    assert [p.cow_id for p in second] == [1, 2]
    assert summary == cached.production_summary(1, window)
    assert summary.total_production == pytest.approx(43.0)


def test_invalid_parameters_rejected_before_cache_access(store):
    engine = AggregationEngine(store, store, today=lambda: TODAY)
    cached = CachedAnalytics(engine, _ExplodingCache(InMemoryCacheStore()))

    with pytest.raises(ValidationError):
        cached.top_performers(1, DateRange.trailing(7, TODAY), limit=0)
    with pytest.raises(ValidationError):
        cached.recent_high_producers(1, threshold=-1)
    with pytest.raises(ValidationError):
        cached.weekly_totals(weeks=0)
    with pytest.raises(ValidationError):
        cached.monthly_farm_total(1, 2024, 13)
    with pytest.raises(ValidationError):
        cached.cow_performance_metrics(1, days=0)


def test_degraded_results_are_not_cached(repo, store, cached):
    _add(repo, 1, TODAY, 20)
    store.down = True

    degraded = cached.daily_farm_total(1, TODAY)
    store.down = False
    recovered = cached.daily_farm_total(1, TODAY)

    assert degraded == 0.0
    assert recovered == pytest.approx(20.0)


def test_degraded_cow_metrics_default(store, cached):
    store.down = True

    metrics = cached.cow_performance_metrics(2)

    assert metrics.cow_id == 2
    assert metrics.total_production == 0.0


def test_invalidation_makes_next_read_fresh(repo, cached, cache_store):
    coordinator = InvalidationCoordinator(cached.cache, cached.keys, today=lambda: TODAY)
    _add(repo, 1, TODAY, 20)
    window = DateRange(start=TODAY - timedelta(days=6), end=TODAY)
    assert cached.daily_farm_total(1, TODAY) == pytest.approx(20.0)
    assert cached.production_summary(1, window).total_production == pytest.approx(20.0)
    assert cached.weekly_totals(4, farm_id=1)[-1].total_production == pytest.approx(20.0)

    _add(repo, 2, TODAY, 15)
    coordinator.invalidate(1, 2, TODAY)

    assert cached.daily_farm_total(1, TODAY) == pytest.approx(35.0)
    assert cached.production_summary(1, window).total_production == pytest.approx(35.0)
    assert cached.weekly_totals(4, farm_id=1)[-1].total_production == pytest.approx(35.0)


def test_forecast_is_cached_and_predict_aliases_it(repo, store, cached):
    for weeks_ago, total in enumerate([40, 30, 20, 10]):
        _add(repo, 1, TODAY - timedelta(weeks=weeks_ago + 1), total)

    forecast = cached.forecast(1)
    calls = store.calls
    again = cached.predict(1)

    assert forecast == again
    assert store.calls == calls
