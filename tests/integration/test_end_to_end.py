from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

from dairy_analytics import DIContainer
from dairy_analytics.analytics.sqlite_repository import SQLiteHerdStore
from dairy_analytics.core.config import AnalyticsConfig
from dairy_analytics.domain.models import (
    AlertType,
    Cow,
    DateRange,
    HealthRecord,
    ProductionSample,
)

pytestmark = pytest.mark.integration

NOW = datetime(2024, 3, 13, 9, 0)
TODAY = NOW.date()


def _sample(cow_id: int, day: date, total: float) -> ProductionSample:
    return ProductionSample(
        cow_id=cow_id, farm_id=1, production_date=day, morning=total / 2, evening=total / 2
    )


@pytest.fixture
def repo(tmp_path: Path) -> SQLiteHerdStore:
    store = SQLiteHerdStore(tmp_path / "farm.db")
    for cow_id, name in ((1, "Bella"), (2, "Daisy"), (3, "Rosa")):
        store.save_cow(Cow(id=cow_id, farm_id=1, name=name, tag_number=f"T-{cow_id}"))
        store.save_health_record(
            HealthRecord(
                id=cow_id,
                cow_id=cow_id,
                health_status="healthy",
                recorded_at=NOW - timedelta(days=10),
            )
        )
        for offset in (3, 2, 1):
            store.save_sample(_sample(cow_id, TODAY - timedelta(days=offset), 20))
    store.save_sample(_sample(1, TODAY, 10))
    store.save_sample(_sample(2, TODAY, 20))
    store.save_sample(_sample(3, TODAY, 21))
    return store


def _analytics(repo: SQLiteHerdStore, dispatcher: str = "inline"):
    return DIContainer.create_custom_analytics(
        config=AnalyticsConfig(sweep_dispatcher=dispatcher),
        store=repo,
        herd_store=repo,
        writer=repo,
        clock=lambda: NOW,
    )


def test_low_production_alert_for_the_dropping_cow(repo):
    analytics = _analytics(repo)

    alerts = analytics.alert_engine.evaluate(1)

    low = [a for a in alerts if a.type is AlertType.LOW_PRODUCTION]
    assert len(low) == 1
    assert low[0].subject_id == 1
    assert low[0].data["current_production"] == pytest.approx(10.0)
    assert low[0].data["average_production"] == pytest.approx(20.0)
    assert not [a for a in alerts if a.type is AlertType.MISSED_MILKING]
    assert [a.id for a in analytics.alert_engine.evaluate(1)] == [a.id for a in alerts]


def test_recorded_sample_is_visible_on_next_read(repo):
    analytics = _analytics(repo)
    cached = analytics.aggregation
    week = DateRange.trailing(7, TODAY)

    assert cached.daily_farm_total(1, TODAY) == pytest.approx(51.0)
    assert [p.cow_id for p in cached.top_performers(1, week)] == [3, 2, 1]
    before_weekly = cached.weekly_totals(2, farm_id=1)[-1].total_production

    analytics.record_sample(_sample(2, TODAY, 25))

    assert cached.daily_farm_total(1, TODAY) == pytest.approx(56.0)
    assert [p.cow_id for p in cached.top_performers(1, week)] == [2, 3, 1]
    assert cached.weekly_totals(2, farm_id=1)[-1].total_production == pytest.approx(
        before_weekly + 5
    )


def test_deleted_sample_is_invalidated(repo):
    analytics = _analytics(repo)
    cached = analytics.aggregation
    assert cached.monthly_farm_total(1, 2024, 3) == pytest.approx(231.0)

    removed = analytics.delete_sample(3, TODAY)

    assert removed is not None
    assert cached.monthly_farm_total(1, 2024, 3) == pytest.approx(210.0)
    assert analytics.delete_sample(3, TODAY) is None


def test_critical_keys_are_fresh_with_background_sweeps(repo):
    analytics = _analytics(repo, dispatcher="thread")
    cached = analytics.aggregation
    assert cached.daily_farm_total(1, TODAY) == pytest.approx(51.0)

    analytics.record_sample(_sample(1, TODAY, 18))

    assert cached.daily_farm_total(1, TODAY) == pytest.approx(59.0)


def test_warm_cache_populates_dashboard_queries(repo):
    analytics = _analytics(repo)

    warmed = analytics.warm_cache(1)

    assert set(warmed) == {
        "top_performers",
        "recent_high_producers",
        "production_summary",
        "weekly_trend_analysis",
        "forecast",
    }
    misses = analytics.cache_stats.misses
    analytics.aggregation.top_performers(1, DateRange.trailing(7, TODAY))
    analytics.forecaster.predict(1)
    assert analytics.cache_stats.misses == misses
    assert analytics.cache_stats.hits >= 2


class _QueuedDispatcher:
    """Holds sweeps without running them, like a broker with no workers."""

    def __init__(self) -> None:
        self.queued = []

    def dispatch(self, change, sweep):
        self.queued.append(change)


def test_week_month_reads_are_fresh_while_sweeps_are_queued(repo):
    dispatcher = _QueuedDispatcher()
    analytics = DIContainer.create_custom_analytics(
        config=AnalyticsConfig(),
        store=repo,
        herd_store=repo,
        writer=repo,
        sweep_dispatcher=dispatcher,
        clock=lambda: NOW,
    )
    cached = analytics.aggregation
    before_weekly = cached.weekly_trend_analysis(2, farm_id=1)[-1].total_production
    before_monthly = cached.monthly_trend_analysis(1, farm_id=1)[-1].production
    before_forecast = analytics.forecaster.predict(1)
    assert before_forecast.current_average == pytest.approx(115.5)

    analytics.record_sample(_sample(2, TODAY, 30))

    assert len(dispatcher.queued) == 1
    assert cached.weekly_trend_analysis(2, farm_id=1)[-1].total_production == (
        pytest.approx(before_weekly + 10)
    )
    assert cached.monthly_trend_analysis(1, farm_id=1)[-1].production == (
        pytest.approx(before_monthly + 10)
    )
    assert analytics.forecaster.predict(1).current_average == pytest.approx(120.5)
