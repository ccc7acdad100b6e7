from datetime import date, timedelta
from typing import List, Optional, Sequence

import pytest

from dairy_analytics.analytics.forecaster import TrendForecaster
from dairy_analytics.domain.models import TrendLabel, WeeklyBucket

TODAY = date(2024, 3, 13)
CURRENT_WEEK = date(2024, 3, 11)


class _WeeklySource:
    def __init__(self, totals: Sequence[Optional[float]]):
        # None marks a week without any samples.
        self.totals = list(totals)
        self.calls = []

    def weekly_totals(self, weeks: int = 12, farm_id=None) -> List[WeeklyBucket]:
        self.calls.append((weeks, farm_id))
        padded = [None] * max(0, weeks - len(self.totals)) + self.totals[-weeks:]
        oldest = CURRENT_WEEK - timedelta(weeks=weeks - 1)
        return [
            WeeklyBucket(
                week_start=oldest + timedelta(weeks=index),
                total_production=total or 0.0,
                record_count=0 if total is None else 7,
            )
            for index, total in enumerate(padded)
        ]


def _forecaster(source: _WeeklySource, **kwargs) -> TrendForecaster:
    return TrendForecaster(source, today=lambda: TODAY, **kwargs)


def test_linear_series_extrapolates_exactly():
    source = _WeeklySource([100, 110, 120, 130])

    forecast = _forecaster(source).predict(farm_id=1)

    assert source.calls == [(12, 1)]
    assert forecast.history_weeks == 4
    assert forecast.slope == pytest.approx(10.0)
    assert forecast.trend is TrendLabel.INCREASING
    assert forecast.current_average == pytest.approx(115.0)
    assert forecast.trend_percentage == pytest.approx(8.7)
    # Future index n + k: 115 + 10 * (4 + k - 1.5)
    assert [p.predicted_production for p in forecast.predictions] == [
        150.0,
        160.0,
        170.0,
        180.0,
    ]
    assert [p.week_start for p in forecast.predictions] == [
        date(2024, 3, 18),
        date(2024, 3, 25),
        date(2024, 4, 1),
        date(2024, 4, 8),
    ]


def test_flat_series_has_full_confidence_and_stable_trend():
    forecast = _forecaster(_WeeklySource([200] * 12)).predict()

    assert forecast.trend is TrendLabel.STABLE
    assert forecast.slope == 0.0
    assert forecast.confidence_percent == 100
    assert all(p.predicted_production == 200.0 for p in forecast.predictions)


def test_declining_series_never_predicts_negative():
    forecast = _forecaster(_WeeklySource([90, 60, 30, 5])).predict()

    assert forecast.trend is TrendLabel.DECREASING
    assert all(p.predicted_production >= 0 for p in forecast.predictions)
    assert forecast.predictions[-1].predicted_production == 0.0


def test_confidence_is_clamped_to_minimum_for_noisy_history():
    forecast = _forecaster(_WeeklySource([0, 0, 0, 0, 500])).predict()
    assert forecast.confidence_percent == 20


def test_leading_empty_weeks_are_not_history():
    source = _WeeklySource([None, None, 50, 60])

    forecast = _forecaster(source).predict()

    assert forecast.history_weeks == 2
    assert forecast.slope == pytest.approx(10.0)


def test_single_week_returns_degenerate_forecast():
    forecast = _forecaster(_WeeklySource([120])).predict()

    assert forecast.history_weeks == 1
    assert forecast.trend is TrendLabel.STABLE
    assert forecast.slope == 0.0
    assert forecast.confidence_percent == 20
    assert len(forecast.predictions) == 4
    assert all(p.predicted_production == 0.0 for p in forecast.predictions)


def test_no_history_returns_degenerate_forecast():
    forecast = _forecaster(_WeeklySource([])).predict()
    assert forecast.history_weeks == 0
    assert [p.confidence_percent for p in forecast.predictions] == [20, 20, 20, 20]


def test_zero_mean_history_uses_minimum_confidence():
    forecast = TrendForecaster(_WeeklySource([]), today=lambda: TODAY).forecast_from_totals(
        [0.0, 0.0, 0.0]
    )
    assert forecast.confidence_percent == 20
    assert forecast.trend_percentage == 0.0


def test_horizon_and_history_are_configurable():
    source = _WeeklySource([10, 20, 30])

    forecast = _forecaster(source, history_weeks=3, horizon=2).predict()

    assert source.calls == [(3, None)]
    assert len(forecast.predictions) == 2


def test_invalid_construction_parameters():
    with pytest.raises(ValueError):
        TrendForecaster(_WeeklySource([]), history_weeks=1)
    with pytest.raises(ValueError):
        TrendForecaster(_WeeklySource([]), horizon=0)
