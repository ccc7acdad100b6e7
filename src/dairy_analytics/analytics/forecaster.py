"""Linear-trend production forecasting over recent weekly totals."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from statistics import fmean, pstdev
from typing import Callable, List, Optional, Sequence

from dairy_analytics.domain.interfaces import IForecaster, IWeeklyTotalsSource
from dairy_analytics.domain.models import Forecast, ForecastPoint, TrendLabel
from dairy_analytics.utils.dates import week_start

MIN_CONFIDENCE = 20
MAX_CONFIDENCE = 100


class TrendForecaster(IForecaster):
    """Fits an ordinary least-squares line through weekly totals.

    Confidence is a heuristic: ``100 - 50 * coefficient_of_variation`` clamped
    to 20..100. Noisier history lowers it, but it carries no statistical
    guarantee and should be presented to users as indicative only.
    """

    def __init__(
        self,
        source: IWeeklyTotalsSource,
        *,
        today: Callable[[], date] | None = None,
        history_weeks: int = 12,
        horizon: int = 4,
        logger: logging.Logger | None = None,
    ) -> None:
        if history_weeks < 2:
            raise ValueError("history_weeks must be at least 2")
        if horizon < 1:
            raise ValueError("horizon must be at least 1")
        self._source = source
        self._today = today or date.today
        self._history_weeks = history_weeks
        self._horizon = horizon
        self._logger = logger or logging.getLogger(__name__)

    def predict(self, farm_id: Optional[int] = None) -> Forecast:
        buckets = self._source.weekly_totals(self._history_weeks, farm_id)
        # Weeks before the first recorded sample are not history.
        first = next(
            (index for index, bucket in enumerate(buckets) if bucket.record_count), None
        )
        totals = [] if first is None else [b.total_production for b in buckets[first:]]
        forecast = self.forecast_from_totals(totals)
        self._logger.debug(
            "forecast_computed",
            extra={
                "farm_id": farm_id,
                "history_weeks": forecast.history_weeks,
                "trend": forecast.trend.value,
            },
        )
        return forecast

    def forecast_from_totals(self, totals: Sequence[float]) -> Forecast:
        """Forecast from weekly totals ordered oldest to newest (newest = current week)."""

        current_week = week_start(self._today())
        if len(totals) < 2:
            return Forecast(
                history_weeks=len(totals),
                predictions=tuple(
                    ForecastPoint(
                        week_start=self._future_week(current_week, step),
                        predicted_production=0.0,
                        confidence_percent=MIN_CONFIDENCE,
                    )
                    for step in range(1, self._horizon + 1)
                ),
            )

        count = len(totals)
        mean_index = (count - 1) / 2
        mean_production = fmean(totals)
        slope = _ols_slope(totals, mean_index, mean_production)
        confidence = _confidence(totals, mean_production)

        predictions: List[ForecastPoint] = []
        for step in range(1, self._horizon + 1):
            future_index = count + step
            predicted = mean_production + slope * (future_index - mean_index)
            predictions.append(
                ForecastPoint(
                    week_start=self._future_week(current_week, step),
                    predicted_production=round(max(0.0, predicted), 1),
                    confidence_percent=confidence,
                )
            )

        return Forecast(
            trend=_trend_from_slope(slope),
            trend_percentage=(
                round(slope / mean_production * 100, 2) if mean_production else 0.0
            ),
            slope=slope,
            current_average=round(mean_production, 1),
            confidence_percent=confidence,
            history_weeks=count,
            predictions=tuple(predictions),
        )

    @staticmethod
    def _future_week(current_week: date, step: int) -> date:
        return current_week + timedelta(weeks=step)


def _ols_slope(totals: Sequence[float], mean_index: float, mean_production: float) -> float:
    numerator = 0.0
    denominator = 0.0
    for index, total in enumerate(totals):
        dx = index - mean_index
        numerator += dx * (total - mean_production)
        denominator += dx * dx
    if denominator == 0:
        return 0.0
    return numerator / denominator


def _confidence(totals: Sequence[float], mean_production: float) -> int:
    if mean_production == 0:
        return MIN_CONFIDENCE
    cv = pstdev(totals) / mean_production
    score = round(100 - cv * 50)
    return int(min(max(score, MIN_CONFIDENCE), MAX_CONFIDENCE))


def _trend_from_slope(slope: float) -> TrendLabel:
    if slope > 0:
        return TrendLabel.INCREASING
    if slope < 0:
        return TrendLabel.DECREASING
    return TrendLabel.STABLE
