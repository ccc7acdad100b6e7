"""Windowed aggregation of production samples into summaries and trends."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from statistics import fmean, pstdev
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from dairy_analytics.domain.exceptions import DataUnavailableError, ValidationError
from dairy_analytics.domain.interfaces import IHerdStore, IProductionStore
from dairy_analytics.domain.models import (
    Cow,
    CowPerformance,
    CowTrend,
    DateRange,
    HighProducerEntry,
    MonthlyBucket,
    PerformerEntry,
    ProductionSample,
    ProductionSummary,
    TrendLabel,
    WeeklyBucket,
)
from dairy_analytics.utils.dates import (
    days_in_month,
    month_bounds,
    shift_months,
    week_start,
)
from dairy_analytics.utils.timeouts import call_with_timeout
from dairy_analytics.utils.validators import (
    validate_date_range,
    validate_positive,
    validate_threshold,
)

T = TypeVar("T")

WEEKLY_CHANGE_PERCENT = 5.0
COW_TREND_PERCENT = 10.0
CURRENT_WEEK_BASELINE_WEEKS = 3


def classify_change(
    current: float, baseline: float, threshold: float = WEEKLY_CHANGE_PERCENT
) -> TrendLabel:
    """Label the percentage change from ``baseline`` to ``current``."""

    if baseline == 0:
        return TrendLabel.INCREASING if current > 0 else TrendLabel.STABLE
    change = (current - baseline) / baseline * 100
    if change > threshold:
        return TrendLabel.INCREASING
    if change < -threshold:
        return TrendLabel.DECREASING
    return TrendLabel.STABLE


class AggregationEngine:
    """Computes summaries, rankings and weekly/monthly buckets from raw samples.

    Every store call honours ``timeout``. When the store is unavailable the
    public operations log and return their empty/zero default unless the
    engine was built with ``degrade_on_unavailable=False``.
    """

    def __init__(
        self,
        store: IProductionStore,
        herd_store: IHerdStore,
        *,
        today: Callable[[], date] | None = None,
        timeout: float | None = None,
        degrade_on_unavailable: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._herd_store = herd_store
        self._today = today or date.today
        self._timeout = timeout
        self._degrade = degrade_on_unavailable
        self._logger = logger or logging.getLogger(__name__)

    def with_strict_errors(self) -> "AggregationEngine":
        """Return a twin that raises DataUnavailableError instead of degrading."""

        return AggregationEngine(
            self._store,
            self._herd_store,
            today=self._today,
            timeout=self._timeout,
            degrade_on_unavailable=False,
            logger=self._logger,
        )

    def today(self) -> date:
        return self._today()

    # ------------------------------------------------------------------
    # Rankings
    # ------------------------------------------------------------------
    def top_performers(
        self, farm_id: Optional[int], date_range: DateRange, limit: int = 5
    ) -> List[PerformerEntry]:
        validate_positive("limit", limit)
        window = validate_date_range(date_range)
        return self._guarded(
            "top_performers",
            farm_id,
            list,
            lambda: self._top_performers(farm_id, window, limit),
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
        return self._guarded(
            "recent_high_producers",
            farm_id,
            list,
            lambda: self._recent_high_producers(farm_id, threshold, limit, window_days),
        )

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------
    def production_summary(
        self, farm_id: Optional[int], date_range: DateRange
    ) -> ProductionSummary:
        window = validate_date_range(date_range)
        return self._guarded(
            "production_summary",
            farm_id,
            ProductionSummary,
            lambda: self._production_summary(farm_id, window),
        )

    def daily_farm_total(self, farm_id: int, day: date) -> float:
        return self._guarded(
            "daily_farm_total",
            farm_id,
            float,
            lambda: self._sum_totals(farm_id, day, day),
        )

    def monthly_farm_total(self, farm_id: int, year: int, month: int) -> float:
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", context={"month": month})
        start, end = month_bounds(date(year, month, 1))
        return self._guarded(
            "monthly_farm_total",
            farm_id,
            float,
            lambda: self._sum_totals(farm_id, start, end),
        )

    # ------------------------------------------------------------------
    # Trends
    # ------------------------------------------------------------------
    def weekly_totals(
        self, weeks: int = 12, farm_id: Optional[int] = None
    ) -> List[WeeklyBucket]:
        """Unlabelled weekly buckets, oldest first, ending with the current week."""

        validate_positive("weeks", weeks)
        return self._guarded(
            "weekly_totals",
            farm_id,
            list,
            lambda: self._weekly_buckets(weeks, farm_id),
        )

    def weekly_trend_analysis(
        self, weeks_back: int = 8, farm_id: Optional[int] = None
    ) -> List[WeeklyBucket]:
        validate_positive("weeks_back", weeks_back)
        return self._guarded(
            "weekly_trend_analysis",
            farm_id,
            list,
            lambda: self._weekly_trend_analysis(weeks_back, farm_id),
        )

    def monthly_trend_analysis(
        self, months_back: int = 6, farm_id: Optional[int] = None
    ) -> List[MonthlyBucket]:
        validate_positive("months_back", months_back)
        return self._guarded(
            "monthly_trend_analysis",
            farm_id,
            list,
            lambda: self._monthly_trend_analysis(months_back, farm_id),
        )

    def cow_performance_metrics(self, cow_id: int, days: int = 30) -> CowPerformance:
        validate_positive("days", days)
        return self._guarded(
            "cow_performance_metrics",
            None,
            lambda: CowPerformance(cow_id=cow_id),
            lambda: self._cow_performance(cow_id, days),
        )

    # ------------------------------------------------------------------
    # Internal computations
    # ------------------------------------------------------------------
    def _top_performers(
        self, farm_id: Optional[int], window: DateRange, limit: int
    ) -> List[PerformerEntry]:
        if window.is_empty:
            return []
        totals = self._query(self._store.totals_by_cow, farm_id, window.start, window.end)
        cows = self._lookup_cows(totals.keys())
        # Rank on the raw sums; rounding is for display only.
        ranked = sorted(
            ((cow_id, total) for cow_id, total in totals.items() if cow_id in cows),
            key=lambda item: (-item[1], item[0]),
        )
        return [
            PerformerEntry(
                cow_id=cow_id,
                name=cows[cow_id].name,
                tag=cows[cow_id].tag_number,
                total=round(total, 1),
            )
            for cow_id, total in ranked[:limit]
        ]

    def _recent_high_producers(
        self, farm_id: Optional[int], threshold: float, limit: int, window_days: int
    ) -> List[HighProducerEntry]:
        window = DateRange.trailing(window_days, self._today())
        averages = self._query(
            self._store.averages_by_cow, farm_id, window.start, window.end
        )
        qualifying = {
            cow_id: average for cow_id, average in averages.items() if average > threshold
        }
        cows = self._lookup_cows(qualifying.keys())
        ranked = sorted(
            ((cow_id, average) for cow_id, average in qualifying.items() if cow_id in cows),
            key=lambda item: (-item[1], item[0]),
        )
        return [
            HighProducerEntry(
                cow_id=cow_id,
                name=cows[cow_id].name,
                tag=cows[cow_id].tag_number,
                average=round(average, 1),
            )
            for cow_id, average in ranked[:limit]
        ]

    def _production_summary(
        self, farm_id: Optional[int], window: DateRange
    ) -> ProductionSummary:
        if window.is_empty:
            return ProductionSummary()
        samples = self._query(
            self._store.samples_in_range, farm_id, window.start, window.end
        )
        if not samples:
            return ProductionSummary()
        totals = [sample.total for sample in samples]
        return ProductionSummary(
            total_records=len(samples),
            total_production=round(sum(totals), 1),
            average_daily=round(fmean(totals), 1),
            best_day_production=round(max(totals), 1),
            active_cow_count=len({sample.cow_id for sample in samples}),
        )

    def _sum_totals(self, farm_id: int, start: date, end: date) -> float:
        totals = self._query(self._store.totals_by_cow, farm_id, start, end)
        return round(sum(totals.values()), 1) if totals else 0.0

    def _weekly_buckets(self, weeks: int, farm_id: Optional[int]) -> List[WeeklyBucket]:
        current = week_start(self._today())
        oldest = current - timedelta(weeks=weeks - 1)
        samples = self._query(
            self._store.samples_in_range, farm_id, oldest, current + timedelta(days=6)
        )
        by_week: Dict[date, List[ProductionSample]] = defaultdict(list)
        for sample in samples:
            by_week[week_start(sample.production_date)].append(sample)

        buckets: List[WeeklyBucket] = []
        for offset in range(weeks):
            start = oldest + timedelta(weeks=offset)
            week_samples = by_week.get(start, [])
            totals = [sample.total for sample in week_samples]
            buckets.append(
                WeeklyBucket(
                    week_start=start,
                    total_production=round(sum(totals), 1),
                    average_daily=round(fmean(totals), 1) if totals else 0.0,
                    record_count=len(week_samples),
                    active_cow_count=len({sample.cow_id for sample in week_samples}),
                )
            )
        return buckets

    def _weekly_trend_analysis(
        self, weeks_back: int, farm_id: Optional[int]
    ) -> List[WeeklyBucket]:
        history = CURRENT_WEEK_BASELINE_WEEKS
        buckets = self._weekly_buckets(weeks_back + history, farm_id)
        first_with_data = next(
            (index for index, bucket in enumerate(buckets) if bucket.record_count), None
        )
        current_index = len(buckets) - 1

        labelled: List[WeeklyBucket] = []
        for index in range(history, len(buckets)):
            bucket = buckets[index]
            if index == current_index:
                label = self._current_week_label(buckets, index, first_with_data)
            else:
                label = classify_change(
                    bucket.total_production, buckets[index - 1].total_production
                )
            labelled.append(bucket.model_copy(update={"trend_label": label}))
        return labelled

    @staticmethod
    def _current_week_label(
        buckets: Sequence[WeeklyBucket], index: int, first_with_data: Optional[int]
    ) -> TrendLabel:
        # A partially elapsed week is compared with the mean of the prior three.
        if first_with_data is None or index - first_with_data < CURRENT_WEEK_BASELINE_WEEKS:
            return TrendLabel.STABLE
        prior = buckets[index - CURRENT_WEEK_BASELINE_WEEKS : index]
        baseline = fmean(bucket.total_production for bucket in prior)
        return classify_change(buckets[index].total_production, baseline)

    def _monthly_trend_analysis(
        self, months_back: int, farm_id: Optional[int]
    ) -> List[MonthlyBucket]:
        today = self._today()
        first = shift_months(today, -(months_back - 1))
        _, last = month_bounds(today)
        samples = self._query(self._store.samples_in_range, farm_id, first, last)
        production: Dict[date, float] = defaultdict(float)
        for sample in samples:
            production[sample.production_date.replace(day=1)] += sample.total

        buckets: List[MonthlyBucket] = []
        for offset in range(months_back):
            month_start = shift_months(first, offset)
            total = production.get(month_start, 0.0)
            buckets.append(
                MonthlyBucket(
                    month_start=month_start,
                    month_name=month_start.strftime("%B %Y"),
                    production=round(total, 1),
                    average_daily=round(
                        total / days_in_month(month_start.year, month_start.month), 1
                    ),
                )
            )
        return buckets

    def _cow_performance(self, cow_id: int, days: int) -> CowPerformance:
        window = DateRange.trailing(days, self._today())
        samples = self._query(self._store.samples_for_cow, cow_id, window.start, window.end)
        if not samples:
            return CowPerformance(cow_id=cow_id)
        totals = [sample.total for sample in samples]
        return CowPerformance(
            cow_id=cow_id,
            total_production=round(sum(totals), 1),
            average_daily=round(fmean(totals), 1),
            best_day=round(max(totals), 1),
            production_days=len(totals),
            consistency_score=_consistency_score(totals),
            recent_trend=_cow_trend(totals),
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    def _query(self, func: Callable[..., T], *args: object) -> T:
        return call_with_timeout(func, self._timeout, *args)

    def _lookup_cows(self, cow_ids: Iterable[int]) -> Dict[int, Cow]:
        ids = list(cow_ids)
        if not ids:
            return {}
        return self._query(self._herd_store.cows_by_ids, ids)

    def _guarded(
        self,
        operation: str,
        farm_id: Optional[int],
        default: Callable[[], T],
        compute: Callable[[], T],
    ) -> T:
        try:
            return compute()
        except DataUnavailableError as exc:
            if not self._degrade:
                raise
            self._logger.warning(
                "aggregation_unavailable",
                extra={"operation": operation, "farm_id": farm_id, "error": str(exc)},
            )
            return default()


def _consistency_score(totals: Sequence[float]) -> float:
    """100 minus half the coefficient of variation (as a percent), within 0..100."""

    if len(totals) <= 1:
        return 100.0
    mean = fmean(totals)
    if mean == 0:
        return 100.0
    cv = pstdev(totals) / mean
    return round(min(max(100 - cv * 50, 0.0), 100.0), 1)


def _cow_trend(totals: Sequence[float]) -> CowTrend:
    if len(totals) < 14:
        return CowTrend.STABLE
    recent = sum(totals[-7:])
    previous = sum(totals[-14:-7])
    if previous == 0:
        return CowTrend.STABLE
    change = (recent - previous) / previous * 100
    if change >= COW_TREND_PERCENT:
        return CowTrend.IMPROVING
    if change <= -COW_TREND_PERCENT:
        return CowTrend.DECLINING
    return CowTrend.STABLE
