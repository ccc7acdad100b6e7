"""Cache invalidation driven by production sample writes."""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

from dairy_analytics.domain.exceptions import CacheUnavailableError
from dairy_analytics.domain.interfaces import ISweepDispatcher
from dairy_analytics.domain.models import DateRange, SampleChange
from dairy_analytics.utils.dates import month_bounds, week_bounds
from dairy_analytics.utils.retry import retry

from .dispatch import InlineDispatcher
from .keys import (
    COW_OPERATIONS,
    FARM_OPERATIONS,
    RANKING_OPERATIONS,
    WEEK_MONTH_OPERATIONS,
    CacheKeyBuilder,
    parse_index_member,
)
from .layer import CacheLayer


class InvalidationCoordinator:
    """Removes every cached value a sample write could have changed.

    The exact daily, weekly and monthly keys for the written date, and the
    windowed keys of the week/month operations, are deleted before
    ``invalidate`` returns, so the writer's next read recomputes. The broad
    sweep over the window indexes is handed to the dispatcher and errs
    toward over-invalidation: ranking keys are dropped whenever their window
    touches the trailing ``ranking_window_days``.
    """

    def __init__(
        self,
        cache: CacheLayer,
        keys: CacheKeyBuilder,
        *,
        dispatcher: ISweepDispatcher | None = None,
        ranking_window_days: int = 14,
        today: Callable[[], date] | None = None,
        retry_attempts: int = 3,
        retry_delay: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        if ranking_window_days < 1:
            raise ValueError("ranking_window_days must be at least 1")
        self._cache = cache
        self._keys = keys
        self._dispatcher = dispatcher or InlineDispatcher()
        self._ranking_window_days = ranking_window_days
        self._today = today or date.today
        with_retry = retry(
            attempts=retry_attempts,
            delay=retry_delay,
            exceptions=(CacheUnavailableError,),
            sleep=sleep,
        )
        self._delete = with_retry(self._cache.delete)
        self._sweep_index_with_retry = with_retry(self._sweep_index)
        self._logger = logger or logging.getLogger(__name__)

    def invalidate(self, farm_id: int, cow_id: int, day: date) -> SampleChange:
        change = SampleChange(farm_id=farm_id, cow_id=cow_id, production_date=day)
        self.invalidate_critical(change)
        try:
            self._dispatcher.dispatch(change, self.sweep)
        except Exception:
            self._logger.exception(
                "cache_sweep_dispatch_failed",
                extra={"farm_id": farm_id, "cow_id": cow_id, "day": day.isoformat()},
            )
            self.sweep(change)
        return change

    def critical_keys(self, change: SampleChange) -> List[str]:
        day = change.production_date
        week_start, week_end = week_bounds(day)
        month_start, month_end = month_bounds(day)
        windows = (
            DateRange(start=day, end=day),
            DateRange(start=week_start, end=week_end),
            DateRange(start=month_start, end=month_end),
        )
        keys: List[str] = []
        for farm_id in (change.farm_id, None):
            keys.append(self._keys.daily_total(farm_id, day).key)
            keys.append(self._keys.monthly_total(farm_id, day.year, day.month).key)
            keys.extend(self._keys.production_summary(farm_id, w).key for w in windows)
        return keys

    def invalidate_critical(self, change: SampleChange) -> int:
        """Delete the exact keys for ``change`` and sweep its week/month indexes.

        Runs on the writer's thread, so a read made right after the write
        recomputes every daily, weekly and monthly figure covering the date.
        """

        keys = self.critical_keys(change)
        try:
            deleted = self._delete(keys)
        except CacheUnavailableError as exc:
            self._logger.error(
                "cache_invalidation_failed",
                extra={"farm_id": change.farm_id, "keys": len(keys), "error": str(exc)},
            )
            return 0
        targets = [
            (operation, self._keys.scope(farm_id=farm_id))
            for operation in WEEK_MONTH_OPERATIONS
            for farm_id in (change.farm_id, None)
        ]
        deleted += self._sweep_targets(
            targets, change.production_date, None, self._sweep_index_with_retry
        )
        self._logger.debug(
            "cache_keys_invalidated",
            extra={"farm_id": change.farm_id, "deleted": deleted},
        )
        return deleted

    def sweep(self, change: SampleChange) -> int:
        """Delete indexed keys whose window is affected by ``change``."""

        ranking_window = DateRange.trailing(self._ranking_window_days, self._today())
        targets: List[Tuple[str, str]] = [
            (operation, self._keys.scope(farm_id=farm_id))
            for operation in FARM_OPERATIONS
            for farm_id in (change.farm_id, None)
        ]
        targets.extend(
            (operation, self._keys.scope(cow_id=change.cow_id))
            for operation in COW_OPERATIONS
        )

        deleted = self._sweep_targets(
            targets, change.production_date, ranking_window, self._sweep_index
        )
        self._logger.info(
            "cache_sweep_completed",
            extra={
                "farm_id": change.farm_id,
                "cow_id": change.cow_id,
                "day": change.production_date.isoformat(),
                "deleted": deleted,
            },
        )
        return deleted

    def _sweep_targets(
        self,
        targets: Sequence[Tuple[str, str]],
        day: date,
        ranking_window: Optional[DateRange],
        sweep_index: Callable[[str, str, date, Optional[DateRange]], int],
    ) -> int:
        deleted = 0
        for operation, scope in targets:
            index_key = self._keys.index_key(operation, scope)
            try:
                deleted += sweep_index(index_key, operation, day, ranking_window)
            except CacheUnavailableError as exc:
                self._logger.warning(
                    "cache_sweep_index_failed",
                    extra={"index": index_key, "error": str(exc)},
                )
        return deleted

    def _sweep_index(
        self,
        index_key: str,
        operation: str,
        day: date,
        ranking_window: Optional[DateRange],
    ) -> int:
        doomed: List[str] = []
        stale: List[str] = []
        for member in self._cache.index_members(index_key):
            parsed = parse_index_member(member)
            if parsed is None:
                stale.append(member)
                continue
            window, key = parsed
            if self._affected(operation, window, day, ranking_window):
                doomed.append(key)
                stale.append(member)
            elif self._cache.store.get(key) is None:
                stale.append(member)
        deleted = self._cache.delete(doomed)
        self._cache.prune_index(index_key, stale)
        return deleted

    @staticmethod
    def _affected(
        operation: str,
        window: DateRange,
        day: date,
        ranking_window: Optional[DateRange],
    ) -> bool:
        if window.contains(day):
            return True
        return (
            operation in RANKING_OPERATIONS
            and ranking_window is not None
            and window.overlaps(ranking_window)
        )
