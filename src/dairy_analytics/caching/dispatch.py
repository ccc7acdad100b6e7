"""In-process dispatchers for deferred invalidation sweeps."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List

from dairy_analytics.domain.interfaces import ISweepDispatcher
from dairy_analytics.domain.models import SampleChange

logger = logging.getLogger(__name__)


class InlineDispatcher(ISweepDispatcher):
    """Runs the sweep on the caller's thread."""

    def dispatch(
        self, change: SampleChange, sweep: Callable[[SampleChange], object]
    ) -> None:
        sweep(change)


class ThreadPoolDispatcher(ISweepDispatcher):
    """Runs sweeps on a small worker pool so writers never wait on them."""

    def __init__(self, max_workers: int = 2) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="cache-sweep"
        )
        self._pending: List[Future[object]] = []

    def dispatch(
        self, change: SampleChange, sweep: Callable[[SampleChange], object]
    ) -> None:
        future = self._executor.submit(sweep, change)
        future.add_done_callback(_log_failure)
        self._pending = [item for item in self._pending if not item.done()]
        self._pending.append(future)

    def drain(self, timeout: float | None = None) -> None:
        """Block until every sweep dispatched so far has finished."""

        for future in list(self._pending):
            future.exception(timeout=timeout)
        self._pending = [item for item in self._pending if not item.done()]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def _log_failure(future: Future[object]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error(
            "cache_sweep_failed",
            extra={"error": str(exc)},
            exc_info=(type(exc), exc, exc.__traceback__),
        )
