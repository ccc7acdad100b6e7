"""Celery wiring for running invalidation sweeps on background workers."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Optional

from celery import Celery

from dairy_analytics.core.config import AnalyticsConfig
from dairy_analytics.domain.interfaces import ISweepDispatcher
from dairy_analytics.domain.models import SampleChange

from .invalidation import InvalidationCoordinator

logger = logging.getLogger(__name__)

SWEEP_TASK_NAME = "dairy_analytics.sweep_production_caches"


def create_celery_app(
    broker_url: Optional[str] = None,
    *,
    always_eager: bool = False,
) -> Celery:
    """Create the Celery application that hosts the sweep task."""

    effective_broker = broker_url or AnalyticsConfig.from_env().celery_broker_url
    app = Celery("dairy_analytics", broker=effective_broker)
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_ignore_result=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_routes={SWEEP_TASK_NAME: {"queue": "cache_maintenance"}},
        task_always_eager=always_eager,
    )
    return app


celery_app = create_celery_app()


def configure_celery_broker(broker_url: str) -> None:
    """Point the shared app at ``broker_url`` before any task is queued."""

    celery_app.conf.broker_url = broker_url
    logger.info("celery_broker_configured", extra={"broker_url": broker_url})


_coordinator_factory: Optional[Callable[[], InvalidationCoordinator]] = None


def configure_sweep_coordinator(
    factory: Optional[Callable[[], InvalidationCoordinator]],
) -> None:
    """Choose how workers build the coordinator that performs the sweep."""

    global _coordinator_factory
    _coordinator_factory = factory


def _default_coordinator() -> InvalidationCoordinator:
    from dairy_analytics.core.container import DIContainer

    # Workers sweep inline; re-dispatching would loop back onto the queue.
    return DIContainer.create_invalidation_coordinator(
        AnalyticsConfig.from_env(), sweep_dispatcher="inline"
    )


@celery_app.task(name=SWEEP_TASK_NAME)
def sweep_production_caches(farm_id: int, cow_id: int, production_date: str) -> int:
    """Delete indexed cache keys affected by a write to ``production_date``."""

    factory = _coordinator_factory or _default_coordinator
    change = SampleChange(
        farm_id=farm_id,
        cow_id=cow_id,
        production_date=date.fromisoformat(production_date),
    )
    return factory().sweep(change)


class CeleryDispatcher(ISweepDispatcher):
    """Queues the sweep as a Celery task.

    The ``sweep`` callable is not shipped to the worker; the worker rebuilds
    its own coordinator from ``configure_sweep_coordinator`` or the
    environment.
    """

    def __init__(self, task: Any = None, *, queue: Optional[str] = None) -> None:
        self._task = task or sweep_production_caches
        self._queue = queue

    def dispatch(
        self, change: SampleChange, sweep: Callable[[SampleChange], object]
    ) -> None:
        options = {"queue": self._queue} if self._queue else {}
        self._task.apply_async(
            args=[change.farm_id, change.cow_id, change.production_date.isoformat()],
            **options,
        )
        logger.debug(
            "cache_sweep_queued",
            extra={"farm_id": change.farm_id, "day": change.production_date.isoformat()},
        )
