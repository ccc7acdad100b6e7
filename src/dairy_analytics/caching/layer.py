"""Read-through cache with explicit entry validation and window indexes."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, TypeVar

from pydantic import TypeAdapter

from dairy_analytics.domain.exceptions import CacheUnavailableError
from dairy_analytics.domain.interfaces import ICacheStore
from dairy_analytics.domain.models import CacheEntry

from .keys import CacheKey

T = TypeVar("T")

LOCK_STRIPES = 64


@dataclass(frozen=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    errors: int = 0

    @property
    def hit_ratio(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class _Miss:
    pass


_MISS = _Miss()


class CacheLayer:
    """Memoizes analytics results in an ``ICacheStore``.

    A lookup is explicit: the stored envelope is decoded, its key and expiry
    checked, and the value validated against the caller's ``TypeAdapter``.
    On a miss the value is computed, its key registered in the window index
    and only then stored; if registration fails the value is returned without
    being cached. An unreachable cache never fails a read, the value is simply
    computed directly.
    """

    def __init__(
        self,
        store: ICacheStore,
        *,
        single_flight: bool = True,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._single_flight = single_flight
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logger or logging.getLogger(__name__)
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._errors = 0

    @property
    def store(self) -> ICacheStore:
        return self._store

    @property
    def stats(self) -> CacheStats:
        with self._stats_lock:
            return CacheStats(hits=self._hits, misses=self._misses, errors=self._errors)

    def fetch(
        self,
        cache_key: CacheKey,
        ttl: int,
        compute: Callable[[], T],
        adapter: TypeAdapter[T],
    ) -> T:
        if ttl <= 0:
            raise ValueError("ttl must be greater than zero")
        try:
            cached = self._lookup(cache_key, adapter)
        except CacheUnavailableError as exc:
            self._record_error("cache_lookup_failed", cache_key, exc)
            return compute()
        if not isinstance(cached, _Miss):
            self._count(hit=True)
            return cached

        if not self._single_flight:
            self._count(hit=False)
            return self._compute_and_store(cache_key, ttl, compute, adapter)

        with self._locks[hash(cache_key.key) % LOCK_STRIPES]:
            try:
                cached = self._lookup(cache_key, adapter)
            except CacheUnavailableError as exc:
                self._record_error("cache_lookup_failed", cache_key, exc)
                return compute()
            if not isinstance(cached, _Miss):
                self._count(hit=True)
                return cached
            self._count(hit=False)
            return self._compute_and_store(cache_key, ttl, compute, adapter)

    def delete(self, keys: Sequence[str]) -> int:
        unique = sorted(set(keys))
        if not unique:
            return 0
        return self._store.delete_many(unique)

    def index_members(self, index_key: str) -> List[str]:
        return self._store.index_members(index_key)

    def prune_index(self, index_key: str, members: Sequence[str]) -> None:
        if members:
            self._store.remove_from_index(index_key, members)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _lookup(self, cache_key: CacheKey, adapter: TypeAdapter[T]) -> T | _Miss:
        payload = self._store.get(cache_key.key)
        if payload is None:
            return _MISS
        try:
            entry = CacheEntry.model_validate_json(payload)
            if entry.key != cache_key.key or entry.is_expired(self._clock()):
                return _MISS
            return adapter.validate_python(entry.value)
        except ValueError as exc:
            self._logger.warning(
                "cache_entry_invalid",
                extra={"key": cache_key.key, "error": str(exc)},
            )
            return _MISS

    def _compute_and_store(
        self,
        cache_key: CacheKey,
        ttl: int,
        compute: Callable[[], T],
        adapter: TypeAdapter[T],
    ) -> T:
        value = compute()
        entry = CacheEntry(
            key=cache_key.key,
            value=adapter.dump_python(value, mode="json"),
            computed_at=self._clock(),
            ttl=ttl,
        )
        try:
            if cache_key.index_key and cache_key.index_member:
                self._store.add_to_index(cache_key.index_key, cache_key.index_member, ttl)
            self._store.set(cache_key.key, entry.model_dump_json(), ttl)
        except CacheUnavailableError as exc:
            self._record_error("cache_store_failed", cache_key, exc)
        return value

    def _count(self, *, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1

    def _record_error(self, event: str, cache_key: CacheKey, exc: Exception) -> None:
        with self._stats_lock:
            self._errors += 1
        self._logger.warning(
            event,
            extra={"key": cache_key.key, "operation": cache_key.operation, "error": str(exc)},
        )
