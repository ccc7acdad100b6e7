"""Cache store back-ends: a process-local dictionary and Redis."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

import redis

from dairy_analytics.domain.exceptions import CacheUnavailableError
from dairy_analytics.domain.interfaces import ICacheStore

logger = logging.getLogger(__name__)


class InMemoryCacheStore(ICacheStore):
    """Thread-safe dictionary store with lazily enforced expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._values: Dict[str, Tuple[str, float]] = {}
        self._indexes: Dict[str, Tuple[Set[str], float]] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._values.get(key)
            if item is None:
                return None
            payload, expires_at = item
            if expires_at <= self._clock():
                del self._values[key]
                return None
            return payload

    def set(self, key: str, payload: str, ttl: int) -> None:
        _check_ttl(ttl)
        with self._lock:
            self._values[key] = (payload, self._clock() + ttl)

    def delete_many(self, keys: Sequence[str]) -> int:
        now = self._clock()
        deleted = 0
        with self._lock:
            for key in keys:
                item = self._values.pop(key, None)
                if item is not None and item[1] > now:
                    deleted += 1
        return deleted

    def add_to_index(self, index_key: str, member: str, ttl: int) -> None:
        _check_ttl(ttl)
        with self._lock:
            now = self._clock()
            members, expires_at = self._live_index(index_key, now)
            members.add(member)
            self._indexes[index_key] = (members, max(expires_at, now + ttl))

    def index_members(self, index_key: str) -> List[str]:
        with self._lock:
            members, _ = self._live_index(index_key, self._clock())
            return sorted(members)

    def remove_from_index(self, index_key: str, members: Sequence[str]) -> None:
        with self._lock:
            item = self._indexes.get(index_key)
            if item is None:
                return
            remaining = item[0].difference(members)
            if remaining:
                self._indexes[index_key] = (remaining, item[1])
            else:
                del self._indexes[index_key]

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._indexes.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._values.values() if expires_at > now)

    def _live_index(self, index_key: str, now: float) -> Tuple[Set[str], float]:
        item = self._indexes.get(index_key)
        if item is None or item[1] <= now:
            self._indexes.pop(index_key, None)
            return set(), 0.0
        return set(item[0]), item[1]


class RedisCacheStore(ICacheStore):
    """redis-py back-end: ``SET EX`` for values and sets for window indexes."""

    def __init__(
        self,
        client: Optional["redis.Redis[Any]"] = None,
        *,
        url: str = "redis://localhost:6379/0",
        socket_timeout: float = 1.5,
    ) -> None:
        self._client = client or redis.Redis.from_url(
            url,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
            decode_responses=True,
        )

    def get(self, key: str) -> Optional[str]:
        value = self._call("get", lambda: self._client.get(key))
        return _decode(value)

    def set(self, key: str, payload: str, ttl: int) -> None:
        _check_ttl(ttl)
        self._call("set", lambda: self._client.set(key, payload, ex=ttl))

    def delete_many(self, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        return int(self._call("delete", lambda: self._client.delete(*keys)))

    def add_to_index(self, index_key: str, member: str, ttl: int) -> None:
        _check_ttl(ttl)

        def register() -> None:
            pipe = self._client.pipeline()
            pipe.sadd(index_key, member)
            pipe.ttl(index_key)
            _, remaining = pipe.execute()
            # An index must outlive every key it lists.
            if remaining is None or remaining < ttl:
                self._client.expire(index_key, ttl)

        self._call("add_to_index", register)

    def index_members(self, index_key: str) -> List[str]:
        members = self._call("index_members", lambda: self._client.smembers(index_key))
        return sorted(_decode(member) or "" for member in members or ())

    def remove_from_index(self, index_key: str, members: Sequence[str]) -> None:
        if not members:
            return
        self._call("remove_from_index", lambda: self._client.srem(index_key, *members))

    def _call(self, command: str, func: Callable[[], Any]) -> Any:
        try:
            return func()
        except redis.RedisError as exc:
            logger.warning(
                "cache_store_error",
                extra={"command": command, "error": str(exc)},
            )
            raise CacheUnavailableError(
                "Redis command failed", context={"command": command}
            ) from exc


def _check_ttl(ttl: int) -> None:
    if ttl <= 0:
        raise ValueError("ttl must be greater than zero")


def _decode(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)
