"""Bounded execution of blocking store calls."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, TypeVar, ParamSpec

from dairy_analytics.domain.exceptions import StoreTimeoutError


P = ParamSpec("P")
R = TypeVar("R")


def call_with_timeout(
    func: Callable[P, R],
    timeout: Optional[float],
    *args: P.args,
    **kwargs: P.kwargs,
) -> R:
    """Run ``func`` and raise StoreTimeoutError if it exceeds ``timeout`` seconds.

    A ``None`` timeout runs the call on the current thread. The worker thread
    of a timed-out call is abandoned, not interrupted.
    """

    if timeout is None:
        return func(*args, **kwargs)
    if timeout <= 0:
        raise ValueError("timeout must be greater than zero")

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="store-call")
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        raise StoreTimeoutError(
            context={
                "call": getattr(func, "__qualname__", repr(func)),
                "timeout": timeout,
            }
        ) from exc
    finally:
        executor.shutdown(wait=False)
