"""Retry decorator for transient cache and store failures."""

from __future__ import annotations

import logging
import time
from functools import wraps
from typing import Callable, Tuple, Type, TypeVar, ParamSpec


P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)


def retry(
    *,
    attempts: int = 3,
    delay: float = 0.05,
    backoff: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Retry ``exceptions`` with exponential backoff; the last failure propagates."""

    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            current_delay = delay
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    if attempt == attempts:
                        raise
                    logger.debug(
                        "retrying_call",
                        extra={
                            "call": func.__qualname__,
                            "attempt": attempt,
                            "error": str(exc),
                        },
                    )
                    sleep(current_delay)
                    current_delay *= backoff
            raise RuntimeError("retry failed")  # pragma: no cover - loop always returns or raises

        return wrapper

    return decorator
