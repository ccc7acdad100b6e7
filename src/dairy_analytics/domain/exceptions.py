"""Exception hierarchy for production analytics failures."""

from __future__ import annotations

from typing import Any, Mapping


class DairyAnalyticsError(Exception):
    """Base class for all domain-level errors in the analytics engine."""

    default_message = "Dairy analytics error occurred"

    def __init__(
        self, message: str | None = None, *, context: Mapping[str, Any] | None = None
    ):
        self.message = message or self.default_message
        self.context: Mapping[str, Any] = dict(context or {})
        formatted = self._format_message()
        super().__init__(formatted)

    def _format_message(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


class DataUnavailableError(DairyAnalyticsError):
    """The time-series or herd store could not answer a query."""

    default_message = "Data store is unavailable"


class StoreTimeoutError(DataUnavailableError):
    """A store query exceeded the caller-supplied timeout."""

    default_message = "Data store query timed out"


class CacheUnavailableError(DairyAnalyticsError):
    """The cache back-end is unreachable or returned a malformed payload."""

    default_message = "Cache store is unavailable"


class ValidationError(DairyAnalyticsError):
    """Raised when call parameters are invalid (caller bug)."""

    default_message = "Invalid analytics parameters"
