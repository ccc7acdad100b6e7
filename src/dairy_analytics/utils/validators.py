"""Input validation helpers used at the analytics call boundary."""

from __future__ import annotations

from typing import Any

from dairy_analytics.domain.exceptions import ValidationError
from dairy_analytics.domain.models import DateRange


def validate_positive(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", context={name: value})
    if value < 1:
        raise ValidationError(f"{name} must be at least 1", context={name: value})


def validate_threshold(threshold: float) -> None:
    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise ValidationError(
            "threshold must be numeric", context={"threshold": threshold}
        )
    if threshold < 0:
        raise ValidationError(
            "threshold must be non-negative", context={"threshold": threshold}
        )


def validate_date_range(date_range: Any) -> DateRange:
    """Accept a DateRange or a (start, end) pair; reject anything else."""

    if isinstance(date_range, DateRange):
        return date_range
    if isinstance(date_range, (tuple, list)) and len(date_range) == 2:
        try:
            return DateRange(start=date_range[0], end=date_range[1])
        except ValueError as exc:
            raise ValidationError(
                "date_range bounds must be dates", context={"date_range": date_range}
            ) from exc
    raise ValidationError(
        "date_range must be a DateRange or (start, end) pair",
        context={"date_range": date_range},
    )
