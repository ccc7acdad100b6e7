import time
from datetime import date

import pytest

from dairy_analytics.domain.exceptions import StoreTimeoutError, ValidationError
from dairy_analytics.domain.models import DateRange
from dairy_analytics.utils import dates, retry, timeouts, validators


def test_week_start_is_monday():
    assert dates.week_start(date(2024, 3, 13)) == date(2024, 3, 11)
    assert dates.week_start(date(2024, 3, 11)) == date(2024, 3, 11)
    assert dates.week_bounds(date(2024, 3, 17)) == (date(2024, 3, 11), date(2024, 3, 17))


def test_month_helpers_handle_leap_year():
    assert dates.month_bounds(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
    assert dates.days_in_month(2023, 2) == 28


def test_shift_months_crosses_year_boundary():
    assert dates.shift_months(date(2024, 2, 29), -3) == date(2023, 11, 1)
    assert dates.shift_months(date(2024, 11, 15), 2) == date(2025, 1, 1)


def test_validate_positive_rejects_zero_and_bool():
    validators.validate_positive("limit", 1)
    with pytest.raises(ValidationError):
        validators.validate_positive("limit", 0)
    with pytest.raises(ValidationError):
        validators.validate_positive("limit", True)


def test_validate_threshold_rejects_negative():
    validators.validate_threshold(0)
    with pytest.raises(ValidationError):
        validators.validate_threshold(-0.1)


def test_validate_date_range_accepts_pairs():
    window = validators.validate_date_range((date(2024, 3, 1), date(2024, 3, 7)))
    assert window == DateRange(start=date(2024, 3, 1), end=date(2024, 3, 7))
    with pytest.raises(ValidationError):
        validators.validate_date_range("last week")
    with pytest.raises(ValidationError):
        validators.validate_date_range(("yesterday", "today"))


def test_retry_retries_then_succeeds():
    calls = {"count": 0}
    delays = []

    @retry.retry(attempts=3, delay=0.1, backoff=2.0, exceptions=(ValueError,), sleep=delays.append)
    def flaky():
        calls["count"] += 1
        if calls["count"] < 3:
            raise ValueError("fail")
        return "ok"

    assert flaky() == "ok"
    assert calls["count"] == 3
    assert delays == [0.1, 0.2]


def test_retry_raises_last_error():
    @retry.retry(attempts=2, exceptions=(ValueError,), sleep=lambda _: None)
    def always_fail():
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        always_fail()


def test_retry_does_not_catch_other_exceptions():
    calls = {"count": 0}

    @retry.retry(attempts=3, exceptions=(ValueError,), sleep=lambda _: None)
    def wrong_error():
        calls["count"] += 1
        raise KeyError("nope")

    with pytest.raises(KeyError):
        wrong_error()
    assert calls["count"] == 1


def test_call_with_timeout_runs_inline_without_timeout():
    assert timeouts.call_with_timeout(lambda a, b: a + b, None, 2, 3) == 5


def test_call_with_timeout_raises_store_timeout():
    def slow():
        time.sleep(0.5)
        return "late"

    with pytest.raises(StoreTimeoutError):
        timeouts.call_with_timeout(slow, 0.05)


def test_call_with_timeout_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        timeouts.call_with_timeout(lambda: None, 0)
