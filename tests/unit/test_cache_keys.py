from datetime import date, datetime

import pytest

from dairy_analytics.caching.keys import (
    CacheKeyBuilder,
    format_index_member,
    parse_index_member,
)
from dairy_analytics.domain.models import DateRange, TrendLabel


@pytest.fixture
def keys() -> CacheKeyBuilder:
    return CacheKeyBuilder("dairy")


def test_key_parameters_are_sorted_and_normalized(keys):
    window = DateRange(start=date(2024, 3, 1), end=date(2024, 3, 7))

    key = keys.build("top_performers", farm_id=3, window=window, limit=5, date_range=window)

    assert key.key == "dairy:top_performers:date_range=2024-03-01..2024-03-07|farm_id=3|limit=5"
    assert key.scope == "farm=3"
    assert key.index_key == "dairy:index:top_performers:farm=3"


def test_equal_values_render_identical_keys(keys):
    a = keys.build("recent_high_producers", farm_id=1, threshold=20, limit=5)
    b = keys.build("recent_high_producers", limit=5, threshold=20.0, farm_id=1)
    assert a.key == b.key


def test_none_farm_renders_as_all(keys):
    key = keys.build("weekly_totals", farm_id=None, weeks=12)
    assert "farm_id=all" in key.key
    assert key.scope == "farm=all"
    assert key.index_key is None


def test_cow_scoped_keys(keys):
    key = keys.build(
        "cow_performance_metrics",
        cow_id=9,
        window=DateRange(start=date(2024, 2, 12), end=date(2024, 3, 13)),
        days=30,
    )
    assert key.scope == "cow=9"
    assert "cow_id=9" in key.key
    assert "farm_id" not in key.key


def test_normalize_values(keys):
    assert keys.normalize(datetime(2024, 3, 13, 18, 45)) == "2024-03-13"
    assert keys.normalize(2.5) == "2.5"
    assert keys.normalize(True) == "true"
    assert keys.normalize(TrendLabel.STABLE) == "stable"


def test_shared_key_helpers(keys):
    daily = keys.daily_total(1, date(2024, 3, 13))
    monthly = keys.monthly_total(1, 2024, 2)

    assert daily.key == "dairy:daily_farm_total:day=2024-03-13|farm_id=1"
    assert daily.window == DateRange(start=date(2024, 3, 13), end=date(2024, 3, 13))
    assert monthly.window == DateRange(start=date(2024, 2, 1), end=date(2024, 2, 29))


def test_index_member_round_trip_and_malformed():
    window = DateRange(start=date(2024, 3, 1), end=date(2024, 3, 7))
    member = format_index_member(window, "dairy:x:a=1|b=2")

    assert parse_index_member(member) == (window, "dairy:x:a=1|b=2")
    assert parse_index_member("garbage") is None
    assert parse_index_member("2024-13-01|2024-03-07|k") is None


def test_empty_namespace_rejected():
    with pytest.raises(ValueError):
        CacheKeyBuilder("")
