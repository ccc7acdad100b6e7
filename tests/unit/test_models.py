from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from dairy_analytics.domain.exceptions import DairyAnalyticsError, StoreTimeoutError
from dairy_analytics.domain.models import (
    BreedingRecord,
    CacheEntry,
    Cow,
    DateRange,
    ForecastPoint,
    ProductionSample,
    SampleChange,
    VaccinationRecord,
    WeeklyBucket,
)


def test_sample_total_sums_all_milkings():
    sample = ProductionSample(
        cow_id=1,
        farm_id=1,
        production_date=date(2024, 3, 1),
        morning=10.0,
        noon=2.5,
        evening=8.0,
        night=1.5,
    )
    assert sample.total == pytest.approx(22.0)


def test_sample_missing_milkings_default_to_zero():
    sample = ProductionSample(
        cow_id=1, farm_id=1, production_date=date(2024, 3, 1), morning=12.0
    )
    assert sample.total == pytest.approx(12.0)


def test_sample_rejects_negative_yield():
    with pytest.raises(PydanticValidationError):
        ProductionSample(cow_id=1, farm_id=1, production_date=date(2024, 3, 1), noon=-1)


def test_cow_display_name_includes_tag():
    cow = Cow(id=7, farm_id=1, name="Bella", tag_number="T-007")
    assert cow.display_name == "Bella (T-007)"


def test_vaccination_due_date_must_follow_vaccination():
    with pytest.raises(PydanticValidationError):
        VaccinationRecord(
            id=1,
            cow_id=1,
            vaccine_name="BVD",
            vaccination_date=date(2024, 3, 1),
            next_due_date=date(2024, 2, 1),
        )


def test_breeding_record_confirmed_flag():
    record = BreedingRecord(
        id=1, cow_id=1, breeding_date=date(2023, 6, 1), breeding_status="confirmed"
    )
    assert record.is_confirmed is True


def test_date_range_coerces_datetimes_and_detects_empty():
    window = DateRange(start=datetime(2024, 3, 5, 18, 30), end=date(2024, 3, 1))
    assert window.start == date(2024, 3, 5)
    assert window.is_empty is True
    assert window.contains(date(2024, 3, 3)) is False


def test_date_range_trailing_and_overlap():
    window = DateRange.trailing(7, date(2024, 3, 13))
    assert window.start == date(2024, 3, 6)
    assert window.end == date(2024, 3, 13)
    assert window.overlaps(DateRange(start=date(2024, 3, 13), end=date(2024, 3, 20)))
    assert not window.overlaps(DateRange(start=date(2024, 3, 14), end=date(2024, 3, 20)))


def test_weekly_bucket_week_end():
    bucket = WeeklyBucket(week_start=date(2024, 3, 11))
    assert bucket.week_end == date(2024, 3, 17)


def test_forecast_point_confidence_bounds():
    with pytest.raises(PydanticValidationError):
        ForecastPoint(
            week_start=date(2024, 3, 18), predicted_production=10.0, confidence_percent=5
        )


def test_cache_entry_expiry():
    computed = datetime(2024, 3, 13, 12, 0, tzinfo=timezone.utc)
    entry = CacheEntry(key="k", value=1.0, computed_at=computed, ttl=60)
    assert entry.expires_at == computed + timedelta(seconds=60)
    assert entry.is_expired(computed + timedelta(seconds=59)) is False
    assert entry.is_expired(computed + timedelta(seconds=60)) is True


def test_sample_change_accepts_datetime():
    change = SampleChange(farm_id=1, cow_id=2, production_date=datetime(2024, 3, 13, 6))
    assert change.production_date == date(2024, 3, 13)


def test_error_context_is_rendered():
    error = StoreTimeoutError(context={"timeout": 0.5})
    assert isinstance(error, DairyAnalyticsError)
    assert "timed out" in str(error)
    assert "timeout" in str(error)
