from datetime import date, datetime
from pathlib import Path

import pytest

from dairy_analytics.analytics.sqlite_repository import SQLiteHerdStore
from dairy_analytics.domain.exceptions import DataUnavailableError
from dairy_analytics.domain.models import (
    BreedingRecord,
    Cow,
    CowStatus,
    HealthRecord,
    ProductionSample,
    VaccinationRecord,
)


@pytest.fixture
def repo(tmp_path: Path) -> SQLiteHerdStore:
    store = SQLiteHerdStore(tmp_path / "dairy.db")
    store.save_cow(Cow(id=1, farm_id=1, name="Bella", tag_number="T-001"))
    store.save_cow(
        Cow(id=2, farm_id=1, name="Daisy", tag_number="T-002", status=CowStatus.SICK)
    )
    store.save_cow(Cow(id=3, farm_id=2, name="Rosa", tag_number="T-003"))
    return store


def _sample(cow_id: int, farm_id: int, day: date, morning: float) -> ProductionSample:
    return ProductionSample(
        cow_id=cow_id, farm_id=farm_id, production_date=day, morning=morning, evening=5.0
    )


def test_samples_in_range_filters_farm_and_window(repo: SQLiteHerdStore):
    repo.save_sample(_sample(1, 1, date(2024, 3, 1), 10))
    repo.save_sample(_sample(1, 1, date(2024, 3, 5), 11))
    repo.save_sample(_sample(3, 2, date(2024, 3, 2), 12))

    farm_samples = repo.samples_in_range(1, date(2024, 3, 1), date(2024, 3, 3))
    all_samples = repo.samples_in_range(None, date(2024, 3, 1), date(2024, 3, 5))

    assert [s.production_date for s in farm_samples] == [date(2024, 3, 1)]
    assert [s.cow_id for s in all_samples] == [1, 3, 1]


def test_save_sample_upserts_by_cow_and_day(repo: SQLiteHerdStore):
    repo.save_sample(_sample(1, 1, date(2024, 3, 1), 10))
    repo.save_sample(_sample(1, 1, date(2024, 3, 1), 20))

    samples = repo.samples_for_cow(1)

    assert len(samples) == 1
    assert samples[0].total == pytest.approx(25.0)


def test_group_by_cow_totals_and_averages(repo: SQLiteHerdStore):
    repo.save_sample(_sample(1, 1, date(2024, 3, 1), 10))
    repo.save_sample(_sample(1, 1, date(2024, 3, 2), 20))
    repo.save_sample(_sample(2, 1, date(2024, 3, 2), 5))

    totals = repo.totals_by_cow(1, date(2024, 3, 1), date(2024, 3, 2))
    averages = repo.averages_by_cow(1, date(2024, 3, 1), date(2024, 3, 2))

    assert totals == {1: pytest.approx(40.0), 2: pytest.approx(10.0)}
    assert averages[1] == pytest.approx(20.0)


def test_delete_sample_returns_removed_row(repo: SQLiteHerdStore):
    repo.save_sample(_sample(1, 1, date(2024, 3, 1), 10))

    removed = repo.delete_sample(1, date(2024, 3, 1))

    assert removed is not None and removed.farm_id == 1
    assert repo.samples_for_cow(1) == []
    assert repo.delete_sample(1, date(2024, 3, 1)) is None


def test_latest_sample_dates_per_cow(repo: SQLiteHerdStore):
    repo.save_sample(_sample(1, 1, date(2024, 3, 1), 10))
    repo.save_sample(_sample(1, 1, date(2024, 3, 4), 10))
    repo.save_sample(_sample(2, 1, date(2024, 3, 2), 10))

    assert repo.latest_sample_dates(1) == {1: date(2024, 3, 4), 2: date(2024, 3, 2)}


def test_cows_filter_by_status_and_lookup(repo: SQLiteHerdStore):
    active = repo.cows(1, CowStatus.ACTIVE)
    assert [cow.id for cow in active] == [1]
    assert [cow.id for cow in repo.cows(1)] == [1, 2]
    assert set(repo.cows_by_ids([3, 1, 99])) == {1, 3}


def test_herd_record_queries(repo: SQLiteHerdStore):
    repo.save_health_record(
        HealthRecord(id=1, cow_id=1, health_status="healthy", recorded_at=datetime(2024, 1, 1, 9))
    )
    repo.save_health_record(
        HealthRecord(id=2, cow_id=1, health_status="healthy", recorded_at=datetime(2024, 2, 1, 9))
    )
    repo.save_vaccination(
        VaccinationRecord(id=1, cow_id=1, vaccine_name="BVD", vaccination_date=date(2023, 3, 1))
    )
    repo.save_vaccination(
        VaccinationRecord(
            id=2,
            cow_id=1,
            vaccine_name="BVD",
            vaccination_date=date(2024, 3, 1),
            next_due_date=date(2025, 3, 1),
        )
    )
    repo.save_breeding_record(
        BreedingRecord(
            id=1,
            cow_id=2,
            breeding_date=date(2023, 6, 1),
            breeding_status="confirmed",
            expected_due_date=date(2024, 3, 15),
        )
    )
    repo.save_breeding_record(
        BreedingRecord(
            id=2,
            cow_id=1,
            breeding_date=date(2023, 6, 1),
            breeding_status="pending",
            expected_due_date=date(2024, 3, 15),
        )
    )

    assert repo.last_checkups(1) == {1: datetime(2024, 2, 1, 9)}
    assert [v.id for v in repo.vaccinations(1)] == [2]
    confirmed = repo.breeding_records(
        1, status="confirmed", due_from=date(2024, 3, 13), due_to=date(2024, 3, 20)
    )
    assert [record.id for record in confirmed] == [1]


def test_unreachable_database_raises_data_unavailable(tmp_path: Path):
    with pytest.raises(DataUnavailableError):
        SQLiteHerdStore(tmp_path / "missing" / "dairy.db")
