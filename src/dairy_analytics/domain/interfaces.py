"""Domain-level interfaces defining contracts for analytics collaborators."""

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from .models import (
    Alert,
    BreedingRecord,
    Cow,
    CowStatus,
    Forecast,
    ProductionSample,
    SampleChange,
    VaccinationRecord,
    WeeklyBucket,
)


class IProductionStore(Protocol):
    """Range and group-by queries over production samples."""

    def samples_in_range(
        self, farm_id: Optional[int], start: date, end: date
    ) -> List[ProductionSample]:
        """Return samples dated within the inclusive window, oldest first."""

    def totals_by_cow(
        self, farm_id: Optional[int], start: date, end: date
    ) -> Dict[int, float]:
        """Sum sample totals per cow within the inclusive window."""

    def averages_by_cow(
        self, farm_id: Optional[int], start: date, end: date
    ) -> Dict[int, float]:
        """Average sample totals per cow within the inclusive window."""

    def samples_for_cow(
        self, cow_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[ProductionSample]:
        """Return one cow's samples, oldest first, optionally bounded."""

    def latest_sample_dates(self, farm_id: int) -> Dict[int, date]:
        """Most recent production date per cow on the farm."""


class IHerdStore(Protocol):
    """Queries over cows and their health, vaccination and breeding history."""

    def cows(self, farm_id: int, status: Optional[CowStatus] = None) -> List[Cow]:
        """Return the farm's cows, optionally filtered by status."""

    def cows_by_ids(self, cow_ids: Sequence[int]) -> Dict[int, Cow]:
        """Look up cows by identifier; unknown ids are omitted."""

    def last_checkups(self, farm_id: int) -> Dict[int, datetime]:
        """Most recent health record timestamp per cow on the farm."""

    def vaccinations(self, farm_id: int) -> List[VaccinationRecord]:
        """Vaccination records with a next due date for the farm's cows."""

    def breeding_records(
        self,
        farm_id: int,
        *,
        status: Optional[str] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
    ) -> List[BreedingRecord]:
        """Breeding records filtered by status and expected due date window."""


class ICacheStore(Protocol):
    """Key-value store with TTL support and set-valued window indexes.

    Implementations raise ``CacheUnavailableError`` when the back-end cannot be
    reached.
    """

    def get(self, key: str) -> Optional[str]:
        """Return the stored payload or None when missing/expired."""

    def set(self, key: str, payload: str, ttl: int) -> None:
        """Store a payload that expires after ``ttl`` seconds."""

    def delete_many(self, keys: Sequence[str]) -> int:
        """Delete keys and return how many existed."""

    def add_to_index(self, index_key: str, member: str, ttl: int) -> None:
        """Add a member to an index set, extending its lifetime to ``ttl``."""

    def index_members(self, index_key: str) -> List[str]:
        """Return all members of an index set."""

    def remove_from_index(self, index_key: str, members: Sequence[str]) -> None:
        """Remove members from an index set."""


class IWeeklyTotalsSource(Protocol):
    """Supplies weekly buckets to the forecaster."""

    def weekly_totals(
        self, weeks: int = 12, farm_id: Optional[int] = None
    ) -> List[WeeklyBucket]:
        """Return ``weeks`` consecutive weekly buckets ending with the current week."""


class IForecaster(Protocol):
    def predict(self, farm_id: Optional[int] = None) -> Forecast:
        """Return a short-term production forecast for the farm."""


class IAlertEngine(Protocol):
    def evaluate(self, farm_id: int, *, timeout: Optional[float] = None) -> List[Alert]:
        """Evaluate every rule and return the union of produced alerts."""

    def critical_alerts(self, farm_id: int) -> List[Alert]:
        """Return only alerts with critical severity."""

    def grouped_alerts(self, farm_id: int) -> Mapping[str, List[Alert]]:
        """Return alerts grouped by rule type."""


class ISweepDispatcher(Protocol):
    """Runs broad invalidation sweeps outside the write path."""

    def dispatch(
        self, change: SampleChange, sweep: Callable[[SampleChange], object]
    ) -> None:
        """Schedule ``sweep(change)``; may run it inline, on a thread or remotely."""


class ISampleWriter(Protocol):
    """Write path for production samples; every commit must be followed by invalidation."""

    def save_sample(self, sample: ProductionSample) -> None:
        """Insert or replace the cow's sample for its production date."""

    def delete_sample(self, cow_id: int, day: date) -> Optional[ProductionSample]:
        """Delete the cow's sample for ``day`` and return it, if it existed."""
