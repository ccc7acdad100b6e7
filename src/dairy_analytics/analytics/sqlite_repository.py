"""SQLite-backed production and herd record store."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dairy_analytics.domain.exceptions import DataUnavailableError
from dairy_analytics.domain.interfaces import IHerdStore, IProductionStore, ISampleWriter
from dairy_analytics.domain.models import (
    BreedingRecord,
    Cow,
    CowStatus,
    HealthRecord,
    ProductionSample,
    VaccinationRecord,
)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS cows (
    id INTEGER PRIMARY KEY,
    farm_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    tag_number TEXT NOT NULL,
    status TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cows_farm_status ON cows (farm_id, status);

CREATE TABLE IF NOT EXISTS production_samples (
    cow_id INTEGER NOT NULL,
    farm_id INTEGER NOT NULL,
    production_date TEXT NOT NULL,
    morning REAL NOT NULL,
    noon REAL NOT NULL,
    evening REAL NOT NULL,
    night REAL NOT NULL,
    total REAL NOT NULL,
    PRIMARY KEY (cow_id, production_date)
);
CREATE INDEX IF NOT EXISTS idx_samples_farm_date ON production_samples (farm_id, production_date);

CREATE TABLE IF NOT EXISTS health_records (
    id INTEGER PRIMARY KEY,
    cow_id INTEGER NOT NULL,
    health_status TEXT NOT NULL,
    recorded_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS vaccination_records (
    id INTEGER PRIMARY KEY,
    cow_id INTEGER NOT NULL,
    vaccine_name TEXT NOT NULL,
    vaccination_date TEXT NOT NULL,
    next_due_date TEXT
);

CREATE TABLE IF NOT EXISTS breeding_records (
    id INTEGER PRIMARY KEY,
    cow_id INTEGER NOT NULL,
    breeding_date TEXT NOT NULL,
    breeding_status TEXT NOT NULL,
    expected_due_date TEXT
);
"""

_UPSERT_COW_SQL = """
INSERT INTO cows (id, farm_id, name, tag_number, status)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    farm_id=excluded.farm_id,
    name=excluded.name,
    tag_number=excluded.tag_number,
    status=excluded.status;
"""

_UPSERT_SAMPLE_SQL = """
INSERT INTO production_samples (cow_id, farm_id, production_date, morning, noon, evening, night, total)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(cow_id, production_date) DO UPDATE SET
    farm_id=excluded.farm_id,
    morning=excluded.morning,
    noon=excluded.noon,
    evening=excluded.evening,
    night=excluded.night,
    total=excluded.total;
"""

_SAMPLE_COLUMNS = "cow_id, farm_id, production_date, morning, noon, evening, night"

_SELECT_RANGE_SQL = f"""
SELECT {_SAMPLE_COLUMNS}
FROM production_samples
WHERE production_date BETWEEN ? AND ?
  AND (? IS NULL OR farm_id = ?)
ORDER BY production_date ASC, cow_id ASC;
"""

_GROUP_BY_COW_SQL = """
SELECT cow_id, {aggregate}(total)
FROM production_samples
WHERE production_date BETWEEN ? AND ?
  AND (? IS NULL OR farm_id = ?)
GROUP BY cow_id;
"""

_SELECT_COW_SAMPLES_SQL = f"""
SELECT {_SAMPLE_COLUMNS}
FROM production_samples
WHERE cow_id = ?
  AND (? IS NULL OR production_date >= ?)
  AND (? IS NULL OR production_date <= ?)
ORDER BY production_date ASC;
"""

_LATEST_DATES_SQL = """
SELECT cow_id, MAX(production_date)
FROM production_samples
WHERE farm_id = ?
GROUP BY cow_id;
"""

_LAST_CHECKUPS_SQL = """
SELECT h.cow_id, MAX(h.recorded_at)
FROM health_records h
JOIN cows c ON c.id = h.cow_id
WHERE c.farm_id = ?
GROUP BY h.cow_id;
"""

_VACCINATIONS_SQL = """
SELECT v.id, v.cow_id, v.vaccine_name, v.vaccination_date, v.next_due_date
FROM vaccination_records v
JOIN cows c ON c.id = v.cow_id
WHERE c.farm_id = ? AND v.next_due_date IS NOT NULL
ORDER BY v.cow_id ASC, v.vaccination_date ASC, v.id ASC;
"""

_BREEDING_SQL = """
SELECT b.id, b.cow_id, b.breeding_date, b.breeding_status, b.expected_due_date
FROM breeding_records b
JOIN cows c ON c.id = b.cow_id
WHERE c.farm_id = ?
  AND (? IS NULL OR b.breeding_status = ?)
  AND (? IS NULL OR b.expected_due_date >= ?)
  AND (? IS NULL OR b.expected_due_date <= ?)
ORDER BY b.expected_due_date ASC, b.id ASC;
"""


class SQLiteHerdStore(IProductionStore, IHerdStore, ISampleWriter):
    """Persistence-only store; aggregation logic lives in the engines."""

    def __init__(self, db_path: str | Path, *, timeout: float = 5.0):
        self._db_path = str(db_path)
        self._timeout = timeout
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def save_cow(self, cow: Cow) -> None:
        self._write(
            _UPSERT_COW_SQL,
            (cow.id, cow.farm_id, cow.name, cow.tag_number, cow.status.value),
        )

    def save_sample(self, sample: ProductionSample) -> None:
        self._write(
            _UPSERT_SAMPLE_SQL,
            (
                sample.cow_id,
                sample.farm_id,
                sample.production_date.isoformat(),
                sample.morning,
                sample.noon,
                sample.evening,
                sample.night,
                sample.total,
            ),
        )

    def delete_sample(self, cow_id: int, day: date) -> Optional[ProductionSample]:
        """Remove a sample and return it, or None when nothing was stored."""

        existing = self.samples_for_cow(cow_id, day, day)
        if not existing:
            return None
        self._write(
            "DELETE FROM production_samples WHERE cow_id = ? AND production_date = ?;",
            (cow_id, day.isoformat()),
        )
        return existing[0]

    def save_health_record(self, record: HealthRecord) -> None:
        self._write(
            "INSERT OR REPLACE INTO health_records (id, cow_id, health_status, recorded_at) "
            "VALUES (?, ?, ?, ?);",
            (record.id, record.cow_id, record.health_status, record.recorded_at.isoformat()),
        )

    def save_vaccination(self, record: VaccinationRecord) -> None:
        self._write(
            "INSERT OR REPLACE INTO vaccination_records "
            "(id, cow_id, vaccine_name, vaccination_date, next_due_date) VALUES (?, ?, ?, ?, ?);",
            (
                record.id,
                record.cow_id,
                record.vaccine_name,
                record.vaccination_date.isoformat(),
                _iso_or_none(record.next_due_date),
            ),
        )

    def save_breeding_record(self, record: BreedingRecord) -> None:
        self._write(
            "INSERT OR REPLACE INTO breeding_records "
            "(id, cow_id, breeding_date, breeding_status, expected_due_date) VALUES (?, ?, ?, ?, ?);",
            (
                record.id,
                record.cow_id,
                record.breeding_date.isoformat(),
                record.breeding_status,
                _iso_or_none(record.expected_due_date),
            ),
        )

    # ------------------------------------------------------------------
    # Production queries
    # ------------------------------------------------------------------
    def samples_in_range(
        self, farm_id: Optional[int], start: date, end: date
    ) -> List[ProductionSample]:
        rows = self._read(
            _SELECT_RANGE_SQL, (start.isoformat(), end.isoformat(), farm_id, farm_id)
        )
        return [self._row_to_sample(row) for row in rows]

    def totals_by_cow(
        self, farm_id: Optional[int], start: date, end: date
    ) -> Dict[int, float]:
        return self._group_by_cow("SUM", farm_id, start, end)

    def averages_by_cow(
        self, farm_id: Optional[int], start: date, end: date
    ) -> Dict[int, float]:
        return self._group_by_cow("AVG", farm_id, start, end)

    def samples_for_cow(
        self, cow_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[ProductionSample]:
        start_iso, end_iso = _iso_or_none(start), _iso_or_none(end)
        rows = self._read(
            _SELECT_COW_SAMPLES_SQL, (cow_id, start_iso, start_iso, end_iso, end_iso)
        )
        return [self._row_to_sample(row) for row in rows]

    def latest_sample_dates(self, farm_id: int) -> Dict[int, date]:
        rows = self._read(_LATEST_DATES_SQL, (farm_id,))
        return {cow_id: date.fromisoformat(value) for cow_id, value in rows}

    # ------------------------------------------------------------------
    # Herd queries
    # ------------------------------------------------------------------
    def cows(self, farm_id: int, status: Optional[CowStatus] = None) -> List[Cow]:
        status_value = status.value if status is not None else None
        rows = self._read(
            "SELECT id, farm_id, name, tag_number, status FROM cows "
            "WHERE farm_id = ? AND (? IS NULL OR status = ?) ORDER BY id ASC;",
            (farm_id, status_value, status_value),
        )
        return [self._row_to_cow(row) for row in rows]

    def cows_by_ids(self, cow_ids: Sequence[int]) -> Dict[int, Cow]:
        ids = list(dict.fromkeys(cow_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        rows = self._read(
            f"SELECT id, farm_id, name, tag_number, status FROM cows WHERE id IN ({placeholders});",
            tuple(ids),
        )
        return {row[0]: self._row_to_cow(row) for row in rows}

    def last_checkups(self, farm_id: int) -> Dict[int, datetime]:
        rows = self._read(_LAST_CHECKUPS_SQL, (farm_id,))
        return {cow_id: datetime.fromisoformat(value) for cow_id, value in rows}

    def vaccinations(self, farm_id: int) -> List[VaccinationRecord]:
        rows = self._read(_VACCINATIONS_SQL, (farm_id,))
        return [
            VaccinationRecord(
                id=id_,
                cow_id=cow_id,
                vaccine_name=vaccine_name,
                vaccination_date=date.fromisoformat(vaccinated),
                next_due_date=date.fromisoformat(next_due),
            )
            for id_, cow_id, vaccine_name, vaccinated, next_due in rows
        ]

    def breeding_records(
        self,
        farm_id: int,
        *,
        status: Optional[str] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
    ) -> List[BreedingRecord]:
        from_iso, to_iso = _iso_or_none(due_from), _iso_or_none(due_to)
        rows = self._read(
            _BREEDING_SQL,
            (farm_id, status, status, from_iso, from_iso, to_iso, to_iso),
        )
        return [
            BreedingRecord(
                id=id_,
                cow_id=cow_id,
                breeding_date=date.fromisoformat(bred),
                breeding_status=breeding_status,
                expected_due_date=date.fromisoformat(due) if due else None,
            )
            for id_, cow_id, bred, breeding_status, due in rows
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _group_by_cow(
        self, aggregate: str, farm_id: Optional[int], start: date, end: date
    ) -> Dict[int, float]:
        rows = self._read(
            _GROUP_BY_COW_SQL.format(aggregate=aggregate),
            (start.isoformat(), end.isoformat(), farm_id, farm_id),
        )
        return {cow_id: float(value or 0.0) for cow_id, value in rows}

    def _ensure_schema(self) -> None:
        try:
            with sqlite3.connect(self._db_path, timeout=self._timeout) as conn:
                conn.executescript(_CREATE_TABLES_SQL)
                conn.commit()
        except sqlite3.Error as exc:
            raise DataUnavailableError(
                "Unable to initialise store schema", context={"db_path": self._db_path}
            ) from exc

    def _read(self, sql: str, params: Tuple[Any, ...]) -> List[Tuple[Any, ...]]:
        try:
            with sqlite3.connect(self._db_path, timeout=self._timeout) as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise DataUnavailableError(
                "Store query failed", context={"db_path": self._db_path, "error": str(exc)}
            ) from exc

    def _write(self, sql: str, params: Tuple[Any, ...]) -> None:
        try:
            with sqlite3.connect(self._db_path, timeout=self._timeout) as conn:
                conn.execute(sql, params)
                conn.commit()
        except sqlite3.Error as exc:
            raise DataUnavailableError(
                "Store write failed", context={"db_path": self._db_path, "error": str(exc)}
            ) from exc

    @staticmethod
    def _row_to_sample(
        row: Tuple[int, int, str, float, float, float, float]
    ) -> ProductionSample:
        cow_id, farm_id, production_date, morning, noon, evening, night = row
        return ProductionSample(
            cow_id=cow_id,
            farm_id=farm_id,
            production_date=date.fromisoformat(production_date),
            morning=morning,
            noon=noon,
            evening=evening,
            night=night,
        )

    @staticmethod
    def _row_to_cow(row: Tuple[int, int, str, str, str]) -> Cow:
        id_, farm_id, name, tag_number, status = row
        return Cow(
            id=id_,
            farm_id=farm_id,
            name=name,
            tag_number=tag_number,
            status=CowStatus(status),
        )


def _iso_or_none(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None
