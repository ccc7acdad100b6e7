"""Domain value objects for dairy production analytics."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)


class CowStatus(str, Enum):
    """Lifecycle states a cow can be in."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PREGNANT = "pregnant"
    SICK = "sick"


class TrendLabel(str, Enum):
    """Categorical direction of production between two windows."""

    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class CowTrend(str, Enum):
    """Direction of an individual cow's recent production."""

    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class AlertType(str, Enum):
    """Rule identifiers; also used to group alerts."""

    LOW_PRODUCTION = "low_production"
    HIGH_PRODUCTION = "high_production"
    MISSED_MILKING = "missed_milking"
    HEALTH_OVERDUE = "health_overdue"
    VACCINATION_DUE = "vaccination_due"
    VACCINATION_OVERDUE = "vaccination_overdue"
    CALVING_DUE = "calving_due"
    INACTIVE_COW = "inactive_cow"


class ProductionSample(BaseModel):
    """One cow's milk yield for one day, split by milking period."""

    model_config = ConfigDict(frozen=True)

    cow_id: int
    farm_id: int
    production_date: date
    morning: float = Field(default=0.0, ge=0)
    noon: float = Field(default=0.0, ge=0)
    evening: float = Field(default=0.0, ge=0)
    night: float = Field(default=0.0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        return self.morning + self.noon + self.evening + self.night


class Cow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    farm_id: int
    name: str
    tag_number: str
    status: CowStatus = CowStatus.ACTIVE

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.tag_number})"


class HealthRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    cow_id: int
    health_status: str
    recorded_at: datetime


class VaccinationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    cow_id: int
    vaccine_name: str
    vaccination_date: date
    next_due_date: Optional[date] = None

    @model_validator(mode="after")
    def validate_due_date(self) -> "VaccinationRecord":
        if self.next_due_date is not None and self.next_due_date <= self.vaccination_date:
            raise ValueError("next_due_date must be after vaccination_date")
        return self


class BreedingRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    cow_id: int
    breeding_date: date
    breeding_status: str
    expected_due_date: Optional[date] = None

    @property
    def is_confirmed(self) -> bool:
        return self.breeding_status == "confirmed"


class DateRange(BaseModel):
    """Inclusive calendar-date window; ``end < start`` means empty, not invalid."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @field_validator("start", "end", mode="before")
    @classmethod
    def coerce_to_date(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        return value

    @classmethod
    def trailing(cls, days: int, today: date) -> "DateRange":
        return cls(start=today - timedelta(days=days), end=today)

    @property
    def is_empty(self) -> bool:
        return self.end < self.start

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def overlaps(self, other: "DateRange") -> bool:
        if self.is_empty or other.is_empty:
            return False
        return self.start <= other.end and other.start <= self.end


class PerformerEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    cow_id: int
    name: str
    tag: str
    total: float


class HighProducerEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    cow_id: int
    name: str
    tag: str
    average: float


class ProductionSummary(BaseModel):
    """Aggregate statistics for a farm (or all farms) over a date range."""

    model_config = ConfigDict(frozen=True)

    total_records: int = 0
    total_production: float = 0.0
    average_daily: float = 0.0
    best_day_production: float = 0.0
    active_cow_count: int = 0


class WeeklyBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    week_start: date
    total_production: float = 0.0
    average_daily: float = 0.0
    record_count: int = 0
    active_cow_count: int = 0
    trend_label: TrendLabel = TrendLabel.STABLE

    @property
    def week_end(self) -> date:
        return self.week_start + timedelta(days=6)


class MonthlyBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    month_start: date
    month_name: str
    production: float = 0.0
    average_daily: float = 0.0


class CowPerformance(BaseModel):
    """Rolling production metrics for a single cow."""

    model_config = ConfigDict(frozen=True)

    cow_id: int
    total_production: float = 0.0
    average_daily: float = 0.0
    best_day: float = 0.0
    production_days: int = 0
    consistency_score: float = 100.0
    recent_trend: CowTrend = CowTrend.STABLE


class ForecastPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    week_start: date
    predicted_production: float = Field(..., ge=0)
    confidence_percent: int = Field(..., ge=20, le=100)


class Forecast(BaseModel):
    """Linear-trend production outlook.

    ``confidence_percent`` is a heuristic derived from the historical
    coefficient of variation; it is not a statistical confidence interval.
    """

    model_config = ConfigDict(frozen=True)

    trend: TrendLabel = TrendLabel.STABLE
    trend_percentage: float = 0.0
    slope: float = 0.0
    current_average: float = 0.0
    confidence_percent: int = Field(default=20, ge=20, le=100)
    history_weeks: int = 0
    predictions: Tuple[ForecastPoint, ...] = Field(default_factory=tuple)


class Alert(BaseModel):
    """Ephemeral operational alert; never persisted by the engine."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    subject_id: Optional[int] = None
    created_at: datetime
    data: Dict[str, Any] = Field(default_factory=dict)


class CacheEntry(BaseModel):
    """Serialized memoization of one analytics computation."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: Any
    computed_at: datetime
    ttl: int = Field(..., gt=0)

    @property
    def expires_at(self) -> datetime:
        return self.computed_at + timedelta(seconds=self.ttl)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class SampleChange(BaseModel):
    """The (farm, cow, date) triple affected by a committed sample write."""

    model_config = ConfigDict(frozen=True)

    farm_id: int
    cow_id: int
    production_date: date

    @field_validator("production_date", mode="before")
    @classmethod
    def coerce_to_date(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        return value
