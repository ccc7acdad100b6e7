"""Analytics engine configuration management helpers."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict

ENV_PREFIX = "DAIRY_"


def _str_to_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _str_to_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value: {value}") from exc


def _str_to_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Invalid float value: {value}") from exc


@dataclass(frozen=True)
class AnalyticsConfig:
    """Immutable configuration object loaded from env or files."""

    enable_cache: bool = True
    cache_backend: str = "memory"
    cache_namespace: str = "dairy"
    redis_url: str = "redis://localhost:6379/0"
    single_flight: bool = True

    sweep_dispatcher: str = "thread"
    sweep_window_days: int = 14
    celery_broker_url: str = "redis://localhost:6379/1"

    store_timeout_seconds: float = 5.0
    rule_timeout_seconds: float = 10.0

    ttl_daily_seconds: int = 7200
    ttl_summary_seconds: int = 1800
    ttl_ranking_seconds: int = 3600
    ttl_weekly_seconds: int = 7200
    ttl_monthly_seconds: int = 14400
    ttl_forecast_seconds: int = 7200
    ttl_cow_metrics_seconds: int = 3600

    low_production_ratio: float = 0.7
    high_production_ratio: float = 1.3
    missed_milking_hours: int = 12
    health_checkup_overdue_days: int = 90
    vaccination_due_days: int = 7
    calving_due_days: int = 7
    inactive_days: int = 30

    forecast_history_weeks: int = 12
    forecast_horizon_weeks: int = 4

    _ALLOWED_BACKENDS = {"memory", "redis", "none"}
    _ALLOWED_DISPATCHERS = {"inline", "thread", "celery"}

    def __post_init__(self) -> None:
        self.validate()

    @classmethod
    def from_env(cls) -> "AnalyticsConfig":
        defaults = cls()
        values: Dict[str, Any] = {}
        for item in fields(cls):
            raw = os.getenv(ENV_PREFIX + item.name.upper())
            default = getattr(defaults, item.name)
            if isinstance(default, bool):
                values[item.name] = _str_to_bool(raw, default)
            elif isinstance(default, int):
                values[item.name] = _str_to_int(raw, default)
            elif isinstance(default, float):
                values[item.name] = _str_to_float(raw, default)
            else:
                values[item.name] = raw if raw is not None else default
        return cls(**values)

    @classmethod
    def from_file(cls, path: str) -> "AnalyticsConfig":
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        raw = file_path.read_text()
        data: Dict[str, Any]
        suffix = file_path.suffix.lower()
        if suffix == ".json":
            data = json.loads(raw)
        elif suffix in {".yaml", ".yml"}:
            data = cls._load_yaml(raw)
        else:
            raise ValueError("Unsupported config format. Use JSON or YAML.")
        return cls(**cls._merge_with_defaults(data))

    def validate(self) -> None:
        if self.cache_backend not in self._ALLOWED_BACKENDS:
            raise ValueError(
                f"cache_backend must be one of {sorted(self._ALLOWED_BACKENDS)}"
            )
        if self.sweep_dispatcher not in self._ALLOWED_DISPATCHERS:
            raise ValueError(
                f"sweep_dispatcher must be one of {sorted(self._ALLOWED_DISPATCHERS)}"
            )
        if not self.cache_namespace:
            raise ValueError("cache_namespace must not be empty")
        if self.store_timeout_seconds <= 0 or self.rule_timeout_seconds <= 0:
            raise ValueError("timeouts must be greater than zero")
        for item in fields(self):
            if item.name.startswith("ttl_") and getattr(self, item.name) <= 0:
                raise ValueError(f"{item.name} must be greater than zero")
        if not 0 < self.low_production_ratio < 1:
            raise ValueError("low_production_ratio must be between 0 and 1")
        if self.high_production_ratio <= 1:
            raise ValueError("high_production_ratio must be greater than 1")
        for name in (
            "sweep_window_days",
            "missed_milking_hours",
            "health_checkup_overdue_days",
            "vaccination_due_days",
            "calving_due_days",
            "inactive_days",
            "forecast_horizon_weeks",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.forecast_history_weeks < 2:
            raise ValueError("forecast_history_weeks must be at least 2")

    @classmethod
    def _merge_with_defaults(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")
        defaults = cls()
        return {name: data.get(name, getattr(defaults, name)) for name in sorted(known)}

    @staticmethod
    def _load_yaml(raw: str) -> Dict[str, Any]:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to parse YAML config files") from exc
        return yaml.safe_load(raw) or {}
