"""Alert rules driven by milk production samples."""

from __future__ import annotations

from datetime import datetime, time, timedelta
from statistics import fmean
from typing import List

from dairy_analytics.domain.models import (
    Alert,
    AlertSeverity,
    AlertType,
    CowStatus,
)

from .base import IAlertRule, RuleContext, build_alert


class _HistoricalRatioRule(IAlertRule):
    """Compares each active cow's latest sample with the mean of its earlier ones."""

    rule_type: AlertType
    severity: AlertSeverity

    def __init__(self, ratio: float) -> None:
        if ratio <= 0:
            raise ValueError("ratio must be positive")
        self.ratio = ratio

    def evaluate(self, context: RuleContext) -> List[Alert]:
        alerts: List[Alert] = []
        for cow in context.herd_store.cows(context.farm_id, CowStatus.ACTIVE):
            samples = context.store.samples_for_cow(cow.id)
            if len(samples) < 2:
                continue
            latest = samples[-1]
            average = fmean(sample.total for sample in samples[:-1])
            if average <= 0 or not self._triggered(latest.total, average):
                continue
            alerts.append(
                build_alert(
                    context,
                    alert_type=self.rule_type,
                    severity=self.severity,
                    title=self._title(cow.display_name),
                    message=self._message(cow.display_name, latest.total, average),
                    subject_id=cow.id,
                    salient=(latest.production_date,),
                    data={
                        "cow_id": cow.id,
                        "production_date": latest.production_date.isoformat(),
                        "current_production": latest.total,
                        "average_production": round(average, 2),
                    },
                )
            )
        return alerts

    def _triggered(self, current: float, average: float) -> bool:
        raise NotImplementedError

    def _title(self, cow_name: str) -> str:
        raise NotImplementedError

    def _message(self, cow_name: str, current: float, average: float) -> str:
        raise NotImplementedError


class LowProductionRule(_HistoricalRatioRule):
    rule_type = AlertType.LOW_PRODUCTION
    severity = AlertSeverity.WARNING

    def __init__(self, ratio: float = 0.7) -> None:
        super().__init__(ratio)

    def _triggered(self, current: float, average: float) -> bool:
        return current < average * self.ratio

    def _title(self, cow_name: str) -> str:
        return f"Low production: {cow_name}"

    def _message(self, cow_name: str, current: float, average: float) -> str:
        return f"{cow_name} produced only {current:.1f}L (avg: {average:.2f}L)"


class HighProductionRule(_HistoricalRatioRule):
    rule_type = AlertType.HIGH_PRODUCTION
    severity = AlertSeverity.INFO

    def __init__(self, ratio: float = 1.3) -> None:
        super().__init__(ratio)

    def _triggered(self, current: float, average: float) -> bool:
        return current > average * self.ratio

    def _title(self, cow_name: str) -> str:
        return f"High production: {cow_name}"

    def _message(self, cow_name: str, current: float, average: float) -> str:
        return f"{cow_name} produced {current:.1f}L, well above average ({average:.2f}L)"


class MissedMilkingRule(IAlertRule):
    """Flags active cows whose last recorded milking is older than ``hours``.

    Samples carry a date only, so the last milking is taken to be the end of
    the sample day. Cows with no samples at all are left to ``InactiveCowRule``.
    """

    rule_type = AlertType.MISSED_MILKING

    def __init__(self, hours: int = 12) -> None:
        if hours < 1:
            raise ValueError("hours must be at least 1")
        self.hours = hours

    def evaluate(self, context: RuleContext) -> List[Alert]:
        latest = context.store.latest_sample_dates(context.farm_id)
        alerts: List[Alert] = []
        for cow in context.herd_store.cows(context.farm_id, CowStatus.ACTIVE):
            last_day = latest.get(cow.id)
            if last_day is None:
                continue
            last_milking = datetime.combine(
                last_day + timedelta(days=1), time.min, tzinfo=context.now.tzinfo
            )
            hours_since = (context.now - last_milking).total_seconds() / 3600
            if hours_since <= self.hours:
                continue
            alerts.append(
                build_alert(
                    context,
                    alert_type=self.rule_type,
                    severity=AlertSeverity.CRITICAL,
                    title=f"Missed milking: {cow.display_name}",
                    message=(
                        f"No milking recorded for {cow.display_name} "
                        f"in the last {self.hours} hours"
                    ),
                    subject_id=cow.id,
                    salient=(last_day,),
                    data={
                        "cow_id": cow.id,
                        "last_sample_date": last_day.isoformat(),
                        "hours_since": round(hours_since, 1),
                    },
                )
            )
        return alerts


class InactiveCowRule(IAlertRule):
    rule_type = AlertType.INACTIVE_COW

    def __init__(self, days: int = 30) -> None:
        if days < 1:
            raise ValueError("days must be at least 1")
        self.days = days

    def evaluate(self, context: RuleContext) -> List[Alert]:
        latest = context.store.latest_sample_dates(context.farm_id)
        cutoff = context.today - timedelta(days=self.days)
        alerts: List[Alert] = []
        for cow in context.herd_store.cows(context.farm_id, CowStatus.ACTIVE):
            last_day = latest.get(cow.id)
            if last_day is not None and last_day >= cutoff:
                continue
            if last_day is None:
                message = f"{cow.display_name} has no production records"
                days_inactive = None
            else:
                days_inactive = (context.today - last_day).days
                message = (
                    f"{cow.display_name} has no production records "
                    f"for {days_inactive} days"
                )
            alerts.append(
                build_alert(
                    context,
                    alert_type=self.rule_type,
                    severity=AlertSeverity.WARNING,
                    title=f"Inactive cow: {cow.display_name}",
                    message=message,
                    subject_id=cow.id,
                    salient=(last_day,),
                    data={
                        "cow_id": cow.id,
                        "last_sample_date": last_day.isoformat() if last_day else None,
                        "days_inactive": days_inactive,
                    },
                )
            )
        return alerts
