"""Alert rules driven by health, vaccination and breeding records."""

from __future__ import annotations

from datetime import timedelta
from typing import Dict, List, Tuple

from dairy_analytics.domain.models import (
    Alert,
    AlertSeverity,
    AlertType,
    Cow,
    CowStatus,
    VaccinationRecord,
)

from .base import IAlertRule, RuleContext, build_alert

IMMEDIATE_URGENCY_DAYS = 30


class HealthOverdueRule(IAlertRule):
    rule_type = AlertType.HEALTH_OVERDUE

    def __init__(self, days: int = 90) -> None:
        if days < 1:
            raise ValueError("days must be at least 1")
        self.days = days

    def evaluate(self, context: RuleContext) -> List[Alert]:
        checkups = context.herd_store.last_checkups(context.farm_id)
        alerts: List[Alert] = []
        for cow in context.herd_store.cows(context.farm_id, CowStatus.ACTIVE):
            last_checkup = checkups.get(cow.id)
            last_day = last_checkup.date() if last_checkup else None
            days_since = (context.today - last_day).days if last_day else None
            if days_since is not None and days_since < self.days:
                continue
            if days_since is None:
                message = f"{cow.display_name} has never had a health checkup"
            else:
                message = f"{cow.display_name} last had a checkup {days_since} days ago"
            alerts.append(
                build_alert(
                    context,
                    alert_type=self.rule_type,
                    severity=AlertSeverity.WARNING,
                    title=f"Health checkup overdue: {cow.display_name}",
                    message=message,
                    subject_id=cow.id,
                    salient=(last_day,),
                    data={
                        "cow_id": cow.id,
                        "last_checkup": last_checkup.isoformat() if last_checkup else None,
                        "days_since": days_since,
                    },
                )
            )
        return alerts


class _VaccinationRule(IAlertRule):
    """Base for rules that look at the most recent record per (cow, vaccine)."""

    rule_type: AlertType

    def evaluate(self, context: RuleContext) -> List[Alert]:
        latest = self._latest_records(context.herd_store.vaccinations(context.farm_id))
        if not latest:
            return []
        cows = context.herd_store.cows_by_ids(sorted({cow_id for cow_id, _ in latest}))
        alerts: List[Alert] = []
        for record in latest.values():
            if record.next_due_date is None:
                continue
            cow = cows.get(record.cow_id)
            if cow is None:
                continue
            alert = self._check(context, cow, record)
            if alert is not None:
                alerts.append(alert)
        return alerts

    def _check(
        self, context: RuleContext, cow: Cow, record: VaccinationRecord
    ) -> Alert | None:
        raise NotImplementedError

    @staticmethod
    def _latest_records(
        records: List[VaccinationRecord],
    ) -> Dict[Tuple[int, str], VaccinationRecord]:
        latest: Dict[Tuple[int, str], VaccinationRecord] = {}
        for record in records:
            key = (record.cow_id, record.vaccine_name)
            current = latest.get(key)
            if current is None or (record.vaccination_date, record.id) > (
                current.vaccination_date,
                current.id,
            ):
                latest[key] = record
        return latest


class VaccinationDueRule(_VaccinationRule):
    rule_type = AlertType.VACCINATION_DUE

    def __init__(self, days: int = 7) -> None:
        if days < 0:
            raise ValueError("days must be non-negative")
        self.days = days

    def _check(
        self, context: RuleContext, cow: Cow, record: VaccinationRecord
    ) -> Alert | None:
        due = record.next_due_date
        if due is None or not context.today <= due <= context.today + timedelta(days=self.days):
            return None
        days_until = (due - context.today).days
        return build_alert(
            context,
            alert_type=self.rule_type,
            severity=AlertSeverity.INFO,
            title=f"Vaccination due: {cow.display_name}",
            message=f"{record.vaccine_name} is due for {cow.display_name} in {days_until} days",
            subject_id=cow.id,
            salient=(due, record.vaccine_name),
            data={
                "cow_id": cow.id,
                "vaccine_name": record.vaccine_name,
                "due_date": due.isoformat(),
                "days_until": days_until,
            },
        )


class VaccinationOverdueRule(_VaccinationRule):
    rule_type = AlertType.VACCINATION_OVERDUE

    def _check(
        self, context: RuleContext, cow: Cow, record: VaccinationRecord
    ) -> Alert | None:
        due = record.next_due_date
        if due is None or due >= context.today:
            return None
        days_overdue = (context.today - due).days
        urgency = "immediate" if days_overdue > IMMEDIATE_URGENCY_DAYS else "high"
        return build_alert(
            context,
            alert_type=self.rule_type,
            severity=AlertSeverity.CRITICAL,
            title=f"Vaccination overdue: {cow.display_name}",
            message=(
                f"{record.vaccine_name} for {cow.display_name} "
                f"is {days_overdue} days overdue"
            ),
            subject_id=cow.id,
            salient=(due, record.vaccine_name),
            data={
                "cow_id": cow.id,
                "vaccine_name": record.vaccine_name,
                "due_date": due.isoformat(),
                "days_overdue": days_overdue,
                "urgency": urgency,
            },
        )


class CalvingDueRule(IAlertRule):
    rule_type = AlertType.CALVING_DUE

    def __init__(self, days: int = 7, status: str = "confirmed") -> None:
        if days < 0:
            raise ValueError("days must be non-negative")
        self.days = days
        self.status = status

    def evaluate(self, context: RuleContext) -> List[Alert]:
        records = context.herd_store.breeding_records(
            context.farm_id,
            status=self.status,
            due_from=context.today,
            due_to=context.today + timedelta(days=self.days),
        )
        if not records:
            return []
        cows = context.herd_store.cows_by_ids(sorted({r.cow_id for r in records}))
        alerts: List[Alert] = []
        for record in records:
            cow = cows.get(record.cow_id)
            due = record.expected_due_date
            if cow is None or due is None:
                continue
            days_until = (due - context.today).days
            alerts.append(
                build_alert(
                    context,
                    alert_type=self.rule_type,
                    severity=AlertSeverity.WARNING,
                    title=f"Calving due: {cow.display_name}",
                    message=f"{cow.display_name} is expected to calve in {days_until} days",
                    subject_id=cow.id,
                    salient=(due, record.id),
                    data={
                        "cow_id": cow.id,
                        "breeding_record_id": record.id,
                        "expected_due_date": due.isoformat(),
                        "days_until": days_until,
                    },
                )
            )
        return alerts
