"""Shared contract and helpers for alert rules."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Protocol

from dairy_analytics.domain.interfaces import IHerdStore, IProductionStore
from dairy_analytics.domain.models import Alert, AlertSeverity, AlertType


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule needs for one evaluation pass."""

    farm_id: int
    now: datetime
    store: IProductionStore
    herd_store: IHerdStore

    @property
    def today(self) -> date:
        return self.now.date()


class IAlertRule(Protocol):
    """A single alert condition evaluated independently of the others."""

    rule_type: AlertType

    def evaluate(self, context: RuleContext) -> List[Alert]:
        """Return every alert the condition produces for the farm."""


def alert_id(alert_type: AlertType, subject_id: Optional[int], *salient: Any) -> str:
    """Stable identifier: the same condition on the same subject and date repeats it."""

    parts = [alert_type.value, "farm" if subject_id is None else str(subject_id)]
    parts.extend(_salient_text(value) for value in salient)
    digest = hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()[:16]
    return f"{alert_type.value}-{digest}"


def build_alert(
    context: RuleContext,
    *,
    alert_type: AlertType,
    severity: AlertSeverity,
    title: str,
    message: str,
    subject_id: Optional[int],
    salient: tuple = (),
    data: Dict[str, Any] | None = None,
) -> Alert:
    return Alert(
        id=alert_id(alert_type, subject_id, *salient),
        type=alert_type,
        severity=severity,
        title=title,
        message=message,
        subject_id=subject_id,
        created_at=context.now,
        data=data or {},
    )


def _salient_text(value: Any) -> str:
    if value is None:
        return "none"
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
