"""Alert engine evaluating independent rules against a farm's current state."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from dairy_analytics.core.config import AnalyticsConfig
from dairy_analytics.domain.exceptions import StoreTimeoutError
from dairy_analytics.domain.interfaces import IAlertEngine, IHerdStore, IProductionStore
from dairy_analytics.domain.models import Alert, AlertSeverity
from dairy_analytics.utils.timeouts import call_with_timeout

from .rules.base import IAlertRule, RuleContext
from .rules.herd import (
    CalvingDueRule,
    HealthOverdueRule,
    VaccinationDueRule,
    VaccinationOverdueRule,
)
from .rules.production import (
    HighProductionRule,
    InactiveCowRule,
    LowProductionRule,
    MissedMilkingRule,
)


def default_rules(config: AnalyticsConfig) -> List[IAlertRule]:
    return [
        LowProductionRule(config.low_production_ratio),
        HighProductionRule(config.high_production_ratio),
        MissedMilkingRule(config.missed_milking_hours),
        HealthOverdueRule(config.health_checkup_overdue_days),
        VaccinationDueRule(config.vaccination_due_days),
        VaccinationOverdueRule(),
        CalvingDueRule(config.calving_due_days),
        InactiveCowRule(config.inactive_days),
    ]


class AlertEngine(IAlertEngine):
    """Runs every rule in isolation; a failing or slow rule yields no alerts."""

    def __init__(
        self,
        store: IProductionStore,
        herd_store: IHerdStore,
        *,
        config: AnalyticsConfig | None = None,
        rules: Optional[Sequence[IAlertRule]] = None,
        clock: Callable[[], datetime] | None = None,
        timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or AnalyticsConfig()
        self._store = store
        self._herd_store = herd_store
        self._rules = list(rules) if rules is not None else default_rules(self._config)
        self._clock = clock or datetime.now
        self._timeout = timeout if timeout is not None else self._config.rule_timeout_seconds
        self._logger = logger or logging.getLogger(__name__)

    @property
    def rules(self) -> List[IAlertRule]:
        return list(self._rules)

    def evaluate(self, farm_id: int, *, timeout: Optional[float] = None) -> List[Alert]:
        context = RuleContext(
            farm_id=farm_id,
            now=self._clock(),
            store=self._store,
            herd_store=self._herd_store,
        )
        rule_timeout = timeout if timeout is not None else self._timeout
        alerts: List[Alert] = []
        for rule in self._rules:
            alerts.extend(self._run_rule(rule, context, rule_timeout))
        self._logger.info(
            "alerts_evaluated",
            extra={"farm_id": farm_id, "alert_count": len(alerts)},
        )
        return alerts

    def __call__(self, farm_id: int, *, timeout: Optional[float] = None) -> List[Alert]:
        return self.evaluate(farm_id, timeout=timeout)

    def critical_alerts(self, farm_id: int) -> List[Alert]:
        return [
            alert
            for alert in self.evaluate(farm_id)
            if alert.severity is AlertSeverity.CRITICAL
        ]

    def grouped_alerts(self, farm_id: int) -> Dict[str, List[Alert]]:
        grouped: Dict[str, List[Alert]] = defaultdict(list)
        for alert in self.evaluate(farm_id):
            grouped[alert.type.value].append(alert)
        return dict(grouped)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run_rule(
        self, rule: IAlertRule, context: RuleContext, timeout: Optional[float]
    ) -> List[Alert]:
        rule_name = rule.rule_type.value
        try:
            return list(call_with_timeout(rule.evaluate, timeout, context))
        except StoreTimeoutError:
            self._logger.warning(
                "alert_rule_timeout",
                extra={"rule": rule_name, "farm_id": context.farm_id, "timeout": timeout},
            )
        except Exception:
            self._logger.exception(
                "alert_rule_failed",
                extra={"rule": rule_name, "farm_id": context.farm_id},
            )
        return []
