"""Near-limit budget alerts, emitted off the settlement path."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from pydantic import BaseModel

from consultai.contracts.enums import AlertLevel, AlertScope
from consultai.contracts.models import UsageStats
from consultai.core.config import AlertThresholds

ALERT_LOGGER_NAME = "consultai.alerts"

logger = logging.getLogger(__name__)


class BudgetAlert(BaseModel):
    """A tenant crossed an alert threshold."""

    tenant_id: str
    level: AlertLevel
    scope: AlertScope
    percent_used: float

    model_config = {"extra": "forbid", "frozen": True}


AlertObserver = Callable[[BudgetAlert], Awaitable[None]]


def evaluate_alerts(
    tenant_id: str,
    stats: UsageStats,
    thresholds: AlertThresholds | None = None,
) -> list[BudgetAlert]:
    """Alerts due for ``stats``: at most one monthly and one daily."""
    thresholds = thresholds or AlertThresholds()
    alerts: list[BudgetAlert] = []

    if stats.percent_used >= thresholds.monthly_critical_percent:
        alerts.append(
            BudgetAlert(
                tenant_id=tenant_id,
                level=AlertLevel.CRITICAL,
                scope=AlertScope.MONTHLY,
                percent_used=stats.percent_used,
            )
        )
    elif stats.percent_used >= thresholds.monthly_warning_percent:
        alerts.append(
            BudgetAlert(
                tenant_id=tenant_id,
                level=AlertLevel.WARNING,
                scope=AlertScope.MONTHLY,
                percent_used=stats.percent_used,
            )
        )

    if stats.daily_percent_used >= thresholds.daily_warning_percent:
        alerts.append(
            BudgetAlert(
                tenant_id=tenant_id,
                level=AlertLevel.WARNING,
                scope=AlertScope.DAILY,
                percent_used=stats.daily_percent_used,
            )
        )

    return alerts


class LoggingAlertObserver:
    """Observer that writes alerts to the consultai.alerts logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(ALERT_LOGGER_NAME)

    async def __call__(self, alert: BudgetAlert) -> None:
        self._logger.warning(
            f"Tenant {alert.tenant_id} at {alert.percent_used:.1f}% of "
            f"{alert.scope.value} budget ({alert.level.value})"
        )


class AlertEmitter:
    """Fan alerts out to observers on background tasks.

    Nothing scheduled here can block or fail the caller: work runs on its own
    asyncio task and exceptions are logged.
    """

    def __init__(self, observers: list[AlertObserver] | None = None) -> None:
        self._observers: list[AlertObserver] = list(observers or [])
        self._pending: set[asyncio.Task[Any]] = set()

    def subscribe(self, observer: AlertObserver) -> None:
        """Register an observer."""
        self._observers.append(observer)

    @property
    def pending(self) -> int:
        """Number of background tasks not yet finished."""
        return len(self._pending)

    def schedule(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        """Run ``coro`` in the background, logging any failure."""
        task = asyncio.create_task(self._guard(coro))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def emit(self, alerts: list[BudgetAlert]) -> None:
        """Deliver alerts to every observer; observer failures are logged."""
        for alert in alerts:
            for observer in self._observers:
                try:
                    await observer(alert)
                except Exception:
                    logger.exception(f"Alert observer failed for tenant {alert.tenant_id}")

    async def drain(self) -> None:
        """Wait for all scheduled work to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, None]) -> None:
        try:
            await coro
        except Exception:
            logger.exception("Background alert task failed")
