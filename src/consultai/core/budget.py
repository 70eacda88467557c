"""Per-tenant budget ledger, lazy window resets and the admission rule."""

from datetime import datetime

from pydantic import BaseModel, Field

from consultai.contracts.enums import Tier
from consultai.contracts.models import BudgetCheck, UsageStats
from consultai.contracts.reasons import ReasonCode
from consultai.core.clock import as_utc
from consultai.core.errors import BudgetExceeded


class BudgetLedger(BaseModel):
    """Spend counters and limits for one tenant.

    ``last_reset_at`` anchors the monthly window; ``updated_at`` is the last
    time the ledger changed and anchors the daily window.
    """

    tenant_id: str
    tier: Tier = Tier.FREE
    monthly_used_cents: int = Field(default=0, ge=0)
    monthly_limit_cents: int = Field(gt=0)
    daily_used_cents: int = Field(default=0, ge=0)
    daily_limit_cents: int = Field(gt=0)
    last_reset_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "forbid"}


def needs_monthly_reset(ledger: BudgetLedger, now: datetime) -> bool:
    """True when the calendar month (UTC) of ``now`` differs from the last reset."""
    if ledger.last_reset_at is None:
        return True
    last = as_utc(ledger.last_reset_at)
    now = as_utc(now)
    return (now.year, now.month) != (last.year, last.month)


def needs_daily_reset(ledger: BudgetLedger, now: datetime) -> bool:
    """True when the UTC date of ``now`` differs from the last update."""
    if ledger.updated_at is None:
        return True
    return as_utc(now).date() != as_utc(ledger.updated_at).date()


def apply_window_resets(ledger: BudgetLedger, now: datetime) -> BudgetLedger:
    """Return the ledger with any due resets applied.

    Both predicates are evaluated against the incoming ledger, so a month
    rollover also clears the daily counter. Applying twice is a no-op.
    """
    update: dict[str, object] = {}
    if needs_monthly_reset(ledger, now):
        update["monthly_used_cents"] = 0
        update["last_reset_at"] = now
    if needs_daily_reset(ledger, now):
        update["daily_used_cents"] = 0
        update["updated_at"] = now
    if not update:
        return ledger
    return ledger.model_copy(update=update)


def _percent(used: int, limit: int) -> float:
    if limit <= 0:
        return 100.0
    return used / limit * 100


def usage_stats(ledger: BudgetLedger, near_limit_percent: float = 80.0) -> UsageStats:
    """Snapshot of spend against limits."""
    percent_used = _percent(ledger.monthly_used_cents, ledger.monthly_limit_cents)
    return UsageStats(
        monthly_used=ledger.monthly_used_cents,
        monthly_limit=ledger.monthly_limit_cents,
        daily_used=ledger.daily_used_cents,
        daily_limit=ledger.daily_limit_cents,
        percent_used=percent_used,
        daily_percent_used=_percent(ledger.daily_used_cents, ledger.daily_limit_cents),
        is_near_limit=percent_used >= near_limit_percent,
    )


def format_cents(cents: int) -> str:
    """Render cents as a dollar amount, e.g. 9900 -> "$99.00"."""
    return f"${cents / 100:.2f}"


def evaluate_admission(
    ledger: BudgetLedger,
    estimated_cost_cents: int,
    near_limit_percent: float = 80.0,
) -> BudgetCheck:
    """Decide whether a call of ``estimated_cost_cents`` fits the ledger.

    The monthly limit is checked before the daily limit. Spending exactly up
    to a limit is allowed. The ledger is not modified.
    """
    if estimated_cost_cents < 0:
        raise ValueError("estimated_cost_cents must be >= 0")

    stats = usage_stats(ledger, near_limit_percent)

    if stats.monthly_used + estimated_cost_cents > stats.monthly_limit:
        return BudgetCheck(
            allowed=False,
            reason=(
                f"Monthly budget exceeded. Used: {format_cents(stats.monthly_used)}, "
                f"Limit: {format_cents(stats.monthly_limit)}"
            ),
            reason_code=ReasonCode.MONTHLY_BUDGET_EXCEEDED,
            estimated_cost_cents=estimated_cost_cents,
            stats=stats,
        )

    if stats.daily_used + estimated_cost_cents > stats.daily_limit:
        return BudgetCheck(
            allowed=False,
            reason=(
                f"Daily limit exceeded. Used: {format_cents(stats.daily_used)}, "
                f"Limit: {format_cents(stats.daily_limit)}"
            ),
            reason_code=ReasonCode.DAILY_LIMIT_EXCEEDED,
            estimated_cost_cents=estimated_cost_cents,
            stats=stats,
        )

    return BudgetCheck(allowed=True, estimated_cost_cents=estimated_cost_cents, stats=stats)


def budget_guard(check: BudgetCheck) -> None:
    """Raise BudgetExceeded for a rejected admission check."""
    if not check.allowed:
        raise BudgetExceeded(
            check.reason or "budget exceeded",
            reason_code=check.reason_code,
            stats=check.stats,
        )
