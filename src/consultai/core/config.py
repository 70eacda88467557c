"""Immutable core configuration, built once and passed to every component."""

from pydantic import BaseModel, Field, model_validator

from consultai.contracts.enums import TaskType, Tier
from consultai.core.catalog import DEFAULT_CATALOG, ModelCatalog
from consultai.core.selector import DEFAULT_TASK_PREFERENCES
from consultai.settings import Settings


class TierLimits(BaseModel):
    """Monthly and daily ceilings (cents) for a subscription tier."""

    monthly_cents: int = Field(gt=0)
    daily_cents: int = Field(gt=0)

    model_config = {"extra": "forbid", "frozen": True}


class AlertThresholds(BaseModel):
    """Percent-used thresholds for budget alerts."""

    monthly_warning_percent: float = Field(default=80.0, gt=0, le=100)
    monthly_critical_percent: float = Field(default=90.0, gt=0, le=100)
    daily_warning_percent: float = Field(default=90.0, gt=0, le=100)

    model_config = {"extra": "forbid", "frozen": True}

    @model_validator(mode="after")
    def check_ordering(self) -> "AlertThresholds":
        if self.monthly_warning_percent > self.monthly_critical_percent:
            raise ValueError(
                f"monthly_warning_percent ({self.monthly_warning_percent}) must not exceed "
                f"monthly_critical_percent ({self.monthly_critical_percent})"
            )
        return self


def _usd_to_cents(usd: float) -> int:
    return int(round(usd * 100))


def tier_limits_from_settings(settings: Settings) -> dict[Tier, TierLimits]:
    """Derive tier ceilings: pro gets 5x and enterprise 20x the base daily limit by default."""
    base_daily = _usd_to_cents(settings.default_daily_limit_usd)
    return {
        Tier.FREE: TierLimits(
            monthly_cents=_usd_to_cents(settings.free_tier_budget_usd),
            daily_cents=base_daily,
        ),
        Tier.PRO: TierLimits(
            monthly_cents=_usd_to_cents(settings.pro_tier_budget_usd),
            daily_cents=base_daily * settings.pro_daily_multiplier,
        ),
        Tier.ENTERPRISE: TierLimits(
            monthly_cents=_usd_to_cents(settings.enterprise_budget_usd),
            daily_cents=base_daily * settings.enterprise_daily_multiplier,
        ),
    }


DEFAULT_TIER_LIMITS: dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(monthly_cents=5_000, daily_cents=1_000),
    Tier.PRO: TierLimits(monthly_cents=50_000, daily_cents=5_000),
    Tier.ENTERPRISE: TierLimits(monthly_cents=200_000, daily_cents=20_000),
}


class CoreConfig(BaseModel):
    """Everything the core needs that would otherwise be a module-level singleton."""

    catalog: ModelCatalog = DEFAULT_CATALOG
    task_preferences: dict[TaskType, str] = Field(
        default_factory=lambda: dict(DEFAULT_TASK_PREFERENCES)
    )
    tier_limits: dict[Tier, TierLimits] = Field(default_factory=lambda: dict(DEFAULT_TIER_LIMITS))
    response_token_buffer: int = Field(default=2000, ge=0)
    near_limit_percent: float = Field(default=80.0, gt=0, le=100)
    alert_thresholds: AlertThresholds = Field(default_factory=AlertThresholds)
    embedding_dims: int = Field(default=1536, gt=0)
    embedding_model: str = "titan-embed-text-v2"

    model_config = {"extra": "forbid", "frozen": True}

    @classmethod
    def from_settings(cls, settings: Settings) -> "CoreConfig":
        """Build the configuration from application settings."""
        return cls(
            catalog=DEFAULT_CATALOG.with_cost_overrides(settings.get_model_cost_overrides()),
            tier_limits=tier_limits_from_settings(settings),
            response_token_buffer=settings.response_token_buffer,
            near_limit_percent=settings.near_limit_percent,
            alert_thresholds=AlertThresholds(monthly_warning_percent=settings.near_limit_percent),
            embedding_dims=settings.embedding_dims,
            embedding_model=settings.embedding_model,
        )

    def limits_for_tier(self, tier: Tier) -> TierLimits:
        """Ceilings for ``tier``; unknown tiers fall back to free."""
        return self.tier_limits.get(tier, self.tier_limits[Tier.FREE])
