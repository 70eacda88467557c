"""Usage statistics and budget limit API routes."""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from consultai.api.deps import get_container, raise_http_error
from consultai.contracts.models import UsageStats
from consultai.core.budget import format_cents
from consultai.core.errors import TenantNotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/usage", tags=["usage"])


class WindowUsage(BaseModel):
    """Spend in one budget window."""

    used: int
    limit: int
    percent_used: float

    model_config = {"extra": "forbid"}


class UsageStatsResponse(BaseModel):
    """Usage statistics for a tenant."""

    tenant_id: str
    monthly: WindowUsage
    daily: WindowUsage
    is_near_limit: bool
    formatted_usage: dict[str, str]

    model_config = {"extra": "forbid"}

    @classmethod
    def from_stats(cls, tenant_id: str, stats: UsageStats) -> "UsageStatsResponse":
        return cls(
            tenant_id=tenant_id,
            monthly=WindowUsage(
                used=stats.monthly_used,
                limit=stats.monthly_limit,
                percent_used=stats.percent_used,
            ),
            daily=WindowUsage(
                used=stats.daily_used,
                limit=stats.daily_limit,
                percent_used=stats.daily_percent_used,
            ),
            is_near_limit=stats.is_near_limit,
            formatted_usage={
                "monthly": f"{format_cents(stats.monthly_used)} / {format_cents(stats.monthly_limit)}",
                "daily": f"{format_cents(stats.daily_used)} / {format_cents(stats.daily_limit)}",
            },
        )


class UpdateLimitsRequest(BaseModel):
    """New budget limits in USD. Omitted fields are unchanged."""

    monthly_budget_usd: float | None = Field(default=None, ge=10, le=10000)
    daily_limit_usd: float | None = Field(default=None, ge=1, le=1000)

    model_config = {"extra": "forbid"}


class UpdateLimitsResponse(BaseModel):
    """Result of a limit update."""

    success: bool
    usage: UsageStatsResponse

    model_config = {"extra": "forbid"}


def _usd_to_cents(usd: float | None) -> int | None:
    return None if usd is None else int(round(usd * 100))


@router.get("/{tenant_id}/stats", response_model=UsageStatsResponse)
async def get_stats(tenant_id: str) -> UsageStatsResponse:
    """Current usage against monthly and daily limits."""
    container = get_container()
    try:
        stats = await container.limiter.get_usage_stats(tenant_id)
    except TenantNotFound as e:
        raise_http_error(e)
        raise
    return UsageStatsResponse.from_stats(tenant_id, stats)


@router.put("/{tenant_id}/limits", response_model=UpdateLimitsResponse)
async def update_limits(tenant_id: str, request: UpdateLimitsRequest) -> UpdateLimitsResponse:
    """Change a tenant's monthly budget and/or daily limit."""
    if request.monthly_budget_usd is None and request.daily_limit_usd is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide monthly_budget_usd and/or daily_limit_usd",
        )

    container = get_container()
    try:
        stats = await container.limiter.update_budget_limits(
            tenant_id,
            monthly_budget_cents=_usd_to_cents(request.monthly_budget_usd),
            daily_limit_cents=_usd_to_cents(request.daily_limit_usd),
        )
    except TenantNotFound as e:
        raise_http_error(e)
        raise
    return UpdateLimitsResponse(success=True, usage=UsageStatsResponse.from_stats(tenant_id, stats))
