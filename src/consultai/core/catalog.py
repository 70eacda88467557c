"""Model catalog, token estimation and cost computation."""

import math
from collections.abc import Iterator

from pydantic import BaseModel, Field

TOKENS_PER_COST_UNIT = 1_000_000
CHARS_PER_TOKEN = 4


class SamplingParams(BaseModel):
    """Default sampling parameters sent with every invocation of a model."""

    temperature: float = Field(default=0.7, ge=0, le=2)
    top_p: float = Field(default=0.9, ge=0, le=1)
    max_tokens: int = Field(default=4096, gt=0)

    model_config = {"extra": "forbid", "frozen": True}


class ModelProfile(BaseModel):
    """Cost and context profile of one hosted model. Immutable."""

    model_id: str
    provider_model_id: str
    cost_per_1m_tokens_cents: int = Field(ge=0)
    max_context_length: int = Field(gt=0)
    max_output_tokens: int = Field(gt=0)
    capabilities: tuple[str, ...] = ()
    sampling: SamplingParams = Field(default_factory=SamplingParams)

    model_config = {"extra": "forbid", "frozen": True}


def estimate_tokens(text: str) -> int:
    """Cheap token estimate: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def cost_for_tokens(profile: ModelProfile, tokens: int) -> int:
    """Cost in cents for ``tokens`` on ``profile``, always rounded up.

    Integer arithmetic keeps the ceiling exact: one token at 300c/1M costs 1c.
    """
    if tokens < 0:
        raise ValueError("tokens must be >= 0")
    return -(-tokens * profile.cost_per_1m_tokens_cents // TOKENS_PER_COST_UNIT)


class ModelCatalog(BaseModel):
    """Ordered, immutable registry of model profiles."""

    profiles: tuple[ModelProfile, ...]

    model_config = {"extra": "forbid", "frozen": True}

    def __iter__(self) -> Iterator[ModelProfile]:  # type: ignore[override]
        return iter(self.profiles)

    def __len__(self) -> int:
        return len(self.profiles)

    def __contains__(self, model_id: object) -> bool:
        return any(p.model_id == model_id for p in self.profiles)

    def get(self, model_id: str) -> ModelProfile:
        """Look up a profile by id.

        Raises:
            KeyError: If the model is not in the catalog
        """
        for profile in self.profiles:
            if profile.model_id == model_id:
                return profile
        raise KeyError(f"Unknown model: {model_id}")

    def index_of(self, model_id: str) -> int:
        """Position of a model in catalog order."""
        for i, profile in enumerate(self.profiles):
            if profile.model_id == model_id:
                return i
        raise KeyError(f"Unknown model: {model_id}")

    def most_expensive(self) -> ModelProfile:
        """Profile with the highest rate (first in catalog order on ties)."""
        return max(self.profiles, key=lambda p: p.cost_per_1m_tokens_cents)

    def cost_for(self, model_id: str, tokens: int) -> int:
        """Cost in cents; unknown models are charged at the highest catalog rate."""
        try:
            profile = self.get(model_id)
        except KeyError:
            profile = self.most_expensive()
        return cost_for_tokens(profile, tokens)

    def with_cost_overrides(self, overrides: dict[str, int]) -> "ModelCatalog":
        """Return a copy whose listed models use the overridden rates."""
        if not overrides:
            return self
        return ModelCatalog(
            profiles=tuple(
                p.model_copy(update={"cost_per_1m_tokens_cents": overrides[p.model_id]})
                if p.model_id in overrides
                else p
                for p in self.profiles
            )
        )


_ALL_ROUND = ("reasoning", "analysis", "code", "writing")

DEFAULT_MODEL_PROFILES: tuple[ModelProfile, ...] = (
    ModelProfile(
        model_id="claude-3-7-sonnet",
        provider_model_id="anthropic.claude-3-5-sonnet-20241022-v2:0",
        cost_per_1m_tokens_cents=300,
        max_context_length=200_000,
        max_output_tokens=8192,
        capabilities=_ALL_ROUND,
        sampling=SamplingParams(max_tokens=8192),
    ),
    ModelProfile(
        model_id="claude-3-5-haiku",
        provider_model_id="anthropic.claude-3-5-haiku-20241022-v1:0",
        cost_per_1m_tokens_cents=100,
        max_context_length=200_000,
        max_output_tokens=4096,
        capabilities=_ALL_ROUND,
    ),
    ModelProfile(
        model_id="nova-pro",
        provider_model_id="eu.amazon.nova-pro-v1:0",
        cost_per_1m_tokens_cents=80,
        max_context_length=300_000,
        max_output_tokens=8192,
        capabilities=_ALL_ROUND,
        sampling=SamplingParams(max_tokens=8192),
    ),
    ModelProfile(
        model_id="nova-lite",
        provider_model_id="eu.amazon.nova-lite-v1:0",
        cost_per_1m_tokens_cents=6,
        max_context_length=100_000,
        max_output_tokens=4096,
        capabilities=("reasoning", "analysis", "writing"),
    ),
    ModelProfile(
        model_id="mistral-large",
        provider_model_id="mistral.mistral-large-2407-v1:0",
        cost_per_1m_tokens_cents=200,
        max_context_length=128_000,
        max_output_tokens=4096,
        capabilities=_ALL_ROUND,
    ),
    ModelProfile(
        model_id="llama-3-8b",
        provider_model_id="meta.llama-3-8b-instruct-v1:0",
        cost_per_1m_tokens_cents=10,
        max_context_length=8000,
        max_output_tokens=2048,
        capabilities=("reasoning", "writing"),
        sampling=SamplingParams(max_tokens=2048),
    ),
    ModelProfile(
        model_id="llama-3-70b",
        provider_model_id="meta.llama-3-70b-instruct-v1:0",
        cost_per_1m_tokens_cents=65,
        max_context_length=8000,
        max_output_tokens=4096,
        capabilities=_ALL_ROUND,
    ),
)

DEFAULT_CATALOG = ModelCatalog(profiles=DEFAULT_MODEL_PROFILES)
