"""Inference provider interface for text generation."""

from typing import Any, Protocol

from pydantic import BaseModel, Field

from consultai.core.catalog import SamplingParams


class InferenceResult(BaseModel):
    """Text returned by a provider, with token counts when the provider reports them."""

    text: str
    input_tokens: int | None = Field(default=None, ge=0)
    output_tokens: int | None = Field(default=None, ge=0)
    raw_metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}

    @property
    def total_tokens(self) -> int | None:
        """Provider-reported total, or None if either count is missing."""
        if self.input_tokens is None or self.output_tokens is None:
            return None
        return self.input_tokens + self.output_tokens


class InferenceProvider(Protocol):
    """Protocol for invoking a hosted model."""

    async def invoke(
        self,
        model_id: str,
        prompt: str,
        sampling: SamplingParams,
    ) -> InferenceResult:
        """Run a prompt against a model.

        Args:
            model_id: Provider-side model identifier
            prompt: Full prompt text
            sampling: Sampling parameters for the call

        Returns:
            InferenceResult with generated text and provider metadata

        Network, auth and rate-limit failures are raised as exceptions; the
        orchestrator translates them.
        """
        ...


class MockInferenceProvider:
    """Mock implementation for testing without external API calls.

    Echoes a canned response per model (or a default) and records every call.
    Set ``fail_with`` to make every call raise.
    """

    def __init__(
        self,
        default_response: str = "Mock response",
        report_usage: bool = True,
        fail_with: Exception | None = None,
    ) -> None:
        self.default_response = default_response
        self.report_usage = report_usage
        self.fail_with = fail_with
        self.calls: list[dict[str, Any]] = []
        self._responses: dict[str, str] = {}

    def set_response_for_model(self, model_id: str, text: str) -> None:
        """Configure the text returned for a specific provider model id."""
        self._responses[model_id] = text

    def get_call_count(self) -> int:
        """Get total number of invoke calls."""
        return len(self.calls)

    async def invoke(
        self,
        model_id: str,
        prompt: str,
        sampling: SamplingParams,
    ) -> InferenceResult:
        self.calls.append({"model_id": model_id, "prompt": prompt, "sampling": sampling})
        if self.fail_with is not None:
            raise self.fail_with

        text = self._responses.get(model_id, self.default_response)
        if not self.report_usage:
            return InferenceResult(text=text, raw_metadata={"provider": "mock"})
        return InferenceResult(
            text=text,
            input_tokens=max(1, len(prompt) // 4),
            output_tokens=max(1, len(text) // 4),
            raw_metadata={"provider": "mock", "stop_reason": "end_turn"},
        )
