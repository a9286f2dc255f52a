"""Token usage accounting and Bedrock cost estimates.

Supports multiple models with different pricing tiers.
"""

from __future__ import annotations

from dataclasses import dataclass

# ── Model Pricing (USD per token) ────────────────────────────────────────────


@dataclass(frozen=True)
class ModelPricing:
    label: str
    input_per_token: float
    output_per_token: float


MODELS: dict[str, ModelPricing] = {
    # Opus 4.6: $5/M input, $25/M output
    "eu.anthropic.claude-opus-4-6-v1": ModelPricing(
        "Opus 4.6", 5.00 / 1_000_000, 25.00 / 1_000_000
    ),
    "anthropic.claude-opus-4-6-v1": ModelPricing(
        "Opus 4.6", 5.00 / 1_000_000, 25.00 / 1_000_000
    ),
    # Sonnet 4.6: $3/M input, $15/M output
    "eu.anthropic.claude-sonnet-4-6": ModelPricing(
        "Sonnet 4.6", 3.00 / 1_000_000, 15.00 / 1_000_000
    ),
    "anthropic.claude-sonnet-4-6": ModelPricing(
        "Sonnet 4.6", 3.00 / 1_000_000, 15.00 / 1_000_000
    ),
    # Haiku 4.5: $1/M input, $5/M output
    "eu.anthropic.claude-haiku-4-5-20251001-v1:0": ModelPricing(
        "Haiku 4.5", 1.00 / 1_000_000, 5.00 / 1_000_000
    ),
    "anthropic.claude-haiku-4-5-20251001-v1:0": ModelPricing(
        "Haiku 4.5", 1.00 / 1_000_000, 5.00 / 1_000_000
    ),
}

_FALLBACK = ModelPricing("unknown", 3.00 / 1_000_000, 15.00 / 1_000_000)


def get_pricing(model_id: str) -> ModelPricing:
    return MODELS.get(model_id, _FALLBACK)


# ── Usage ────────────────────────────────────────────────────────────────────


@dataclass
class Usage:
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_latency_ms: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def avg_latency_s(self) -> float:
        return (self.total_latency_ms / self.calls / 1000) if self.calls else 0

    def add(self, inp: int, out: int, latency: int) -> None:
        self.calls += 1
        self.input_tokens += inp
        self.output_tokens += out
        self.total_latency_ms += latency

    def to_dict(self) -> dict:
        return {
            "calls": self.calls,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "avg_latency_s": round(self.avg_latency_s, 3),
        }


def estimate_cost(model_id: str, usage: Usage) -> float:
    """Estimated USD cost of the calls recorded in ``usage``."""
    pricing = get_pricing(model_id)
    return (
        usage.input_tokens * pricing.input_per_token
        + usage.output_tokens * pricing.output_per_token
    )
