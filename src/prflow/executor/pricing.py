"""Cost accounting for chat-completion calls.

Cost comes from the provider's ``x-openrouter-cost`` response header when
present, otherwise from a per-token price table.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

COST_HEADER = "x-openrouter-cost"


@dataclass(frozen=True)
class ModelPricing:
    """USD per token."""

    input_per_token: float
    output_per_token: float


DEFAULT_PRICING: Dict[str, ModelPricing] = {
    "anthropic/claude-opus-4-6": ModelPricing(15.0 / 1_000_000, 75.0 / 1_000_000),
    "anthropic/claude-sonnet-4-6": ModelPricing(3.0 / 1_000_000, 15.0 / 1_000_000),
    "deepseek/deepseek-r1": ModelPricing(0.50 / 1_000_000, 2.00 / 1_000_000),
    "z-ai/glm-5": ModelPricing(0.30 / 1_000_000, 2.55 / 1_000_000),
    "openai/gpt-5.2-codex": ModelPricing(1.75 / 1_000_000, 14.0 / 1_000_000),
}


def cost_from_header(value: Optional[str]) -> Optional[float]:
    """Parse the cost header; None when absent or unparseable."""
    if value is None or not value.strip():
        return None
    try:
        return float(value.strip())
    except ValueError:
        return None


def header_value(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def cost_from_usage(
    model: str,
    tokens_in: int,
    tokens_out: int,
    pricing: Optional[Mapping[str, ModelPricing]] = None,
) -> Optional[float]:
    """Price token usage; None when the model is not in the table."""
    table = pricing if pricing is not None else DEFAULT_PRICING
    model_pricing = table.get(model)
    if model_pricing is None:
        return None
    return (
        tokens_in * model_pricing.input_per_token
        + tokens_out * model_pricing.output_per_token
    )
