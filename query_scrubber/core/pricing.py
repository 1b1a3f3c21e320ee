"""
Pricing calculations for metering.

Estimates what a completion cost so the usage ledger can be audited
in money as well as tokens.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_UP
from typing import Dict

from .token_counter import TokenUsage

COST_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model, in USD."""
    prompt_cost_per_1k: Decimal
    completion_cost_per_1k: Decimal


# Fixed table; every model in the registry must have an entry.
PRICING_TABLE: Dict[str, ModelPricing] = {
    "gpt-3.5-turbo": ModelPricing(
        prompt_cost_per_1k=Decimal("0.0015"),
        completion_cost_per_1k=Decimal("0.002")
    ),
    "gpt-4": ModelPricing(
        prompt_cost_per_1k=Decimal("0.03"),
        completion_cost_per_1k=Decimal("0.06")
    ),
}


def calculate_cost(model: str, usage: TokenUsage) -> float:
    """Calculate the cost of a completion, rounded up to a millionth of a dollar.

    Raises:
        ValueError: If model is not priced
    """
    if model not in PRICING_TABLE:
        raise ValueError(f"Unsupported model: {model}")
    pricing = PRICING_TABLE[model]

    prompt_cost = (Decimal(usage.prompt_tokens) / Decimal("1000")) * pricing.prompt_cost_per_1k
    completion_cost = (Decimal(usage.completion_tokens) / Decimal("1000")) * pricing.completion_cost_per_1k

    total_cost = prompt_cost + completion_cost
    return float(total_cost.quantize(COST_QUANTUM, rounding=ROUND_UP))
