"""
Pricing calculations and rate management.

Handles cost estimates for each model tier.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict


class ModelTier(Enum):
    """Backend model configurations, ordered from cheapest to most capable."""
    FAST = "fast"
    STANDARD = "standard"
    DEEP = "deep"


@dataclass(frozen=True)
class TierPricing:
    """Per-token pricing for a model tier."""
    input_cost_per_million: Decimal  # USD per 1M input tokens
    output_cost_per_million: Decimal  # USD per 1M output tokens


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported model tiers."""
    prices: Dict[ModelTier, TierPricing]

    def get_pricing(self, tier: ModelTier) -> TierPricing:
        """Get pricing for a specific tier.

        Args:
            tier: Model tier

        Returns:
            TierPricing for the tier

        Raises:
            ValueError: If the tier has no pricing
        """
        if tier not in self.prices:
            raise ValueError(f"Unsupported model tier: {tier}")
        return self.prices[tier]

    def cheapest_tier(self) -> ModelTier:
        """Tier with the lowest input rate."""
        return min(self.prices, key=lambda t: self.prices[t].input_cost_per_million)


# Fixed pricing table - no dynamic fetching
PRICING_TABLE = PricingTable({
    ModelTier.FAST: TierPricing(
        input_cost_per_million=Decimal("0.25"),
        output_cost_per_million=Decimal("1.25")
    ),
    ModelTier.STANDARD: TierPricing(
        input_cost_per_million=Decimal("3.00"),
        output_cost_per_million=Decimal("15.00")
    ),
    ModelTier.DEEP: TierPricing(
        input_cost_per_million=Decimal("15.00"),
        output_cost_per_million=Decimal("75.00")
    )
})

CHEAPEST_TIER = PRICING_TABLE.cheapest_tier()

_ONE_MILLION = Decimal("1000000")


def calculate_cost(tier: ModelTier, input_tokens: int, output_tokens: int) -> float:
    """Calculate cost in USD for a model call.

    No rounding is applied: per-query costs are fractions of a cent.

    Args:
        tier: Model tier used
        input_tokens: Prompt tokens
        output_tokens: Completion tokens

    Returns:
        Estimated cost in USD

    Raises:
        ValueError: If the tier is not supported or token counts are negative
    """
    if input_tokens < 0 or output_tokens < 0:
        raise ValueError("token counts cannot be negative")

    pricing = PRICING_TABLE.get_pricing(tier)

    input_cost = (Decimal(input_tokens) / _ONE_MILLION) * pricing.input_cost_per_million
    output_cost = (Decimal(output_tokens) / _ONE_MILLION) * pricing.output_cost_per_million

    return float(input_cost + output_cost)
