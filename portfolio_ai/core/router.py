"""
Model routing and cost estimation.

Selects a model tier for a classified query and estimates what the call costs.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from .intent import Intent
from .pricing import CHEAPEST_TIER, ModelTier, calculate_cost
from .token_counter import estimate_tokens
from portfolio_ai.config.loader import RoutingConfig

# Queries longer than this are treated as complex
COMPLEX_QUERY_CHARS = 500

# Default tier per intent
INTENT_TIER_ROUTING: Dict[Intent, ModelTier] = {
    Intent.SIMPLE: ModelTier.FAST,
    Intent.ANALYTICAL: ModelTier.STANDARD,
    Intent.TAX: ModelTier.STANDARD,
    Intent.RESEARCH: ModelTier.STANDARD,
    Intent.COMPARISON: ModelTier.FAST,
    Intent.PROJECTION: ModelTier.STANDARD,
    Intent.RISK: ModelTier.STANDARD,
    Intent.COMPLIANCE: ModelTier.STANDARD,
    Intent.UNSUPPORTED: ModelTier.FAST,  # Quick rejection
}


@dataclass(frozen=True)
class QueryComplexity:
    """Complexity signals for a query, used for observability."""
    token_estimate: int
    question_count: int
    has_numbers: bool
    has_tickers: bool
    complexity: str  # "simple", "moderate", "complex"


class ModelRouter:
    """Selects model tiers and estimates token cost."""

    def __init__(self, config: Optional[RoutingConfig] = None):
        self.config = config or RoutingConfig()

    def select_model(self, intent: Intent, query: str) -> ModelTier:
        """Choose the model tier for a query.

        Long or multi-question queries routed to the cheapest tier are
        upgraded to the configured complex tier.

        Args:
            intent: Classified intent
            query: Raw query text

        Returns:
            Selected ModelTier
        """
        is_complex = len(query) > COMPLEX_QUERY_CHARS or query.count("?") > 1

        tier = INTENT_TIER_ROUTING.get(intent, self.config.default_tier)

        if is_complex and tier == CHEAPEST_TIER:
            tier = self.config.complex_tier

        return tier

    def model_for(self, tier: ModelTier) -> str:
        """Model identifier sent to the provider for a tier."""
        return self.config.model_for(tier)

    def estimate_tokens(self, text: str) -> int:
        return estimate_tokens(text)

    def estimate_cost(self, tier: ModelTier, input_tokens: int, output_tokens: int) -> float:
        """Estimate the USD cost of a call on a tier."""
        return calculate_cost(tier, input_tokens, output_tokens)

    def analyze_complexity(self, query: str) -> QueryComplexity:
        """Report complexity signals for a query.

        Args:
            query: Raw query text

        Returns:
            QueryComplexity with a coarse simple/moderate/complex bucket
        """
        token_estimate = self.estimate_tokens(query)
        question_count = query.count("?")
        has_numbers = any(c.isdigit() for c in query)

        # Potential tickers: all-uppercase words of 2-5 characters
        has_tickers = any(
            2 <= len(word) <= 5 and word.isupper()
            for word in query.split()
        )

        if token_estimate > 200 or question_count > 2:
            complexity = "complex"
        elif token_estimate > 50 or question_count > 1 or has_numbers:
            complexity = "moderate"
        else:
            complexity = "simple"

        return QueryComplexity(
            token_estimate=token_estimate,
            question_count=question_count,
            has_numbers=has_numbers,
            has_tickers=has_tickers,
            complexity=complexity,
        )
