"""
Intent classification for portfolio questions.

Maps free text onto a closed set of intents with ordered substring rules.
The compliance blocklist is evaluated before any intent rule.
"""

from enum import Enum
from typing import Tuple


class Intent(Enum):
    """Purpose of a user query."""
    SIMPLE = "simple"            # FAQ, definitions
    ANALYTICAL = "analytical"    # Portfolio analysis
    TAX = "tax"                  # Tax optimization
    RESEARCH = "research"        # Deep research
    COMPARISON = "comparison"    # Compare holdings
    PROJECTION = "projection"    # Future scenarios
    RISK = "risk"                # Risk assessment
    COMPLIANCE = "compliance"    # Regulatory questions
    UNSUPPORTED = "unsupported"  # Blocked queries


# Phrases that ask for advice we must not give
BLOCKED_PATTERNS: Tuple[str, ...] = (
    # Specific recommendations
    "should i buy", "should i sell", "buy or sell",
    "is it a good time to", "when should i",
    "recommend me", "what should i invest in",
    "pick stocks for me", "best stocks to buy",

    # Guaranteed returns
    "guaranteed", "risk-free return", "can't lose",
    "will definitely", "100% certain",

    # Market timing
    "when will the market", "will the stock go up",
    "price target", "where will",

    # Insider information
    "insider", "non-public", "confidential information",
)

# Evaluated top to bottom; the first rule with a matching keyword wins.
INTENT_RULES: Tuple[Tuple[Intent, Tuple[str, ...]], ...] = (
    (Intent.TAX, (
        "tax", "taxes", "tax-loss", "harvest", "wash sale",
        "capital gain", "capital loss", "1099", "cost basis",
        "short-term", "long-term gain",
    )),
    (Intent.RISK, (
        "risk", "volatility", "drawdown", "beta", "sharpe",
        "sortino", "var", "value at risk", "exposure",
        "concentrated", "diversif",
    )),
    (Intent.PROJECTION, (
        "project", "forecast", "predict", "future", "scenario",
        "what if", "monte carlo", "retirement", "goal",
        "will i have", "can i afford",
    )),
    (Intent.RESEARCH, (
        "research", "analyze", "deep dive", "explain why",
        "compare to market", "versus benchmark", "historical",
        "trend", "pattern",
    )),
    (Intent.COMPARISON, (
        "compare", "versus", "vs", "better than", "difference between",
        "which is", "should i choose",
    )),
    (Intent.ANALYTICAL, (
        "portfolio", "allocation", "holdings", "position",
        "performance", "return", "my", "how am i",
        "rebalance", "weight",
    )),
    (Intent.SIMPLE, (
        "what is", "what are", "define", "explain", "how does",
        "tell me about", "meaning of",
    )),
)

DEFAULT_INTENT = Intent.ANALYTICAL


def _contains_any(text: str, patterns: Tuple[str, ...]) -> bool:
    return any(p in text for p in patterns)


def is_blocked(text: str) -> bool:
    """Check whether a query asks for advice on the compliance blocklist."""
    return _contains_any((text or "").lower(), BLOCKED_PATTERNS)


def classify_intent(text: str) -> Intent:
    """Classify a query into an intent.

    The blocklist takes absolute priority. Intent rules are then tried in
    INTENT_RULES order, so a query mentioning both taxes and risk is TAX.

    Args:
        text: Raw query text

    Returns:
        The matching Intent, or ANALYTICAL when nothing matches
    """
    normalized = (text or "").lower()

    if _contains_any(normalized, BLOCKED_PATTERNS):
        return Intent.UNSUPPORTED

    for intent, keywords in INTENT_RULES:
        if _contains_any(normalized, keywords):
            return intent

    # Questions are asked in the context of a portfolio
    return DEFAULT_INTENT
