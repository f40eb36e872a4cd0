"""
Prompt building, disclaimers and citations.

Static compliance rules are always sent; the portfolio snapshot is rendered
beneath them when holdings are available.
"""

import re
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from ..core.intent import Intent
from ..core.models import Query, Source
from ..core.portfolio import Portfolio

TOP_HOLDINGS_IN_PROMPT = 10

SYSTEM_PROMPT_RULES = """You are a portfolio analysis assistant for self-directed investors.

## Your Role
- Provide factual, data-driven portfolio analysis
- Help users understand their investments, risks, and opportunities
- Explain financial concepts clearly
- Cite specific holdings and data when answering

## Critical Rules
1. NEVER provide specific buy/sell recommendations for individual securities
2. NEVER guarantee returns or predict specific price movements
3. NEVER provide tax advice - only educational information about tax concepts
4. ALWAYS include relevant disclaimers
5. ALWAYS cite sources for numerical claims
6. If you don't have data to answer accurately, say so clearly

## Response Format
- Be concise but thorough
- Use bullet points for clarity
- Include specific numbers from the portfolio when relevant
- End with actionable next steps when appropriate
"""

BLOCKED_RESPONSE_TEXT = """I can't provide specific investment recommendations, guaranteed return predictions, or personalized tax advice.

However, I can help you with:
- Understanding your current portfolio allocation and risk exposure
- Explaining financial concepts and investment strategies
- Analyzing historical performance and metrics
- Comparing different asset classes and their characteristics

Please rephrase your question, and I'll do my best to provide educational information."""

BLOCKED_DISCLAIMER = (
    "This response was generated because your query appeared to request specific "
    "investment advice, which we cannot provide."
)

BASE_DISCLAIMERS: Tuple[str, ...] = (
    "This information is AI-generated and for educational purposes only.",
    "This does not constitute investment, tax, or legal advice.",
    "Past performance does not guarantee future results.",
)

INTENT_DISCLAIMERS: Dict[Intent, str] = {
    Intent.TAX: "Consult a qualified tax professional for personalized tax advice.",
    Intent.RISK: "Risk assessments are based on historical data and may not reflect future conditions.",
    Intent.PROJECTION: "Projections are hypothetical and based on assumptions that may not materialize.",
}


def build_system_prompt(portfolio: Optional[Portfolio]) -> str:
    """Compliance rules followed by a summary of the portfolio."""
    lines = [SYSTEM_PROMPT_RULES]

    if portfolio is not None and portfolio.holdings:
        total = portfolio.total_value
        lines.append("## Current Portfolio Summary")
        lines.append(f"- Total Value: ${total:,.2f}")
        lines.append(f"- Number of Holdings: {len(portfolio.holdings)}")
        lines.append("")
        lines.append("### Top Holdings:")
        for holding in portfolio.top_holdings(TOP_HOLDINGS_IN_PROMPT):
            pct = Decimal("0")
            if total:
                pct = holding.market_value / total * 100
            lines.append(
                f"- {holding.ticker} ({holding.asset_class.display_name}): "
                f"${holding.market_value:,.2f} ({pct:.2f}%)"
            )

    return "\n".join(lines) + "\n"


def build_user_prompt(query: Query) -> str:
    """The question, followed by any caller-supplied context as bullet lines."""
    prompt = query.text
    if query.context:
        bullets = "\n".join(f"- {k}: {v}" for k, v in sorted(query.context.items()))
        prompt += f"\n\nAdditional context:\n{bullets}\n"
    return prompt


def disclaimers_for(intent: Intent) -> List[str]:
    disclaimers = list(BASE_DISCLAIMERS)
    if intent in INTENT_DISCLAIMERS:
        disclaimers.append(INTENT_DISCLAIMERS[intent])
    return disclaimers


def extract_sources(text: str, portfolio: Optional[Portfolio]) -> List[Source]:
    """Cite holdings whose ticker appears in the answer as a whole word."""
    sources: List[Source] = []
    if portfolio is None:
        return sources

    seen = set()
    for holding in portfolio.holdings:
        ticker = holding.ticker
        if not ticker or ticker in seen:
            continue
        if re.search(rf"(?<![A-Za-z0-9]){re.escape(ticker)}(?![A-Za-z0-9])", text):
            seen.add(ticker)
            sources.append(Source(type="holding", reference=ticker, description=holding.name))
    return sources
