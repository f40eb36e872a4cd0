"""
Data models for the audit trail.

Defines the immutable record kept for every answered query.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Tuple

from portfolio_ai.core.intent import Intent
from portfolio_ai.core.models import Query, Response
from portfolio_ai.core.pricing import ModelTier
from portfolio_ai.core.token_counter import TokenUsage


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of one AI interaction for compliance review.

    Append-only entries that form an auditable ledger of advice given.
    Once written, these records must never be modified.
    """
    response_id: str
    timestamp: datetime
    user_id: str
    query_id: str
    query_text: str
    intent: Intent
    model_tier: ModelTier
    model: str
    tokens_used: TokenUsage
    cached: bool
    processing_ms: int
    sources: Tuple[str, ...] = ()
    disclaimers: Tuple[str, ...] = ()

    @classmethod
    def from_interaction(cls, query: Query, response: Response, timestamp: datetime) -> "AuditEntry":
        return cls(
            response_id=response.id,
            timestamp=timestamp,
            user_id=query.user_id,
            query_id=query.id,
            query_text=query.text,
            intent=response.intent,
            model_tier=response.model_tier,
            model=response.model,
            tokens_used=response.tokens_used,
            cached=response.cached,
            processing_ms=response.processing_ms,
            sources=tuple(s.reference for s in response.sources),
            disclaimers=tuple(response.disclaimers),
        )

    def to_dict(self) -> dict:
        return {
            "response_id": self.response_id,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "query_id": self.query_id,
            "query_text": self.query_text,
            "intent": self.intent.value,
            "model_tier": self.model_tier.value,
            "model": self.model,
            "tokens_used": self.tokens_used.to_dict(),
            "cached": self.cached,
            "processing_ms": self.processing_ms,
            "sources": list(self.sources),
            "disclaimers": list(self.disclaimers),
        }
