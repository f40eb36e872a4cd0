"""
Request and response models.

Defines the query passed in by the application and the answer handed back.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .intent import Intent
from .pricing import ModelTier
from .token_counter import TokenUsage


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Query:
    """A user question, immutable once created."""
    user_id: str
    text: str
    portfolio_id: Optional[str] = None
    context: Dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        """Validate required fields."""
        if not self.user_id or not str(self.user_id).strip():
            raise ValueError("user_id is required and cannot be empty")
        if not self.text or not self.text.strip():
            raise ValueError("text is required and cannot be empty")


@dataclass
class Source:
    """A data source cited by a response."""
    type: str  # "holding", "document", "market_data"
    reference: str
    description: str = ""
    url: Optional[str] = None


@dataclass
class Response:
    """An answer produced for a query."""
    query_id: str
    text: str
    model_tier: ModelTier
    model: str
    intent: Intent
    tokens_used: TokenUsage = field(default_factory=TokenUsage)
    sources: List[Source] = field(default_factory=list)
    disclaimers: List[str] = field(default_factory=list)
    cached: bool = False
    processing_ms: int = 0
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)

    def clone(self) -> "Response":
        """Deep copy; the sources and disclaimers lists are not shared."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "query_id": self.query_id,
            "text": self.text,
            "sources": [
                {
                    "type": s.type,
                    "reference": s.reference,
                    "description": s.description,
                    "url": s.url,
                }
                for s in self.sources
            ],
            "disclaimers": list(self.disclaimers),
            "model_tier": self.model_tier.value,
            "model": self.model,
            "intent": self.intent.value,
            "tokens_used": self.tokens_used.to_dict(),
            "cached": self.cached,
            "processing_ms": self.processing_ms,
            "timestamp": self.timestamp.isoformat(),
        }
