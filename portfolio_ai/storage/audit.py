"""
Append-only audit log of AI interactions.

Keeps every answered query in memory for compliance review. Entries are
never modified; the only removal is the operator-invoked retention `clear`.

Lookups walk the whole log, which is fine for one process's history but
grows linearly: run `clear` on a schedule if the process lives long.
"""

import json
import threading
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .models import AuditEntry
from portfolio_ai.core.logging import get_logger
from portfolio_ai.core.models import Query, Response, utcnow

logger = get_logger(__name__)

COMPLIANCE_DISCLAIMER = (
    "This audit log contains AI-generated content for informational purposes only. "
    "All responses include appropriate disclaimers and do not constitute investment advice."
)


def _as_utc(value: datetime) -> datetime:
    # Naive bounds are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AuditLogger:
    """Thread-safe, append-only ledger of queries and responses."""

    def __init__(self, enabled: bool = True, clock: Callable[[], datetime] = utcnow):
        self.enabled = enabled
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: List[AuditEntry] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def log(self, query: Query, response: Response) -> Optional[AuditEntry]:
        """Record an interaction.

        Args:
            query: The query as received
            response: The terminal response returned to the caller

        Returns:
            The stored entry, or None when auditing is disabled
        """
        if not self.enabled:
            return None

        entry = AuditEntry.from_interaction(query, response, self._clock())

        with self._lock:
            self._entries.append(entry)

        # Mirror to the structured log stream for aggregation
        logger.info("ai_audit", entry=entry.to_dict())
        return entry

    def get_entries(self, user_id: str, since: datetime, limit: int = 50) -> List[AuditEntry]:
        """Get a user's entries newer than `since`, newest first.

        Args:
            user_id: User to filter on
            since: Exclusive lower bound on the entry timestamp
            limit: Maximum number of entries to return

        Returns:
            Up to `limit` entries ordered by timestamp (newest first)
        """
        results: List[AuditEntry] = []
        if limit <= 0:
            return results

        since = _as_utc(since)
        with self._lock:
            for entry in reversed(self._entries):
                if entry.user_id == user_id and entry.timestamp > since:
                    results.append(entry)
                    if len(results) >= limit:
                        break
        return results

    def get_stats(self, since: datetime) -> Dict[str, object]:
        """Aggregate counts over entries at or after `since`.

        Returns:
            Dictionary with totals, cache hit rate (percent) and
            breakdowns by intent and model tier
        """
        since = _as_utc(since)
        total_queries = 0
        cached_queries = 0
        total_tokens = 0
        by_intent: Counter = Counter()
        by_tier: Counter = Counter()

        with self._lock:
            for entry in self._entries:
                if entry.timestamp < since:
                    continue
                total_queries += 1
                if entry.cached:
                    cached_queries += 1
                total_tokens += entry.tokens_used.total_tokens
                by_intent[entry.intent.value] += 1
                by_tier[entry.model_tier.value] += 1

        cache_hit_rate = 0.0
        if total_queries > 0:
            cache_hit_rate = cached_queries / total_queries * 100

        return {
            "total_queries": total_queries,
            "cached_queries": cached_queries,
            "cache_hit_rate": cache_hit_rate,
            "total_tokens": total_tokens,
            "by_intent": dict(by_intent),
            "by_model_tier": dict(by_tier),
        }

    def export_for_compliance(self, user_id: str, start: datetime, end: datetime) -> str:
        """Export a user's entries in a self-contained JSON bundle.

        Args:
            user_id: User whose interactions are exported
            start: Inclusive start of the range
            end: Inclusive end of the range

        Returns:
            Indented JSON document suitable for an auditor

        Raises:
            ValueError: If start is after end
        """
        start, end = _as_utc(start), _as_utc(end)
        if start > end:
            raise ValueError("start must not be after end")

        with self._lock:
            entries = [
                e for e in self._entries
                if e.user_id == user_id and start <= e.timestamp <= end
            ]

        bundle = {
            "user_id": user_id,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "entry_count": len(entries),
            "exported_at": self._clock().isoformat(),
            "entries": [e.to_dict() for e in entries],
            "disclaimer": COMPLIANCE_DISCLAIMER,
        }
        logger.info("audit_exported", user_id=user_id, entry_count=len(entries))
        return json.dumps(bundle, indent=2)

    def clear(self, before: datetime) -> int:
        """Drop entries older than `before` (retention).

        Returns:
            Number of entries removed
        """
        before = _as_utc(before)
        with self._lock:
            kept = [e for e in self._entries if e.timestamp >= before]
            removed = len(self._entries) - len(kept)
            self._entries = kept

        logger.info("audit_cleared", removed=removed, before=before.isoformat())
        return removed
