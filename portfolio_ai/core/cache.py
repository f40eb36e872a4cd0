"""
Semantic query cache.

Stores answers per (query, portfolio) pair. Lookups try an exact hash match
first and then a lexical similarity match over keywords, so near-identical
rephrasings of an expensive question reuse the earlier answer.

Similarity is deliberately strict (default threshold 0.92): a wrong cached
financial answer is worse than a cache miss.
"""

import hashlib
import string
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, Iterable, Optional

from .logging import get_logger
from .models import Response, utcnow

logger = get_logger(__name__)

DEFAULT_TTL = timedelta(hours=1)
DEFAULT_SIMILARITY_THRESHOLD = 0.92
DEFAULT_MAX_ENTRIES = 10_000
DEFAULT_SWEEP_INTERVAL_SECONDS = 300.0

KEYWORD_WEIGHT = 0.7
LENGTH_WEIGHT = 0.3

_ALLOWED_CHARS = frozenset(string.ascii_lowercase + string.digits + " $%")
_STRIP_CHARS = ".,!?;:'\"()[]"

STOP_WORDS: FrozenSet[str] = frozenset({
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "must", "shall",
    "i", "me", "my", "we", "our", "you", "your", "it", "its",
    "this", "that", "these", "those",
    "what", "which", "who", "whom", "how", "when", "where", "why",
    "and", "or", "but", "if", "then", "so", "as", "of", "at", "by",
    "for", "with", "about", "to", "from", "in", "on", "can", "tell", "show",
})


def normalize_query(query: str) -> str:
    """Lower-case, collapse whitespace and drop punctuation except $ and %."""
    collapsed = " ".join(query.lower().split())
    return "".join(c for c in collapsed if c in _ALLOWED_CHARS)


def extract_keywords(query: str) -> FrozenSet[str]:
    """Extract the significant terms of a query.

    Tokens are split on whitespace, stripped of surrounding punctuation and
    dropped when shorter than 2 characters or on the stop-word list.
    """
    keywords = set()
    for word in query.lower().split():
        word = word.strip(_STRIP_CHARS)
        if len(word) < 2 or word in STOP_WORDS:
            continue
        keywords.add(word)
    return frozenset(keywords)


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """Intersection over union of two keyword sets (0 when either is empty)."""
    set_a, set_b = set(a), set(b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def length_ratio(a: str, b: str) -> float:
    """Shorter length over longer length."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return min(len(a), len(b)) / longest


def hash_query(query: str, portfolio_id: str) -> str:
    """Deterministic key for a normalized query within a portfolio."""
    data = normalize_query(query) + "|" + (portfolio_id or "")
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    """A cached response with its lookup metadata."""
    query: str  # normalized
    query_hash: str
    portfolio_id: str
    response: Response
    keywords: FrozenSet[str]
    created_at: datetime
    hit_count: int = 0


class SemanticQueryCache:
    """Thread-safe in-memory response cache with exact and approximate lookup."""

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the cache.

        Args:
            ttl: Lifetime of an entry
            similarity_threshold: Minimum score for an approximate hit
            max_entries: Capacity; the oldest 10% are evicted when full
            clock: Source of the current time

        Raises:
            ValueError: If any limit is out of range
        """
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        if not 0 < similarity_threshold <= 1:
            raise ValueError("similarity_threshold must be in (0, 1]")
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")

        self.ttl = ttl
        self.similarity_threshold = similarity_threshold
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        # Get also mutates hit counters, so reads take the same lock as writes
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, query: str, portfolio_id: str) -> Optional[Response]:
        """Look up a cached response.

        Args:
            query: Raw query text
            portfolio_id: Portfolio the answer was computed for

        Returns:
            A deep copy of the cached response, or None on a miss
        """
        portfolio_id = portfolio_id or ""
        now = self._clock()

        with self._lock:
            # Exact match
            entry = self._entries.get(hash_query(query, portfolio_id))
            if entry is not None and not self._is_expired(entry, now):
                return self._hit(entry, "exact")

            # Approximate match within the same portfolio
            normalized = normalize_query(query)
            keywords = extract_keywords(query)
            for entry in self._entries.values():
                if entry.portfolio_id != portfolio_id or self._is_expired(entry, now):
                    continue
                score = self._similarity(normalized, keywords, entry)
                if score >= self.similarity_threshold:
                    return self._hit(entry, "similar", score=round(score, 4))

            self._misses += 1

        logger.debug("cache_miss", portfolio_id=portfolio_id)
        return None

    def set(self, query: str, portfolio_id: str, response: Response) -> None:
        """Store a response; a copy is kept so later caller mutations do not leak in."""
        portfolio_id = portfolio_id or ""
        key = hash_query(query, portfolio_id)
        entry = CacheEntry(
            query=normalize_query(query),
            query_hash=key,
            portfolio_id=portfolio_id,
            response=response.clone(),
            keywords=extract_keywords(query),
            created_at=self._clock(),
        )

        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._evict_oldest()
            self._entries[key] = entry

    def invalidate(self, portfolio_id: str) -> int:
        """Remove every entry for a portfolio.

        Returns:
            Number of entries removed
        """
        portfolio_id = portfolio_id or ""
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.portfolio_id == portfolio_id]
            for key in stale:
                del self._entries[key]

        logger.info("cache_invalidated", portfolio_id=portfolio_id, removed=len(stale))
        return len(stale)

    def sweep(self) -> int:
        """Delete expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug("cache_swept", removed=len(expired))
        return len(expired)

    def stats(self) -> Dict[str, object]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "max_entries": self.max_entries,
                "total_hits": sum(e.hit_count for e in self._entries.values()),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self.ttl.total_seconds(),
                "similarity_threshold": self.similarity_threshold,
            }

    def _is_expired(self, entry: CacheEntry, now: datetime) -> bool:
        return now - entry.created_at >= self.ttl

    def _hit(self, entry: CacheEntry, match: str, **fields) -> Response:
        entry.hit_count += 1
        self._hits += 1
        logger.debug("cache_hit", match=match, portfolio_id=entry.portfolio_id, **fields)
        return entry.response.clone()

    @staticmethod
    def _similarity(normalized: str, keywords: FrozenSet[str], entry: CacheEntry) -> float:
        if not keywords or not entry.keywords:
            return 0.0
        jaccard = jaccard_similarity(keywords, entry.keywords)
        return KEYWORD_WEIGHT * jaccard + LENGTH_WEIGHT * length_ratio(normalized, entry.query)

    def _evict_oldest(self) -> None:
        # Caller holds the lock
        evict_count = max(1, self.max_entries // 10)
        oldest = sorted(self._entries.values(), key=lambda e: e.created_at)[:evict_count]
        for entry in oldest:
            del self._entries[entry.query_hash]
        logger.info("cache_evicted", removed=len(oldest), capacity=self.max_entries)


class CacheSweeper:
    """Periodic TTL sweep for a cache, with an explicit start/stop lifecycle."""

    def __init__(self, cache: SemanticQueryCache, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background sweep thread (no-op when already running)."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="cache-sweeper", daemon=True
        )
        self._thread.start()
        logger.debug("cache_sweeper_started", interval_seconds=self.interval_seconds)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal the sweep thread to exit and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug("cache_sweeper_stopped")

    def run_once(self) -> int:
        """Run a single sweep now."""
        return self.cache.sweep()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:
                # Keep sweeping; a failed pass is retried on the next tick
                logger.exception("cache_sweep_failed")
