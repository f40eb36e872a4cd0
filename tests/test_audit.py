"""
Unit tests for the audit log.

Tests recording, querying, statistics and compliance export.
"""

import json
import threading
from datetime import timedelta

import pytest

from portfolio_ai.core.intent import Intent
from portfolio_ai.core.models import Query, Response, Source
from portfolio_ai.core.pricing import ModelTier
from portfolio_ai.core.token_counter import TokenUsage
from portfolio_ai.storage.audit import COMPLIANCE_DISCLAIMER, AuditLogger
from portfolio_ai.storage.models import AuditEntry


def make_interaction(user_id="alice", text="What is my risk?", intent=Intent.RISK,
                     tier=ModelTier.STANDARD, cached=False, tokens=TokenUsage(100, 50)):
    query = Query(user_id=user_id, text=text, portfolio_id="pf-1")
    response = Response(
        query_id=query.id,
        text="Your risk is moderate.",
        model_tier=tier,
        model="test-model",
        intent=intent,
        tokens_used=tokens,
        sources=[Source(type="holding", reference="AAPL")],
        disclaimers=["Educational only."],
        cached=cached,
    )
    return query, response


class TestAuditEntry:
    """Test the audit record type."""

    def test_from_interaction(self, clock):
        query, response = make_interaction()

        entry = AuditEntry.from_interaction(query, response, clock())

        assert entry.response_id == response.id
        assert entry.query_id == query.id
        assert entry.user_id == "alice"
        assert entry.query_text == "What is my risk?"
        assert entry.intent == Intent.RISK
        assert entry.sources == ("AAPL",)
        assert entry.disclaimers == ("Educational only.",)

    def test_to_dict(self, clock):
        query, response = make_interaction()
        data = AuditEntry.from_interaction(query, response, clock()).to_dict()

        assert data["intent"] == "risk"
        assert data["model_tier"] == "standard"
        assert data["tokens_used"] == {"input": 100, "output": 50, "total": 150}
        assert data["timestamp"] == clock().isoformat()


class TestAuditLogger:
    """Test the append-only ledger."""

    def test_log_appends_entry(self, clock):
        auditor = AuditLogger(clock=clock)

        entry = auditor.log(*make_interaction())

        assert entry is not None
        assert entry.timestamp == clock()
        assert len(auditor) == 1

    def test_disabled_logger_records_nothing(self, clock):
        auditor = AuditLogger(enabled=False, clock=clock)

        assert auditor.log(*make_interaction()) is None
        assert len(auditor) == 0

    def test_get_entries_newest_first_with_limit(self, clock):
        auditor = AuditLogger(clock=clock)
        start = clock()
        for i in range(5):
            clock.advance(minutes=1)
            auditor.log(*make_interaction(text=f"question {i}"))
        auditor.log(*make_interaction(user_id="bob"))

        entries = auditor.get_entries("alice", start, limit=3)

        assert [e.query_text for e in entries] == ["question 4", "question 3", "question 2"]

    def test_get_entries_since_is_exclusive(self, clock):
        auditor = AuditLogger(clock=clock)
        auditor.log(*make_interaction())

        assert auditor.get_entries("alice", clock()) == []
        assert len(auditor.get_entries("alice", clock() - timedelta(seconds=1))) == 1

    def test_get_entries_zero_limit(self, clock):
        auditor = AuditLogger(clock=clock)
        auditor.log(*make_interaction())

        assert auditor.get_entries("alice", clock() - timedelta(days=1), limit=0) == []

    def test_get_stats(self, clock):
        auditor = AuditLogger(clock=clock)
        auditor.log(*make_interaction(intent=Intent.TAX))
        clock.advance(hours=2)
        since = clock()
        auditor.log(*make_interaction())
        auditor.log(*make_interaction(cached=True, tokens=TokenUsage()))
        auditor.log(*make_interaction(intent=Intent.SIMPLE, tier=ModelTier.FAST))

        stats = auditor.get_stats(since)

        assert stats["total_queries"] == 3
        assert stats["cached_queries"] == 1
        assert stats["cache_hit_rate"] == pytest.approx(100 / 3)
        assert stats["total_tokens"] == 300
        assert stats["by_intent"] == {"risk": 2, "simple": 1}
        assert stats["by_model_tier"] == {"standard": 2, "fast": 1}

    def test_get_stats_empty(self, clock):
        stats = AuditLogger(clock=clock).get_stats(clock())

        assert stats["total_queries"] == 0
        assert stats["cache_hit_rate"] == 0.0

    def test_export_for_compliance(self, clock):
        auditor = AuditLogger(clock=clock)
        start = clock()
        auditor.log(*make_interaction())
        clock.advance(hours=1)
        auditor.log(*make_interaction(user_id="bob"))
        auditor.log(*make_interaction(text="Later question"))
        end = clock()
        clock.advance(hours=1)
        auditor.log(*make_interaction(text="Out of range"))

        bundle = json.loads(auditor.export_for_compliance("alice", start, end))

        assert bundle["user_id"] == "alice"
        assert bundle["entry_count"] == 2
        assert [e["query_text"] for e in bundle["entries"]] == ["What is my risk?", "Later question"]
        assert bundle["disclaimer"] == COMPLIANCE_DISCLAIMER

    def test_export_rejects_inverted_range(self, clock):
        auditor = AuditLogger(clock=clock)

        with pytest.raises(ValueError, match="start must not be after end"):
            auditor.export_for_compliance("alice", clock(), clock() - timedelta(days=1))

    def test_clear(self, clock):
        auditor = AuditLogger(clock=clock)
        auditor.log(*make_interaction())
        clock.advance(days=30)
        auditor.log(*make_interaction())

        assert auditor.clear(clock() - timedelta(days=1)) == 1
        assert len(auditor) == 1


class TestNaiveBounds:
    """Naive datetimes passed as bounds are read as UTC."""

    @pytest.fixture
    def auditor(self, clock):
        auditor = AuditLogger(clock=clock)
        auditor.log(*make_interaction())
        return auditor

    @pytest.fixture
    def naive_now(self, clock):
        # Same instant as the logged entry, without tzinfo
        return clock().replace(tzinfo=None)

    def test_get_entries(self, auditor, naive_now):
        assert len(auditor.get_entries("alice", naive_now - timedelta(hours=1), 10)) == 1
        assert auditor.get_entries("alice", naive_now) == []

    def test_get_stats(self, auditor, naive_now):
        assert auditor.get_stats(naive_now)["total_queries"] == 1
        assert auditor.get_stats(naive_now + timedelta(seconds=1))["total_queries"] == 0

    def test_export_for_compliance(self, auditor, naive_now):
        bundle = json.loads(auditor.export_for_compliance(
            "alice", naive_now - timedelta(days=1), naive_now
        ))

        assert bundle["entry_count"] == 1
        assert bundle["start_date"].endswith("+00:00")

    def test_export_mixed_bounds(self, auditor, naive_now, clock):
        bundle = json.loads(auditor.export_for_compliance(
            "alice", naive_now - timedelta(days=1), clock()
        ))

        assert bundle["entry_count"] == 1

    def test_clear(self, auditor, naive_now):
        assert auditor.clear(naive_now) == 0
        assert auditor.clear(naive_now + timedelta(seconds=1)) == 1
        assert len(auditor) == 0


class TestConcurrentLogging:
    """Test the ledger under concurrent writers."""

    def test_entry_count_exact(self, clock):
        auditor = AuditLogger(clock=clock)
        threads_count, per_thread = 8, 200

        def worker(n):
            for i in range(per_thread):
                auditor.log(*make_interaction(user_id=f"user-{n}", text=f"q{i}"))
                auditor.get_entries(f"user-{n}", clock() - timedelta(days=1), limit=5)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(auditor) == threads_count * per_thread
        assert auditor.get_stats(clock() - timedelta(days=1))["total_queries"] == threads_count * per_thread
        for n in range(threads_count):
            assert len(auditor.get_entries(f"user-{n}", clock() - timedelta(days=1), limit=1000)) == per_thread
