"""
Unit tests for intent classification.

Tests blocklist priority, rule ordering and the default intent.
"""

import pytest

from portfolio_ai.core.intent import (
    BLOCKED_PATTERNS,
    DEFAULT_INTENT,
    INTENT_RULES,
    Intent,
    classify_intent,
    is_blocked,
)


class TestBlocklist:
    """Test the compliance blocklist."""

    @pytest.mark.parametrize("text", [
        "Should I buy more Tesla?",
        "Is this a guaranteed win?",
        "What's the price target for NVDA?",
        "Any insider news on Apple?",
        "When will the market crash?",
    ])
    def test_blocked_phrases(self, text):
        """Each category of forbidden advice is blocked."""
        assert is_blocked(text)
        assert classify_intent(text) == Intent.UNSUPPORTED

    def test_blocklist_beats_intent_rules(self):
        """A blocked phrase wins over tax and risk keywords."""
        assert classify_intent("Should I buy more tax-loss risk funds?") == Intent.UNSUPPORTED

    def test_matching_is_case_insensitive(self):
        assert is_blocked("SHOULD I SELL my bonds")

    def test_clean_query_is_not_blocked(self):
        assert not is_blocked("What is my allocation?")

    def test_patterns_are_lowercase(self):
        """Patterns are compared against lower-cased text."""
        for pattern in BLOCKED_PATTERNS:
            assert pattern == pattern.lower()


class TestIntentRules:
    """Test ordered keyword rules."""

    def test_rule_order(self):
        """Rules are evaluated in a fixed priority order."""
        assert [intent for intent, _ in INTENT_RULES] == [
            Intent.TAX,
            Intent.RISK,
            Intent.PROJECTION,
            Intent.RESEARCH,
            Intent.COMPARISON,
            Intent.ANALYTICAL,
            Intent.SIMPLE,
        ]

    def test_compliance_has_no_rule(self):
        assert Intent.COMPLIANCE not in {intent for intent, _ in INTENT_RULES}

    def test_tax_beats_risk(self):
        assert classify_intent("How do taxes affect my risk?") == Intent.TAX

    @pytest.mark.parametrize("text,expected", [
        ("What is my risk exposure?", Intent.RISK),
        ("Can I afford to retire at 60?", Intent.PROJECTION),
        ("Give me a deep dive on my tech sector", Intent.RESEARCH),
        ("Compare AAPL and MSFT", Intent.COMPARISON),
        ("How is my portfolio doing?", Intent.ANALYTICAL),
        ("What is a bond?", Intent.SIMPLE),
        ("Harvest losses before December", Intent.TAX),
    ])
    def test_classification(self, text, expected):
        assert classify_intent(text) == expected

    def test_substring_matching(self):
        """Keywords match inside longer words."""
        assert classify_intent("Am I diversified enough?") == Intent.RISK

    def test_no_match_defaults_to_analytical(self):
        assert DEFAULT_INTENT == Intent.ANALYTICAL
        assert classify_intent("Hello there") == Intent.ANALYTICAL
