"""
Shared fixtures for the test suite.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest

from portfolio_ai.core.portfolio import AssetClass, Holding, Portfolio


class FakeClock:
    """Controllable clock returning timezone-aware UTC datetimes."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


def make_completion(text="Your AAPL position is the largest holding.",
                    prompt_tokens=100, completion_tokens=50):
    """Mock chat completion shaped like the OpenAI SDK response."""
    response = Mock()
    response.id = "chatcmpl-123"
    response.choices = [Mock(message=Mock(content=text))]
    response.usage = Mock(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
    return response


def make_openai_client(response=None):
    """Mock AsyncOpenAI client whose chat.completions.create is awaitable."""
    client = Mock()
    client.chat.completions.create = AsyncMock(return_value=response or make_completion())
    client.close = AsyncMock()
    return client


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def portfolio():
    return Portfolio(
        id="pf-1",
        name="Retirement",
        holdings=(
            Holding(
                ticker="AAPL",
                name="Apple Inc.",
                market_value=Decimal("15000"),
                cost_basis=Decimal("10000"),
                asset_class=AssetClass.EQUITY,
                sector="Technology",
                geography="US",
            ),
            Holding(
                ticker="INTC",
                name="Intel Corp.",
                market_value=Decimal("7000"),
                cost_basis=Decimal("10000"),
                asset_class=AssetClass.EQUITY,
                sector="Technology",
                geography="US",
            ),
            Holding(
                ticker="BND",
                name="Total Bond Market ETF",
                market_value=Decimal("950"),
                cost_basis=Decimal("1000"),
                asset_class=AssetClass.FIXED_INCOME,
                sector="Bonds",
                geography="US",
            ),
        ),
    )
