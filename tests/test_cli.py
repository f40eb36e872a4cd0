"""
Tests for the CLI interface.
"""
import os
import tempfile
from unittest.mock import AsyncMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from portfolio_ai.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from portfolio_ai.core.guardrails import QuotaExceededError
from portfolio_ai.core.intent import Intent
from portfolio_ai.core.models import Response, Source, utcnow
from portfolio_ai.core.pricing import ModelTier
from portfolio_ai.core.token_counter import TokenUsage

runner = CliRunner()

PORTFOLIO_DATA = {
    "id": "pf-1",
    "name": "Retirement",
    "holdings": [
        {"ticker": "AAPL", "name": "Apple Inc.", "market_value": 15000, "cost_basis": 10000,
         "asset_class": "equity", "sector": "Technology", "geography": "US"},
        {"ticker": "INTC", "name": "Intel Corp.", "market_value": 7000, "cost_basis": 10000,
         "asset_class": "equity", "sector": "Technology", "geography": "US"},
    ],
}


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep CLI runs from reconfiguring process-wide logging."""
    with patch('portfolio_ai.cli.main.configure_logging') as mock:
        yield mock


@pytest.fixture
def temp_dir():
    path = tempfile.mkdtemp()
    yield path
    import shutil
    shutil.rmtree(path, ignore_errors=True)


def write_yaml(directory, filename, data):
    path = os.path.join(directory, filename)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f)
    return path


class TestClassifyCommand:
    """Test the classify command."""

    def test_classify_risk_question(self):
        result = runner.invoke(app, ["classify", "What is my risk exposure?"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "risk" in result.output
        assert "standard" in result.output

    def test_classify_blocked_question(self):
        result = runner.invoke(app, ["classify", "Should I buy TSLA?"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "unsupported" in result.output


class TestTaxCommand:
    """Test the tax command."""

    def test_tax_summary(self, temp_dir):
        path = write_yaml(temp_dir, "portfolio.yaml", PORTFOLIO_DATA)

        result = runner.invoke(app, ["tax", path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Tax-Loss Harvesting Summary" in result.output
        assert "INTC" in result.output
        assert "$600.00" in result.output

    def test_tax_missing_file(self):
        result = runner.invoke(app, ["tax", "missing.yaml"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error loading portfolio" in result.output

    def test_tax_invalid_portfolio(self, temp_dir):
        path = write_yaml(temp_dir, "portfolio.yaml", {"holdings": []})

        result = runner.invoke(app, ["tax", path])

        assert result.exit_code == EXIT_CODE_FAIL


class TestCheckConfigCommand:
    """Test the check-config command."""

    def test_valid_config(self, temp_dir):
        path = write_yaml(temp_dir, "config.yaml", {"budget": {"daily_tokens": 5000}})

        result = runner.invoke(app, ["check-config", path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "is valid" in result.output
        assert "5,000" in result.output

    def test_invalid_config(self, temp_dir):
        path = write_yaml(temp_dir, "config.yaml", {"budget": {"daily": 5000}})

        result = runner.invoke(app, ["check-config", path])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid configuration" in result.output


class TestAskCommand:
    """Test the ask command."""

    def make_response(self):
        return Response(
            query_id="q-1",
            text="Your portfolio leans heavily on AAPL.",
            model_tier=ModelTier.STANDARD,
            model="provider/standard",
            intent=Intent.RISK,
            tokens_used=TokenUsage(100, 50),
            sources=[Source(type="holding", reference="AAPL")],
            disclaimers=["Educational only."],
        )

    @patch('portfolio_ai.cli.main.PortfolioAssistant')
    def test_ask_prints_answer(self, mock_assistant_class, temp_dir):
        mock_assistant_class.return_value.ask = AsyncMock(return_value=self.make_response())
        mock_assistant_class.return_value.aclose = AsyncMock()
        path = write_yaml(temp_dir, "portfolio.yaml", PORTFOLIO_DATA)

        result = runner.invoke(app, ["ask", "What is my risk?", "--portfolio", path, "--user", "alice"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "leans heavily on AAPL" in result.output
        assert "Educational only." in result.output
        assert "150 tokens" in result.output

        query, portfolio = mock_assistant_class.return_value.ask.call_args.args
        assert query.user_id == "alice"
        assert query.portfolio_id == "pf-1"
        assert portfolio.id == "pf-1"
        mock_assistant_class.return_value.aclose.assert_awaited_once()

    @patch('portfolio_ai.cli.main.PortfolioAssistant')
    def test_ask_quota_exceeded(self, mock_assistant_class):
        error = QuotaExceededError("alice", 100, 100, utcnow())
        mock_assistant_class.return_value.ask = AsyncMock(side_effect=error)
        mock_assistant_class.return_value.aclose = AsyncMock()

        result = runner.invoke(app, ["ask", "What is my risk?"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "today's limit" in result.output
        mock_assistant_class.return_value.aclose.assert_awaited_once()

    def test_ask_invalid_config(self, temp_dir):
        path = write_yaml(temp_dir, "config.yaml", {"unknown": {}})

        result = runner.invoke(app, ["ask", "What is my risk?", "--config", path])

        assert result.exit_code == EXIT_CODE_FAIL
