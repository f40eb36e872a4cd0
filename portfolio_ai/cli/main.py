"""
CLI interface for the portfolio assistant.

Operator commands for checking classification, tax analysis and configuration
locally, outside the application's request path.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml
from openai import OpenAIError
from rich.console import Console
from rich.table import Table

from portfolio_ai.config.loader import AssistantConfig, load_assistant_config
from portfolio_ai.core.guardrails import GuardrailViolation
from portfolio_ai.core.intent import classify_intent
from portfolio_ai.core.logging import configure_logging
from portfolio_ai.core.models import Query
from portfolio_ai.core.portfolio import Portfolio
from portfolio_ai.core.router import ModelRouter
from portfolio_ai.core.tax import TaxOptimizer, TaxSummary
from portfolio_ai.sdk.assistant import PortfolioAssistant
from portfolio_ai.sdk.llm_client import UpstreamError

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

# Output tokens assumed when estimating the cost of a classified query
ESTIMATED_OUTPUT_TOKENS = 500


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
):
    """Portfolio assistant CLI."""
    configure_logging(log_level, json_output=json_logs)
    if ctx.invoked_subcommand is None:
        console.print("Portfolio assistant - Use --help to see available commands")


@app.command()
def classify(text: str = typer.Argument(..., help="Question to classify")):
    """Show the intent, model tier and estimated cost of a question."""
    router = ModelRouter()
    intent = classify_intent(text)
    tier = router.select_model(intent, text)
    complexity = router.analyze_complexity(text)
    cost = router.estimate_cost(tier, complexity.token_estimate, ESTIMATED_OUTPUT_TOKENS)

    table = Table(title="Query Classification")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Intent", intent.value)
    table.add_row("Model tier", tier.value)
    table.add_row("Model", router.model_for(tier))
    table.add_row("Complexity", complexity.complexity)
    table.add_row("Estimated cost", _format_currency(cost))
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def tax(portfolio_file: Path = typer.Argument(..., help="YAML portfolio snapshot")):
    """Show tax-loss harvesting opportunities for a portfolio snapshot."""
    try:
        portfolio = _load_portfolio(portfolio_file)
    except (OSError, yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Error loading portfolio:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    summary = TaxOptimizer().analyze_tax_opportunities(portfolio)
    _display_tax_summary(summary)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def ask(
    text: str = typer.Argument(..., help="Question to ask"),
    portfolio_file: Optional[Path] = typer.Option(
        None, "--portfolio", "-p", help="YAML portfolio snapshot"
    ),
    user_id: str = typer.Option("cli", "--user", "-u", help="User the question is asked for"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Assistant configuration file"
    ),
):
    """Send one question through the full assistant pipeline."""
    try:
        config = load_assistant_config(str(config_file)) if config_file else AssistantConfig()
        portfolio = _load_portfolio(portfolio_file) if portfolio_file else None
        assistant = PortfolioAssistant(config)
    except (OSError, yaml.YAMLError, ValueError, OpenAIError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    query = Query(
        user_id=user_id,
        text=text,
        portfolio_id=portfolio.id if portfolio is not None else None,
    )

    try:
        response = asyncio.run(_ask_once(assistant, query, portfolio))
    except GuardrailViolation as e:
        console.print(f"[yellow]Blocked:[/] {e.user_message}")
        sys.exit(EXIT_CODE_FAIL)
    except UpstreamError as e:
        console.print(f"[red]Error:[/] {e.user_message} ({str(e)})")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n{response.text}\n")
    if response.sources:
        console.print("[bold]Sources:[/] " + ", ".join(s.reference for s in response.sources))
    for disclaimer in response.disclaimers:
        console.print(f"[dim]{disclaimer}[/]")
    console.print(
        f"\n[dim]{response.intent.value} | {response.model} | "
        f"{response.tokens_used.total_tokens} tokens | {response.processing_ms} ms[/]"
    )
    sys.exit(EXIT_CODE_PASS)


@app.command("check-config")
def check_config(config_file: Path = typer.Argument(..., help="Assistant configuration file")):
    """Validate an assistant configuration file."""
    try:
        config = load_assistant_config(str(config_file))
    except (OSError, yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] {config_file} is valid")
    for tier, model in config.routing.models.items():
        console.print(f"  {tier.value}: {model}")
    console.print(f"  daily token budget: {config.budget.daily_tokens:,}")
    sys.exit(EXIT_CODE_PASS)


async def _ask_once(assistant: PortfolioAssistant, query: Query, portfolio: Optional[Portfolio]):
    # Close the HTTP client inside the loop that opened it
    try:
        return await assistant.ask(query, portfolio)
    finally:
        await assistant.aclose()


def _load_portfolio(path: Path) -> Portfolio:
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return Portfolio.from_dict(data)


def _format_currency(amount) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _display_tax_summary(summary: TaxSummary):
    console.print("\n[bold]Tax-Loss Harvesting Summary[/bold]")
    console.print("-" * 40)
    console.print(f"Unrealized gains: {_format_currency(summary.total_unrealized_gains)}")
    console.print(f"Unrealized losses: {_format_currency(summary.total_unrealized_losses)}")
    console.print(f"Harvestable losses: {_format_currency(summary.harvestable_amount)}")
    console.print(f"Estimated tax savings: {_format_currency(summary.estimated_tax_savings)}")

    if summary.opportunities:
        table = Table(title="Opportunities")
        table.add_column("Ticker", style="bold")
        table.add_column("Loss", justify="right")
        table.add_column("Loss %", justify="right")
        table.add_column("Est. savings", justify="right")
        table.add_column("Wash sale risk")
        for opp in summary.opportunities:
            table.add_row(
                opp.ticker,
                _format_currency(opp.unrealized_loss),
                f"{opp.loss_percent:.2f}%",
                _format_currency(opp.estimated_savings),
                "yes" if opp.wash_sale_risk else "no",
            )
        console.print(table)
    else:
        console.print("\n[dim]No harvesting opportunities found.[/]")

    for rec in summary.recommendations:
        console.print(f"- {rec}")
    console.print()
    for disclaimer in summary.disclaimers:
        console.print(f"[dim]{disclaimer}[/]")


if __name__ == "__main__":
    app()
