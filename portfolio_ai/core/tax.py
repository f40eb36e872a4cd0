"""
Tax-loss harvesting analysis.

Pure, stateless analysis of a portfolio snapshot. Output is educational:
recommendations describe what may be worth reviewing and are never phrased
as instructions.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional, Tuple

from .models import utcnow
from .portfolio import AssetClass, Holding, Portfolio

DEFAULT_MIN_LOSS_THRESHOLD = Decimal("100")
DEFAULT_BLENDED_RATE = Decimal("0.20")

WASH_SALE_WINDOW = timedelta(days=30)
ORDINARY_INCOME_OFFSET_CAP = Decimal("3000")
SIGNIFICANT_HARVEST_AMOUNT = Decimal("1000")

_CENTS = Decimal("0.01")

TAX_DISCLAIMERS: Tuple[str, ...] = (
    "This analysis is for educational purposes only and does not constitute tax advice.",
    "Consult a qualified tax professional before making tax-related decisions.",
    "Tax implications vary based on individual circumstances.",
    "Wash sale rules may affect the deductibility of losses.",
)


@dataclass
class HarvestOpportunity:
    """A holding whose unrealized loss may be worth realizing."""
    ticker: str
    name: str
    current_value: Decimal
    cost_basis: Decimal
    unrealized_loss: Decimal
    loss_percent: Decimal
    estimated_savings: Decimal
    alternatives: List[str] = field(default_factory=list)
    wash_sale_risk: bool = False
    notes: str = ""


@dataclass
class TaxSummary:
    """Portfolio-wide tax position and harvesting candidates.

    Holdings carry no purchase dates, so every lot counts as long-term and
    the long-term totals equal the overall totals.

    `estimated_tax_savings` is the sum of the per-opportunity savings, i.e.
    the blended rate applied to harvestable losses only. Losses below the
    minimum threshold are not counted, and no separate short-term or
    long-term rate is applied.
    """
    total_unrealized_gains: Decimal = Decimal("0")
    total_unrealized_losses: Decimal = Decimal("0")
    net_unrealized: Decimal = Decimal("0")
    long_term_gains: Decimal = Decimal("0")
    long_term_losses: Decimal = Decimal("0")
    harvestable_amount: Decimal = Decimal("0")
    estimated_tax_savings: Decimal = Decimal("0")
    opportunities: List[HarvestOpportunity] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    disclaimers: List[str] = field(default_factory=lambda: list(TAX_DISCLAIMERS))


class TaxOptimizer:
    """Finds tax-loss harvesting opportunities in a portfolio snapshot."""

    def __init__(
        self,
        min_loss_threshold: Decimal = DEFAULT_MIN_LOSS_THRESHOLD,
        blended_rate: Decimal = DEFAULT_BLENDED_RATE,
        clock: Callable[[], datetime] = utcnow,
    ):
        if min_loss_threshold < 0:
            raise ValueError("min_loss_threshold cannot be negative")
        if not 0 <= blended_rate <= 1:
            raise ValueError("blended_rate must be between 0 and 1")

        self.min_loss_threshold = Decimal(min_loss_threshold)
        self.blended_rate = Decimal(blended_rate)
        self._clock = clock

    def analyze_tax_opportunities(self, portfolio: Optional[Portfolio]) -> TaxSummary:
        """Identify tax-loss harvesting opportunities.

        Holdings carry no purchase dates, so every lot is treated as long-term.

        Args:
            portfolio: Snapshot to analyze; None or an empty portfolio is allowed

        Returns:
            A TaxSummary, always populated with disclaimers
        """
        summary = TaxSummary()

        if portfolio is None or not portfolio.holdings:
            return summary

        for holding in portfolio.holdings:
            gain_loss = holding.gain_loss

            if gain_loss > 0:
                summary.total_unrealized_gains += gain_loss
                summary.long_term_gains += gain_loss
            elif gain_loss < 0:
                loss = abs(gain_loss)
                summary.total_unrealized_losses += loss
                summary.long_term_losses += loss

                if loss >= self.min_loss_threshold:
                    summary.opportunities.append(
                        self._create_harvest_opportunity(holding, loss, portfolio)
                    )
                    summary.harvestable_amount += loss

        summary.net_unrealized = summary.total_unrealized_gains - summary.total_unrealized_losses
        summary.estimated_tax_savings = sum(
            (o.estimated_savings for o in summary.opportunities), Decimal("0")
        )

        # Largest loss first
        summary.opportunities.sort(key=lambda o: o.unrealized_loss, reverse=True)
        summary.recommendations = self._generate_recommendations(summary)

        return summary

    def wash_sale_window(self, sale_date: datetime) -> Tuple[datetime, datetime]:
        """Period around a sale in which repurchasing triggers the wash sale rule."""
        return sale_date - WASH_SALE_WINDOW, sale_date + WASH_SALE_WINDOW

    def _create_harvest_opportunity(
        self, holding: Holding, loss: Decimal, portfolio: Portfolio
    ) -> HarvestOpportunity:
        loss_percent = abs(holding.gain_loss_percent)

        wash_sale_risk = self._has_related_holdings(holding, portfolio)

        return HarvestOpportunity(
            ticker=holding.ticker,
            name=holding.name,
            current_value=holding.market_value,
            cost_basis=holding.cost_basis,
            unrealized_loss=loss,
            loss_percent=loss_percent,
            estimated_savings=(loss * self.blended_rate).quantize(_CENTS, ROUND_HALF_UP),
            alternatives=self._find_alternatives(holding),
            wash_sale_risk=wash_sale_risk,
            notes=self._generate_notes(holding, loss_percent, wash_sale_risk),
        )

    @staticmethod
    def _find_alternatives(holding: Holding) -> List[str]:
        """Ideas for keeping market exposure without a substantially identical security."""
        if holding.asset_class == AssetClass.EQUITY:
            if holding.geography == "US":
                return [
                    "A different S&P 500 fund from another provider (e.g. VOO, IVV or SPY)",
                    "A total market fund (e.g. VTI or ITOT)",
                ]
            return ["An equivalent international fund from a different provider"]
        if holding.asset_class == AssetClass.FIXED_INCOME:
            return [
                "A bond fund from a different provider",
                "A Treasury fund in place of corporate bonds",
            ]
        return ["A qualified advisor can help identify suitable alternatives"]

    @staticmethod
    def _has_related_holdings(holding: Holding, portfolio: Portfolio) -> bool:
        # Same asset class, sector and geography
        for other in portfolio.holdings:
            if other.ticker == holding.ticker:
                continue
            if (other.asset_class == holding.asset_class
                    and other.sector == holding.sector
                    and other.geography == holding.geography):
                return True
        return False

    @staticmethod
    def _generate_notes(holding: Holding, loss_percent: Decimal, wash_sale_risk: bool) -> str:
        notes = f"{holding.ticker} is down {loss_percent:.1f}% from cost basis. "

        if loss_percent > 20:
            notes += "A loss of this size may be worth reviewing for harvesting. "

        if wash_sale_risk:
            notes += ("Caution: wash sale risk if similar holdings are kept "
                      "or repurchased within 30 days.")
        else:
            notes += "A similar but not substantially identical investment could maintain exposure."

        return notes

    def _generate_recommendations(self, summary: TaxSummary) -> List[str]:
        recs: List[str] = []

        if summary.harvestable_amount > SIGNIFICANT_HARVEST_AMOUNT:
            recs.append(
                f"There is approximately ${summary.harvestable_amount:,.0f} in harvestable "
                "losses that could offset gains or income."
            )

        if summary.total_unrealized_gains > 0 and summary.total_unrealized_losses > 0:
            recs.append(
                "Pairing loss harvesting with gain realization may reduce the overall tax impact."
            )

        if summary.opportunities:
            top = summary.opportunities[0]
            if top.loss_percent > 30:
                recs.append(
                    f"{top.ticker} has a significant loss ({top.loss_percent:.1f}%). "
                    "It may be worth reviewing against the original investment thesis."
                )

        if self._clock().month >= 10:
            recs.append(
                "Year-end is approaching. Losses harvested before December 31 "
                "apply to the current tax year."
            )

        recs.append(
            "Capital losses can offset capital gains, plus up to "
            f"${ORDINARY_INCOME_OFFSET_CAP:,.0f} of ordinary income annually."
        )

        return recs
