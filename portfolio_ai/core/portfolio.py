"""
Read-only portfolio snapshot.

The portfolio subsystem owns holdings; this module only describes the
snapshot handed to the assistant and the tax analyzer.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class AssetClass(Enum):
    """Holding categories."""
    EQUITY = "equity"
    FIXED_INCOME = "fixed_income"
    ALTERNATIVE = "alternative"  # PE, VC, Real Estate
    CRYPTO = "crypto"
    CASH = "cash"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    AssetClass.EQUITY: "Equities",
    AssetClass.FIXED_INCOME: "Fixed Income",
    AssetClass.ALTERNATIVE: "Alternatives",
    AssetClass.CRYPTO: "Cryptocurrency",
    AssetClass.CASH: "Cash",
    AssetClass.OTHER: "Other",
}


@dataclass(frozen=True)
class Holding:
    """A single position."""
    ticker: str
    name: str = ""
    market_value: Decimal = Decimal("0")
    cost_basis: Decimal = Decimal("0")
    asset_class: AssetClass = AssetClass.OTHER
    sector: str = ""
    geography: str = ""

    @property
    def gain_loss(self) -> Decimal:
        """Unrealized gain (positive) or loss (negative)."""
        return self.market_value - self.cost_basis

    @property
    def gain_loss_percent(self) -> Decimal:
        """Gain or loss as a percent of cost basis, 2dp; 0 without a cost basis."""
        if self.cost_basis == 0:
            return Decimal("0")
        return (self.gain_loss / self.cost_basis * 100).quantize(Decimal("0.01"), ROUND_HALF_UP)


@dataclass(frozen=True)
class Portfolio:
    """Snapshot of a portfolio's holdings."""
    id: str
    name: str = ""
    holdings: Tuple[Holding, ...] = ()
    total_value: Optional[Decimal] = None

    def __post_init__(self):
        # Accept any iterable of holdings but store a tuple
        object.__setattr__(self, "holdings", tuple(self.holdings))
        if self.total_value is None:
            total = sum((h.market_value for h in self.holdings), Decimal("0"))
            object.__setattr__(self, "total_value", total)

    def top_holdings(self, limit: int = 10) -> List[Holding]:
        """Largest holdings by market value."""
        return sorted(self.holdings, key=lambda h: h.market_value, reverse=True)[:limit]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Portfolio":
        """Build a snapshot from plain data (e.g. a parsed YAML document).

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError("portfolio must be a dictionary")
        if not data.get("id"):
            raise ValueError("portfolio 'id' is required")

        holdings_data = data.get("holdings") or []
        if not isinstance(holdings_data, list):
            raise ValueError("'holdings' must be a list")

        holdings = [_holding_from_dict(h, i) for i, h in enumerate(holdings_data)]
        total_value = data.get("total_value")

        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            holdings=tuple(holdings),
            total_value=_decimal(total_value, "total_value") if total_value is not None else None,
        )


def _decimal(value: Any, path: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"'{path}' must be a number")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"'{path}' must be a number")


def _holding_from_dict(data: Any, index: int) -> Holding:
    path = f"holdings[{index}]"
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a dictionary")
    if not data.get("ticker"):
        raise ValueError(f"{path} is missing 'ticker'")

    try:
        asset_class = AssetClass(str(data.get("asset_class", "other")).lower())
    except ValueError:
        valid = [a.value for a in AssetClass]
        raise ValueError(f"{path}.asset_class must be one of: {valid}")

    return Holding(
        ticker=str(data["ticker"]),
        name=str(data.get("name", "")),
        market_value=_decimal(data.get("market_value", 0), f"{path}.market_value"),
        cost_basis=_decimal(data.get("cost_basis", 0), f"{path}.cost_basis"),
        asset_class=asset_class,
        sector=str(data.get("sector", "")),
        geography=str(data.get("geography", "")),
    )
