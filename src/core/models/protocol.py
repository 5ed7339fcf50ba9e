"""Data returned by external strategy, token and exposure collaborators."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AssetType(Enum):
    """Real-world asset categories tracked by synthetic tokens."""

    EQUITY_INDEX = "equity_index"
    COMMODITY = "commodity"
    REAL_ESTATE = "real_estate"
    BOND = "bond"
    OTHER = "other"


class ExposureType(Enum):
    """Mechanisms used to obtain synthetic RWA exposure."""

    PERPETUAL = "perpetual"
    TRS = "trs"  # Total return swap
    DIRECT_TOKEN = "direct_token"
    SYNTHETIC_TOKEN = "synthetic_token"
    OPTIONS = "options"


@dataclass
class StrategyInfo:
    """Yield strategy metadata."""

    name: str
    asset: str
    total_deposited: int
    current_value: int
    apy: int  # bps
    active: bool = True
    risk: int = 1  # 1 (lowest) .. 10

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "asset": self.asset,
            "total_deposited": self.total_deposited,
            "current_value": self.current_value,
            "apy": self.apy,
            "active": self.active,
            "risk": self.risk,
        }


@dataclass
class AssetInfo:
    """Synthetic RWA token metadata."""

    name: str
    symbol: str
    asset_type: AssetType
    oracle: Optional[str] = None
    market_id: Optional[str] = None
    is_active: bool = True
    last_price: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "asset_type": self.asset_type.value,
            "oracle": self.oracle,
            "market_id": self.market_id,
            "is_active": self.is_active,
            "last_price": self.last_price,
        }


@dataclass
class ExposureInfo:
    """Current state of an exposure position."""

    exposure_type: ExposureType
    name: str
    underlying: str
    leverage: int = 1
    collateral_ratio: int = 10_000  # bps
    current_exposure: int = 0
    is_active: bool = True
    liquidation_price: int = 0


@dataclass
class CostBreakdown:
    """Annualized running cost of an exposure, all in bps."""

    funding_rate: int = 0
    borrow_rate: int = 0
    management_fee: int = 0
    slippage_cost: int = 0
    gas_cost: int = 0

    @property
    def total_cost_bps(self) -> int:
        return self.funding_rate + self.borrow_rate + self.management_fee + self.slippage_cost + self.gas_cost
