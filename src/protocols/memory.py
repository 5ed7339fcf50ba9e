"""In-memory implementations of the collaborator interfaces.

Used by the demo CLI and the test-suite. They keep balances in plain
integers and release base asset one-for-one unless an oracle prices the
underlying.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, Optional

from src.core.constants import BPS, WAD
from src.core.models import (
    AssetInfo,
    AssetType,
    CostBreakdown,
    ExposureInfo,
    ExposureType,
    StrategyInfo,
)

from .base import ExposureStrategy, PriceOracle, RWASyntheticToken, YieldStrategy

logger = logging.getLogger(__name__)

MIN_LEVERAGE = 1
MAX_LEVERAGE = 10


class InMemoryYieldStrategy(YieldStrategy):
    """Share-based vault holding the base asset."""

    def __init__(self, name: str, asset: str, apy_bps: int = 0, risk: int = 1):
        self.name = name
        self._asset = asset
        self.apy_bps = apy_bps
        self.risk = risk
        self.active = True
        self.total_assets = 0
        self.total_shares = 0
        self.total_deposited = 0
        self.pending_yield = 0

    @property
    def asset(self) -> str:
        return self._asset

    def deposit(self, amount: int) -> int:
        if amount <= 0:
            raise ValueError("Deposit amount must be positive")
        if not self.active:
            raise RuntimeError(f"Strategy {self.name} is not active")
        if self.total_shares == 0 or self.total_assets == 0:
            shares = amount
        else:
            shares = amount * self.total_shares // self.total_assets
        self.total_assets += amount
        self.total_shares += shares
        self.total_deposited += amount
        return shares

    def withdraw(self, shares: int) -> int:
        if shares <= 0 or shares > self.total_shares:
            raise ValueError(f"Invalid share amount: {shares}")
        amount = shares * self.total_assets // self.total_shares
        self.total_shares -= shares
        self.total_assets -= amount
        self.total_deposited = max(0, self.total_deposited - amount)
        self.pending_yield = min(self.pending_yield, self.total_assets)
        return amount

    def accrue(self, amount: int) -> None:
        """Credit yield earned by the underlying position."""
        self.total_assets += amount
        self.pending_yield += amount

    def accrue_for(self, elapsed_seconds: int, seconds_per_year: int) -> int:
        """Accrue `apy_bps` simple interest for `elapsed_seconds` and return it."""
        amount = self.total_assets * self.apy_bps * elapsed_seconds // (seconds_per_year * BPS)
        if amount:
            self.accrue(amount)
        return amount

    def get_total_value(self) -> int:
        return self.total_assets

    def harvest_yield(self) -> int:
        amount = self.pending_yield
        self.pending_yield = 0
        self.total_assets -= amount
        return amount

    def get_strategy_info(self) -> StrategyInfo:
        return StrategyInfo(
            name=self.name,
            asset=self._asset,
            total_deposited=self.total_deposited,
            current_value=self.total_assets,
            apy=self.apy_bps,
            active=self.active,
            risk=self.risk,
        )

    def __repr__(self) -> str:
        return f"InMemoryYieldStrategy({self.name!r})"


class InMemoryRWAToken(RWASyntheticToken):
    """Synthetic RWA token with per-holder balances.

    Without an oracle one unit is worth one unit of the base asset; with an
    oracle, burning releases `amount * price / WAD`.
    """

    def __init__(
        self,
        name: str,
        symbol: str,
        asset_type: AssetType = AssetType.EQUITY_INDEX,
        oracle: Optional[PriceOracle] = None,
    ):
        self.name = name
        self.symbol = symbol
        self.asset_type = asset_type
        self.oracle = oracle
        self.is_active = True
        self._balances: Dict[Any, int] = defaultdict(int)
        self._total_supply = 0

    def mint(self, to: Any, amount: int) -> None:
        if to is None:
            raise ValueError("Cannot mint to the zero identity")
        if amount <= 0:
            raise ValueError("Mint amount must be positive")
        if not self.is_active:
            raise RuntimeError(f"Asset {self.symbol} is not active")
        self._balances[to] += amount
        self._total_supply += amount

    def burn(self, from_: Any, amount: int) -> int:
        if amount <= 0:
            raise ValueError("Burn amount must be positive")
        if self._balances[from_] < amount:
            raise ValueError("Insufficient balance")
        self._balances[from_] -= amount
        self._total_supply -= amount
        if self.oracle is None:
            return amount
        return amount * self.oracle.get_price_usd(self.symbol) // WAD

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, holder: Any) -> int:
        return self._balances.get(holder, 0)

    def get_asset_info(self) -> AssetInfo:
        last_price = self.oracle.get_price_usd(self.symbol) if self.oracle else WAD
        return AssetInfo(
            name=self.name,
            symbol=self.symbol,
            asset_type=self.asset_type,
            is_active=self.is_active,
            last_price=last_price,
        )

    def __repr__(self) -> str:
        return f"InMemoryRWAToken({self.symbol!r})"


class InMemoryExposureStrategy(ExposureStrategy):
    """Collateralized exposure with configurable leverage and running costs."""

    def __init__(
        self,
        name: str,
        underlying: str,
        exposure_type: ExposureType = ExposureType.PERPETUAL,
        leverage: int = 1,
        costs: Optional[CostBreakdown] = None,
    ):
        if not MIN_LEVERAGE <= leverage <= MAX_LEVERAGE:
            raise ValueError(f"Leverage must be between {MIN_LEVERAGE} and {MAX_LEVERAGE}")
        self.name = name
        self.underlying = underlying
        self.exposure_type = exposure_type
        self.leverage = leverage
        self.costs = costs or CostBreakdown()
        self.collateral = 0
        self.is_active = True

    def open_exposure(self, collateral: int) -> int:
        if not self.is_active:
            raise RuntimeError(f"Exposure {self.name} is not active")
        if collateral <= 0:
            raise ValueError("Collateral must be positive")
        self.collateral += collateral
        return collateral * self.leverage

    def close_exposure(self, collateral: int) -> int:
        if collateral <= 0 or collateral > self.collateral:
            raise ValueError("Insufficient collateral")
        self.collateral -= collateral
        return collateral

    def adjust_exposure(self, leverage: int) -> None:
        if not MIN_LEVERAGE <= leverage <= MAX_LEVERAGE:
            raise ValueError(f"Leverage must be between {MIN_LEVERAGE} and {MAX_LEVERAGE}")
        logger.info(f"Exposure {self.name}: leverage {self.leverage}x -> {leverage}x")
        self.leverage = leverage

    def get_exposure_info(self) -> ExposureInfo:
        return ExposureInfo(
            exposure_type=self.exposure_type,
            name=self.name,
            underlying=self.underlying,
            leverage=self.leverage,
            collateral_ratio=BPS // self.leverage,
            current_exposure=self.collateral * self.leverage,
            is_active=self.is_active,
        )

    def get_current_exposure_value(self) -> int:
        return self.collateral

    def estimate_cost_bps(self, amount: int) -> CostBreakdown:
        return self.costs

    def emergency_exit(self) -> int:
        released = self.collateral
        self.collateral = 0
        self.is_active = False
        logger.warning(f"Emergency exit from {self.name}: released {released}")
        return released


class ExposureBackedToken(RWASyntheticToken):
    """Adapts an ExposureStrategy to the synthetic token interface.

    Minting posts collateral to the exposure; burning closes the matching
    amount of collateral.
    """

    def __init__(self, symbol: str, exposure: ExposureStrategy, asset_type: AssetType = AssetType.EQUITY_INDEX):
        self.symbol = symbol
        self.exposure = exposure
        self.asset_type = asset_type
        self._balances: Dict[Any, int] = defaultdict(int)
        self._total_supply = 0

    def mint(self, to: Any, amount: int) -> None:
        if amount <= 0:
            raise ValueError("Mint amount must be positive")
        self.exposure.open_exposure(amount)
        self._balances[to] += amount
        self._total_supply += amount

    def burn(self, from_: Any, amount: int) -> int:
        if self._balances[from_] < amount:
            raise ValueError("Insufficient balance")
        released = self.exposure.close_exposure(amount)
        self._balances[from_] -= amount
        self._total_supply -= amount
        return released

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, holder: Any) -> int:
        return self._balances.get(holder, 0)

    def get_asset_info(self) -> AssetInfo:
        info = self.exposure.get_exposure_info()
        return AssetInfo(
            name=info.name,
            symbol=self.symbol,
            asset_type=self.asset_type,
            market_id=info.underlying,
            is_active=info.is_active,
            last_price=WAD,
        )

    def __repr__(self) -> str:
        return f"ExposureBackedToken({self.symbol!r})"
