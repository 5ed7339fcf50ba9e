"""Capability interfaces for external collaborators.

The allocation manager and simulation engine never reach into the internals of
an oracle, yield source or exposure wrapper. They call these interfaces only,
so any concrete integration (a live contract binding, a historical replay or a
test double) can be plugged in.
"""

from abc import ABC, abstractmethod
from typing import Any

from src.core.models import AssetInfo, CostBreakdown, ExposureInfo, StrategyInfo


class PriceOracle(ABC):
    """USD price feed. Prices are WAD-scaled."""

    @abstractmethod
    def get_price(self, asset: str) -> int:
        """Return the current price of `asset`."""
        ...

    def get_price_usd(self, asset: str) -> int:
        """Return the current USD price of `asset`."""
        return self.get_price(asset)


class YieldStrategy(ABC):
    """A yield source that issues shares against deposits of the base asset."""

    @property
    @abstractmethod
    def asset(self) -> str:
        """Base asset accepted by the strategy."""
        ...

    @abstractmethod
    def deposit(self, amount: int) -> int:
        """Deposit `amount` of the base asset and return shares minted."""
        ...

    @abstractmethod
    def withdraw(self, shares: int) -> int:
        """Redeem `shares` and return the base asset amount released."""
        ...

    @abstractmethod
    def get_total_value(self) -> int:
        """Total value held by the strategy, including unharvested yield."""
        ...

    @abstractmethod
    def harvest_yield(self) -> int:
        """Realize accrued yield, pay it out to the caller and return the amount."""
        ...

    @abstractmethod
    def get_strategy_info(self) -> StrategyInfo:
        ...


class RWASyntheticToken(ABC):
    """A synthetic token tracking a real-world asset."""

    @abstractmethod
    def mint(self, to: Any, amount: int) -> None:
        """Mint `amount` units to `to`."""
        ...

    @abstractmethod
    def burn(self, from_: Any, amount: int) -> int:
        """Burn `amount` units held by `from_` and return the base asset released."""
        ...

    @abstractmethod
    def total_supply(self) -> int:
        ...

    @abstractmethod
    def balance_of(self, holder: Any) -> int:
        ...

    @abstractmethod
    def get_asset_info(self) -> AssetInfo:
        ...


class ExposureStrategy(ABC):
    """A mechanism (perpetual, TRS, direct token) providing RWA price exposure."""

    @abstractmethod
    def open_exposure(self, collateral: int) -> int:
        """Post `collateral` and return the notional exposure opened."""
        ...

    @abstractmethod
    def close_exposure(self, collateral: int) -> int:
        """Release `collateral` worth of exposure and return the base asset returned."""
        ...

    @abstractmethod
    def adjust_exposure(self, leverage: int) -> None:
        """Change the target leverage of the open position."""
        ...

    @abstractmethod
    def get_exposure_info(self) -> ExposureInfo:
        ...

    @abstractmethod
    def get_current_exposure_value(self) -> int:
        """Mark-to-market value of the collateral backing the exposure."""
        ...

    @abstractmethod
    def estimate_cost_bps(self, amount: int) -> CostBreakdown:
        """Estimate the annual running cost of holding `amount` of exposure."""
        ...

    @abstractmethod
    def emergency_exit(self) -> int:
        """Close everything and return the base asset recovered."""
        ...
