"""Simulation and backtest record models."""

from dataclasses import dataclass
from typing import Tuple

from src.core.constants import BPS


@dataclass
class AssetConfig:
    """A simulated asset, the exposure wrapper it is held through and its target weight."""

    asset: str
    wrapper: str
    target_weight: int  # bps
    is_yield_generating: bool = False

    def to_dict(self) -> dict:
        return {
            "asset": self.asset,
            "wrapper": self.wrapper,
            "target_weight": self.target_weight,
            "is_yield_generating": self.is_yield_generating,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AssetConfig":
        return cls(
            asset=data["asset"],
            wrapper=data.get("wrapper", data["asset"]),
            target_weight=int(data["target_weight"]),
            is_yield_generating=bool(data.get("is_yield_generating", False)),
        )


@dataclass(frozen=True)
class BacktestResult:
    """State of the simulated portfolio after one step.

    `asset_values` follow asset registration order. `buffer_value` holds
    rounding dust and any configured liquidity buffer, so
    `sum(asset_values) + buffer_value == portfolio_value`.
    """

    timestamp: int
    portfolio_value: int
    asset_values: Tuple[int, ...]
    asset_weights: Tuple[int, ...]
    yield_harvested: int = 0
    rebalanced: bool = False
    gas_cost: int = 0
    buffer_value: int = 0
    management_fee: int = 0
    slippage_cost: int = 0

    @property
    def weight_total(self) -> int:
        return sum(self.asset_weights)

    @property
    def buffer_weight(self) -> int:
        if self.portfolio_value == 0:
            return 0
        return self.buffer_value * BPS // self.portfolio_value

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "portfolio_value": self.portfolio_value,
            "asset_values": list(self.asset_values),
            "asset_weights": list(self.asset_weights),
            "yield_harvested": self.yield_harvested,
            "rebalanced": self.rebalanced,
            "gas_cost": self.gas_cost,
            "buffer_value": self.buffer_value,
            "management_fee": self.management_fee,
            "slippage_cost": self.slippage_cost,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BacktestResult":
        return cls(
            timestamp=int(data["timestamp"]),
            portfolio_value=int(data["portfolio_value"]),
            asset_values=tuple(int(v) for v in data.get("asset_values", [])),
            asset_weights=tuple(int(w) for w in data.get("asset_weights", [])),
            yield_harvested=int(data.get("yield_harvested", 0)),
            rebalanced=bool(data.get("rebalanced", False)),
            gas_cost=int(data.get("gas_cost", 0)),
            buffer_value=int(data.get("buffer_value", 0)),
            management_fee=int(data.get("management_fee", 0)),
            slippage_cost=int(data.get("slippage_cost", 0)),
        )


@dataclass(frozen=True)
class BacktestFailure:
    """Where and why a backtest stopped."""

    step_index: int
    timestamp: int
    error_type: str
    error_message: str

    def __str__(self) -> str:
        return f"step {self.step_index} @ {self.timestamp}: {self.error_type}: {self.error_message}"

    def to_dict(self) -> dict:
        return {
            "step_index": self.step_index,
            "timestamp": self.timestamp,
            "error_type": self.error_type,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BacktestFailure":
        return cls(
            step_index=int(data["step_index"]),
            timestamp=int(data["timestamp"]),
            error_type=data.get("error_type", "Exception"),
            error_message=data.get("error_message", ""),
        )
