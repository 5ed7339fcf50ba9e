"""Simulation configuration, state and run models."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from src.core.constants import (
    DEFAULT_REBALANCE_INTERVAL,
    DEFAULT_REBALANCE_THRESHOLD_BPS,
    DEFAULT_VALUE_JUMP_FACTOR,
    from_wad,
    usd_to_wad,
)
from src.core.models import AssetConfig, BacktestFailure, BacktestMetrics, BacktestResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SimulationConfig:
    """Parameters of one simulated vault. Monetary amounts are WAD-scaled USD."""

    initial_deposit: int
    name: str = "backtest"
    rebalance_threshold_bps: int = DEFAULT_REBALANCE_THRESHOLD_BPS
    rebalance_interval: int = DEFAULT_REBALANCE_INTERVAL  # seconds
    management_fee_bps: int = 0  # annual
    gas_cost: int = 0  # per rebalance
    slippage_bps: int = 0  # on traded notional
    liquidity_buffer_bps: int = 0
    value_jump_factor: Decimal = DEFAULT_VALUE_JUMP_FACTOR
    halt_on_value_jump: bool = False
    assets: List[AssetConfig] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings, initial_deposit: int, **overrides) -> "SimulationConfig":
        """Build a config from application settings, with keyword overrides."""
        values = {
            "initial_deposit": initial_deposit,
            "rebalance_threshold_bps": settings.rebalance_threshold_bps,
            "rebalance_interval": settings.rebalance_interval_seconds,
            "management_fee_bps": settings.management_fee_bps,
            "gas_cost": usd_to_wad(settings.rebalance_gas_cost_usd),
            "slippage_bps": settings.slippage_bps,
            "value_jump_factor": Decimal(settings.value_jump_factor),
            "halt_on_value_jump": settings.halt_on_value_jump,
        }
        values.update(overrides)
        return cls(**values)

    def copy(self, **changes) -> "SimulationConfig":
        config = replace(self, assets=[replace(a) for a in self.assets])
        for key, value in changes.items():
            if not hasattr(config, key):
                raise AttributeError(f"Unknown config field: {key}")
            setattr(config, key, value)
        return config

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "initial_deposit": self.initial_deposit,
            "rebalance_threshold_bps": self.rebalance_threshold_bps,
            "rebalance_interval": self.rebalance_interval,
            "management_fee_bps": self.management_fee_bps,
            "gas_cost": self.gas_cost,
            "slippage_bps": self.slippage_bps,
            "liquidity_buffer_bps": self.liquidity_buffer_bps,
            "value_jump_factor": str(self.value_jump_factor),
            "halt_on_value_jump": self.halt_on_value_jump,
            "assets": [a.to_dict() for a in self.assets],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationConfig":
        return cls(
            name=data.get("name", "backtest"),
            initial_deposit=int(data["initial_deposit"]),
            rebalance_threshold_bps=int(data.get("rebalance_threshold_bps", DEFAULT_REBALANCE_THRESHOLD_BPS)),
            rebalance_interval=int(data.get("rebalance_interval", DEFAULT_REBALANCE_INTERVAL)),
            management_fee_bps=int(data.get("management_fee_bps", 0)),
            gas_cost=int(data.get("gas_cost", 0)),
            slippage_bps=int(data.get("slippage_bps", 0)),
            liquidity_buffer_bps=int(data.get("liquidity_buffer_bps", 0)),
            value_jump_factor=Decimal(data.get("value_jump_factor", str(DEFAULT_VALUE_JUMP_FACTOR))),
            halt_on_value_jump=bool(data.get("halt_on_value_jump", False)),
            assets=[AssetConfig.from_dict(a) for a in data.get("assets", [])],
        )


@dataclass
class SimulationContext:
    """
    Mutable state carried between simulation steps.

    `units` are asset quantities (WAD-scaled), in asset registration order.
    `last_harvest` is the yield accrual baseline per asset.
    """

    start_timestamp: int
    last_step_timestamp: int
    last_rebalance_timestamp: int
    units: List[int]
    prices: List[int]
    buffer: int
    portfolio_value: int
    last_harvest: Dict[str, int] = field(default_factory=dict)
    step_count: int = 0
    rebalance_count: int = 0

    def copy(self) -> "SimulationContext":
        return replace(
            self,
            units=list(self.units),
            prices=list(self.prices),
            last_harvest=dict(self.last_harvest),
        )


@dataclass
class BacktestRun:
    """Complete outcome of one backtest: results, failure and metrics."""

    config: SimulationConfig
    start: int
    end: int
    step_size: int

    results: List[BacktestResult] = field(default_factory=list)
    metrics: Optional[BacktestMetrics] = None
    failure: Optional[BacktestFailure] = None

    success: bool = True
    error_message: str = ""
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = _utcnow()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def value_series(self) -> List[float]:
        """Portfolio value per step in USD, for charting."""
        return [float(from_wad(r.portfolio_value)) for r in self.results]

    @property
    def final_value(self) -> int:
        return self.results[-1].portfolio_value if self.results else 0

    def to_dict(self) -> dict:
        return {
            "config": self.config.to_dict(),
            "start": self.start,
            "end": self.end,
            "step_size": self.step_size,
            "results": [r.to_dict() for r in self.results],
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "failure": self.failure.to_dict() if self.failure else None,
            "success": self.success,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BacktestRun":
        created_at = data.get("created_at")
        return cls(
            config=SimulationConfig.from_dict(data["config"]),
            start=int(data["start"]),
            end=int(data["end"]),
            step_size=int(data["step_size"]),
            results=[BacktestResult.from_dict(r) for r in data.get("results", [])],
            metrics=BacktestMetrics.from_dict(data["metrics"]) if data.get("metrics") else None,
            failure=BacktestFailure.from_dict(data["failure"]) if data.get("failure") else None,
            success=data.get("success", True),
            error_message=data.get("error_message", ""),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )
