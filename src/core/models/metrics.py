"""Backtest performance metric models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from src.core.constants import from_wad


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class MetricStatus(Enum):
    """Status of a metrics calculation."""

    SUCCESS = "success"
    INSUFFICIENT_DATA = "insufficient_data"
    ERROR = "error"


@dataclass
class BacktestMetrics:
    """Aggregate statistics for one backtest run.

    Ratios and returns are WAD-scaled integers (1e18 == 100% or 1.0).
    Monetary totals are WAD-scaled USD.
    """

    status: MetricStatus
    data_points: int = 0
    step_size: int = 0

    # Returns
    total_return: int = 0
    annualized_return: int = 0

    # Risk
    volatility: int = 0
    sharpe_ratio: int = 0
    sortino_ratio: int = 0
    max_drawdown: int = 0

    # Activity
    rebalance_count: int = 0
    total_yield_harvested: int = 0
    total_gas_cost: int = 0
    total_management_fee: int = 0
    total_slippage_cost: int = 0

    initial_value: int = 0
    final_value: int = 0
    risk_free_rate_bps: int = 0

    error_message: Optional[str] = None
    calculated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_valid(self) -> bool:
        return self.status == MetricStatus.SUCCESS

    @property
    def total_return_percent(self) -> Decimal:
        return from_wad(self.total_return) * 100

    @property
    def annualized_return_percent(self) -> Decimal:
        return from_wad(self.annualized_return) * 100

    @property
    def volatility_percent(self) -> Decimal:
        return from_wad(self.volatility) * 100

    @property
    def max_drawdown_percent(self) -> Decimal:
        return from_wad(self.max_drawdown) * 100

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "data_points": self.data_points,
            "step_size": self.step_size,
            "total_return": self.total_return,
            "annualized_return": self.annualized_return,
            "volatility": self.volatility,
            "sharpe_ratio": self.sharpe_ratio,
            "sortino_ratio": self.sortino_ratio,
            "max_drawdown": self.max_drawdown,
            "rebalance_count": self.rebalance_count,
            "total_yield_harvested": self.total_yield_harvested,
            "total_gas_cost": self.total_gas_cost,
            "total_management_fee": self.total_management_fee,
            "total_slippage_cost": self.total_slippage_cost,
            "initial_value": self.initial_value,
            "final_value": self.final_value,
            "risk_free_rate_bps": self.risk_free_rate_bps,
            "error_message": self.error_message,
            "calculated_at": self.calculated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BacktestMetrics":
        calculated_at = data.get("calculated_at")
        return cls(
            status=MetricStatus(data.get("status", "success")),
            data_points=int(data.get("data_points", 0)),
            step_size=int(data.get("step_size", 0)),
            total_return=int(data.get("total_return", 0)),
            annualized_return=int(data.get("annualized_return", 0)),
            volatility=int(data.get("volatility", 0)),
            sharpe_ratio=int(data.get("sharpe_ratio", 0)),
            sortino_ratio=int(data.get("sortino_ratio", 0)),
            max_drawdown=int(data.get("max_drawdown", 0)),
            rebalance_count=int(data.get("rebalance_count", 0)),
            total_yield_harvested=int(data.get("total_yield_harvested", 0)),
            total_gas_cost=int(data.get("total_gas_cost", 0)),
            total_management_fee=int(data.get("total_management_fee", 0)),
            total_slippage_cost=int(data.get("total_slippage_cost", 0)),
            initial_value=int(data.get("initial_value", 0)),
            final_value=int(data.get("final_value", 0)),
            risk_free_rate_bps=int(data.get("risk_free_rate_bps", 0)),
            error_message=data.get("error_message"),
            calculated_at=datetime.fromisoformat(calculated_at) if calculated_at else _utcnow(),
        )
