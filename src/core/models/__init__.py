"""Core data models for the RWA index fund engine."""

from .allocation import (
    Allocation,
    AllocationEvent,
    Bucket,
    BucketValues,
    FundMove,
    RWAAllocation,
    RebalanceReport,
    StrategyAllocation,
)
from .backtest import AssetConfig, BacktestFailure, BacktestResult
from .metrics import BacktestMetrics, MetricStatus
from .protocol import (
    AssetInfo,
    AssetType,
    CostBreakdown,
    ExposureInfo,
    ExposureType,
    StrategyInfo,
)

__all__ = [
    "Allocation",
    "AllocationEvent",
    "Bucket",
    "BucketValues",
    "FundMove",
    "RWAAllocation",
    "RebalanceReport",
    "StrategyAllocation",
    "AssetConfig",
    "BacktestFailure",
    "BacktestResult",
    "BacktestMetrics",
    "MetricStatus",
    "AssetInfo",
    "AssetType",
    "CostBreakdown",
    "ExposureInfo",
    "ExposureType",
    "StrategyInfo",
]
