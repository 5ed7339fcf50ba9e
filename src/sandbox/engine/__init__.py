"""Allocation, simulation and backtesting engine components."""

from .allocator import CapitalAllocationManager
from .backtester import (
    BacktestingFramework,
    compare_configs,
    format_comparison,
    run_backtest,
    run_parameter_sweep,
)
from .planner import calculate_targets, plan_rebalance, split_proportionally, split_withdrawal
from .simulator import VaultSimulationEngine

__all__ = [
    "CapitalAllocationManager",
    "BacktestingFramework",
    "VaultSimulationEngine",
    "compare_configs",
    "format_comparison",
    "run_backtest",
    "run_parameter_sweep",
    "calculate_targets",
    "plan_rebalance",
    "split_proportionally",
    "split_withdrawal",
]
