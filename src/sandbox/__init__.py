"""Sandbox module for vault allocation simulation and backtesting."""

from .models import BacktestRun, SimulationConfig, SimulationContext

__all__ = [
    "BacktestRun",
    "SimulationConfig",
    "SimulationContext",
]
