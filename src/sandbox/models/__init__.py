"""Sandbox data models."""

from .simulation import BacktestRun, SimulationConfig, SimulationContext

__all__ = [
    "BacktestRun",
    "SimulationConfig",
    "SimulationContext",
]
