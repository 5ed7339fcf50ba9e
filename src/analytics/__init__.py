"""Performance analytics for backtest results."""

from .metrics import MetricsCalculator, calculate_metrics

__all__ = ["MetricsCalculator", "calculate_metrics"]
