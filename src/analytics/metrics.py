"""Backtest performance metrics.

All outputs are WAD-scaled integers: a return of 5% is 0.05e18 and a Sharpe
ratio of 1.2 is 1.2e18. Empty or single-point inputs yield 0; nothing here
divides by zero.

Step returns are annualized with `SECONDS_PER_YEAR / step_size` periods per
year.
"""

import logging
import math
from typing import Optional, Sequence, Union

import numpy as np

from src.core.constants import BPS, SECONDS_PER_YEAR, WAD
from src.core.models import BacktestMetrics, BacktestResult, MetricStatus

logger = logging.getLogger(__name__)

ValueSeries = Sequence[Union[int, BacktestResult]]

# Below this a standard deviation is treated as zero
MIN_DEVIATION = 1e-12


def _portfolio_values(series: ValueSeries) -> list:
    return [s.portfolio_value if isinstance(s, BacktestResult) else int(s) for s in series]


def _to_wad(x: float) -> int:
    if not math.isfinite(x):
        return 0
    return int(round(x * WAD))


class MetricsCalculator:
    """
    Calculate return and risk statistics for a sequence of portfolio values.

    Accepts either BacktestResult records or raw WAD-scaled values.
    """

    def __init__(self, risk_free_rate_bps: int = 0):
        """
        Args:
            risk_free_rate_bps: Annual risk-free rate used by Sharpe and Sortino
        """
        if risk_free_rate_bps < 0:
            raise ValueError("Risk-free rate must not be negative")
        self.risk_free_rate_bps = risk_free_rate_bps

    @property
    def risk_free_rate(self) -> float:
        return self.risk_free_rate_bps / BPS

    @staticmethod
    def periods_per_year(step_size: int) -> float:
        if step_size <= 0:
            raise ValueError("Step size must be positive")
        return SECONDS_PER_YEAR / step_size

    def calculate_max_drawdown(self, series: ValueSeries) -> int:
        """Largest peak-to-trough decline, `(peak - value) / peak`."""
        values = _portfolio_values(series)
        peak = 0
        max_drawdown = 0
        for value in values:
            if value > peak:
                peak = value
            if peak > 0:
                drawdown = (peak - value) * WAD // peak
                if drawdown > max_drawdown:
                    max_drawdown = drawdown
        return max_drawdown

    def calculate_step_returns(self, series: ValueSeries) -> np.ndarray:
        """Simple returns between consecutive values; steps from a zero value are skipped."""
        values = np.array(_portfolio_values(series), dtype=float)
        if len(values) < 2:
            return np.array([])
        previous = values[:-1]
        current = values[1:]
        mask = previous > 0
        return current[mask] / previous[mask] - 1.0

    def calculate_total_return(self, series: ValueSeries) -> int:
        values = _portfolio_values(series)
        if len(values) < 2 or values[0] <= 0:
            return 0
        return (values[-1] - values[0]) * WAD // values[0]

    def calculate_annualized_return(self, series: ValueSeries, step_size: int) -> int:
        """Geometric annualized return over the whole series."""
        values = _portfolio_values(series)
        if len(values) < 2 or values[0] <= 0 or values[-1] < 0:
            return 0
        years = (len(values) - 1) / self.periods_per_year(step_size)
        if years <= 0:
            return 0
        growth = values[-1] / values[0]
        if growth == 0:
            return -WAD
        try:
            annualized = growth ** (1.0 / years)
        except OverflowError:
            logger.warning(f"Annualized return overflow over {years:.4f} years; reporting 0")
            return 0
        return _to_wad(annualized - 1.0)

    def calculate_volatility(self, series: ValueSeries, step_size: int) -> int:
        """Annualized sample standard deviation of step returns."""
        returns = self.calculate_step_returns(series)
        if len(returns) < 2:
            return 0
        std = float(np.std(returns, ddof=1))
        return _to_wad(std * math.sqrt(self.periods_per_year(step_size)))

    def calculate_sharpe_ratio(self, series: ValueSeries, step_size: int) -> int:
        """(annualized return - risk-free rate) / annualized volatility."""
        volatility = self.calculate_volatility(series, step_size) / WAD
        if volatility < MIN_DEVIATION:
            return 0
        annualized = self.calculate_annualized_return(series, step_size) / WAD
        return _to_wad((annualized - self.risk_free_rate) / volatility)

    def calculate_sortino_ratio(self, series: ValueSeries, step_size: int) -> int:
        """Like Sharpe, but only returns below the per-step risk-free rate count as risk."""
        returns = self.calculate_step_returns(series)
        if len(returns) < 2:
            return 0
        periods = self.periods_per_year(step_size)
        threshold = self.risk_free_rate / periods
        downside = np.minimum(returns - threshold, 0.0)
        downside_deviation = float(np.sqrt(np.mean(downside**2))) * math.sqrt(periods)
        if downside_deviation < MIN_DEVIATION:
            return 0
        annualized = self.calculate_annualized_return(series, step_size) / WAD
        return _to_wad((annualized - self.risk_free_rate) / downside_deviation)

    def calculate(self, results: Sequence[BacktestResult], step_size: int) -> BacktestMetrics:
        """
        Compute every metric for one backtest.

        Returns:
            BacktestMetrics; status INSUFFICIENT_DATA for fewer than two results
        """
        results = list(results)
        totals = self._activity_totals(results)
        if len(results) < 2:
            return BacktestMetrics(
                status=MetricStatus.INSUFFICIENT_DATA,
                data_points=len(results),
                step_size=step_size,
                initial_value=results[0].portfolio_value if results else 0,
                final_value=results[-1].portfolio_value if results else 0,
                risk_free_rate_bps=self.risk_free_rate_bps,
                error_message="Need at least 2 results",
                **totals,
            )

        try:
            return BacktestMetrics(
                status=MetricStatus.SUCCESS,
                data_points=len(results),
                step_size=step_size,
                total_return=self.calculate_total_return(results),
                annualized_return=self.calculate_annualized_return(results, step_size),
                volatility=self.calculate_volatility(results, step_size),
                sharpe_ratio=self.calculate_sharpe_ratio(results, step_size),
                sortino_ratio=self.calculate_sortino_ratio(results, step_size),
                max_drawdown=self.calculate_max_drawdown(results),
                initial_value=results[0].portfolio_value,
                final_value=results[-1].portfolio_value,
                risk_free_rate_bps=self.risk_free_rate_bps,
                **totals,
            )
        except ValueError as e:
            logger.error(f"Metrics calculation failed: {e}")
            return BacktestMetrics(
                status=MetricStatus.ERROR,
                data_points=len(results),
                step_size=step_size,
                error_message=str(e),
            )

    @staticmethod
    def _activity_totals(results: Sequence[BacktestResult]) -> dict:
        return {
            "rebalance_count": sum(1 for r in results if r.rebalanced),
            "total_yield_harvested": sum(r.yield_harvested for r in results),
            "total_gas_cost": sum(r.gas_cost for r in results),
            "total_management_fee": sum(r.management_fee for r in results),
            "total_slippage_cost": sum(r.slippage_cost for r in results),
        }


def calculate_metrics(
    results: Sequence[BacktestResult],
    step_size: int,
    risk_free_rate_bps: Optional[int] = None,
) -> BacktestMetrics:
    """Convenience wrapper using the configured risk-free rate when none is given."""
    if risk_free_rate_bps is None:
        from config import get_settings

        risk_free_rate_bps = get_settings().risk_free_rate_bps
    return MetricsCalculator(risk_free_rate_bps).calculate(results, step_size)
