"""Backtesting framework driving the vault simulation engine."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Sequence, Tuple

from src.analytics.metrics import MetricsCalculator
from src.core.constants import from_wad
from src.core.errors import PreconditionError, ValidationError
from src.core.models import BacktestFailure, BacktestMetrics, BacktestResult
from src.sandbox.data import HistoricalDataProvider
from src.sandbox.models import BacktestRun, SimulationConfig
from src.sandbox.persistence import BacktestCache

from .simulator import VaultSimulationEngine

logger = logging.getLogger(__name__)


class BacktestingFramework:
    """
    Runs a VaultSimulationEngine over a time range and owns the results.

    Steps are strictly serial: each one depends on the state the previous
    step left behind.
    """

    def __init__(self, engine: VaultSimulationEngine, metrics: Optional[MetricsCalculator] = None):
        """
        Initialize framework.

        Args:
            engine: Engine with its assets registered
            metrics: Metrics calculator (default: zero risk-free rate)
        """
        self.engine = engine
        self.metrics = metrics or MetricsCalculator()
        self.start: Optional[int] = None
        self.end: Optional[int] = None
        self.step_size: Optional[int] = None
        self._results: List[BacktestResult] = []
        self._failure: Optional[BacktestFailure] = None

    def configure(self, start: int, end: int, step_size: int) -> None:
        if start >= end:
            raise ValidationError(f"Start {start} must be before end {end}")
        if step_size <= 0:
            raise ValidationError(f"Step size must be positive: {step_size}")
        self.start = start
        self.end = end
        self.step_size = step_size

    @property
    def is_configured(self) -> bool:
        return self.step_size is not None

    def run_backtest(self) -> bool:
        """
        Initialize the engine at `start` and step through `start..end` inclusive.

        On a failing step the failure is logged and recorded, results from
        earlier steps are kept, and False is returned.

        Returns:
            True if every step succeeded
        """
        if not self.is_configured:
            raise PreconditionError("Backtest not configured")

        self._results = []
        self._failure = None
        name = self.engine.config.name

        try:
            self.engine.initialize(self.start)
        except Exception as e:
            self._record_failure(-1, self.start, e)
            return False

        logger.info(f"Running backtest '{name}': {self.start} -> {self.end} every {self.step_size}s")

        for index, timestamp in enumerate(range(self.start, self.end + 1, self.step_size)):
            try:
                result = self.engine.run_step(timestamp)
            except Exception as e:
                self._record_failure(index, timestamp, e)
                return False
            self._results.append(result)

        logger.info(f"Backtest '{name}' completed: {len(self._results)} steps")
        return True

    def _record_failure(self, index: int, timestamp: int, error: Exception) -> None:
        self._failure = BacktestFailure(
            step_index=index,
            timestamp=timestamp,
            error_type=type(error).__name__,
            error_message=str(error),
        )
        logger.error(f"Backtest failed at step {index} (timestamp {timestamp}): {error}")

    # ========== RESULTS ==========

    @property
    def results(self) -> Tuple[BacktestResult, ...]:
        return tuple(self._results)

    @property
    def failure(self) -> Optional[BacktestFailure]:
        return self._failure

    def get_result(self, index: int) -> BacktestResult:
        if not 0 <= index < len(self._results):
            raise IndexError(f"Result index out of range: {index}")
        return self._results[index]

    def get_result_count(self) -> int:
        return len(self._results)

    def calculate_metrics(self) -> BacktestMetrics:
        if not self.is_configured:
            raise PreconditionError("Backtest not configured")
        return self.metrics.calculate(self._results, self.step_size)

    def to_run(self) -> BacktestRun:
        """Package config, results, failure and metrics into a BacktestRun."""
        if not self.is_configured:
            raise PreconditionError("Backtest not configured")
        return BacktestRun(
            config=self.engine.config,
            start=self.start,
            end=self.end,
            step_size=self.step_size,
            results=list(self._results),
            metrics=self.calculate_metrics(),
            failure=self._failure,
            success=self._failure is None,
            error_message=str(self._failure) if self._failure else "",
        )


def run_backtest(
    data: HistoricalDataProvider,
    config: SimulationConfig,
    start: int,
    end: int,
    step_size: int,
    risk_free_rate_bps: int = 0,
) -> BacktestRun:
    """
    Run one backtest from a config and return its packaged outcome.

    Configuration errors are reported on the run, not raised.
    """
    try:
        engine = VaultSimulationEngine(data, config)
        framework = BacktestingFramework(engine, MetricsCalculator(risk_free_rate_bps))
        framework.configure(start, end, step_size)
    except ValidationError as e:
        logger.error(f"Invalid backtest '{config.name}': {e}")
        return BacktestRun(
            config=config,
            start=start,
            end=end,
            step_size=step_size,
            success=False,
            error_message=str(e),
        )

    framework.run_backtest()
    return framework.to_run()


def run_parameter_sweep(
    data: HistoricalDataProvider,
    base_config: SimulationConfig,
    param_name: str,
    param_values: Sequence[Any],
    start: int,
    end: int,
    step_size: int,
    risk_free_rate_bps: int = 0,
    max_workers: int = 4,
    cache: Optional[BacktestCache] = None,
) -> List[BacktestRun]:
    """
    Run one backtest per parameter value.

    Backtests are independent and run in a thread pool; results keep the
    order of `param_values`.

    Args:
        data: Shared historical data (read-only during the sweep)
        base_config: Configuration to vary
        param_name: SimulationConfig field to sweep (e.g. "rebalance_threshold_bps")
        param_values: Values to test
        start, end, step_size: Time grid
        risk_free_rate_bps: Risk-free rate for Sharpe/Sortino
        max_workers: Worker threads
        cache: Optional cache of finished runs

    Returns:
        List of BacktestRun for each parameter value
    """
    configs = [
        base_config.copy(**{param_name: value, "name": f"{base_config.name} ({param_name}={value})"})
        for value in param_values
    ]
    return compare_configs(data, configs, start, end, step_size, risk_free_rate_bps, max_workers, cache)


def compare_configs(
    data: HistoricalDataProvider,
    configs: Sequence[SimulationConfig],
    start: int,
    end: int,
    step_size: int,
    risk_free_rate_bps: int = 0,
    max_workers: int = 4,
    cache: Optional[BacktestCache] = None,
) -> List[BacktestRun]:
    """Run several configurations over the same data and time grid."""
    data_key = BacktestCache.make_key(data.to_dict()) if cache else None

    def run_one(config: SimulationConfig) -> BacktestRun:
        def factory() -> BacktestRun:
            return run_backtest(data, config, start, end, step_size, risk_free_rate_bps)

        if cache is None:
            return factory()
        key = BacktestCache.make_key(config.to_dict(), start, end, step_size, risk_free_rate_bps, data_key)
        return cache.get_or_run(key, factory)

    logger.info(f"Running {len(configs)} backtests with {max_workers} workers")
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        return list(pool.map(run_one, configs))


def format_comparison(runs: Sequence[BacktestRun]) -> str:
    """
    Format a comparison table of backtest runs.

    Args:
        runs: Backtest runs

    Returns:
        Formatted comparison string
    """
    lines = []
    lines.append("=" * 96)
    lines.append("BACKTEST COMPARISON")
    lines.append("=" * 96)
    lines.append("")

    header = (
        f"{'Backtest':<36} {'Final ($)':>14} {'Return':>9} {'APY':>9} "
        f"{'Vol':>8} {'Sharpe':>7} {'MaxDD':>8}"
    )
    lines.append(header)
    lines.append("-" * 96)

    for run in runs:
        m = run.metrics
        if not run.success or m is None or not m.is_valid:
            reason = run.error_message or (m.error_message if m else "") or "FAILED"
            lines.append(f"{run.name[:36]:<36} {'FAILED':>14}  {reason[:40]}")
            continue

        line = (
            f"{run.name[:36]:<36} "
            f"{float(from_wad(m.final_value)):>14,.2f} "
            f"{float(m.total_return_percent):>8.2f}% "
            f"{float(m.annualized_return_percent):>8.2f}% "
            f"{float(m.volatility_percent):>7.2f}% "
            f"{float(from_wad(m.sharpe_ratio)):>7.2f} "
            f"{float(m.max_drawdown_percent):>7.2f}%"
        )
        lines.append(line)

    lines.append("=" * 96)
    return "\n".join(lines)
