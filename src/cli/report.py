"""Terminal reporting for backtest runs and allocation state."""

from typing import List, Sequence

import asciichartpy as acp
from rich.console import Console
from rich.table import Table
from rich.text import Text

from src.core.constants import from_wad
from src.core.models import Bucket, BucketValues
from src.sandbox.models import BacktestRun

# Resample charts above this many points
MAX_CHART_POINTS = 80


def _usd(value: int) -> str:
    return f"${float(from_wad(value)):,.2f}"


def _pct(value) -> str:
    return f"{float(value):.2f}%"


def create_value_chart(values: List[float], title: str, height: int = 12) -> Text:
    """Create an ASCII line chart using asciichartpy."""
    if not values:
        return Text("No data available", style="dim")

    if len(values) > MAX_CHART_POINTS:
        step = len(values) / MAX_CHART_POINTS
        values = [values[int(i * step)] for i in range(MAX_CHART_POINTS)]

    config = {
        "height": height,
        "colors": [acp.green],
        "format": "{:12,.2f}",
    }
    chart_str = acp.plot(values, config)

    output = Text()
    output.append(f"  {title}\n", style="bold #ff8c00")
    output.append_text(Text.from_ansi(chart_str))
    return output


def create_summary_table(run: BacktestRun) -> Table:
    """Key metrics of one run."""
    table = Table(title=f"Backtest: {run.name}", show_header=True, header_style="bold #ff8c00")
    table.add_column("Metric", style="dim")
    table.add_column("Value", justify="right")

    m = run.metrics
    table.add_row("Status", Text("OK", style="green") if run.success else Text("FAILED", style="bold red"))
    table.add_row("Steps", str(len(run.results)))
    if run.failure:
        table.add_row("Failure", Text(str(run.failure), style="red"))

    if m is not None and m.is_valid:
        table.add_row("Initial value", _usd(m.initial_value))
        table.add_row("Final value", _usd(m.final_value))
        table.add_row("Total return", _pct(m.total_return_percent))
        table.add_row("Annualized return", _pct(m.annualized_return_percent))
        table.add_row("Volatility (ann.)", _pct(m.volatility_percent))
        table.add_row("Sharpe ratio", f"{float(from_wad(m.sharpe_ratio)):.3f}")
        table.add_row("Sortino ratio", f"{float(from_wad(m.sortino_ratio)):.3f}")
        table.add_row("Max drawdown", _pct(m.max_drawdown_percent))
        table.add_row("Rebalances", str(m.rebalance_count))
        table.add_row("Yield harvested", _usd(m.total_yield_harvested))
        table.add_row("Management fees", _usd(m.total_management_fee))
        table.add_row("Slippage", _usd(m.total_slippage_cost))
        table.add_row("Gas", _usd(m.total_gas_cost))
    elif m is not None:
        table.add_row("Metrics", Text(m.status.value, style="yellow"))

    return table


def create_assets_table(run: BacktestRun) -> Table:
    """Final value and weight per asset."""
    table = Table(title="Final allocation", show_header=True, header_style="bold #ff8c00")
    table.add_column("Asset")
    table.add_column("Wrapper", style="dim")
    table.add_column("Target", justify="right")
    table.add_column("Value", justify="right")
    table.add_column("Weight", justify="right")

    if not run.results:
        return table

    last = run.results[-1]
    for i, asset in enumerate(run.config.assets):
        if i >= len(last.asset_values):
            break
        table.add_row(
            asset.asset + (" *" if asset.is_yield_generating else ""),
            asset.wrapper,
            _pct(asset.target_weight / 100),
            _usd(last.asset_values[i]),
            _pct(last.asset_weights[i] / 100),
        )
    table.add_row("buffer", "", "", _usd(last.buffer_value), _pct(last.buffer_weight / 100))
    return table


def create_buckets_table(values: BucketValues, targets: BucketValues, title: str) -> Table:
    """Current vs. target value per allocation bucket."""
    table = Table(title=title, show_header=True, header_style="bold #ff8c00")
    table.add_column("Bucket")
    table.add_column("Current", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("Weight", justify="right")

    for bucket in Bucket:
        table.add_row(
            bucket.value,
            _usd(values.get(bucket)),
            _usd(targets.get(bucket)),
            _pct(values.weight_bps(bucket) / 100),
        )
    table.add_row("total", _usd(values.total), _usd(targets.total), "")
    return table


def print_run(console: Console, run: BacktestRun, chart: bool = True) -> None:
    console.print(create_summary_table(run))
    console.print(create_assets_table(run))
    if chart and len(run.results) > 1:
        console.print(create_value_chart(run.value_series, "Portfolio value (USD)"))


def print_runs(console: Console, runs: Sequence[BacktestRun]) -> None:
    from src.sandbox.engine import format_comparison

    console.print(format_comparison(runs), markup=False, highlight=False)
