"""Command-line entry point: `rwa-backtest`."""

import argparse
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from config import get_settings
from src.core.constants import SECONDS_PER_DAY, USD_STABLE_DECIMALS, WAD, usd_to_wad
from src.core.errors import AllocationError
from src.core.models import AssetConfig, AssetType
from src.protocols import InMemoryRWAToken, InMemoryYieldStrategy
from src.sandbox.data import (
    HistoricalDataProvider,
    SyntheticAsset,
    SyntheticMarketGenerator,
    SyntheticYield,
)
from src.sandbox.engine import (
    CapitalAllocationManager,
    calculate_targets,
    run_backtest,
    run_parameter_sweep,
)
from src.sandbox.models import BacktestRun, SimulationConfig
from src.sandbox.persistence import BacktestCache, BacktestStorage

from .report import create_buckets_table, print_run, print_runs

logger = logging.getLogger(__name__)

# 2024-01-01T00:00:00Z
DEMO_START = 1_704_067_200

DEMO_ASSETS = [
    (SyntheticAsset("SPX", 4_750.0, drift=0.08, volatility=0.17), AssetConfig("SPX", "spx-perp", 4000)),
    (SyntheticAsset("GOLD", 2_050.0, drift=0.04, volatility=0.14), AssetConfig("GOLD", "gold-trs", 2000)),
    (SyntheticAsset("REIT", 95.0, drift=0.05, volatility=0.22), AssetConfig("REIT", "reit-direct", 1000)),
    (
        SyntheticAsset("USDC", 1.0, drift=0.0, volatility=0.0),
        AssetConfig("USDC", "usdc-lending", 3000, is_yield_generating=True),
    ),
]
DEMO_YIELDS = [SyntheticYield("usdc-lending", base_rate_bps=450, rate_volatility_bps=15)]


def parse_asset(value: str) -> AssetConfig:
    """Parse `ASSET:WRAPPER:WEIGHT[:yield]`."""
    parts = value.split(":")
    if len(parts) not in (3, 4) or (len(parts) == 4 and parts[3] != "yield"):
        raise argparse.ArgumentTypeError(f"Expected ASSET:WRAPPER:WEIGHT[:yield], got {value!r}")
    try:
        weight = int(parts[2])
    except ValueError:
        raise argparse.ArgumentTypeError(f"Weight must be an integer (bps): {parts[2]!r}")
    return AssetConfig(parts[0], parts[1], weight, is_yield_generating=len(parts) == 4)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rwa-backtest",
        description="Backtest RWA index fund allocation and rebalancing",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_run_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--deposit", type=Decimal, default=Decimal("10000"), help="Initial deposit in USD")
        p.add_argument("--step-days", type=float, default=1.0, help="Step size in days")
        p.add_argument("--threshold-bps", type=int, default=None, help="Rebalance drift threshold")
        p.add_argument("--interval-days", type=float, default=None, help="Calendar rebalance interval")
        p.add_argument("--fee-bps", type=int, default=None, help="Annual management fee")
        p.add_argument("--buffer-bps", type=int, default=0, help="Liquidity buffer held outside assets")
        p.add_argument(
            "--sweep",
            nargs="+",
            type=int,
            metavar="BPS",
            help="Compare these rebalance thresholds instead of a single run",
        )
        p.add_argument("--workers", type=int, default=4, help="Worker threads for --sweep")
        p.add_argument("--no-cache", action="store_true", help="Do not cache sweep results")
        p.add_argument("--save", action="store_true", help="Save the run as JSON")
        p.add_argument("--export-csv", type=Path, default=None, help="Export step results to CSV")
        p.add_argument("--no-chart", action="store_true", help="Skip the value chart")

    demo = sub.add_parser("demo", help="Backtest on synthetic market data")
    demo.add_argument("--days", type=int, default=365, help="Days to simulate")
    demo.add_argument("--seed", type=int, default=42, help="Random seed")
    add_run_options(demo)

    run = sub.add_parser("run", help="Backtest on CSV market data")
    run.add_argument("--data", type=Path, required=True, help="CSV with timestamp,kind,key,value")
    run.add_argument(
        "--asset",
        dest="assets",
        type=parse_asset,
        action="append",
        required=True,
        help="ASSET:WRAPPER:WEIGHT[:yield], repeatable",
    )
    run.add_argument("--start", type=int, default=None, help="Start timestamp (default: first price)")
    run.add_argument("--end", type=int, default=None, help="End timestamp (default: last price)")
    add_run_options(run)

    allocate = sub.add_parser("allocate", help="Rebalance an in-memory vault once and show the buckets")
    allocate.add_argument("--deposit", type=Decimal, default=Decimal("10000"), help="Deposit in USD")
    allocate.add_argument(
        "--allocation",
        nargs=3,
        type=int,
        default=[2000, 7000, 1000],
        metavar=("RWA", "YIELD", "BUFFER"),
        help="Target percentages in bps",
    )

    return parser


def build_config(args: argparse.Namespace, name: str, assets: List[AssetConfig]) -> SimulationConfig:
    overrides = {"name": name, "assets": assets, "liquidity_buffer_bps": args.buffer_bps}
    if args.threshold_bps is not None:
        overrides["rebalance_threshold_bps"] = args.threshold_bps
    if args.interval_days is not None:
        overrides["rebalance_interval"] = int(args.interval_days * SECONDS_PER_DAY)
    if args.fee_bps is not None:
        overrides["management_fee_bps"] = args.fee_bps
    return SimulationConfig.from_settings(get_settings(), usd_to_wad(args.deposit), **overrides)


def execute(
    console: Console,
    args: argparse.Namespace,
    data: HistoricalDataProvider,
    config: SimulationConfig,
    start: int,
    end: int,
) -> int:
    settings = get_settings()
    step_size = max(1, int(args.step_days * SECONDS_PER_DAY))

    if args.sweep:
        cache = None if args.no_cache else BacktestCache(settings)
        try:
            runs = run_parameter_sweep(
                data,
                config,
                "rebalance_threshold_bps",
                args.sweep,
                start,
                end,
                step_size,
                risk_free_rate_bps=settings.risk_free_rate_bps,
                max_workers=args.workers,
                cache=cache,
            )
        finally:
            if cache:
                cache.close()
        print_runs(console, runs)
        return 0 if all(r.success for r in runs) else 1

    run: BacktestRun = run_backtest(data, config, start, end, step_size, settings.risk_free_rate_bps)
    print_run(console, run, chart=not args.no_chart)

    if args.save:
        run_id = BacktestStorage(settings.ensure_results_dir()).save_run(run)
        console.print(f"Saved run [bold]{run_id}[/bold]")
    if args.export_csv:
        BacktestStorage(settings.ensure_results_dir()).export_csv(run, args.export_csv)
        console.print(f"Exported results to {args.export_csv}")

    if not run.success:
        failure = run.failure
        if failure:
            logger.error(f"Backtest failed at step {failure.step_index}, timestamp {failure.timestamp}")
        return 1
    return 0


def cmd_demo(console: Console, args: argparse.Namespace) -> int:
    end = DEMO_START + args.days * SECONDS_PER_DAY
    step_size = max(1, int(args.step_days * SECONDS_PER_DAY))
    data = SyntheticMarketGenerator(seed=args.seed).generate(
        DEMO_START,
        end,
        step_size,
        assets=[process for process, _ in DEMO_ASSETS],
        yields=DEMO_YIELDS,
    )
    config = build_config(args, f"demo seed={args.seed}", [asset for _, asset in DEMO_ASSETS])
    return execute(console, args, data, config, DEMO_START, end)


def cmd_run(console: Console, args: argparse.Namespace) -> int:
    data = HistoricalDataProvider.from_csv(args.data)
    time_range = data.time_range()
    if time_range is None:
        logger.error(f"No price data in {args.data}")
        return 1
    start = args.start if args.start is not None else time_range[0]
    end = args.end if args.end is not None else time_range[1]
    config = build_config(args, args.data.stem, args.assets)
    return execute(console, args, data, config, start, end)


def cmd_allocate(console: Console, args: argparse.Namespace) -> int:
    manager = CapitalAllocationManager(base_asset="USDC")
    manager.set_allocation(*args.allocation)
    manager.add_rwa_token(InMemoryRWAToken("Synthetic S&P 500", "sSPX"), 6000)
    manager.add_rwa_token(InMemoryRWAToken("Synthetic Gold", "sGOLD", AssetType.COMMODITY), 4000)
    manager.add_yield_strategy(InMemoryYieldStrategy("USDC Lending", "USDC", apy_bps=450), 7000)
    manager.add_yield_strategy(InMemoryYieldStrategy("USDC Staking", "USDC", apy_bps=380), 3000)
    # The vault hands over USDC in its native 6-decimal units
    manager.deposit(int(args.deposit * 10**USD_STABLE_DECIMALS), decimals=USD_STABLE_DECIMALS)

    allocation = manager.get_allocation()
    before = manager.get_bucket_values()
    console.print(create_buckets_table(before, calculate_targets(before.total, allocation), "Before rebalance"))

    report = manager.rebalance()
    console.print(create_buckets_table(report.after, calculate_targets(report.after.total, allocation), "After rebalance"))
    for move in report.moves:
        console.print(f"  {move.source.value} -> {move.destination.value}: ${move.amount / WAD:,.2f}")
    return 0


COMMANDS = {
    "demo": cmd_demo,
    "run": cmd_run,
    "allocate": cmd_allocate,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=args.log_level.upper() if args.log_level else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    console = Console()
    try:
        return COMMANDS[args.command](console, args)
    except AllocationError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
