"""Integration tests for the backtesting framework, persistence and CLI."""

import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from src.cli import main
from src.core.constants import SECONDS_PER_DAY, WAD, usd_to_wad
from src.core.errors import PreconditionError, ValidationError
from src.core.models import AssetConfig, MetricStatus
from src.sandbox.data import HistoricalDataProvider
from src.sandbox.engine import (
    BacktestingFramework,
    VaultSimulationEngine,
    compare_configs,
    format_comparison,
    run_backtest,
    run_parameter_sweep,
)
from src.sandbox.models import BacktestRun, SimulationConfig
from src.sandbox.persistence import BacktestCache, BacktestStorage

START = 1_704_067_200
DAY = SECONDS_PER_DAY
END = START + 10 * DAY

ASSETS = [
    AssetConfig("SPX", "spx-perp", 6000),
    AssetConfig("USDC", "usdc-lending", 4000, is_yield_generating=True),
]


@pytest.fixture
def market() -> HistoricalDataProvider:
    """Ten days of SPX prices, USDC at $1 earning 4%."""
    provider = HistoricalDataProvider()
    spx = [5000, 5050, 4980, 5100, 5200, 5150, 5300, 5250, 5400, 5350, 5500]
    for day, price in enumerate(spx):
        provider.set_asset_price("SPX", START + day * DAY, usd_to_wad(price))
        provider.set_asset_price("USDC", START + day * DAY, WAD)
    provider.set_yield_rate("usdc-lending", START, 400)
    return provider


@pytest.fixture
def config() -> SimulationConfig:
    return SimulationConfig(
        initial_deposit=usd_to_wad(10_000),
        name="spx-usdc",
        rebalance_threshold_bps=200,
        management_fee_bps=50,
        assets=list(ASSETS),
    )


@pytest.fixture
def framework(market, config) -> BacktestingFramework:
    framework = BacktestingFramework(VaultSimulationEngine(market, config))
    framework.configure(START, END, DAY)
    return framework


class TestBacktestingFramework:
    """Tests for BacktestingFramework."""

    def test_configure_validation(self, market, config):
        framework = BacktestingFramework(VaultSimulationEngine(market, config))

        with pytest.raises(ValidationError):
            framework.configure(END, START, DAY)
        with pytest.raises(ValidationError):
            framework.configure(START, START, DAY)
        with pytest.raises(ValidationError):
            framework.configure(START, END, 0)
        with pytest.raises(PreconditionError):
            framework.run_backtest()

    def test_successful_run(self, framework):
        assert framework.run_backtest()
        assert framework.failure is None
        assert framework.get_result_count() == 11
        assert framework.get_result(0).timestamp == START
        assert framework.get_result(10).timestamp == END

        with pytest.raises(IndexError):
            framework.get_result(11)

    def test_results_are_consistent(self, framework):
        framework.run_backtest()

        for result in framework.results:
            assert sum(result.asset_values) + result.buffer_value == result.portfolio_value
            assert len(result.asset_weights) == 2
        assert sum(r.yield_harvested for r in framework.results) > 0
        assert sum(r.management_fee for r in framework.results) > 0

    def test_metrics(self, framework):
        framework.run_backtest()
        metrics = framework.calculate_metrics()

        assert metrics.status == MetricStatus.SUCCESS
        assert metrics.data_points == 11
        assert metrics.total_return > 0
        assert metrics.final_value == framework.get_result(10).portfolio_value

    def test_run_resets_results(self, framework):
        framework.run_backtest()
        framework.run_backtest()

        assert framework.get_result_count() == 11

    def test_failing_step_recorded(self, market, config):
        market.set_asset_price("SPX", START + 5 * DAY, usd_to_wad(50_000))
        config.halt_on_value_jump = True
        framework = BacktestingFramework(VaultSimulationEngine(market, config))
        framework.configure(START, END, DAY)

        assert not framework.run_backtest()
        failure = framework.failure
        assert failure.step_index == 5
        assert failure.timestamp == START + 5 * DAY
        assert failure.error_type == "SimulationInvariantError"
        assert framework.get_result_count() == 5

        run = framework.to_run()
        assert not run.success
        assert "SimulationInvariantError" in run.error_message

    def test_initialize_failure_recorded(self, market, config):
        framework = BacktestingFramework(VaultSimulationEngine(market, config))
        framework.configure(START - DAY, END, DAY)

        assert not framework.run_backtest()
        assert framework.failure.step_index == -1
        assert framework.failure.error_type == "MissingDataError"
        assert framework.get_result_count() == 0


class TestRunHelpers:
    """Tests for run_backtest, sweeps and comparison."""

    def test_run_backtest(self, market, config):
        run = run_backtest(market, config, START, END, DAY)

        assert run.success
        assert len(run.results) == 11
        assert run.metrics.is_valid
        assert run.final_value == run.results[-1].portfolio_value

    def test_run_backtest_invalid_range(self, market, config):
        run = run_backtest(market, config, END, START, DAY)

        assert not run.success
        assert run.results == []
        assert "before end" in run.error_message

    def test_parameter_sweep_keeps_order(self, market, config):
        thresholds = [50, 500, 5000]
        runs = run_parameter_sweep(market, config, "rebalance_threshold_bps", thresholds, START, END, DAY)

        assert [r.config.rebalance_threshold_bps for r in runs] == thresholds
        assert all(r.success for r in runs)
        assert "rebalance_threshold_bps=50" in runs[0].name
        assert runs[0].metrics.rebalance_count >= runs[2].metrics.rebalance_count
        assert config.rebalance_threshold_bps == 200

    def test_compare_with_cache(self, market, config, test_settings):
        cache = BacktestCache(test_settings)
        configs = [config, config.copy(name="no-fee", management_fee_bps=0)]
        try:
            first = compare_configs(market, configs, START, END, DAY, cache=cache)
            second = compare_configs(market, configs, START, END, DAY, cache=cache)
        finally:
            cache.close()

        assert [r.name for r in second] == ["spx-usdc", "no-fee"]
        assert second[1].final_value == first[1].final_value
        assert second[1].final_value > second[0].final_value

    def test_format_comparison(self, market, config):
        good = run_backtest(market, config, START, END, DAY)
        bad = run_backtest(market, config.copy(name="broken"), END, START, DAY)
        text = format_comparison([good, bad])

        assert "spx-usdc" in text
        assert "broken" in text
        assert "FAILED" in text


class TestBacktestCache:
    """Tests for BacktestCache."""

    def test_get_or_run_caches_success(self, market, config, test_settings):
        cache = BacktestCache(test_settings)
        calls = []

        def factory() -> BacktestRun:
            calls.append(1)
            return run_backtest(market, config, START, END, DAY)

        key = BacktestCache.make_key(config.to_dict(), START, END, DAY)
        try:
            first = cache.get_or_run(key, factory)
            second = cache.get_or_run(key, factory)
            assert cache.clear() == 1
        finally:
            cache.close()

        assert len(calls) == 1
        assert second.final_value == first.final_value
        assert second.metrics.sharpe_ratio == first.metrics.sharpe_ratio

    def test_failed_runs_not_cached(self, market, config, test_settings):
        cache = BacktestCache(test_settings)
        calls = []

        def factory() -> BacktestRun:
            calls.append(1)
            return run_backtest(market, config, END, START, DAY)

        try:
            cache.get_or_run("failing", factory)
            cache.get_or_run("failing", factory)
        finally:
            cache.close()

        assert len(calls) == 2

    def test_single_handle_across_threads(self, test_settings):
        """Concurrent first use from a sweep's worker threads opens one cache."""
        created = []

        def slow_open(directory):
            time.sleep(0.05)
            handle = MagicMock()
            created.append(handle)
            return handle

        cache = BacktestCache(test_settings)
        with patch("src.sandbox.persistence.cache.diskcache.Cache", side_effect=slow_open):
            with ThreadPoolExecutor(max_workers=8) as pool:
                handles = list(pool.map(lambda _: cache._get_cache(), range(16)))
            cache.close()

        assert len(created) == 1
        assert all(h is created[0] for h in handles)

    def test_make_key_stable(self, config):
        assert BacktestCache.make_key(config.to_dict(), 1) == BacktestCache.make_key(config.to_dict(), 1)
        assert BacktestCache.make_key(config.to_dict(), 1) != BacktestCache.make_key(config.to_dict(), 2)


class TestBacktestStorage:
    """Tests for BacktestStorage."""

    @pytest.fixture
    def run(self, market, config) -> BacktestRun:
        return run_backtest(market, config, START, END, DAY)

    def test_save_and_load(self, run, tmp_path):
        storage = BacktestStorage(tmp_path)
        run_id = storage.save_run(run, run_id="r1")
        loaded = storage.load_run(run.name, run_id)

        assert loaded.name == run.name
        assert loaded.results == run.results
        assert loaded.config.assets == run.config.assets
        assert loaded.metrics.total_return == run.metrics.total_return

    def test_list_and_delete(self, run, tmp_path):
        storage = BacktestStorage(tmp_path)
        storage.save_run(run, run_id="r1")

        runs = storage.list_runs(run.name)
        assert [r["id"] for r in runs] == ["r1"]
        assert runs[0]["success"] is True

        assert storage.delete_run(run.name, "r1")
        assert not storage.delete_run(run.name, "r1")
        assert storage.load_run(run.name, "r1") is None

    def test_export_csv(self, run, tmp_path):
        path = BacktestStorage(tmp_path).export_csv(run, tmp_path / "out" / "steps.csv")
        frame = pd.read_csv(path)

        assert len(frame) == 11
        assert {"timestamp", "portfolio_value", "value_SPX", "weight_USDC"} <= set(frame.columns)


class TestCli:
    """Tests for the rwa-backtest entry point."""

    def test_allocate(self):
        assert main(["allocate", "--deposit", "5000"]) == 0

    def test_allocate_invalid_split(self):
        assert main(["allocate", "--allocation", "5000", "5000", "5000"]) == 1

    def test_demo(self):
        assert main(["demo", "--days", "20", "--no-chart"]) == 0

    def test_run_csv(self, market, tmp_path):
        data = market.save_csv(tmp_path / "market.csv")
        out = tmp_path / "steps.csv"
        code = main([
            "run",
            "--data", str(data),
            "--asset", "SPX:spx-perp:6000",
            "--asset", "USDC:usdc-lending:4000:yield",
            "--export-csv", str(out),
        ])

        assert code == 0
        assert len(pd.read_csv(out)) == 11

    def test_run_bad_weights(self, market, tmp_path):
        data = market.save_csv(tmp_path / "market.csv")
        code = main(["run", "--data", str(data), "--asset", "SPX:spx-perp:6000", "--no-chart"])

        assert code == 1
