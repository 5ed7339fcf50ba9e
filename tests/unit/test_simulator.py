"""Unit tests for VaultSimulationEngine."""

import logging

import pytest

from src.core.constants import SECONDS_PER_DAY, WAD, usd_to_wad
from src.core.errors import (
    MissingDataError,
    PreconditionError,
    SimulationInvariantError,
    ValidationError,
)
from src.core.models import AssetConfig
from src.sandbox.data import HistoricalDataProvider
from src.sandbox.engine import VaultSimulationEngine
from src.sandbox.models import SimulationConfig

START = 1_704_067_200
DAY = SECONDS_PER_DAY
YEAR_DAYS = 365

CASH = AssetConfig("USDC", "usdc-lending", 10000, is_yield_generating=True)
HALF_SPX = AssetConfig("SPX", "spx-perp", 5000)
HALF_CASH = AssetConfig("USDC", "usdc-cash", 5000)


def make_provider(spx_prices=None, yield_bps=400) -> HistoricalDataProvider:
    """USDC pinned at $1, SPX following `spx_prices` ({day: usd})."""
    provider = HistoricalDataProvider()
    provider.set_asset_price("USDC", START, WAD)
    for day, price in (spx_prices or {0: 5000}).items():
        provider.set_asset_price("SPX", START + day * DAY, usd_to_wad(price))
    if yield_bps:
        provider.set_yield_rate("usdc-lending", START, yield_bps)
    return provider


def make_engine(provider, assets, **overrides) -> VaultSimulationEngine:
    params = {"rebalance_interval": YEAR_DAYS * DAY}
    params.update(overrides)
    config = SimulationConfig(initial_deposit=usd_to_wad(10_000), assets=assets, **params)
    return VaultSimulationEngine(provider, config)


class TestSetup:
    """Asset registration and initialization."""

    def test_registers_config_assets(self):
        engine = make_engine(make_provider(), [HALF_SPX, HALF_CASH])

        assert [a.asset for a in engine.assets] == ["SPX", "USDC"]
        assert not engine.is_initialized
        assert engine.get_portfolio_value() == 0
        assert engine.get_asset_values() == ()

    def test_add_asset_validation(self):
        engine = make_engine(make_provider(), [HALF_SPX])

        with pytest.raises(ValidationError, match="already added"):
            engine.add_asset("SPX", "spx-perp", 1000)
        with pytest.raises(ValidationError):
            engine.add_asset("GOLD", "gold-trs", 0)
        with pytest.raises(ValidationError):
            engine.add_asset("GOLD", "gold-trs", 10001)

    def test_add_asset_after_initialize(self):
        engine = make_engine(make_provider(), [CASH])
        engine.initialize(START)

        with pytest.raises(PreconditionError):
            engine.add_asset("SPX", "spx-perp", 1000)

    def test_weights_must_sum_to_10000(self):
        engine = make_engine(make_provider(), [HALF_SPX])

        with pytest.raises(ValidationError, match="sum to 10000"):
            engine.initialize(START)

    def test_no_assets(self):
        engine = make_engine(make_provider(), [])

        with pytest.raises(ValidationError):
            engine.initialize(START)

    def test_missing_price_at_start(self):
        engine = make_engine(make_provider(), [HALF_SPX, HALF_CASH])

        with pytest.raises(MissingDataError):
            engine.initialize(START - 1)
        assert not engine.is_initialized

    def test_initial_allocation(self):
        engine = make_engine(make_provider(), [HALF_SPX, HALF_CASH])
        engine.initialize(START)

        assert engine.get_asset_values() == (5_000 * WAD, 5_000 * WAD)
        assert engine.get_portfolio_value() == 10_000 * WAD
        assert engine.context.units[0] == WAD  # one SPX at $5000

    def test_liquidity_buffer(self):
        engine = make_engine(make_provider(), [HALF_SPX, HALF_CASH], liquidity_buffer_bps=1000)
        engine.initialize(START)

        assert engine.get_asset_values() == (4_500 * WAD, 4_500 * WAD)
        assert engine.context.buffer == 1_000 * WAD


class TestStepping:
    """run_step ordering and accounting."""

    def test_step_before_initialize(self):
        engine = make_engine(make_provider(), [CASH])

        with pytest.raises(PreconditionError):
            engine.run_step(START)

    def test_timestamp_must_not_decrease(self):
        engine = make_engine(make_provider(), [CASH])
        engine.initialize(START)
        engine.run_step(START + DAY)

        with pytest.raises(PreconditionError):
            engine.run_step(START)

    def test_repeated_timestamp_allowed(self):
        engine = make_engine(make_provider(), [CASH])
        engine.initialize(START)
        first = engine.run_step(START + DAY)
        second = engine.run_step(START + DAY)

        assert second.yield_harvested == 0
        assert second.portfolio_value == first.portfolio_value

    def test_yield_accrual_90_days(self):
        """$10,000 at 4% for 90 days earns 10000 * 0.04 * 90/365."""
        engine = make_engine(make_provider(), [CASH])
        engine.initialize(START)
        result = engine.run_step(START + 90 * DAY)

        assert result.yield_harvested == 98_630_136_986_301_369_863
        assert result.portfolio_value == 10_000 * WAD + 98_630_136_986_301_369_863

    def test_daily_steps_compound_over_three_years(self):
        """Daily harvesting at 4% compounds to roughly 10000 * (1 + 0.04/365) ** 1095."""
        engine = make_engine(make_provider(), [CASH])
        engine.initialize(START)
        for day in range(1, 3 * YEAR_DAYS + 1):
            result = engine.run_step(START + day * DAY)

        assert 11_200 * WAD < result.portfolio_value < 11_300 * WAD
        assert engine.get_portfolio_value() == result.portfolio_value

    def test_yield_only_for_yield_assets(self):
        engine = make_engine(make_provider(), [HALF_SPX, HALF_CASH])
        engine.initialize(START)
        result = engine.run_step(START + 30 * DAY)

        assert result.yield_harvested == 0
        assert result.portfolio_value == 10_000 * WAD

    def test_no_yield_without_rate(self):
        engine = make_engine(make_provider(yield_bps=0), [CASH])
        engine.initialize(START)

        assert engine.run_step(START + 30 * DAY).yield_harvested == 0

    def test_value_decomposition(self):
        prices = {0: 5000, 1: 5300, 2: 4700, 3: 6100, 4: 5900}
        engine = make_engine(
            make_provider(prices),
            [HALF_SPX, HALF_CASH],
            liquidity_buffer_bps=500,
            management_fee_bps=100,
            slippage_bps=30,
            gas_cost=usd_to_wad(2),
        )
        engine.initialize(START)

        for day in range(1, 6):
            result = engine.run_step(START + day * DAY)
            assert sum(result.asset_values) + result.buffer_value == result.portfolio_value
            assert result.weight_total + result.buffer_weight <= 10000

    def test_step_count(self):
        engine = make_engine(make_provider(), [CASH])
        engine.initialize(START)
        for day in range(1, 4):
            engine.run_step(START + day * DAY)

        assert engine.context.step_count == 3


class TestRebalancing:
    """Drift and calendar triggers."""

    def test_drift_triggers_rebalance(self):
        engine = make_engine(make_provider({0: 5000, 1: 7500}), [HALF_SPX, HALF_CASH])
        engine.initialize(START)
        result = engine.run_step(START + DAY)

        assert result.rebalanced
        assert result.portfolio_value == 12_500 * WAD
        for weight in result.asset_weights:
            assert abs(weight - 5000) <= 1

    def test_small_drift_holds(self):
        engine = make_engine(make_provider({0: 5000, 1: 5100}), [HALF_SPX, HALF_CASH])
        engine.initialize(START)
        result = engine.run_step(START + DAY)

        assert not result.rebalanced
        assert result.asset_weights == (5049, 4950)

    def test_interval_triggers_rebalance(self):
        engine = make_engine(make_provider(), [HALF_SPX, HALF_CASH], rebalance_interval=7 * DAY)
        engine.initialize(START)

        assert not engine.run_step(START + 3 * DAY).rebalanced
        assert engine.run_step(START + 7 * DAY).rebalanced
        assert not engine.run_step(START + 8 * DAY).rebalanced
        assert engine.context.rebalance_count == 1


class TestCosts:
    """Management fee, gas and slippage."""

    def test_management_fee(self):
        engine = make_engine(make_provider(yield_bps=0), [CASH], management_fee_bps=100)
        engine.initialize(START)
        result = engine.run_step(START + YEAR_DAYS * DAY)

        assert result.management_fee == 100 * WAD
        assert result.portfolio_value == 9_900 * WAD

    def test_gas_per_rebalance(self):
        engine = make_engine(
            make_provider(yield_bps=0),
            [CASH],
            rebalance_interval=DAY,
            gas_cost=usd_to_wad(5),
        )
        engine.initialize(START)
        result = engine.run_step(START + DAY)

        assert result.rebalanced
        assert result.gas_cost == 5 * WAD
        assert result.portfolio_value == 9_995 * WAD

    def test_no_gas_without_rebalance(self):
        engine = make_engine(make_provider(yield_bps=0), [CASH], gas_cost=usd_to_wad(5))
        engine.initialize(START)
        result = engine.run_step(START + DAY)

        assert not result.rebalanced
        assert result.gas_cost == 0

    def test_slippage_on_traded_notional(self):
        engine = make_engine(make_provider({0: 5000, 1: 7500}), [HALF_SPX, HALF_CASH], slippage_bps=100)
        engine.initialize(START)
        result = engine.run_step(START + DAY)

        # About $2,500 traded at 1%
        assert abs(result.slippage_cost - 25 * WAD) < WAD
        assert result.portfolio_value == 12_500 * WAD - result.slippage_cost


class TestValueJump:
    """Sudden portfolio value increases."""

    def test_jump_warns(self, caplog):
        engine = make_engine(make_provider({0: 5000, 1: 15000}), [AssetConfig("SPX", "spx-perp", 10000)])
        engine.initialize(START)

        with caplog.at_level(logging.WARNING):
            result = engine.run_step(START + DAY)

        assert result.portfolio_value == 30_000 * WAD
        assert "jumped" in caplog.text

    def test_jump_halts(self):
        engine = make_engine(
            make_provider({0: 5000, 1: 15000}),
            [AssetConfig("SPX", "spx-perp", 10000)],
            halt_on_value_jump=True,
        )
        engine.initialize(START)

        with pytest.raises(SimulationInvariantError, match="SPX"):
            engine.run_step(START + DAY)
        assert engine.get_portfolio_value() == 10_000 * WAD
        assert engine.context.step_count == 0

    def test_doubling_within_factor(self):
        engine = make_engine(
            make_provider({0: 5000, 1: 10000}),
            [AssetConfig("SPX", "spx-perp", 10000)],
            halt_on_value_jump=True,
        )
        engine.initialize(START)

        assert engine.run_step(START + DAY).portfolio_value == 20_000 * WAD


class TestFailedStep:
    """A failing step leaves no partial state."""

    def test_state_unchanged_after_failure(self, monkeypatch):
        engine = make_engine(make_provider(), [CASH], management_fee_bps=100)
        engine.initialize(START)
        engine.run_step(START + DAY)
        before = engine.context

        def no_data(asset, timestamp):
            raise MissingDataError(f"No price for {asset}")

        monkeypatch.setattr(engine.data, "get_asset_price", no_data)
        with pytest.raises(MissingDataError):
            engine.run_step(START + 2 * DAY)

        assert engine.context == before
        monkeypatch.undo()
        assert engine.run_step(START + 2 * DAY).timestamp == START + 2 * DAY
