"""Unit tests for the in-memory collaborators and oracles."""

import pytest

from src.core.constants import WAD
from src.core.errors import MissingDataError
from src.core.models import AssetType, CostBreakdown, ExposureType
from src.protocols import (
    ExposureBackedToken,
    HistoricalPriceOracle,
    InMemoryExposureStrategy,
    InMemoryRWAToken,
    InMemoryYieldStrategy,
    StaticPriceOracle,
)
from src.sandbox.data import HistoricalDataProvider


class TestInMemoryYieldStrategy:
    """Tests for InMemoryYieldStrategy."""

    @pytest.fixture
    def strategy(self):
        return InMemoryYieldStrategy("USDC Lending", "USDC", apy_bps=400)

    def test_deposit_withdraw(self, strategy):
        shares = strategy.deposit(1_000)
        assert shares == 1_000
        assert strategy.get_total_value() == 1_000

        assert strategy.withdraw(400) == 400
        assert strategy.get_total_value() == 600

    def test_share_price_rises_with_yield(self, strategy):
        strategy.deposit(1_000)
        strategy.accrue(100)

        assert strategy.withdraw(500) == 550

    def test_harvest_pays_out_pending(self, strategy):
        strategy.deposit(1_000)
        strategy.accrue(50)

        assert strategy.harvest_yield() == 50
        assert strategy.harvest_yield() == 0
        assert strategy.get_total_value() == 1_000

    def test_accrue_for(self, strategy):
        strategy.deposit(10_000 * WAD)
        accrued = strategy.accrue_for(365 * 86400, 365 * 86400)

        assert accrued == 400 * WAD

    def test_withdraw_too_many_shares(self, strategy):
        strategy.deposit(100)
        with pytest.raises(ValueError):
            strategy.withdraw(101)

    def test_strategy_info(self, strategy):
        strategy.deposit(1_000)
        info = strategy.get_strategy_info()

        assert info.name == "USDC Lending"
        assert info.asset == "USDC"
        assert info.current_value == 1_000
        assert info.apy == 400
        assert info.to_dict()["active"] is True


class TestInMemoryRWAToken:
    """Tests for InMemoryRWAToken."""

    def test_mint_burn(self):
        token = InMemoryRWAToken("Synthetic S&P 500", "sSPX")
        token.mint("vault", 500)

        assert token.total_supply() == 500
        assert token.balance_of("vault") == 500
        assert token.burn("vault", 200) == 200
        assert token.total_supply() == 300

    def test_burn_more_than_balance(self):
        token = InMemoryRWAToken("Synthetic S&P 500", "sSPX")
        token.mint("vault", 100)

        with pytest.raises(ValueError, match="Insufficient balance"):
            token.burn("vault", 101)

    def test_burn_releases_at_oracle_price(self):
        oracle = StaticPriceOracle({"sSPX": 2 * WAD})
        token = InMemoryRWAToken("Synthetic S&P 500", "sSPX", oracle=oracle)
        token.mint("vault", 10 * WAD)

        assert token.burn("vault", 5 * WAD) == 10 * WAD
        assert token.get_asset_info().last_price == 2 * WAD

    def test_asset_info(self):
        token = InMemoryRWAToken("Synthetic Gold", "sGOLD", AssetType.COMMODITY)
        info = token.get_asset_info()

        assert info.symbol == "sGOLD"
        assert info.asset_type == AssetType.COMMODITY
        assert info.to_dict()["asset_type"] == "commodity"


class TestExposure:
    """Tests for InMemoryExposureStrategy and ExposureBackedToken."""

    def test_open_close(self):
        exposure = InMemoryExposureStrategy("SPX perp", "SPX", ExposureType.PERPETUAL, leverage=2)

        assert exposure.open_exposure(1_000) == 2_000
        assert exposure.get_current_exposure_value() == 1_000
        assert exposure.get_exposure_info().current_exposure == 2_000
        assert exposure.close_exposure(400) == 400

    def test_leverage_bounds(self):
        with pytest.raises(ValueError):
            InMemoryExposureStrategy("bad", "SPX", leverage=11)

        exposure = InMemoryExposureStrategy("SPX perp", "SPX")
        with pytest.raises(ValueError):
            exposure.adjust_exposure(0)
        exposure.adjust_exposure(3)
        assert exposure.get_exposure_info().leverage == 3

    def test_emergency_exit(self):
        exposure = InMemoryExposureStrategy("SPX TRS", "SPX", ExposureType.TRS)
        exposure.open_exposure(700)

        assert exposure.emergency_exit() == 700
        assert exposure.get_exposure_info().is_active is False
        with pytest.raises(RuntimeError):
            exposure.open_exposure(1)

    def test_cost_estimate(self):
        costs = CostBreakdown(funding_rate=300, management_fee=50, slippage_cost=10)
        exposure = InMemoryExposureStrategy("SPX perp", "SPX", costs=costs)

        assert exposure.estimate_cost_bps(1_000).total_cost_bps == 360

    def test_exposure_backed_token(self):
        exposure = InMemoryExposureStrategy("Gold TRS", "XAU", ExposureType.TRS)
        token = ExposureBackedToken("sGOLD", exposure, AssetType.COMMODITY)

        token.mint("vault", 1_000)
        assert exposure.get_current_exposure_value() == 1_000
        assert token.total_supply() == 1_000

        assert token.burn("vault", 250) == 250
        assert exposure.get_current_exposure_value() == 750
        assert token.get_asset_info().market_id == "XAU"


class TestOracles:
    """Tests for price oracles."""

    def test_static_oracle_missing(self):
        with pytest.raises(MissingDataError):
            StaticPriceOracle().get_price("SPX")

    def test_historical_oracle_follows_clock(self):
        provider = HistoricalDataProvider()
        provider.set_asset_price("SPX", 100, 10 * WAD)
        provider.set_asset_price("SPX", 200, 12 * WAD)
        now = {"t": 150}
        oracle = HistoricalPriceOracle(provider, clock=lambda: now["t"])

        assert oracle.get_price_usd("SPX") == 10 * WAD
        now["t"] = 250
        assert oracle.get_price("SPX") == 12 * WAD
