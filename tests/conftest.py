"""Pytest configuration and fixtures."""

import pytest

from config.settings import Settings
from src.core.constants import WAD
from src.protocols import InMemoryRWAToken, InMemoryYieldStrategy
from src.sandbox.engine import CapitalAllocationManager

# 2024-01-01T00:00:00Z
START = 1_704_067_200


def usd(amount) -> int:
    """Whole-dollar amount in WAD scale."""
    return int(amount * WAD)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(clock) -> CapitalAllocationManager:
    """Manager denominated in USDC with a fake clock."""
    return CapitalAllocationManager(base_asset="USDC", clock=clock)


@pytest.fixture
def rwa_token() -> InMemoryRWAToken:
    return InMemoryRWAToken("Synthetic S&P 500", "sSPX")


@pytest.fixture
def yield_strategy() -> InMemoryYieldStrategy:
    return InMemoryYieldStrategy("USDC Lending", "USDC", apy_bps=400)


@pytest.fixture
def funded_manager(manager, rwa_token, yield_strategy) -> CapitalAllocationManager:
    """20/70/10 manager with one token, one strategy and $10,000 in the buffer."""
    manager.set_allocation(2000, 7000, 1000)
    manager.add_rwa_token(rwa_token, 10000)
    manager.add_yield_strategy(yield_strategy, 10000)
    manager.deposit(usd(10_000))
    return manager


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings writing into a temporary directory."""
    return Settings(
        cache_dir=tmp_path / "cache",
        results_dir=tmp_path / "results",
        cache_ttl_seconds=300,
    )
