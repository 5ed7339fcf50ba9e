"""Synthetic market data generation."""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from src.core.constants import SECONDS_PER_YEAR, WAD

from .historical import HistoricalDataProvider

logger = logging.getLogger(__name__)

# Prices are rounded to 8 decimals before scaling to WAD
PRICE_DECIMALS = 8


@dataclass
class SyntheticAsset:
    """Geometric Brownian motion parameters for one asset."""

    asset: str
    initial_price: float  # USD
    drift: float = 0.07  # Annual
    volatility: float = 0.18  # Annual


@dataclass
class SyntheticYield:
    """Mean-reverting yield rate around a base rate."""

    wrapper: str
    base_rate_bps: int
    rate_volatility_bps: int = 0
    mean_reversion: float = 0.1  # Pull toward base per step


class SyntheticMarketGenerator:
    """
    Fill a HistoricalDataProvider with reproducible synthetic series.

    Prices follow geometric Brownian motion; yield rates follow a
    mean-reverting walk floored at zero.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def price_path(self, process: SyntheticAsset, steps: int, step_size: int) -> np.ndarray:
        """Simulate `steps + 1` prices starting at the initial price."""
        dt = step_size / SECONDS_PER_YEAR
        shocks = self._rng.normal(0.0, 1.0, steps)
        log_returns = (process.drift - 0.5 * process.volatility**2) * dt + process.volatility * np.sqrt(dt) * shocks
        path = process.initial_price * np.exp(np.concatenate(([0.0], np.cumsum(log_returns))))
        return path

    def rate_path(self, process: SyntheticYield, steps: int) -> np.ndarray:
        rates = np.empty(steps + 1)
        rates[0] = process.base_rate_bps
        shocks = self._rng.normal(0.0, process.rate_volatility_bps, steps) if process.rate_volatility_bps else np.zeros(steps)
        for i in range(1, steps + 1):
            pull = process.mean_reversion * (process.base_rate_bps - rates[i - 1])
            rates[i] = max(0.0, rates[i - 1] + pull + shocks[i - 1])
        return rates

    def generate(
        self,
        start: int,
        end: int,
        step_size: int,
        assets: List[SyntheticAsset],
        yields: Optional[List[SyntheticYield]] = None,
        provider: Optional[HistoricalDataProvider] = None,
    ) -> HistoricalDataProvider:
        """
        Generate series on the grid start, start + step_size, ... <= end.

        Args:
            start: First timestamp
            end: Last timestamp (inclusive)
            step_size: Seconds between points
            assets: Price processes to simulate
            yields: Yield rate processes to simulate
            provider: Provider to fill (default: a new one)

        Returns:
            The filled provider
        """
        if step_size <= 0 or end < start:
            raise ValueError("Invalid time grid")

        provider = provider or HistoricalDataProvider()
        timestamps = list(range(start, end + 1, step_size))
        steps = len(timestamps) - 1

        for process in assets:
            path = self.price_path(process, steps, step_size)
            for ts, price in zip(timestamps, path):
                scaled = int(round(float(price) * 10**PRICE_DECIMALS)) * (WAD // 10**PRICE_DECIMALS)
                provider.set_asset_price(process.asset, ts, max(scaled, 1))

        for process in yields or []:
            for ts, rate in zip(timestamps, self.rate_path(process, steps)):
                provider.set_yield_rate(process.wrapper, ts, int(round(float(rate))))

        logger.info(
            f"Generated {len(timestamps)} points for {len(assets)} assets "
            f"and {len(yields or [])} yield sources (seed={self.seed})"
        )
        return provider
