"""Collaborator interfaces and their in-memory implementations."""

from .base import ExposureStrategy, PriceOracle, RWASyntheticToken, YieldStrategy
from .memory import (
    ExposureBackedToken,
    InMemoryExposureStrategy,
    InMemoryRWAToken,
    InMemoryYieldStrategy,
)
from .oracle import HistoricalPriceOracle, StaticPriceOracle

__all__ = [
    "ExposureStrategy",
    "PriceOracle",
    "RWASyntheticToken",
    "YieldStrategy",
    "ExposureBackedToken",
    "InMemoryExposureStrategy",
    "InMemoryRWAToken",
    "InMemoryYieldStrategy",
    "HistoricalPriceOracle",
    "StaticPriceOracle",
]
