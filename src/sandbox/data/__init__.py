"""Sandbox data layer."""

from .historical import HistoricalDataProvider
from .synthetic import SyntheticAsset, SyntheticMarketGenerator, SyntheticYield

__all__ = [
    "HistoricalDataProvider",
    "SyntheticAsset",
    "SyntheticMarketGenerator",
    "SyntheticYield",
]
