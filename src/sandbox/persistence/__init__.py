"""Persistence for backtest runs."""

from .cache import BacktestCache
from .storage import BacktestStorage, DecimalEncoder

__all__ = ["BacktestCache", "BacktestStorage", "DecimalEncoder"]
