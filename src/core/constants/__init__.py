"""Core constants module."""

from src.core.constants.generic import (
    SECONDS_PER_DAY,
    SECONDS_PER_YEAR,
    WAD,
    BPS,
    USD_STABLE_DECIMALS,
    DEFAULT_REBALANCE_THRESHOLD_BPS,
    DEFAULT_REBALANCE_INTERVAL,
    DEFAULT_VALUE_JUMP_FACTOR,
    to_wad,
    from_wad,
    usd_to_wad,
    bps_of,
)

__all__ = [
    "SECONDS_PER_DAY",
    "SECONDS_PER_YEAR",
    "WAD",
    "BPS",
    "USD_STABLE_DECIMALS",
    "DEFAULT_REBALANCE_THRESHOLD_BPS",
    "DEFAULT_REBALANCE_INTERVAL",
    "DEFAULT_VALUE_JUMP_FACTOR",
    "to_wad",
    "from_wad",
    "usd_to_wad",
    "bps_of",
]
