"""Generic fixed-point and calendar constants.

All monetary amounts are integers scaled by WAD; percentages are basis points.
"""

from decimal import Decimal
from typing import Union

# Time constants
SECONDS_PER_DAY = 86_400
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY  # 31,536,000

# Precision constants
WAD = 10**18  # 18 decimal fixed point
BPS = 10_000  # 100% in basis points
USD_STABLE_DECIMALS = 6

# Rebalancing defaults
DEFAULT_REBALANCE_THRESHOLD_BPS = 500
DEFAULT_REBALANCE_INTERVAL = 30 * SECONDS_PER_DAY
DEFAULT_VALUE_JUMP_FACTOR = Decimal("2")


def to_wad(amount: int, decimals: int = USD_STABLE_DECIMALS) -> int:
    """Normalize a raw token amount with `decimals` places to WAD scale."""
    if decimals > 18:
        return amount // 10 ** (decimals - 18)
    return amount * 10 ** (18 - decimals)


def from_wad(value: int) -> Decimal:
    """Convert a WAD-scaled integer to a Decimal."""
    return Decimal(value) / Decimal(WAD)


def usd_to_wad(amount: Union[Decimal, int, float, str]) -> int:
    """Convert a human USD amount (e.g. Decimal("12.5")) to WAD scale."""
    return int(Decimal(str(amount)) * WAD)


def bps_of(value: int, bps: int) -> int:
    """Return `value * bps / 10000`, rounded down."""
    return value * bps // BPS
