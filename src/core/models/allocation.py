"""Allocation ledger data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from src.core.constants import BPS


class Bucket(Enum):
    """Capital buckets managed by the allocation manager."""

    RWA = "rwa"
    YIELD = "yield"
    BUFFER = "buffer"


@dataclass
class Allocation:
    """Target split of managed capital across the three buckets (bps)."""

    rwa_percentage: int = 0
    yield_percentage: int = 0
    liquidity_buffer_percentage: int = BPS
    last_rebalanced: int = 0

    @property
    def total(self) -> int:
        return self.rwa_percentage + self.yield_percentage + self.liquidity_buffer_percentage

    def percentage_for(self, bucket: Bucket) -> int:
        """Target percentage of a bucket in bps."""
        if bucket == Bucket.RWA:
            return self.rwa_percentage
        if bucket == Bucket.YIELD:
            return self.yield_percentage
        return self.liquidity_buffer_percentage


@dataclass
class RWAAllocation:
    """Sub-allocation of the RWA bucket to one synthetic token."""

    token: Any
    percentage: int
    active: bool = True


@dataclass
class StrategyAllocation:
    """Sub-allocation of the yield bucket to one yield strategy."""

    strategy: Any
    percentage: int
    active: bool = True
    shares: int = 0  # Strategy shares held by the manager


@dataclass(frozen=True)
class BucketValues:
    """Point-in-time value of each bucket, WAD scaled."""

    rwa_value: int = 0
    yield_value: int = 0
    buffer_value: int = 0

    @property
    def total(self) -> int:
        return self.rwa_value + self.yield_value + self.buffer_value

    def get(self, bucket: Bucket) -> int:
        if bucket == Bucket.RWA:
            return self.rwa_value
        if bucket == Bucket.YIELD:
            return self.yield_value
        return self.buffer_value

    def weight_bps(self, bucket: Bucket) -> int:
        """Current weight of a bucket in bps, 0 when the total is 0."""
        total = self.total
        if total == 0:
            return 0
        return self.get(bucket) * BPS // total


@dataclass(frozen=True)
class FundMove:
    """A planned transfer of capital between two buckets."""

    source: Bucket
    destination: Bucket
    amount: int

    def __str__(self) -> str:
        return f"{self.source.value} -> {self.destination.value}: {self.amount}"


@dataclass(frozen=True)
class AllocationEvent:
    """Event emitted by the allocation manager."""

    name: str
    timestamp: int
    args: Dict[str, Any] = field(default_factory=dict)
    index: Optional[int] = None


@dataclass(frozen=True)
class RebalanceReport:
    """Outcome of a successful rebalance."""

    timestamp: int
    before: BucketValues
    after: BucketValues
    moves: Tuple[FundMove, ...] = ()
