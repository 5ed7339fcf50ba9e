"""Bucket-level rebalance planning.

Pure functions: given current bucket values and the target allocation, decide
which transfers move the portfolio toward target. Execution against external
strategies lives in the allocator.
"""

from typing import Iterable, List, Sequence

from src.core.constants import bps_of
from src.core.models import Allocation, Bucket, BucketValues, FundMove


def calculate_targets(total: int, allocation: Allocation) -> BucketValues:
    """Target value per bucket. Rounding dust is not assigned to any bucket."""
    return BucketValues(
        rwa_value=bps_of(total, allocation.rwa_percentage),
        yield_value=bps_of(total, allocation.yield_percentage),
        buffer_value=bps_of(total, allocation.liquidity_buffer_percentage),
    )


def plan_rebalance(
    current: BucketValues,
    allocation: Allocation,
    inactive: Iterable[Bucket] = (),
) -> List[FundMove]:
    """
    Plan the transfers that bring each bucket to its target.

    Cascade:
        1. RWA shortfall is sourced from buffer surplus, then yield surplus.
        2. RWA excess goes to any yield shortfall, the rest to the buffer.
        3. Remaining yield shortfall is topped up from buffer surplus.
        4. Remaining yield surplus drains into a buffer shortfall.

    No bucket is ever pushed past its target, so every bucket's weight moves
    toward (or stays at) its target weight. Buckets listed in `inactive` have
    nothing to hold capital (no active token or strategy) and never receive a
    move; their target is left unfunded rather than parked in the buffer.

    Args:
        current: Current bucket values
        allocation: Target percentages
        inactive: Buckets with no active entity to receive funds

    Returns:
        Ordered list of moves; empty when already at target
    """
    targets = calculate_targets(current.total, allocation)
    values = {
        Bucket.RWA: current.rwa_value,
        Bucket.YIELD: current.yield_value,
        Bucket.BUFFER: current.buffer_value,
    }
    closed = set(inactive)
    moves: List[FundMove] = []

    def surplus(bucket: Bucket) -> int:
        return max(values[bucket] - targets.get(bucket), 0)

    def shortfall(bucket: Bucket) -> int:
        if bucket in closed:
            return 0
        return max(targets.get(bucket) - values[bucket], 0)

    def move(source: Bucket, destination: Bucket, amount: int) -> None:
        if amount <= 0 or destination in closed:
            return
        values[source] -= amount
        values[destination] += amount
        moves.append(FundMove(source, destination, amount))

    # RWA adjustment
    rwa_gap = shortfall(Bucket.RWA)
    if rwa_gap > 0:
        from_buffer = min(rwa_gap, surplus(Bucket.BUFFER))
        move(Bucket.BUFFER, Bucket.RWA, from_buffer)
        move(Bucket.YIELD, Bucket.RWA, min(rwa_gap - from_buffer, surplus(Bucket.YIELD)))
    else:
        excess = surplus(Bucket.RWA)
        to_yield = min(excess, shortfall(Bucket.YIELD))
        move(Bucket.RWA, Bucket.YIELD, to_yield)
        to_buffer = excess - to_yield
        if Bucket.YIELD in closed:
            to_buffer = min(to_buffer, shortfall(Bucket.BUFFER))
        move(Bucket.RWA, Bucket.BUFFER, to_buffer)

    # Yield top-up from the buffer
    move(Bucket.BUFFER, Bucket.YIELD, min(shortfall(Bucket.YIELD), surplus(Bucket.BUFFER)))

    # Yield surplus back to the buffer
    move(Bucket.YIELD, Bucket.BUFFER, min(surplus(Bucket.YIELD), shortfall(Bucket.BUFFER)))

    return moves


def split_proportionally(amount: int, weights: Sequence[int]) -> List[int]:
    """
    Distribute `amount` as `amount * w_i // sum(w)`.

    The remainder is left unallocated. Returns zeros when the weights sum to 0.
    """
    total = sum(weights)
    if amount <= 0 or total <= 0:
        return [0] * len(weights)
    return [amount * w // total for w in weights]


def split_withdrawal(amount: int, weights: Sequence[int], capacities: Sequence[int]) -> List[int]:
    """
    Split a withdrawal of `amount` across entities.

    Entities with zero capacity (current value) are skipped. Each share is
    proportional to weight among the remaining entities and capped at the
    entity's capacity; any shortfall from capping or rounding is then taken
    greedily, in order, from entities with capacity left.

    Args:
        amount: Total to withdraw
        weights: Relative percentages
        capacities: Current value of each entity

    Returns:
        Amount to withdraw per entity; sums to min(amount, total capacity)
    """
    if len(weights) != len(capacities):
        raise ValueError("weights and capacities must have the same length")

    eligible = [i for i, cap in enumerate(capacities) if cap > 0 and weights[i] > 0]
    result = [0] * len(weights)
    if amount <= 0 or not eligible:
        return result

    eligible_weight = sum(weights[i] for i in eligible)
    for i in eligible:
        result[i] = min(amount * weights[i] // eligible_weight, capacities[i])

    remaining = amount - sum(result)
    for i in eligible:
        if remaining <= 0:
            break
        extra = min(remaining, capacities[i] - result[i])
        result[i] += extra
        remaining -= extra

    return result
