"""Capital allocation manager.

Tracks target vs. actual allocation across the RWA, yield and liquidity
buffer buckets and executes the mints, burns, deposits and withdrawals that
move the portfolio toward target.
"""

import functools
import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, List, Optional, Tuple

from src.core.constants import BPS, WAD, to_wad
from src.core.errors import (
    ExternalCallError,
    PreconditionError,
    RebalanceError,
    ReentrancyError,
    ValidationError,
)
from src.core.models import (
    Allocation,
    AllocationEvent,
    Bucket,
    BucketValues,
    FundMove,
    RebalanceReport,
    RWAAllocation,
    StrategyAllocation,
)
from src.protocols.base import PriceOracle, RWASyntheticToken, YieldStrategy

from .planner import plan_rebalance, split_proportionally, split_withdrawal

logger = logging.getLogger(__name__)


def nonreentrant(method):
    """Reject a call while another guarded call on the same manager is in flight."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        if not self._lock.acquire(blocking=False):
            raise ReentrancyError(f"{method.__name__}: another operation is in progress")
        try:
            return method(self, *args, **kwargs)
        finally:
            self._lock.release()

    return wrapper


def _label(entity: Any) -> str:
    """Human-readable identity for events and logs."""
    for attr in ("symbol", "name"):
        value = getattr(entity, attr, None)
        if isinstance(value, str):
            return value
    return repr(entity)


class _Journal:
    """Undo log for one atomic operation.

    Snapshots the manager's ledger on creation. Every successful external call
    registers its compensating action; `rollback` restores the snapshot and
    then runs them in reverse, so an undo that issues new strategy shares
    credits them on top of the restored ledger.
    """

    def __init__(self, manager: "CapitalAllocationManager"):
        self.manager = manager
        self.entries: List[Tuple[str, Callable[[], Any]]] = []
        self._buffer = manager.buffer_balance
        self._allocation = replace(manager._allocation)
        self._rwa_tokens = [replace(a) for a in manager._rwa_tokens]
        self._yield_strategies = [replace(s) for s in manager._yield_strategies]

    def record(self, description: str, undo: Callable[[], Any]) -> None:
        self.entries.append((description, undo))

    def rollback(self) -> None:
        self.manager.buffer_balance = self._buffer
        self.manager._allocation = self._allocation
        self.manager._rwa_tokens = self._rwa_tokens
        self.manager._yield_strategies = self._yield_strategies
        for description, undo in reversed(self.entries):
            try:
                undo()
            except Exception as e:
                logger.error(f"Rollback of '{description}' failed: {e}")


class CapitalAllocationManager:
    """
    Allocates pooled capital across RWA tokens, yield strategies and a buffer.

    The buffer is the manager's idle base-asset balance. Every fund movement
    passes through it: capital leaving a bucket lands in the buffer before it
    is minted into RWA tokens or deposited into yield strategies.

    Each public mutating method is guarded against re-entrant calls and is
    all-or-nothing: on failure the ledger is left exactly as it was.
    """

    def __init__(
        self,
        base_asset: str,
        oracle: Optional[PriceOracle] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize manager.

        Args:
            base_asset: Identity of the asset the vault is denominated in
            oracle: Optional price oracle; when set, RWA holdings are marked to market
            clock: Callable returning unix seconds (default: time.time)
        """
        if not base_asset:
            raise ValidationError("Invalid base asset")
        self.base_asset = base_asset
        self.oracle = oracle
        self.clock = clock or time.time
        self.buffer_balance = 0
        self._allocation = Allocation()
        self._rwa_tokens: List[RWAAllocation] = []
        self._yield_strategies: List[StrategyAllocation] = []
        self._events: List[AllocationEvent] = []
        self._lock = threading.Lock()

    def _now(self) -> int:
        return int(self.clock())

    def _emit(self, name: str, index: Optional[int] = None, **args) -> None:
        event = AllocationEvent(name=name, timestamp=self._now(), args=args, index=index)
        self._events.append(event)
        logger.info(f"{name} {args}")

    # ========== ALLOCATION ==========

    @nonreentrant
    def set_allocation(self, rwa_percentage: int, yield_percentage: int, buffer_percentage: int) -> None:
        """Replace the target allocation. Does not move funds."""
        for pct in (rwa_percentage, yield_percentage, buffer_percentage):
            if not isinstance(pct, int) or pct < 0 or pct > BPS:
                raise ValidationError(f"Invalid percentage: {pct}")
        if rwa_percentage + yield_percentage + buffer_percentage != BPS:
            raise ValidationError("Percentages must sum to 10000")

        self._allocation = Allocation(
            rwa_percentage=rwa_percentage,
            yield_percentage=yield_percentage,
            liquidity_buffer_percentage=buffer_percentage,
            last_rebalanced=self._allocation.last_rebalanced,
        )
        self._emit(
            "AllocationUpdated",
            rwa_percentage=rwa_percentage,
            yield_percentage=yield_percentage,
            buffer_percentage=buffer_percentage,
        )

    # ========== RWA TOKENS ==========

    @staticmethod
    def _check_percentage(percentage: int) -> None:
        if not isinstance(percentage, int) or percentage <= 0 or percentage > BPS:
            raise ValidationError(f"Invalid percentage: {percentage}")

    def _find_rwa(self, token: Any) -> Optional[int]:
        for i, entry in enumerate(self._rwa_tokens):
            if entry.token is token:
                return i
        return None

    def _find_strategy(self, strategy: Any) -> Optional[int]:
        for i, entry in enumerate(self._yield_strategies):
            if entry.strategy is strategy:
                return i
        return None

    @nonreentrant
    def add_rwa_token(self, token: RWASyntheticToken, percentage: int) -> int:
        """
        Register a synthetic RWA token with its share of the RWA bucket.

        The token's base asset is not checked.

        Returns:
            Stable index of the token's slot
        """
        if token is None:
            raise ValidationError("Invalid token")
        self._check_percentage(percentage)

        index = self._find_rwa(token)
        if index is not None:
            entry = self._rwa_tokens[index]
            if entry.active:
                raise ValidationError("Token already added")
            entry.percentage = percentage
            entry.active = True
        else:
            self._rwa_tokens.append(RWAAllocation(token=token, percentage=percentage))
            index = len(self._rwa_tokens) - 1

        self._emit("RWATokenAdded", index=index, token=_label(token), percentage=percentage)
        return index

    @nonreentrant
    def update_rwa_token(self, token: RWASyntheticToken, percentage: int) -> None:
        index = self._find_rwa(token)
        if index is None or not self._rwa_tokens[index].active:
            raise ValidationError("Token not active")
        self._check_percentage(percentage)
        self._rwa_tokens[index].percentage = percentage
        self._emit("RWATokenUpdated", index=index, token=_label(token), percentage=percentage)

    @nonreentrant
    def remove_rwa_token(self, token: RWASyntheticToken) -> None:
        index = self._find_rwa(token)
        if index is None or not self._rwa_tokens[index].active:
            raise ValidationError("Token not active")
        self._rwa_tokens[index].active = False
        self._emit("RWATokenRemoved", index=index, token=_label(token))

    # ========== YIELD STRATEGIES ==========

    @nonreentrant
    def add_yield_strategy(self, strategy: YieldStrategy, percentage: int) -> int:
        """
        Register a yield strategy with its share of the yield bucket.

        The strategy must accept the manager's base asset.

        Returns:
            Stable index of the strategy's slot
        """
        if strategy is None:
            raise ValidationError("Invalid strategy")
        self._check_percentage(percentage)
        if strategy.asset != self.base_asset:
            raise ValidationError(
                f"Strategy asset mismatch: {strategy.asset} != {self.base_asset}"
            )

        index = self._find_strategy(strategy)
        if index is not None:
            entry = self._yield_strategies[index]
            if entry.active:
                raise ValidationError("Strategy already added")
            entry.percentage = percentage
            entry.active = True
        else:
            self._yield_strategies.append(StrategyAllocation(strategy=strategy, percentage=percentage))
            index = len(self._yield_strategies) - 1

        self._emit("YieldStrategyAdded", index=index, strategy=_label(strategy), percentage=percentage)
        return index

    @nonreentrant
    def update_yield_strategy(self, strategy: YieldStrategy, percentage: int) -> None:
        index = self._find_strategy(strategy)
        if index is None or not self._yield_strategies[index].active:
            raise ValidationError("Strategy not active")
        self._check_percentage(percentage)
        self._yield_strategies[index].percentage = percentage
        self._emit("YieldStrategyUpdated", index=index, strategy=_label(strategy), percentage=percentage)

    @nonreentrant
    def remove_yield_strategy(self, strategy: YieldStrategy) -> None:
        index = self._find_strategy(strategy)
        if index is None or not self._yield_strategies[index].active:
            raise ValidationError("Strategy not active")
        self._yield_strategies[index].active = False
        self._emit("YieldStrategyRemoved", index=index, strategy=_label(strategy))

    # ========== VAULT BOUNDARY ==========

    @nonreentrant
    def deposit(self, amount: int, decimals: Optional[int] = None) -> None:
        """
        Receive base asset from the vault into the buffer.

        Args:
            amount: WAD-scaled amount, or raw token units when `decimals` is given
            decimals: Decimals of the raw amount (6 for USDC)
        """
        if decimals is not None:
            amount = to_wad(amount, decimals)
        if amount <= 0:
            raise ValidationError("Deposit amount must be positive")
        self.buffer_balance += amount
        self._emit("Deposited", amount=amount)

    @nonreentrant
    def withdraw(self, amount: int, decimals: Optional[int] = None) -> None:
        """Return base asset from the buffer to the vault. Takes the same units as `deposit`."""
        if decimals is not None:
            amount = to_wad(amount, decimals)
        if amount <= 0:
            raise ValidationError("Withdraw amount must be positive")
        if amount > self.buffer_balance:
            raise PreconditionError(
                f"Insufficient buffer liquidity: requested {amount}, available {self.buffer_balance}"
            )
        self.buffer_balance -= amount
        self._emit("Withdrawn", amount=amount)

    # ========== VALUATION ==========

    def _price(self, token: RWASyntheticToken) -> int:
        symbol = token.get_asset_info().symbol
        price = self.oracle.get_price_usd(symbol)
        if price <= 0:
            raise ExternalCallError(f"Invalid oracle price for {symbol}: {price}", operation="price")
        return price

    def _token_value(self, token: RWASyntheticToken) -> int:
        supply = token.total_supply()
        if self.oracle is None or supply == 0:
            return supply
        return supply * self._price(token) // WAD

    def _value_to_units(self, token: RWASyntheticToken, value: int) -> int:
        if self.oracle is None:
            return value
        return value * WAD // self._price(token)

    def get_rwa_value(self) -> int:
        """Value of active RWA tokens: supply, or supply * price when an oracle is set."""
        return sum(self._token_value(a.token) for a in self._rwa_tokens if a.active)

    def get_yield_value(self) -> int:
        return sum(s.strategy.get_total_value() for s in self._yield_strategies if s.active)

    def get_buffer_value(self) -> int:
        return self.buffer_balance

    def get_bucket_values(self) -> BucketValues:
        return BucketValues(
            rwa_value=self.get_rwa_value(),
            yield_value=self.get_yield_value(),
            buffer_value=self.get_buffer_value(),
        )

    def get_total_value(self) -> int:
        return self.get_bucket_values().total

    # ========== VIEWS ==========

    def get_allocation(self) -> Allocation:
        return replace(self._allocation)

    def get_rwa_tokens(self) -> List[RWAAllocation]:
        return [replace(a) for a in self._rwa_tokens]

    def get_yield_strategies(self) -> List[StrategyAllocation]:
        return [replace(s) for s in self._yield_strategies]

    @property
    def events(self) -> Tuple[AllocationEvent, ...]:
        return tuple(self._events)

    @property
    def last_rebalanced(self) -> int:
        return self._allocation.last_rebalanced

    # ========== REBALANCING ==========

    @nonreentrant
    def rebalance(self) -> RebalanceReport:
        """
        Move capital toward the target allocation.

        Raises:
            PreconditionError: Nothing to rebalance
            RebalanceError: An external call failed; all effects were undone

        Returns:
            RebalanceReport with bucket values before and after
        """
        before = self.get_bucket_values()
        if before.total == 0:
            raise PreconditionError("No assets to rebalance")

        moves = plan_rebalance(before, self._allocation, self._inactive_buckets())
        logger.debug(f"Rebalance plan: {[str(m) for m in moves]}")

        journal = _Journal(self)
        try:
            for move in moves:
                self._execute_move(move, journal)
        except Exception as e:
            logger.error(f"Rebalance failed, rolling back {len(journal.entries)} calls: {e}")
            journal.rollback()
            raise RebalanceError(f"Rebalance aborted: {e}", operation="rebalance") from e

        now = self._now()
        self._allocation.last_rebalanced = now
        after = self.get_bucket_values()
        self._emit(
            "Rebalanced",
            total_before=before.total,
            total_after=after.total,
            rwa_value=after.rwa_value,
            yield_value=after.yield_value,
            buffer_value=after.buffer_value,
        )
        return RebalanceReport(timestamp=now, before=before, after=after, moves=tuple(moves))

    def _inactive_buckets(self) -> List[Bucket]:
        """Buckets with no active token or strategy to hold capital."""
        inactive = []
        if not any(a.active for a in self._rwa_tokens):
            inactive.append(Bucket.RWA)
        if not any(s.active for s in self._yield_strategies):
            inactive.append(Bucket.YIELD)
        return inactive

    def _execute_move(self, move: FundMove, journal: _Journal) -> None:
        """Execute one planned move, routing through the buffer."""
        if move.source == Bucket.BUFFER:
            self._allocate_from_buffer(move.destination, move.amount, journal)
            return

        if move.source == Bucket.RWA:
            released = self._burn_rwa(move.amount, journal)
        else:
            released = self._withdraw_yield(move.amount, journal)

        if move.destination != Bucket.BUFFER:
            self._allocate_from_buffer(move.destination, released, journal)

    def _allocate_from_buffer(self, bucket: Bucket, amount: int, journal: _Journal) -> None:
        amount = min(amount, self.buffer_balance)
        if amount <= 0:
            return
        if bucket == Bucket.RWA:
            self._mint_rwa(amount, journal)
        elif bucket == Bucket.YIELD:
            self._deposit_yield(amount, journal)

    def _mint_rwa(self, amount: int, journal: _Journal) -> None:
        active = [a for a in self._rwa_tokens if a.active]
        if not active:
            logger.warning("No active RWA tokens; capital stays in the buffer")
            return
        parts = split_proportionally(amount, [a.percentage for a in active])
        for entry, part in zip(active, parts):
            units = self._value_to_units(entry.token, part)
            if units <= 0:
                continue
            entry.token.mint(self, units)
            journal.record(
                f"mint {units} {_label(entry.token)}",
                functools.partial(entry.token.burn, self, units),
            )
            self.buffer_balance -= part

    def _burn_rwa(self, amount: int, journal: _Journal) -> int:
        active = [a for a in self._rwa_tokens if a.active]
        values = [self._token_value(a.token) for a in active]
        parts = split_withdrawal(amount, [a.percentage for a in active], values)
        released_total = 0
        for entry, part in zip(active, parts):
            if part <= 0:
                continue
            units = min(self._value_to_units(entry.token, part), entry.token.balance_of(self))
            if units <= 0:
                continue
            released = entry.token.burn(self, units)
            journal.record(
                f"burn {units} {_label(entry.token)}",
                functools.partial(entry.token.mint, self, units),
            )
            self.buffer_balance += released
            released_total += released
        return released_total

    def _deposit_yield(self, amount: int, journal: _Journal) -> None:
        active = [s for s in self._yield_strategies if s.active]
        if not active:
            logger.warning("No active yield strategies; capital stays in the buffer")
            return
        parts = split_proportionally(amount, [s.percentage for s in active])
        for entry, part in zip(active, parts):
            if part <= 0:
                continue
            shares = entry.strategy.deposit(part)
            journal.record(
                f"deposit {part} into {_label(entry.strategy)}",
                functools.partial(entry.strategy.withdraw, shares),
            )
            entry.shares += shares
            self.buffer_balance -= part

    def _withdraw_yield(self, amount: int, journal: _Journal) -> int:
        active = [s for s in self._yield_strategies if s.active]
        values = [s.strategy.get_total_value() for s in active]
        parts = split_withdrawal(amount, [s.percentage for s in active], values)
        released_total = 0
        for entry, part, value in zip(active, parts, values):
            if part <= 0 or entry.shares <= 0:
                continue
            shares = min(part * entry.shares // value, entry.shares)
            if shares <= 0:
                continue
            released = entry.strategy.withdraw(shares)
            journal.record(
                f"withdraw {shares} shares from {_label(entry.strategy)}",
                functools.partial(self._redeposit, entry.strategy, released, shares),
            )
            entry.shares -= shares
            self.buffer_balance += released
            released_total += released
        return released_total

    def _redeposit(self, strategy: YieldStrategy, amount: int, released_shares: int = 0) -> None:
        """Put `amount` back into a strategy and credit the shares it issues."""
        shares = strategy.deposit(amount)
        index = self._find_strategy(strategy)
        if index is not None:
            self._yield_strategies[index].shares += shares - released_shares

    # ========== HARVESTING ==========

    @nonreentrant
    def harvest_yield(self) -> int:
        """
        Harvest every active strategy into the buffer.

        Returns:
            Total yield harvested
        """
        journal = _Journal(self)
        total = 0
        try:
            for entry in self._yield_strategies:
                if not entry.active:
                    continue
                amount = entry.strategy.harvest_yield()
                if amount <= 0:
                    continue
                journal.record(
                    f"harvest {amount} from {_label(entry.strategy)}",
                    functools.partial(self._redeposit, entry.strategy, amount),
                )
                self.buffer_balance += amount
                total += amount
        except Exception as e:
            logger.error(f"Harvest failed, rolling back: {e}")
            journal.rollback()
            raise RebalanceError(f"Harvest aborted: {e}", operation="harvest") from e

        self._emit("YieldHarvested", amount=total)
        return total
