"""Step-wise vault simulation engine."""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from src.core.constants import BPS, SECONDS_PER_YEAR, WAD
from src.core.errors import PreconditionError, SimulationInvariantError, ValidationError
from src.core.models import AssetConfig, BacktestResult
from src.sandbox.data import HistoricalDataProvider
from src.sandbox.models import SimulationConfig, SimulationContext

logger = logging.getLogger(__name__)


class VaultSimulationEngine:
    """
    Headless replay of the vault's allocation logic over historical data.

    The engine holds each asset as a quantity of units. Every step re-prices
    the units, accrues yield from each asset's last harvest, charges the
    management fee, rebalances toward target weights when drift or the
    calendar demands it, and reports a BacktestResult.

    State lives in a SimulationContext. A step works on a copy and only
    commits it once every stage has succeeded, so a failing step leaves the
    engine exactly where the previous step left it.
    """

    def __init__(self, data: HistoricalDataProvider, config: SimulationConfig):
        """
        Initialize engine.

        Args:
            data: Historical prices and yield rates
            config: Simulation parameters; `config.assets` are registered immediately
        """
        self.data = data
        self.config = config
        self._assets: List[AssetConfig] = []
        self._context: Optional[SimulationContext] = None

        for asset in config.assets:
            self.add_asset(asset.asset, asset.wrapper, asset.target_weight, asset.is_yield_generating)

    # ========== SETUP ==========

    @property
    def assets(self) -> List[AssetConfig]:
        return list(self._assets)

    @property
    def is_initialized(self) -> bool:
        return self._context is not None

    @property
    def context(self) -> Optional[SimulationContext]:
        """Copy of the current simulation state."""
        return self._context.copy() if self._context else None

    def add_asset(self, asset: str, wrapper: str, target_weight: int, is_yield_generating: bool = False) -> None:
        """Register an asset. Only allowed before initialization."""
        if self.is_initialized:
            raise PreconditionError("Cannot add assets after initialization")
        if not asset:
            raise ValidationError("Invalid asset")
        if any(a.asset == asset for a in self._assets):
            raise ValidationError(f"Asset already added: {asset}")
        if target_weight <= 0 or target_weight > BPS:
            raise ValidationError(f"Invalid target weight for {asset}: {target_weight}")

        self._assets.append(
            AssetConfig(
                asset=asset,
                wrapper=wrapper or asset,
                target_weight=target_weight,
                is_yield_generating=is_yield_generating,
            )
        )

    def initialize(self, start: int) -> None:
        """
        Reset the portfolio and allocate the initial deposit at `start` prices.

        Raises:
            ValidationError: Weights do not sum to 10000 or deposit is not positive
            MissingDataError: An asset has no price at or before `start`
        """
        if not self._assets:
            raise ValidationError("No assets registered")
        total_weight = sum(a.target_weight for a in self._assets)
        if total_weight != BPS:
            raise ValidationError(f"Target weights must sum to 10000, got {total_weight}")
        if self.config.initial_deposit <= 0:
            raise ValidationError("Initial deposit must be positive")
        if not 0 <= self.config.liquidity_buffer_bps < BPS:
            raise ValidationError(f"Invalid liquidity buffer: {self.config.liquidity_buffer_bps}")

        prices = self._price_assets(start)
        deposit = self.config.initial_deposit
        units = self._target_units(deposit, prices)
        invested = sum(self._values(units, prices))

        self._context = SimulationContext(
            start_timestamp=start,
            last_step_timestamp=start,
            last_rebalance_timestamp=start,
            units=units,
            prices=prices,
            buffer=deposit - invested,
            portfolio_value=deposit,
            last_harvest={a.asset: start for a in self._assets},
        )
        logger.info(
            f"Initialized simulation '{self.config.name}' at {start}: "
            f"{len(self._assets)} assets, deposit {deposit}"
        )

    # ========== STEPPING ==========

    def run_step(self, timestamp: int) -> BacktestResult:
        """
        Advance the simulation to `timestamp`.

        Raises:
            PreconditionError: Not initialized, or timestamp earlier than the last step
            MissingDataError: An asset has no price at or before `timestamp`
            SimulationInvariantError: Value jumped and `halt_on_value_jump` is set
        """
        if self._context is None:
            raise PreconditionError("Simulation not initialized")
        if timestamp < self._context.last_step_timestamp:
            raise PreconditionError(
                f"Timestamp {timestamp} is before last step {self._context.last_step_timestamp}"
            )

        ctx = self._context.copy()
        previous_value = ctx.portfolio_value
        elapsed = timestamp - ctx.last_step_timestamp

        # Re-price
        ctx.prices = self._price_assets(timestamp)

        # Yield accrual from each asset's last harvest
        yield_harvested = self._accrue_yield(ctx, timestamp)

        # Management fee for the elapsed interval
        fee = 0
        if self.config.management_fee_bps and elapsed > 0:
            total = self._total(ctx)
            fee_due = total * self.config.management_fee_bps * elapsed // (SECONDS_PER_YEAR * BPS)
            fee = self._deduct(ctx, fee_due)

        # Rebalance
        rebalanced = False
        slippage = 0
        gas = 0
        if self._should_rebalance(ctx, timestamp):
            traded = self._rebalance(ctx)
            slippage = self._deduct(ctx, traded * self.config.slippage_bps // BPS)
            gas = self._deduct(ctx, self.config.gas_cost)
            ctx.last_rebalance_timestamp = timestamp
            ctx.rebalance_count += 1
            rebalanced = True

        asset_values = self._values(ctx.units, ctx.prices)
        portfolio_value = sum(asset_values) + ctx.buffer
        self._check_value_jump(previous_value, portfolio_value, timestamp, ctx)

        ctx.portfolio_value = portfolio_value
        ctx.last_step_timestamp = timestamp
        ctx.step_count += 1
        self._context = ctx

        return BacktestResult(
            timestamp=timestamp,
            portfolio_value=portfolio_value,
            asset_values=tuple(asset_values),
            asset_weights=tuple(self._weights(asset_values, portfolio_value)),
            yield_harvested=yield_harvested,
            rebalanced=rebalanced,
            gas_cost=gas,
            buffer_value=ctx.buffer,
            management_fee=fee,
            slippage_cost=slippage,
        )

    # ========== STAGES ==========

    def _price_assets(self, timestamp: int) -> List[int]:
        prices = []
        for asset in self._assets:
            price = self.data.get_asset_price(asset.asset, timestamp)
            if price <= 0:
                raise SimulationInvariantError(f"Non-positive price for {asset.asset} at {timestamp}")
            prices.append(price)
        return prices

    @staticmethod
    def _values(units: List[int], prices: List[int]) -> List[int]:
        return [u * p // WAD for u, p in zip(units, prices)]

    def _total(self, ctx: SimulationContext) -> int:
        return sum(self._values(ctx.units, ctx.prices)) + ctx.buffer

    @staticmethod
    def _weights(values: List[int], total: int) -> List[int]:
        if total <= 0:
            return [0] * len(values)
        return [v * BPS // total for v in values]

    def _target_units(self, total: int, prices: List[int]) -> List[int]:
        investable = total - total * self.config.liquidity_buffer_bps // BPS
        return [
            (investable * a.target_weight // BPS) * WAD // price
            for a, price in zip(self._assets, prices)
        ]

    def _accrue_yield(self, ctx: SimulationContext, timestamp: int) -> int:
        """Credit linear yield since each asset's last harvest into the asset position."""
        harvested = 0
        for i, asset in enumerate(self._assets):
            if not asset.is_yield_generating:
                continue
            since = timestamp - ctx.last_harvest[asset.asset]
            rate = self.data.get_yield_rate(asset.wrapper, timestamp)
            if since > 0 and rate > 0:
                value = ctx.units[i] * ctx.prices[i] // WAD
                amount = value * rate * since // (SECONDS_PER_YEAR * BPS)
                if amount > 0:
                    before = value
                    ctx.units[i] += amount * WAD // ctx.prices[i]
                    harvested += ctx.units[i] * ctx.prices[i] // WAD - before
            ctx.last_harvest[asset.asset] = timestamp
        return harvested

    def _deduct(self, ctx: SimulationContext, amount: int) -> int:
        """
        Remove `amount` pro rata from every position and the buffer.

        Returns:
            Value actually removed (may exceed `amount` by rounding dust,
            never exceeds the portfolio)
        """
        total = self._total(ctx)
        if amount <= 0 or total <= 0:
            return 0
        amount = min(amount, total)
        remaining = total - amount
        ctx.units = [u * remaining // total for u in ctx.units]
        ctx.buffer = ctx.buffer * remaining // total
        return total - self._total(ctx)

    def _should_rebalance(self, ctx: SimulationContext, timestamp: int) -> bool:
        if timestamp - ctx.last_rebalance_timestamp >= self.config.rebalance_interval:
            return True
        values = self._values(ctx.units, ctx.prices)
        weights = self._weights(values, self._total(ctx))
        investable_share = BPS - self.config.liquidity_buffer_bps
        for asset, weight in zip(self._assets, weights):
            target = asset.target_weight * investable_share // BPS
            if abs(weight - target) > self.config.rebalance_threshold_bps:
                return True
        return False

    def _rebalance(self, ctx: SimulationContext) -> int:
        """
        Reset every position to its target weight of the current total.

        Returns:
            Traded notional (sum of absolute position changes)
        """
        total = self._total(ctx)
        before = self._values(ctx.units, ctx.prices)
        ctx.units = self._target_units(total, ctx.prices)
        after = self._values(ctx.units, ctx.prices)
        ctx.buffer = total - sum(after)
        traded = sum(abs(a - b) for a, b in zip(after, before))
        logger.debug(f"Rebalanced {total} across {len(after)} assets, traded {traded}")
        return traded

    def _check_value_jump(
        self,
        previous_value: int,
        new_value: int,
        timestamp: int,
        ctx: SimulationContext,
    ) -> None:
        if previous_value <= 0:
            return
        factor = Decimal(self.config.value_jump_factor)
        if Decimal(new_value) <= Decimal(previous_value) * factor:
            return

        lines = [
            f"Portfolio value jumped more than {factor}x at {timestamp}",
            f"  previous value: {previous_value}",
            f"  new value:      {new_value}",
        ]
        for asset, units, price in zip(self._assets, ctx.units, ctx.prices):
            lines.append(
                f"  {asset.asset}: units={units} price={price} "
                f"last_harvest={ctx.last_harvest.get(asset.asset)}"
            )
        message = "\n".join(lines)
        logger.warning(message)
        if self.config.halt_on_value_jump:
            raise SimulationInvariantError(message)

    # ========== VIEWS ==========

    def get_asset_values(self) -> Tuple[int, ...]:
        if self._context is None:
            return ()
        return tuple(self._values(self._context.units, self._context.prices))

    def get_portfolio_value(self) -> int:
        return self._context.portfolio_value if self._context else 0
