"""Price oracle adapters."""

import logging
import time
from typing import Callable, Dict, Optional

from src.core.errors import MissingDataError, ValidationError

from .base import PriceOracle

logger = logging.getLogger(__name__)


class StaticPriceOracle(PriceOracle):
    """Oracle serving prices set explicitly by the caller."""

    def __init__(self, prices: Optional[Dict[str, int]] = None):
        self._prices: Dict[str, int] = dict(prices or {})

    def set_price(self, asset: str, price: int) -> None:
        if price < 0:
            raise ValidationError(f"Negative price for {asset}: {price}")
        self._prices[asset] = price

    def get_price(self, asset: str) -> int:
        if asset not in self._prices:
            raise MissingDataError(f"No price for {asset}")
        return self._prices[asset]


class HistoricalPriceOracle(PriceOracle):
    """Oracle that replays a historical data provider against a clock.

    Lets the live allocation manager run against the same time-indexed data
    the simulation engine consumes.
    """

    def __init__(self, provider, clock: Optional[Callable[[], float]] = None):
        self.provider = provider
        self.clock = clock or time.time

    def get_price(self, asset: str) -> int:
        timestamp = int(self.clock())
        price = self.provider.get_asset_price(asset, timestamp)
        logger.debug(f"Oracle price {asset} @ {timestamp}: {price}")
        return price
