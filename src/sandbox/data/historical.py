"""Time-indexed store of asset prices and yield rates."""

import logging
from bisect import bisect_left, bisect_right
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd

from src.core.constants import from_wad, usd_to_wad
from src.core.errors import MissingDataError, ValidationError

logger = logging.getLogger(__name__)

PRICE_KIND = "price"
YIELD_KIND = "yield"
CSV_COLUMNS = ["timestamp", "kind", "key", "value"]


class _StepSeries:
    """Sorted (timestamp, value) series with step-function lookup."""

    def __init__(self):
        self.timestamps: List[int] = []
        self.values: List[int] = []

    def set(self, timestamp: int, value: int) -> None:
        i = bisect_left(self.timestamps, timestamp)
        if i < len(self.timestamps) and self.timestamps[i] == timestamp:
            self.values[i] = value
        else:
            self.timestamps.insert(i, timestamp)
            self.values.insert(i, value)

    def get(self, timestamp: int) -> Optional[int]:
        """Latest value at or before `timestamp`, or None."""
        i = bisect_right(self.timestamps, timestamp) - 1
        if i < 0:
            return None
        return self.values[i]

    def items(self) -> List[Tuple[int, int]]:
        return list(zip(self.timestamps, self.values))

    def __len__(self) -> int:
        return len(self.timestamps)


class HistoricalDataProvider:
    """
    Historical asset prices (WAD-scaled USD) and yield rates (bps).

    Lookups resolve to the most recent entry at or before the requested
    timestamp. A price requested before the first entry raises
    MissingDataError; a yield rate requested before the first entry is 0.
    """

    def __init__(self):
        self._prices: Dict[str, _StepSeries] = {}
        self._yields: Dict[str, _StepSeries] = {}

    # ========== PRICES ==========

    def set_asset_price(self, asset: str, timestamp: int, price: int) -> None:
        if not asset:
            raise ValidationError("Invalid asset")
        if timestamp < 0:
            raise ValidationError(f"Invalid timestamp: {timestamp}")
        if price <= 0:
            raise ValidationError(f"Price must be positive: {asset} @ {timestamp} = {price}")
        self._prices.setdefault(asset, _StepSeries()).set(int(timestamp), int(price))

    def get_asset_price(self, asset: str, timestamp: int) -> int:
        series = self._prices.get(asset)
        price = series.get(timestamp) if series else None
        if price is None:
            raise MissingDataError(f"No price for {asset} at or before {timestamp}")
        return price

    def get_price_history(self, asset: str) -> List[Tuple[int, int]]:
        """All (timestamp, price) entries for `asset`, oldest first."""
        series = self._prices.get(asset)
        return series.items() if series else []

    # ========== YIELDS ==========

    def set_yield_rate(self, wrapper: str, timestamp: int, rate_bps: int) -> None:
        if not wrapper:
            raise ValidationError("Invalid wrapper")
        if timestamp < 0:
            raise ValidationError(f"Invalid timestamp: {timestamp}")
        if rate_bps < 0:
            raise ValidationError(f"Yield rate must not be negative: {wrapper} = {rate_bps}")
        self._yields.setdefault(wrapper, _StepSeries()).set(int(timestamp), int(rate_bps))

    def get_yield_rate(self, wrapper: str, timestamp: int) -> int:
        series = self._yields.get(wrapper)
        rate = series.get(timestamp) if series else None
        return rate if rate is not None else 0

    def get_yield_history(self, wrapper: str) -> List[Tuple[int, int]]:
        series = self._yields.get(wrapper)
        return series.items() if series else []

    # ========== INDEX ==========

    @property
    def assets(self) -> List[str]:
        return sorted(self._prices)

    @property
    def wrappers(self) -> List[str]:
        return sorted(self._yields)

    def time_range(self) -> Optional[Tuple[int, int]]:
        """(first, last) timestamp across all price series, or None when empty."""
        firsts = [s.timestamps[0] for s in self._prices.values() if len(s)]
        lasts = [s.timestamps[-1] for s in self._prices.values() if len(s)]
        if not firsts:
            return None
        return min(firsts), max(lasts)

    # ========== SERIALIZATION ==========

    def to_dict(self) -> dict:
        return {
            "prices": {asset: s.items() for asset, s in self._prices.items()},
            "yields": {wrapper: s.items() for wrapper, s in self._yields.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoricalDataProvider":
        provider = cls()
        for asset, points in data.get("prices", {}).items():
            for timestamp, price in points:
                provider.set_asset_price(asset, int(timestamp), int(price))
        for wrapper, points in data.get("yields", {}).items():
            for timestamp, rate in points:
                provider.set_yield_rate(wrapper, int(timestamp), int(rate))
        return provider

    def to_frame(self) -> pd.DataFrame:
        """
        Long-format frame with columns timestamp, kind, key, value.

        Prices are written as USD decimal strings, yields as integer bps.
        """
        rows = []
        for asset, series in self._prices.items():
            for timestamp, price in series.items():
                rows.append((timestamp, PRICE_KIND, asset, str(from_wad(price))))
        for wrapper, series in self._yields.items():
            for timestamp, rate in series.items():
                rows.append((timestamp, YIELD_KIND, wrapper, str(rate)))
        frame = pd.DataFrame(rows, columns=CSV_COLUMNS)
        return frame.sort_values(["timestamp", "kind", "key"]).reset_index(drop=True)

    def save_csv(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        self.to_frame().to_csv(path, index=False)
        logger.info(f"Saved historical data to {path}")
        return path

    def load_frame(self, frame: pd.DataFrame) -> int:
        """
        Load rows from a long-format frame.

        Returns:
            Number of rows loaded
        """
        missing = [c for c in CSV_COLUMNS if c not in frame.columns]
        if missing:
            raise ValidationError(f"Missing columns: {', '.join(missing)}")

        count = 0
        for row in frame.itertuples(index=False):
            timestamp = int(row.timestamp)
            kind = str(row.kind).strip().lower()
            if kind == PRICE_KIND:
                self.set_asset_price(str(row.key), timestamp, usd_to_wad(Decimal(str(row.value))))
            elif kind == YIELD_KIND:
                self.set_yield_rate(str(row.key), timestamp, int(Decimal(str(row.value))))
            else:
                raise ValidationError(f"Unknown row kind: {row.kind}")
            count += 1
        return count

    def load_csv(self, path: Union[str, Path]) -> int:
        """Load a CSV written by `save_csv` (or by hand in the same format)."""
        frame = pd.read_csv(path, dtype=str)
        count = self.load_frame(frame)
        logger.info(f"Loaded {count} rows from {path}")
        return count

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "HistoricalDataProvider":
        provider = cls()
        provider.load_csv(path)
        return provider
