"""Disk cache for backtest runs with TTL support."""

import hashlib
import json
import logging
import threading
from typing import Callable, Optional

import diskcache

from config.settings import Settings, get_settings
from src.sandbox.models import BacktestRun

from .storage import DecimalEncoder

logger = logging.getLogger(__name__)


class BacktestCache:
    """
    SQLite-backed cache of BacktestRun records keyed by their inputs.

    Uses diskcache for persistent caching with automatic expiration, so a
    parameter sweep re-run over the same data skips finished backtests.
    """

    def __init__(self, settings: Optional[Settings] = None, namespace: str = "backtests"):
        self.settings = settings or get_settings()
        self.namespace = namespace
        self._cache: Optional[diskcache.Cache] = None
        self._lock = threading.Lock()

    def _get_cache(self) -> diskcache.Cache:
        """Get or create the cache instance. Safe to call from worker threads."""
        if self._cache is None:
            with self._lock:
                if self._cache is None:
                    cache_dir = self.settings.ensure_cache_dir() / self.namespace
                    cache_dir.mkdir(parents=True, exist_ok=True)
                    self._cache = diskcache.Cache(str(cache_dir))
        return self._cache

    @staticmethod
    def make_key(*parts) -> str:
        """Stable hash of JSON-serializable key parts."""
        payload = json.dumps(parts, cls=DecimalEncoder, sort_keys=True)
        return hashlib.sha256(payload.encode()).hexdigest()

    def get(self, key: str) -> Optional[BacktestRun]:
        try:
            data = self._get_cache().get(key)
        except Exception as e:
            logger.warning(f"Cache get error for key {key}: {e}")
            return None
        if data is None:
            return None
        return BacktestRun.from_dict(data)

    def set(self, key: str, run: BacktestRun, ttl: Optional[int] = None) -> bool:
        if ttl is None:
            ttl = self.settings.cache_ttl_seconds
        try:
            self._get_cache().set(key, run.to_dict(), expire=ttl)
            return True
        except Exception as e:
            logger.warning(f"Cache set error for key {key}: {e}")
            return False

    def get_or_run(self, key: str, factory: Callable[[], BacktestRun], ttl: Optional[int] = None) -> BacktestRun:
        """Return the cached run, or run `factory` and cache successful results."""
        cached = self.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {cached.name}")
            return cached

        run = factory()
        if run.success:
            self.set(key, run, ttl)
        return run

    def clear(self) -> int:
        try:
            cache = self._get_cache()
            count = len(cache)
            cache.clear()
            return count
        except Exception as e:
            logger.warning(f"Cache clear error: {e}")
            return 0

    def close(self):
        """Close the cache connection."""
        with self._lock:
            if self._cache:
                self._cache.close()
                self._cache = None
