"""Pydantic settings for the RWA index fund engine."""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Rebalancing policy
    rebalance_threshold_bps: int = Field(default=500, ge=0, le=10000, description="Max weight drift before rebalancing")
    rebalance_interval_seconds: int = Field(default=30 * 86400, gt=0, description="Calendar rebalance interval")

    # Costs
    management_fee_bps: int = Field(default=0, ge=0, le=10000, description="Annual management fee")
    rebalance_gas_cost_usd: Decimal = Field(default=Decimal("0"), ge=0, description="Gas cost per rebalance in USD")
    slippage_bps: int = Field(default=0, ge=0, le=10000, description="Slippage charged on traded notional")

    # Analytics
    risk_free_rate_bps: int = Field(default=0, ge=0, le=10000, description="Annual risk-free rate for Sharpe/Sortino")

    # Value jump guard
    value_jump_factor: Decimal = Field(default=Decimal("2"), gt=1, description="Step growth factor flagged as a jump")
    halt_on_value_jump: bool = Field(default=False, description="Abort a step whose value jumps")

    # Storage
    results_dir: Path = Field(default=Path(".cache/rwa_index/results"), description="Backtest result directory")
    cache_dir: Path = Field(default=Path(".cache/rwa_index/cache"), description="Sweep cache directory")
    cache_ttl_seconds: int = Field(default=3600, ge=60, le=7 * 86400, description="Sweep cache TTL in seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level for the CLI")

    @field_validator("results_dir", "cache_dir", mode="before")
    @classmethod
    def parse_path(cls, v):
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Upper-case and validate the log level name."""
        level = str(v).strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    def ensure_cache_dir(self) -> Path:
        """Ensure cache directory exists and return it."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        return self.cache_dir

    def ensure_results_dir(self) -> Path:
        """Ensure results directory exists and return it."""
        self.results_dir.mkdir(parents=True, exist_ok=True)
        return self.results_dir


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
