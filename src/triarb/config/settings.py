"""
Application settings with environment variable support.

Uses Pydantic Settings for type-safe configuration with automatic
environment variable loading and validation.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from triarb.config.constants import (
    DEFAULT_BALANCE_FEE_BUFFER,
    DEFAULT_DEPTH_MAX_IMPACT_PCT,
    DEFAULT_DEPTH_MAX_LEVELS,
    DEFAULT_DISTRIBUTION_INTERVAL_S,
    DEFAULT_DRY_RUN_JITTER_PCT,
    DEFAULT_DRY_RUN_LATENCY_MS,
    DEFAULT_EXECUTION_COOLDOWN_S,
    DEFAULT_FEE_RATE,
    DEFAULT_HIGH_FEE_FRACTION,
    DEFAULT_LEG_TIMEOUT_MS,
    DEFAULT_MAX_ORDER_SIZE,
    DEFAULT_MAX_SLIPPAGE_PCT,
    DEFAULT_MIN_ORDER_SIZE,
    DEFAULT_MIN_PROFIT_THRESHOLD,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_SCAN_INTERVAL_S,
    DEFAULT_SLIPPAGE_BUFFER_PCT,
    DEFAULT_START_AMOUNT,
    DEFAULT_SUBSCRIBER_IDLE_TIMEOUT_S,
    RETRY_MAX_ATTEMPTS,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Sensitive values use SecretStr for safe handling.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Exchange Credentials
    # =========================================================================

    binance_api_key: SecretStr | None = Field(
        default=None,
        description="Binance API key, required for live trading",
    )
    binance_api_secret: SecretStr | None = Field(
        default=None,
        description="Binance API secret for signing requests",
    )

    use_testnet: bool = Field(
        default=False,
        description="Use Binance testnet instead of production",
    )

    # =========================================================================
    # Path Catalog
    # =========================================================================

    exchange: str = Field(
        default="binance",
        description="Exchange whose path catalog is scanned",
    )

    path_set: str | None = Field(
        default=None,
        description="Restrict scanning to one named path set",
    )

    catalog_file: Path | None = Field(
        default=None,
        description="JSON file with path sets, replaces the built-in catalog",
    )

    # =========================================================================
    # Opportunity Evaluation
    # =========================================================================

    fee_rate: Decimal = Field(
        default=DEFAULT_FEE_RATE,
        ge=0,
        le=Decimal("0.01"),
        description="Trading fee rate per leg (e.g., 0.001 = 0.1%)",
    )

    min_order_size: Decimal = Field(
        default=DEFAULT_MIN_ORDER_SIZE,
        gt=0,
        description="Smallest start amount accepted by the calculator",
    )

    max_order_size: Decimal = Field(
        default=DEFAULT_MAX_ORDER_SIZE,
        gt=0,
        description="Largest start amount accepted by the calculator",
    )

    min_profit_threshold: Decimal = Field(
        default=DEFAULT_MIN_PROFIT_THRESHOLD,
        ge=0,
        le=Decimal("0.1"),
        description="Net profit fraction of start amount required (0.008 = 0.8%)",
    )

    high_fee_fraction: Decimal = Field(
        default=DEFAULT_HIGH_FEE_FRACTION,
        ge=0,
        le=Decimal("0.1"),
        description="Fee fraction of start amount that counts as a risk factor",
    )

    slippage_buffer_pct: Decimal = Field(
        default=DEFAULT_SLIPPAGE_BUFFER_PCT,
        ge=0,
        le=Decimal("5"),
        description="Output penalty in percent for legs larger than top of book",
    )

    depth_max_levels: int = Field(
        default=DEFAULT_DEPTH_MAX_LEVELS,
        ge=1,
        le=50,
        description="Price levels a fill may consume before it is a liquidity risk",
    )

    depth_max_impact_pct: Decimal = Field(
        default=DEFAULT_DEPTH_MAX_IMPACT_PCT,
        gt=0,
        description="Price impact in percent above which a fill is a liquidity risk",
    )

    # =========================================================================
    # Execution
    # =========================================================================

    dry_run: bool = Field(
        default=True,
        description="Simulate fills without sending real orders",
    )

    auto_execute: bool = Field(
        default=False,
        description="Execute the best EXECUTE-rated opportunity after each scan",
    )

    balance_fee_buffer: Decimal = Field(
        default=DEFAULT_BALANCE_FEE_BUFFER,
        ge=0,
        le=Decimal("0.5"),
        description="Extra balance fraction required on top of the start amount",
    )

    max_portfolio_pct: Decimal | None = Field(
        default=None,
        gt=0,
        le=Decimal("100"),
        description="Largest start amount as a percent of the available balance; unset for no cap",
    )

    max_slippage_pct: Decimal = Field(
        default=DEFAULT_MAX_SLIPPAGE_PCT,
        gt=0,
        le=Decimal("10"),
        description="Maximum quote move in percent before a leg is aborted",
    )

    leg_timeout_ms: int = Field(
        default=DEFAULT_LEG_TIMEOUT_MS,
        ge=1000,
        le=300_000,
        description="Time allowed for one leg to report a fill",
    )

    poll_interval_ms: int = Field(
        default=DEFAULT_POLL_INTERVAL_MS,
        ge=50,
        le=10_000,
        description="Delay between order status polls",
    )

    dry_run_jitter_pct: Decimal = Field(
        default=DEFAULT_DRY_RUN_JITTER_PCT,
        ge=0,
        le=Decimal("1"),
        description="Random price deviation applied to simulated fills",
    )

    dry_run_latency_ms: int = Field(
        default=DEFAULT_DRY_RUN_LATENCY_MS,
        ge=0,
        le=5000,
        description="Simulated per-leg latency in dry-run mode",
    )

    execution_cooldown_s: float = Field(
        default=DEFAULT_EXECUTION_COOLDOWN_S,
        ge=0.0,
        le=600.0,
        description="Pause enforced between executions on one account",
    )

    # =========================================================================
    # Market Data
    # =========================================================================

    market_data_max_attempts: int = Field(
        default=RETRY_MAX_ATTEMPTS,
        ge=1,
        le=10,
        description="Attempts per order-book read before giving up",
    )

    distribution_interval_s: float = Field(
        default=DEFAULT_DISTRIBUTION_INTERVAL_S,
        gt=0.0,
        description="Interval between price broadcasts to subscribers",
    )

    subscriber_idle_timeout_s: float = Field(
        default=DEFAULT_SUBSCRIBER_IDLE_TIMEOUT_S,
        gt=0.0,
        description="Silence after which a subscriber is dropped",
    )

    # =========================================================================
    # Scanning
    # =========================================================================

    scan_interval_s: float = Field(
        default=DEFAULT_SCAN_INTERVAL_S,
        gt=0.0,
        description="Delay between scans in the engine loop",
    )

    start_amount: Decimal = Field(
        default=DEFAULT_START_AMOUNT,
        gt=0,
        description="Start amount used for each scan, in the path's base currency",
    )

    # =========================================================================
    # Operation
    # =========================================================================

    journal_file: Path | None = Field(
        default=Path("data/executions.jsonl"),
        description="JSON-lines journal for execution results (None keeps them in memory)",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )

    log_file: Path | None = Field(
        default=None,
        description="Optional log file path",
    )

    use_uvloop: bool = Field(
        default=True,
        description="Use uvloop for improved async performance",
    )

    dashboard_host: str = Field(default="127.0.0.1", description="Dashboard bind host")
    dashboard_port: int = Field(default=8000, ge=1, le=65535, description="Dashboard port")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("binance_api_key", "binance_api_secret", mode="after")
    @classmethod
    def validate_credentials(cls, v: SecretStr | None) -> SecretStr | None:
        """Treat empty credentials as missing."""
        if v is not None and not v.get_secret_value():
            return None
        return v

    @field_validator("exchange", mode="after")
    @classmethod
    def normalize_exchange(cls, v: str) -> str:
        """Exchange names are matched case-insensitively."""
        return v.lower()

    @model_validator(mode="after")
    def validate_consistency(self) -> "Settings":
        """Check cross-field constraints."""
        if self.min_order_size > self.max_order_size:
            raise ValueError("min_order_size must not exceed max_order_size")

        if not self.min_order_size <= self.start_amount <= self.max_order_size:
            raise ValueError("start_amount must lie within [min_order_size, max_order_size]")

        if not self.dry_run and not self.has_credentials:
            raise ValueError("Live trading requires BINANCE_API_KEY and BINANCE_API_SECRET")

        return self

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def has_credentials(self) -> bool:
        """Check whether both API credentials are configured."""
        return self.binance_api_key is not None and self.binance_api_secret is not None

    @property
    def cycle_fee_fraction(self) -> Decimal:
        """Compounded fee fraction lost over a three-leg cycle."""
        return 1 - (1 - self.fee_rate) ** 3


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded only once.
    Clear cache with `get_settings.cache_clear()` if needed.
    """
    return Settings()
