"""
Configuration management using Pydantic.

- Settings: process settings loaded from environment variables and .env files
- StrategyConfig: flat strategy / risk / backtest parameters, accepting the
  camelCase keys of stored settings blobs
"""

import math
from typing import List, Literal, get_args, get_origin

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./smc_prop_engine.db",
        description="Database connection URL"
    )

    # Binance REST
    binance_base_url: str = Field(
        default="https://api.binance.com/api/v3",
        description="Binance spot REST base URL"
    )
    request_timeout: float = Field(default=10.0, description="HTTP timeout in seconds")
    request_max_retries: int = Field(default=3, description="Retries for transient HTTP failures")
    symbol_cache_ttl: float = Field(default=3600.0, description="Symbol list cache lifetime in seconds")

    # Live scanning
    live_symbols: str = Field(default="BTCUSDT,ETHUSDT", description="Comma separated symbols to scan")
    live_poll_interval: float = Field(default=60.0, description="Seconds between live scans")
    live_workers: int = Field(default=4, description="Thread pool size for live scanning")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/smc_prop_engine.log", description="Log file path")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        return str(v).upper() if v else "INFO"

    def symbol_list(self) -> List[str]:
        return [s.strip().upper() for s in self.live_symbols.split(",") if s.strip()]


class StrategyConfig(BaseModel):
    """
    Strategy, risk and backtest parameters.

    Missing, None, NaN or unparseable numeric values fall back to the field
    default, as does a strategy name outside the known choices. Out-of-range values that do parse (e.g. mc_iterations=0) are
    rejected with a ValidationError.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # Risk
    risk_pct: float = Field(default=1.0, alias="riskPct", gt=0)
    min_rr: float = Field(default=2.0, alias="minRR")
    target_rr: float = Field(default=3.0, alias="targetRR")
    partial_rr: float = Field(default=1.5, alias="partialRR")
    max_daily_risk: float = Field(default=5.0, alias="maxDailyRisk")
    max_concurrent_trades: int = Field(default=3, alias="maxConcurrentTrades")
    max_drawdown_stop: float = Field(default=10.0, alias="maxDrawdownStop")
    max_trades_per_day: int = Field(default=3, alias="maxTradesPerDay")

    # Detection
    atr_multiplier: float = Field(default=1.5, alias="atrMultiplier")
    volume_multiplier: float = Field(default=1.5, alias="volumeMultiplier")
    displacement_close: float = Field(default=0.7, alias="displacementClose", gt=0, le=1)
    sl_buffer: float = Field(default=0.3, alias="slBuffer")
    liquidity_tolerance: float = Field(default=0.0015, alias="liquidityTolerance")

    # Strategy selection
    strategy: Literal["all", "S1", "S2", "S3"] = "all"
    enable_s1: bool = Field(default=True, alias="enableS1")
    enable_s2: bool = Field(default=True, alias="enableS2")
    enable_s3: bool = Field(default=True, alias="enableS3")
    only_longs: bool = Field(default=True, alias="onlyLongs")
    session_filter: bool = Field(default=False, alias="sessionFilter")

    # Backtest
    initial_equity: float = Field(default=10000.0, alias="initialEquity", gt=0)
    warmup: int = Field(default=100, ge=0)
    max_hold_bars: int = Field(default=100, alias="maxHoldBars", ge=1)
    ruin_floor_pct: float = Field(default=50.0, alias="ruinFloorPct")
    mc_iterations: int = Field(default=1000, alias="mcIterations", ge=1)

    # Market
    symbol: str = "BTCUSDT"
    timeframe: str = "15m"
    htf_timeframe: str = Field(default="1h", alias="htfTimeframe")

    @field_validator("*", mode="before")
    @classmethod
    def fall_back_to_default(cls, v, info: ValidationInfo):
        """Replace None / NaN / unparseable numbers and unknown choices with the field default."""
        field = cls.model_fields[info.field_name]
        if v is None:
            return field.default

        if field.annotation is bool:
            if isinstance(v, str):
                return v.strip().lower() in ("true", "1", "yes", "on")
            return bool(v)

        if field.annotation in (int, float):
            if isinstance(v, bool):
                return field.default
            try:
                num = float(v)
            except (TypeError, ValueError):
                return field.default
            if math.isnan(num):
                return field.default
            return int(num) if field.annotation is int else num

        if get_origin(field.annotation) is Literal and v not in get_args(field.annotation):
            return field.default

        return v

    def to_blob(self) -> dict:
        """camelCase key/value form used for settings persistence."""
        return self.model_dump(by_alias=True)

    def with_overrides(self, **overrides) -> "StrategyConfig":
        merged = self.model_dump()
        merged.update({k: v for k, v in overrides.items() if v is not None})
        return StrategyConfig.model_validate(merged)


# Global settings instance
settings = Settings()
