"""Application configuration using pydantic settings with structured sections."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False


class DatabaseSettings(BaseModel):
    url: str = Field(default="sqlite+aiosqlite:///./credits.db", alias="url")
    echo: bool = False
    pool_size: Optional[int] = None
    max_overflow: Optional[int] = None
    connect_timeout: float = 10.0


class RedisSettings(BaseModel):
    url: Optional[str] = "redis://localhost:6379/0"
    socket_timeout: float = 2.0
    wallet_ttl_seconds: int = 300
    key_prefix: str = "wallet:apikey:"


class InfluxSettings(BaseModel):
    url: str = "http://localhost:8086"
    token: str = "carbon-credit-token"
    org: str = "carbon-credit-org"
    bucket: str = "mqtt-data"
    measurement: str = "sensor_data"
    write_timeout_seconds: float = 10.0
    query_timeout_seconds: float = 30.0


class CreditPolicySettings(BaseModel):
    """Accrual formula parameters and request window limits."""

    formula: Literal["linear", "climate"] = "linear"
    co2_per_credit: Decimal = Decimal("250")
    energy_per_credit: Decimal = Decimal("100")
    max_credits_per_window: Decimal = Decimal("100")
    min_samples: int = Field(default=1, ge=1)
    # climate 公式参数
    co2_threshold: Decimal = Decimal("1000")
    temperature_multiplier: Decimal = Decimal("0.1")
    humidity_multiplier: Decimal = Decimal("0.05")
    climate_min_samples: int = Field(default=10, ge=1)
    max_window_days: int = 7


class LedgerSettings(BaseModel):
    pending_timeout_hours: Optional[float] = 48.0
    mint_cooldown_hours: float = 24.0


class SchedulerSettings(BaseModel):
    enabled: bool = False
    interval_minutes: float = 60.0
    min_interval_hours: float = 24.0
    window_epsilon_seconds: float = 0.0
    default_lookback_days: int = 7
    max_workers: int = Field(default=1, ge=1)
    advance_on_zero_credit: bool = True
    distributed_lock: bool = False
    lock_name: str = "credits:scheduler"
    lock_ttl_seconds: int = 3600


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseSettings):
    """Top-level application settings with nested sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    project_name: str = "Carbon Credit Server"
    api_prefix: str = "/api"

    server: ServerSettings = ServerSettings()
    database: DatabaseSettings = DatabaseSettings()
    redis: RedisSettings = RedisSettings()
    influx: InfluxSettings = InfluxSettings()
    credits: CreditPolicySettings = CreditPolicySettings()
    ledger: LedgerSettings = LedgerSettings()
    scheduler: SchedulerSettings = SchedulerSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def database_url(self) -> str:
        return self.database.url

    @property
    def host(self) -> str:
        return self.server.host

    @property
    def port(self) -> int:
        return self.server.port


@lru_cache()
def get_settings() -> Settings:
    return Settings()
