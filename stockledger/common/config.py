from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_APP_NAME = "stock-ledger"


class ServiceSettings(BaseSettings):
    """Settings for the stock ledger service."""

    app_name: str = Field(default=DEFAULT_APP_NAME)
    environment: Literal["local", "dev", "staging", "prod"] = Field(default="local")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    service_host: str = Field(default="0.0.0.0")
    service_port: int = Field(default=8000)
    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=False)
    tracing_endpoint: str | None = Field(default=None)
    tracing_protocol: Literal["http/protobuf", "grpc"] = Field(default="http/protobuf")
    tracing_insecure: bool = Field(default=True)
    tracing_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    database_url: str | None = Field(default=None)
    create_schema_on_startup: bool = Field(default=True)
    storage_timeout_seconds: float = Field(default=5.0, gt=0.0)
    system_actor_id: str = Field(default="system", min_length=1)
    default_low_stock_threshold: int = Field(default=10, ge=0)
    expiry_window_days: int = Field(default=7, ge=0)
    audit_field_edits: bool = Field(default=False)
    recent_activity_limit: int = Field(default=20, ge=1, le=500)

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"), env_prefix="STOCKLEDGER_", extra="ignore"
    )


@lru_cache
def get_settings() -> ServiceSettings:
    """Return cached service settings."""

    return ServiceSettings()
