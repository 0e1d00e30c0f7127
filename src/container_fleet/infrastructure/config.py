"""Configuration management for the container fleet."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseModel):
    """Engine connection configuration."""

    base_url: str | None = Field(default=None, description="Engine URL, DOCKER_HOST semantics if unset")
    api_version: str = Field(default="auto", description="Engine API version")
    timeout_seconds: int = Field(default=60, ge=1, description="Per-request timeout")
    use_mock: bool = Field(default=False, description="Use the in-memory engine")


class DispatchConfig(BaseModel):
    """Batch dispatch configuration."""

    max_workers: int = Field(default=16, ge=1, description="Concurrent batch units")


class StatsConfig(BaseModel):
    """Stats dashboard configuration."""

    discovery_interval_seconds: float = Field(default=1.0, gt=0, description="Container listing tick")
    render_interval_seconds: float = Field(default=0.1, gt=0, description="Dashboard repaint tick")
    keep_screen: bool = Field(default=False, description="Append-only output, no alternate screen")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="WARNING")
    log_format: Literal["json", "console"] = Field(default="console")
    metrics_port: int | None = Field(default=None, ge=1, le=65535, description="Prometheus exporter port")
    otel_endpoint: str | None = Field(default=None)
    otel_service_name: str = Field(default="container_fleet")


class Config(BaseSettings):
    """Main configuration for the container fleet."""

    model_config = SettingsConfigDict(
        env_prefix="CONTAINER_FLEET_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    stats: StatsConfig = Field(default_factory=StatsConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
