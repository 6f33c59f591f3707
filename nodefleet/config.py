"""Settings loader for the node fleet runner."""
from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FleetSettings(BaseSettings):
    """Runtime settings, read from ``NODEFLEET_*`` environment variables or ``.env``."""

    api_base_url: str = Field(default="https://gateway-run.bls.dev/api/v1/nodes")
    ip_service_url: str = Field(default="https://tight-block-2413.txlabs.workers.dev")

    tokens_path: Path = Field(default=Path("data.txt"))
    node_ids_path: Path = Field(default=Path("node.txt"))

    max_retries: int = Field(default=3)
    retry_delay_seconds: float = Field(default=5.0)
    request_timeout_seconds: float = Field(default=60.0)
    ping_interval_seconds: float = Field(default=120.0)

    extension_version: str = Field(default="0.1.8")
    user_agent: str = Field(default="nodefleet/0.1.0")
    block_signature: str = Field(default="Sorry, you have been blocked")

    health_enabled: bool = Field(default=True)
    health_host: str = Field(default="0.0.0.0")
    health_port: int = Field(
        default=3000,
        validation_alias=AliasChoices("health_port", "NODEFLEET_HEALTH_PORT", "PORT"),
    )

    model_config = SettingsConfigDict(
        env_prefix="NODEFLEET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("api_base_url", "ip_service_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        candidate = value.strip()
        if not candidate.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return candidate.rstrip("/")

    @field_validator("max_retries")
    @classmethod
    def validate_non_negative_int(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Value must not be negative")
        return value

    @field_validator("retry_delay_seconds")
    @classmethod
    def validate_non_negative_float(cls, value: float) -> float:
        if value < 0:
            raise ValueError("Value must not be negative")
        return value

    @field_validator("request_timeout_seconds", "ping_interval_seconds")
    @classmethod
    def validate_positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator("health_port")
    @classmethod
    def validate_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("PORT must be between 1 and 65535")
        return value

    @model_validator(mode="after")
    def validate_sources(self) -> "FleetSettings":
        if self.tokens_path == self.node_ids_path:
            raise ValueError("Token and node id sources must be different files")
        return self


def load_settings(**overrides) -> FleetSettings:
    """Build settings from the environment, with keyword overrides taking precedence."""
    return FleetSettings(**overrides)


__all__ = ["FleetSettings", "load_settings"]
