"""
Shared configuration management for the Claim Assignment Service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ASSIGNMENT_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Broker
    queue_url: Optional[str] = Field(default=None)
    queue_name: str = Field(default="assignment_processing_queue")
    queue_durable: bool = Field(default=True)
    prefetch_count: int = Field(default=1)
    max_reconnect_attempts: int = Field(default=5)
    reconnect_delay_seconds: float = Field(default=5.0)

    # Startup
    auto_start_queue: bool = Field(default=False)
    startup_max_retries: int = Field(default=3)
    startup_retry_delay_seconds: float = Field(default=10.0)

    # Persistence
    postgres_dsn: str = Field(default="postgres://localhost:5432/assignments")

    # Outbound notifications
    notification_timeout_seconds: float = Field(default=30.0)
    notification_token_ttl_seconds: int = Field(default=900)
    notification_verify_tls: bool = Field(default=True)
    notification_failure_threshold: int = Field(default=5)
    notification_recovery_timeout_seconds: float = Field(default=60.0)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
