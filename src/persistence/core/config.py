"""Core configuration management using pydantic-settings."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"

    # Document store
    database_url: str = "sqlite+aiosqlite:///./persistence.db"
    database_pool_size: int = 20
    database_max_overflow: int = 10
    store_timeout_seconds: float = 1.0
    list_timeout_seconds: float = 3.0

    # Valkey/Redis
    valkey_url: str = "redis://localhost:6379/0"
    cache_ttl_seconds: int = 24 * 60 * 60
    cache_timeout_seconds: float = 1.0
    trust_cache_hits: bool = False

    # Events
    event_sink: str = "memory"
    event_queue_size: int = 1000
    event_stream_name: str = "webhooks_delivery"
    event_stream_maxlen: int = 10_000

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # OpenTelemetry
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    otel_service_name: str = "marketplace-persistence"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"


# Global settings instance
settings = Settings()
