"""
Centralized configuration management for relaylog.

Uses Pydantic Settings for validation and environment variable loading.
Loads from .env file if present, falls back to environment variables, then defaults.
"""
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MySQLSettings(BaseSettings):
    """MySQL replication source configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MYSQL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8"
    )

    host: str = Field(default="127.0.0.1", description="MySQL host")
    port: int = Field(default=3306, description="MySQL port")
    user: str = Field(default="root", description="MySQL replication user")
    password: Optional[str] = Field(default=None, description="MySQL password")
    server_id: int = Field(
        default=1001,
        description="Replica server id; must be unique among the server's replicas"
    )
    connect_timeout: int = Field(default=10, description="Connection timeout in seconds")

    # TLS
    ssl_ca: Optional[str] = Field(default=None, description="Path to CA certificate")
    ssl_cipher: Optional[str] = Field(default=None, description="Allowed TLS cipher list")

    @property
    def connection_url(self) -> str:
        """Get the connection URL (password included if set)."""
        password = f":{self.password}" if self.password else ""
        return f"mysql://{self.user}{password}@{self.host}:{self.port}"


class CheckpointSettings(BaseSettings):
    """Binlog checkpoint file configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CHECKPOINT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8"
    )

    position_file: Optional[str] = Field(
        default=None,
        description="Resume position file. Without it replication starts at the server's current position."
    )
    processed_position_file: Optional[str] = Field(
        default=None,
        description="Delivered position file. Without it events are not de-duplicated across restarts."
    )


class RetrySettings(BaseSettings):
    """Reconnect configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RETRY_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8"
    )

    limit: int = Field(default=100, ge=0, description="Max reconnects per start")
    wait: float = Field(default=3.0, ge=0, description="Seconds between reconnects")


class Settings(BaseSettings):
    """Main application settings combining all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    environment: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="info", description="fatal, error, warn, info or debug")

    # Sub-configurations
    mysql: MySQLSettings = Field(default_factory=MySQLSettings)
    checkpoint: CheckpointSettings = Field(default_factory=CheckpointSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        allowed = {"fatal", "error", "warn", "info", "debug"}
        if v.lower() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
