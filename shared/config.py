"""
Shared configuration management for the Tenant Portal client.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientConfig(BaseSettings):
    """Client configuration loaded from PORTAL_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # API
    api_base_url: str = Field(default="http://localhost:5000/api")
    request_timeout_seconds: float = Field(default=30.0)

    # Credential persistence
    token_store_backend: str = Field(default="file")  # memory | file | redis
    token_store_path: str = Field(default="~/.portal_client/credentials.json")
    redis_url: str = Field(default="redis://localhost:6379/0")
    token_key: str = Field(default="token")
    user_key: str = Field(default="user")

    # Session
    refresh_buffer_seconds: int = Field(default=300)

    # Rate limiting
    rate_limit_max_backoff_seconds: int = Field(default=30)
    default_retry_after_seconds: int = Field(default=60)

    # Observability
    perf_diagnostics: bool = Field(default=False)
    perf_log_size: int = Field(default=500)
    service_name: str = Field(default="portal_client")


def get_config(**overrides) -> ClientConfig:
    """Get client configuration, applying explicit overrides over the environment."""
    return ClientConfig(**overrides)
