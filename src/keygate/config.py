"""Configuration settings for KeyGate."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

STATIC_DIR = Path(__file__).parent / "static"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="KEYGATE_", env_file=".env", frozen=True)

    # Server
    host: str = "127.0.0.1"  # Use KEYGATE_HOST=0.0.0.0 for Docker
    port: int = 3000
    debug: bool = False

    # Tokens
    secret_key: str = ""
    token_ttl_seconds: int = Field(30, ge=1)

    # Upstream key service
    key_service_url: str = "https://starxkey-backend.vercel.app/generate"
    key_expiry: str = "1d"
    upstream_timeout: float = Field(5.0, gt=0)

    # Admission policy
    allowed_referers: list[str] = [
        "linkvertise.com",
        "work.ink",
        "loot-link.com",
        "direct-link.net",
    ]
    min_user_agent_length: int = Field(10, ge=0)
    trust_forwarded_for: bool = False

    # Rate limiting
    rate_limit_window_seconds: float = Field(300.0, gt=0)
    rate_limit_max_requests: int = Field(100, ge=1)

    # Static pages
    static_dir: Path = STATIC_DIR

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
