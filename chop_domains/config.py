"""
Configuration management for Chop Domains.
"""

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings

_DEFAULT_AUTH_SECRET = "change_this"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Debug mode
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./chop_domains.db"

    # Authentication (HS256 bearer tokens, `sub` is the owner id)
    auth_secret: str = _DEFAULT_AUTH_SECRET
    auth_algorithm: str = "HS256"

    # DNS / TLS provider
    cloudflare_api_token: str = ""
    cloudflare_zone_id: str = ""
    cloudflare_api_url: str = "https://api.cloudflare.com/client/v4"
    provider_timeout: float = 10.0  # seconds, per outbound call
    certificate_timeout: float = 15.0  # seconds, whole issuance request

    # Verification
    verification_cname_target: str = "verify.chop-url.com"
    verification_file_path: str = "/.well-known/chop-verify.txt"
    verification_token_prefix: str = "chop-verify-"

    # Health
    certificate_warning_days: int = 30
    slow_response_ms: int = 1000

    model_config = {
        "env_prefix": "CHOP_DOMAINS_",
        "env_file": ".env",
        "extra": "ignore"
    }

    def validate_required(self) -> bool:
        """Validate that required settings are configured."""
        if not self.cloudflare_api_token or not self.cloudflare_zone_id:
            raise ValueError(
                "CHOP_DOMAINS_CLOUDFLARE_API_TOKEN and "
                "CHOP_DOMAINS_CLOUDFLARE_ZONE_ID are required"
            )
        if self.auth_secret == _DEFAULT_AUTH_SECRET or len(self.auth_secret) < 32:
            raise ValueError(
                "CHOP_DOMAINS_AUTH_SECRET is insecure. Generate with: "
                "python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )
        return True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    # In production, validate required fields
    if not settings.debug:
        try:
            settings.validate_required()
        except ValueError as e:
            logging.warning(f"Configuration warning: {e}")
    return settings
