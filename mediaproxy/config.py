"""Configuration management using Pydantic settings.

Environment variables are loaded by ``Environment`` (raw, uppercase) and
resolved into the immutable ``Settings`` model used by the rest of the app.
"""

import hashlib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root directory (parent of mediaproxy/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


class ConfigurationError(Exception):
    """Raised when application configuration is invalid."""

    pass


def derive_encryption_key(secret: str) -> bytes:
    """Derive the AES-256 key for source URL encryption from the proxy secret.

    The HMAC uses the secret directly; the cipher only ever sees its digest.
    """
    if not secret:
        raise ConfigurationError("MEDIA_PROXY_SECRET is required")
    return hashlib.sha256(secret.encode("utf-8")).digest()


class Environment(BaseSettings):
    """Raw environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Flask settings
    FLASK_ENV: str = Field(default="development")
    DEBUG: bool = Field(default=True)

    # Media proxy settings
    MEDIA_PROXY_SECRET: str | None = Field(
        default=None,
        description="Shared secret used to sign and encrypt media proxy URLs",
    )
    SITE_URL: str = Field(
        default="http://localhost:3000",
        description="Public origin of the site, used to build absolute proxy URLs",
    )

    # CORS settings
    CORS_ORIGINS: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins",
    )


@dataclass
class FlaskConfig:
    """Subset of settings handed to Flask's ``app.config``."""

    DEBUG: bool
    TESTING: bool


class Settings(BaseModel):
    """Resolved application settings."""

    model_config = ConfigDict(frozen=True)

    flask_env: str = "development"
    debug: bool = True

    media_proxy_secret: str = Field(default="", repr=False)
    site_url: str = "http://localhost:3000"

    cors_origins: list[str] = ["http://localhost:3000"]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.flask_env == "production" or not self.debug

    @property
    def is_testing(self) -> bool:
        """Check if the application is running in testing mode."""
        return self.flask_env == "testing"

    @property
    def media_encryption_key(self) -> bytes:
        """AES-256 key derived from the media proxy secret."""
        return derive_encryption_key(self.media_proxy_secret)

    @classmethod
    def load(cls, env: Environment | None = None) -> "Settings":
        """Load settings from environment variables."""
        if env is None:
            env = Environment()

        return cls(
            flask_env=env.FLASK_ENV,
            debug=env.DEBUG,
            media_proxy_secret=env.MEDIA_PROXY_SECRET or "",
            site_url=env.SITE_URL.rstrip("/"),
            cors_origins=env.CORS_ORIGINS,
        )

    def validate_config(self) -> None:
        """Validate that required configuration is present.

        Raises:
            ConfigurationError: If required settings are missing
        """
        errors: list[str] = []

        if not self.media_proxy_secret:
            errors.append("MEDIA_PROXY_SECRET must be set to a non-empty value")

        if not self.site_url.startswith(("http://", "https://")):
            errors.append("SITE_URL must be an absolute http(s) URL")

        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            )

    def to_flask_config(self) -> FlaskConfig:
        """Build the object passed to ``app.config.from_object``."""
        return FlaskConfig(DEBUG=self.debug, TESTING=self.is_testing)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""
    return Settings.load()
