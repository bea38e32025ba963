from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.features.embed_sessions.exceptions import ConfigurationMissing


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Prompt Reviews Embed Sessions"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = False

    # ── Database ────────────────────────────────
    DATABASE_URL: str
    DB_CREATE_ALL: bool = False  # create tables on startup (tests / local only)
    DB_POOL_TIMEOUT: int = 30

    # ── Embed sessions ──────────────────────────
    EMBED_SESSION_SECRET: Optional[str] = None
    EMBED_SESSION_KEY_VERSION: Optional[str] = None
    EMBED_SESSION_TTL_MINUTES: int = 45
    EMBED_SESSION_AUDIENCE: str = "embed-session"
    EMBED_SESSION_ISSUER: str = "prompt-reviews"

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent.parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@dataclass(frozen=True)
class SigningConfig:
    """Process-wide signing material. Fixed for the lifetime of the process."""

    secret: bytes
    key_version: str
    audience: str
    issuer: str
    ttl_minutes: int


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_signing_config(settings: Settings) -> SigningConfig:
    """
    Build the signing configuration, refusing to run without a secret.

    Raises ConfigurationMissing when the secret or key version is unset or blank.
    """
    secret = (settings.EMBED_SESSION_SECRET or "").strip()
    key_version = (settings.EMBED_SESSION_KEY_VERSION or "").strip()

    if not secret:
        raise ConfigurationMissing("EMBED_SESSION_SECRET is not configured")
    if not key_version:
        raise ConfigurationMissing("EMBED_SESSION_KEY_VERSION is not configured")

    return SigningConfig(
        secret=secret.encode("utf-8"),
        key_version=key_version,
        audience=settings.EMBED_SESSION_AUDIENCE,
        issuer=settings.EMBED_SESSION_ISSUER,
        ttl_minutes=settings.EMBED_SESSION_TTL_MINUTES,
    )
