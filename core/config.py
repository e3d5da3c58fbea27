"""
CertSeal runtime configuration

Settings are read from the environment once, by the caller, and passed
explicitly to the issuer, verifier, database and CLI. Nothing in core reads
the environment on import.

Example usage:
    from core.config import Settings

    settings = Settings.from_env()
    print(settings.base_url)
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from core.errors import ConfigurationError


DEFAULT_BASE_URL = "http://localhost:3000"


def _env_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", {'variable': name})


class Settings(BaseModel):
    """Runtime settings for the certificate pipeline."""

    signing_secret: Optional[str] = Field(
        None,
        description="Server-held HMAC secret for digital signatures"
    )
    base_url: str = Field(
        DEFAULT_BASE_URL,
        description="Public base URL baked into every QR code"
    )
    database_url: str = Field("", description="SQLAlchemy database URL")
    db_pool_size: int = Field(5, ge=1)
    db_max_overflow: int = Field(10, ge=0)
    db_echo: bool = False
    use_pgbouncer: bool = False
    template_file: Optional[str] = Field(
        None,
        description="YAML file with admin-managed certificate templates"
    )
    render_workers: int = Field(2, ge=1, le=64)
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Populated Settings instance

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        return cls(
            signing_secret=env.get("CERTSEAL_SIGNING_SECRET") or env.get("JWT_SECRET") or None,
            base_url=(env.get("CERTSEAL_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            database_url=env.get("DATABASE_URL", ""),
            db_pool_size=_env_int(env, "DB_POOL_SIZE", 5),
            db_max_overflow=_env_int(env, "DB_MAX_OVERFLOW", 10),
            db_echo=_env_bool(env.get("DB_ECHO")),
            use_pgbouncer=_env_bool(env.get("USE_PGBOUNCER")),
            template_file=env.get("CERTSEAL_TEMPLATE_FILE") or None,
            render_workers=_env_int(env, "CERTSEAL_RENDER_WORKERS", 2),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
        )

    def require_signing_secret(self) -> str:
        """Return the signing secret or raise ConfigurationError."""
        if not self.signing_secret:
            raise ConfigurationError(
                "No signing secret configured; set CERTSEAL_SIGNING_SECRET",
                {'variable': 'CERTSEAL_SIGNING_SECRET'}
            )
        return self.signing_secret
