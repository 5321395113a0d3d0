"""
Configuration for Dashboard Guard.

Settings are loaded from environment variables (prefix ``DASHBOARD_GUARD_``)
or an optional ``.env`` file, with pydantic validation.

Usage:
    settings = GuardSettings()                       # from environment
    settings = GuardSettings(secrets_dir=tmp_path)   # explicit override
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

TOKEN_FILE_NAME = "dashboard.env"

_DEFAULT_HOME = Path.home() / ".dashboard-guard"


class GuardSettings(BaseSettings):
    """
    Dashboard Guard settings.

    Defaults reproduce the production limits: 7 day token lifetime,
    1 hour rotation grace, 30 requests / 60 s, block for 5 minutes after
    5 failed authentications, 5 MB audit log ceiling.
    """

    model_config = SettingsConfigDict(
        env_prefix="DASHBOARD_GUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    secrets_dir: Path = _DEFAULT_HOME / "secrets"
    audit_log_path: Path = _DEFAULT_HOME / "audit.log"

    # Token lifecycle
    token_max_age_seconds: int = Field(default=7 * 24 * 60 * 60, gt=0)
    grace_period_seconds: int = Field(default=60 * 60, ge=0)
    token_cache_ttl_seconds: float = Field(default=5.0, ge=0)

    # Rate limiting
    rate_window_seconds: int = Field(default=60, gt=0)
    max_requests: int = Field(default=30, gt=0)
    max_failed_auth: int = Field(default=5, gt=0)
    block_duration_seconds: int = Field(default=5 * 60, gt=0)
    rate_limiting_enabled: bool = True

    # Audit
    max_log_bytes: int = Field(default=5 * 1024 * 1024, gt=0)

    # Paths served without the gate (exact or segment-boundary match)
    exempt_paths: list[str] = Field(default_factory=lambda: ["/health"])

    log_level: str = "INFO"

    @property
    def token_file(self) -> Path:
        """Location of the persisted token state."""
        return self.secrets_dir / TOKEN_FILE_NAME


@lru_cache
def get_settings() -> GuardSettings:
    """Get cached settings loaded from the environment."""
    return GuardSettings()
