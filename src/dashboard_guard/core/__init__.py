"""Core credential, configuration and logging helpers."""

from dashboard_guard.core.config import GuardSettings, get_settings
from dashboard_guard.core.credentials import TokenState, generate_token, tokens_match

__all__ = [
    "GuardSettings",
    "get_settings",
    "TokenState",
    "generate_token",
    "tokens_match",
]
