"""
Dashboard Guard - security gate for a local admin dashboard.

Bearer token lifecycle with rotation grace, per-client rate limiting with
failure blocking, and an append-only audit log.
"""

__version__ = "0.1.0"

from dashboard_guard.audit import AuditAction, AuditEntry, AuditLogger
from dashboard_guard.core.config import GuardSettings
from dashboard_guard.core.credentials import TokenState
from dashboard_guard.engines.authentication import (
    AuthErrorCode,
    AuthGate,
    GateDecision,
    GateRequest,
)
from dashboard_guard.engines.rate_limiter import (
    InMemoryRateLimiter,
    NullRateLimiter,
    RateLimiter,
    RateLimitInfo,
    RateLimitResult,
)
from dashboard_guard.engines.token_store import (
    LoadResult,
    LoadStatus,
    TokenInfo,
    TokenPersistenceError,
    TokenStatus,
    TokenStore,
    TokenValidation,
)

__all__ = [
    # Audit
    "AuditAction",
    "AuditEntry",
    "AuditLogger",
    # Config
    "GuardSettings",
    # Token store
    "TokenState",
    "TokenStore",
    "TokenStatus",
    "TokenValidation",
    "TokenInfo",
    "LoadResult",
    "LoadStatus",
    "TokenPersistenceError",
    # Rate limiting
    "RateLimiter",
    "RateLimitInfo",
    "RateLimitResult",
    "InMemoryRateLimiter",
    "NullRateLimiter",
    # Gate
    "AuthGate",
    "AuthErrorCode",
    "GateDecision",
    "GateRequest",
]
