"""Token store, rate limiter and auth gate."""

from dashboard_guard.engines.authentication import (
    AuthErrorCode,
    AuthGate,
    GateDecision,
    GateRequest,
)
from dashboard_guard.engines.rate_limiter import (
    ClientRateState,
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
    "AuthGate",
    "AuthErrorCode",
    "GateDecision",
    "GateRequest",
    # Rate limiting
    "RateLimiter",
    "RateLimitInfo",
    "RateLimitResult",
    "ClientRateState",
    "InMemoryRateLimiter",
    "NullRateLimiter",
    # Token store
    "TokenStore",
    "TokenStatus",
    "TokenValidation",
    "TokenInfo",
    "LoadResult",
    "LoadStatus",
    "TokenPersistenceError",
]
