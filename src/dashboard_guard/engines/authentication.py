"""
Auth Gate for Dashboard Guard.

Per-request orchestrator: rate limit admission first, then bearer token
validation against the Token Store. Rejections are audited, and failed
authentications feed the rate limiter's failure window.

Successful authentication is not audited, keeping the log focused on
anomalies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

from dashboard_guard.audit import AuditAction
from dashboard_guard.engines.token_store import TokenStatus

if TYPE_CHECKING:
    from dashboard_guard.audit import AuditLogger
    from dashboard_guard.engines.rate_limiter import RateLimiter
    from dashboard_guard.engines.token_store import TokenStore

_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)

MISSING_HEADER_HINT = "Send Authorization: Bearer <token>"
INVALID_TOKEN_HINT = "Invalid or expired token"


class AuthErrorCode(str, Enum):
    """Error codes returned to the caller."""

    AUTHENTICATION_REQUIRED = "authentication_required"
    TOKEN_EXPIRED = "token_expired"
    PREVIOUS_TOKEN_EXPIRED = "previous_token_expired"
    INVALID_TOKEN = "invalid_token"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    TOO_MANY_FAILURES = "too_many_failures"


# Denial status per validation outcome
_FAILURES: dict[TokenStatus, tuple[int, AuthErrorCode]] = {
    TokenStatus.TOKEN_EXPIRED: (401, AuthErrorCode.TOKEN_EXPIRED),
    TokenStatus.PREVIOUS_TOKEN_EXPIRED: (401, AuthErrorCode.PREVIOUS_TOKEN_EXPIRED),
    TokenStatus.INVALID_TOKEN: (403, AuthErrorCode.INVALID_TOKEN),
}


@dataclass
class GateRequest:
    """What the gate needs to know about an incoming request."""

    headers: Mapping[str, str]
    path: str
    client_id: str

    @property
    def authorization(self) -> str | None:
        """Authorization header value (case-insensitive lookup)."""
        for key, value in self.headers.items():
            if key.lower() == "authorization":
                return value
        return None


@dataclass
class GateDecision:
    """
    Admit/deny decision for one request.

    Denials carry the HTTP status, an error code, and where applicable a
    remediation hint and retry-after seconds.
    """

    allowed: bool
    status_code: int = 200
    error: AuthErrorCode | None = None
    hint: str | None = None
    retry_after: int | None = None
    token_status: TokenStatus | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_body(self) -> dict[str, Any]:
        """Structured error body for a denial."""
        body: dict[str, Any] = {"error": self.error.value if self.error else None}
        if self.hint:
            body["hint"] = self.hint
        if self.retry_after is not None:
            body["retryAfterSeconds"] = self.retry_after
        return body


def extract_bearer_token(authorization: str) -> str:
    """Strip a case-insensitive ``Bearer`` prefix."""
    return _BEARER_PREFIX.sub("", authorization.strip(), count=1)


class AuthGate:
    """
    Dashboard request gate.

    Usage:
        gate = AuthGate(token_store, rate_limiter, audit_logger)

        decision = gate.evaluate(
            GateRequest(headers=request.headers, path="/api/status", client_id="10.0.0.5")
        )
        if not decision.allowed:
            return JSONResponse(decision.to_body(), status_code=decision.status_code)
    """

    def __init__(
        self,
        token_store: TokenStore,
        rate_limiter: RateLimiter,
        audit_logger: AuditLogger,
    ) -> None:
        self._token_store = token_store
        self._rate_limiter = rate_limiter
        self._audit = audit_logger

    @property
    def token_store(self) -> TokenStore:
        return self._token_store

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    def evaluate(self, request: GateRequest) -> GateDecision:
        """
        Run the full gate: rate limit admission, then authentication.

        A blocked or rate-limited client is refused without looking at its
        credentials.
        """
        info = self._rate_limiter.check(request.client_id, request.path)
        if not info.is_allowed:
            return GateDecision(
                allowed=False,
                status_code=429,
                error=(
                    AuthErrorCode.TOO_MANY_FAILURES
                    if info.blocked
                    else AuthErrorCode.RATE_LIMIT_EXCEEDED
                ),
                retry_after=info.retry_after,
                metadata={"current_count": info.current_count, "limit": info.limit},
            )

        return self.authenticate(request)

    def authenticate(self, request: GateRequest) -> GateDecision:
        """Validate the request's bearer token."""
        store = self._token_store
        if not store.current_state().is_configured:
            # Open legacy mode: nothing to check
            return GateDecision(allowed=True, token_status=TokenStatus.NO_TOKEN_CONFIGURED)

        authorization = request.authorization
        if not authorization or not authorization.strip():
            self._rate_limiter.record_failure(request.client_id)
            self._audit.record(
                request.client_id,
                request.path,
                AuditAction.AUTH_MISSING,
                "No Authorization header",
            )
            return GateDecision(
                allowed=False,
                status_code=401,
                error=AuthErrorCode.AUTHENTICATION_REQUIRED,
                hint=MISSING_HEADER_HINT,
            )

        result = store.validate(extract_bearer_token(authorization))

        if result.status in (TokenStatus.VALID, TokenStatus.NO_TOKEN_CONFIGURED):
            return GateDecision(allowed=True, token_status=result.status)

        if result.status == TokenStatus.VALID_GRACE:
            self._audit.record(
                request.client_id,
                request.path,
                AuditAction.AUTH_GRACE,
                "Authenticated with previous token (grace period)",
            )
            return GateDecision(allowed=True, token_status=result.status)

        status_code, error = _FAILURES[result.status]
        self._rate_limiter.record_failure(request.client_id)
        self._audit.record(
            request.client_id,
            request.path,
            AuditAction.AUTH_FAILED,
            result.status.value,
        )
        return GateDecision(
            allowed=False,
            status_code=status_code,
            error=error,
            hint=result.hint or INVALID_TOKEN_HINT,
            token_status=result.status,
        )
