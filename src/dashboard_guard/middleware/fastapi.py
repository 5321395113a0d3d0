"""
FastAPI Integration for Dashboard Guard.

Provides the gate middleware and the admin router (token rotation and
token info).

Usage:
    from dashboard_guard.middleware.fastapi import (
        DashboardGuardMiddleware,
        GuardComponents,
        create_guard_router,
    )

    components = GuardComponents.from_settings(settings)
    app.state.guard = components
    app.add_middleware(DashboardGuardMiddleware, gate=components.gate)
    app.include_router(create_guard_router())
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Annotated, Any, Sequence

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from dashboard_guard.audit import AuditLogger
from dashboard_guard.core.config import GuardSettings
from dashboard_guard.engines.authentication import AuthGate, GateDecision, GateRequest
from dashboard_guard.engines.rate_limiter import (
    InMemoryRateLimiter,
    NullRateLimiter,
    RateLimiter,
)
from dashboard_guard.engines.token_store import (
    TokenPersistenceError,
    TokenStatus,
    TokenStore,
)

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass
class GuardComponents:
    """
    The gate's collaborators for one running service.

    Created at startup, closed at shutdown.
    """

    token_store: TokenStore
    rate_limiter: RateLimiter
    audit_logger: AuditLogger
    gate: AuthGate

    @classmethod
    def from_settings(cls, settings: GuardSettings) -> GuardComponents:
        """Build all components from settings."""
        audit_logger = AuditLogger(
            settings.audit_log_path,
            max_bytes=settings.max_log_bytes,
        )
        token_store = TokenStore(
            settings.token_file,
            max_age_seconds=settings.token_max_age_seconds,
            grace_seconds=settings.grace_period_seconds,
            cache_ttl=settings.token_cache_ttl_seconds,
            audit_logger=audit_logger,
            expiry_hint=(
                "Token has expired. Rotate it locally with: dashboard-guard rotate "
                f"--secrets-dir {settings.secrets_dir}"
            ),
        )
        rate_limiter: RateLimiter
        if settings.rate_limiting_enabled:
            rate_limiter = InMemoryRateLimiter(
                window_seconds=settings.rate_window_seconds,
                max_requests=settings.max_requests,
                max_failed_auth=settings.max_failed_auth,
                block_seconds=settings.block_duration_seconds,
                audit_logger=audit_logger,
            )
        else:
            logger.warning("Rate limiting is DISABLED")
            rate_limiter = NullRateLimiter()

        return cls(
            token_store=token_store,
            rate_limiter=rate_limiter,
            audit_logger=audit_logger,
            gate=AuthGate(token_store, rate_limiter, audit_logger),
        )

    def close(self) -> None:
        """Release per-process state."""
        self.rate_limiter.close()


def client_id_for(request: Request) -> str:
    """Client identifier: the peer network address."""
    return request.client.host if request.client else UNKNOWN_CLIENT


def is_exempt(path: str, exempt_paths: Sequence[str]) -> bool:
    """Exact or segment-boundary match against exempt paths."""
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in exempt_paths)


def denial_response(decision: GateDecision) -> JSONResponse:
    """Render a gate denial."""
    headers: dict[str, str] = {}
    if decision.retry_after is not None:
        headers["Retry-After"] = str(decision.retry_after)
    if decision.status_code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"
    return JSONResponse(
        decision.to_body(),
        status_code=decision.status_code,
        headers=headers,
    )


class DashboardGuardMiddleware(BaseHTTPMiddleware):
    """
    Runs the gate in front of every request.

    Denied requests never reach the route. Admitted requests carry the
    decision on ``request.state.guard_decision``.

    CORS preflight (OPTIONS) and exempt paths pass through untouched.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        gate: AuthGate,
        exempt_paths: Sequence[str] = ("/health",),
    ) -> None:
        super().__init__(app)
        self._gate = gate
        self._exempt_paths = tuple(exempt_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path

        if request.method == "OPTIONS" or is_exempt(path, self._exempt_paths):
            return await call_next(request)

        decision = self._gate.evaluate(
            GateRequest(
                headers=request.headers,
                path=path,
                client_id=client_id_for(request),
            )
        )

        if not decision.allowed:
            return denial_response(decision)

        request.state.guard_decision = decision
        return await call_next(request)


def get_components(request: Request) -> GuardComponents:
    """FastAPI dependency: the app's guard components."""
    components = getattr(request.app.state, "guard", None)
    if components is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Dashboard guard not configured",
        )
    return components


def require_token_holder(request: Request) -> GateDecision:
    """
    Dependency that requires the request to have presented a valid token.

    Open mode (no token configured) does not qualify: the first token
    must be created locally.
    """
    decision: GateDecision | None = getattr(request.state, "guard_decision", None)
    if decision is None or decision.token_status not in (
        TokenStatus.VALID,
        TokenStatus.VALID_GRACE,
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "rotation_requires_token",
                "hint": "No token configured. Create one with: dashboard-guard rotate",
            },
        )
    return decision


def create_guard_router(prefix: str = "/api") -> APIRouter:
    """
    Admin routes for token management.

    Args:
        prefix: Route prefix

    Returns:
        Router with POST {prefix}/rotate and GET {prefix}/token-info
    """
    router = APIRouter(prefix=prefix, tags=["guard"])

    @router.post("/rotate")
    async def rotate_token(
        request: Request,
        components: Annotated[GuardComponents, Depends(get_components)],
        _decision: Annotated[GateDecision, Depends(require_token_holder)],
    ) -> dict[str, Any]:
        try:
            token = components.token_store.rotate(
                client_id=client_id_for(request),
                endpoint=request.url.path,
            )
        except TokenPersistenceError:
            logger.exception("Token rotation failed")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"error": "rotation_failed"},
            ) from None

        return {
            "token": token,
            "graceSeconds": components.token_store.grace_seconds,
        }

    @router.get("/token-info")
    async def token_info(
        components: Annotated[GuardComponents, Depends(get_components)],
    ) -> dict[str, Any]:
        info = components.token_store.info()
        if info is None:
            return {"configured": False}
        return {"configured": True, **asdict(info)}

    return router
