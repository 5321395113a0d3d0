"""
Rate Limiting for Dashboard Guard.

Two independent sliding windows per client identifier:
- request window: raw request volume, short cooldown when exceeded
- failure window: failed authentications, longer block when exceeded

A client hammering wrong credentials is blocked for the full block
duration; a client merely making many requests only waits out the window.

State is local to the process. Single-instance deployments only.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

from dashboard_guard.audit import AuditAction

if TYPE_CHECKING:
    from dashboard_guard.audit import AuditLogger

logger = logging.getLogger(__name__)

RATE_WINDOW_SECONDS = 60
MAX_REQUESTS = 30
MAX_FAILED_AUTH = 5
BLOCK_DURATION_SECONDS = 5 * 60


class RateLimitResult(Enum):
    """Result of a rate limit check."""

    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass
class RateLimitInfo:
    """Information about a client's current rate limit state."""

    result: RateLimitResult
    current_count: int
    limit: int
    window_seconds: int
    remaining: int
    retry_after: int | None = None  # Seconds until retry allowed (if denied)
    blocked: bool = False  # Denied because of repeated auth failures

    @property
    def is_allowed(self) -> bool:
        """Whether the request is allowed."""
        return self.result == RateLimitResult.ALLOWED


@dataclass
class ClientRateState:
    """Sliding windows and block flag for one client."""

    requests: list[float] = field(default_factory=list)
    failures: list[float] = field(default_factory=list)
    blocked_until: float | None = None

    def prune(self, now: float, window: float) -> None:
        """Drop timestamps that fell out of the trailing window."""
        self.requests = [t for t in self.requests if now - t < window]
        self.failures = [t for t in self.failures if now - t < window]

    def is_idle(self, now: float) -> bool:
        """Nothing left to remember about this client."""
        blocked = self.blocked_until is not None and now < self.blocked_until
        return not self.requests and not self.failures and not blocked


@runtime_checkable
class RateLimiter(Protocol):
    """
    Protocol for rate limiter implementations.

    All operations must be thread-safe.
    """

    def check(self, client_id: str, endpoint: str = "/") -> RateLimitInfo:
        """
        Check admission for a client and count the request.

        Args:
            client_id: Client identifier (network address)
            endpoint: Requested resource, for auditing

        Returns:
            RateLimitInfo with current state
        """
        ...

    def record_failure(self, client_id: str) -> bool:
        """
        Record a failed authentication.

        Args:
            client_id: Client identifier

        Returns:
            True if this failure started a block
        """
        ...

    def reset(self, client_id: str) -> bool:
        """
        Forget all state for a client.

        Returns:
            True if the client was tracked
        """
        ...

    def close(self) -> None:
        """Release all state (service shutdown)."""
        ...


class InMemoryRateLimiter:
    """
    In-memory sliding window rate limiter with failure blocking.

    One lock guards the whole client map, so the read-prune-append-decide
    sequence for a client is atomic across concurrent requests.

    Usage:
        limiter = InMemoryRateLimiter(audit_logger=audit)

        info = limiter.check("192.168.1.1", "/api/status")
        if not info.is_allowed:
            return too_many_requests(retry_after=info.retry_after)

        # after a failed authentication
        limiter.record_failure("192.168.1.1")
    """

    def __init__(
        self,
        *,
        window_seconds: int = RATE_WINDOW_SECONDS,
        max_requests: int = MAX_REQUESTS,
        max_failed_auth: int = MAX_FAILED_AUTH,
        block_seconds: int = BLOCK_DURATION_SECONDS,
        audit_logger: AuditLogger | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            window_seconds: Width of both sliding windows
            max_requests: Requests allowed per window
            max_failed_auth: Failures per window that trigger a block
            block_seconds: Block duration
            audit_logger: Records rate_exceeded / rate_blocked events
            clock: Time source (epoch seconds)
        """
        self._window = window_seconds
        self._max_requests = max_requests
        self._max_failed_auth = max_failed_auth
        self._block_seconds = block_seconds
        self._audit = audit_logger
        self._clock = clock
        self._clients: dict[str, ClientRateState] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()
        self._cleanup_interval = max(window_seconds // 2, 1)

    def check(self, client_id: str, endpoint: str = "/") -> RateLimitInfo:
        """
        Check admission and count the request.

        Order: active block, then block expiry (clean slate), then the
        request window.
        """
        now = self._clock()

        with self._lock:
            self._maybe_cleanup(now)
            state = self._clients.setdefault(client_id, ClientRateState())

            if state.blocked_until is not None and now < state.blocked_until:
                retry_after = math.ceil(state.blocked_until - now)
                info = self._make_info(
                    state, RateLimitResult.DENIED, retry_after=retry_after, blocked=True
                )
            else:
                if state.blocked_until is not None:
                    # Block served in full: failure history is forgiven
                    state.blocked_until = None
                    state.failures = []

                state.requests.append(now)
                state.prune(now, self._window)

                if len(state.requests) > self._max_requests:
                    info = self._make_info(
                        state, RateLimitResult.DENIED, retry_after=self._window
                    )
                else:
                    info = self._make_info(state, RateLimitResult.ALLOWED)

        if info.blocked:
            self._record(
                client_id,
                endpoint,
                AuditAction.RATE_BLOCKED,
                f"Still blocked, retry in {info.retry_after}s",
            )
        elif not info.is_allowed:
            self._record(
                client_id,
                endpoint,
                AuditAction.RATE_EXCEEDED,
                f"{info.current_count} requests in window",
            )

        return info

    def record_failure(self, client_id: str) -> bool:
        """Record a failed authentication; block at the threshold."""
        now = self._clock()

        with self._lock:
            state = self._clients.setdefault(client_id, ClientRateState())
            state.failures.append(now)
            state.prune(now, self._window)

            if len(state.failures) < self._max_failed_auth:
                return False

            state.blocked_until = now + self._block_seconds
            failures = len(state.failures)

        logger.warning(
            "Blocking client %s for %ss after %d failed authentications",
            client_id,
            self._block_seconds,
            failures,
        )
        return True

    def reset(self, client_id: str) -> bool:
        """Forget all state for a client."""
        with self._lock:
            return self._clients.pop(client_id, None) is not None

    def get_info(self, client_id: str) -> RateLimitInfo | None:
        """Get current state without counting a request."""
        now = self._clock()

        with self._lock:
            state = self._clients.get(client_id)
            if state is None:
                return None

            state.prune(now, self._window)
            if state.blocked_until is not None and now < state.blocked_until:
                return self._make_info(
                    state,
                    RateLimitResult.DENIED,
                    retry_after=math.ceil(state.blocked_until - now),
                    blocked=True,
                )
            if len(state.requests) > self._max_requests:
                return self._make_info(
                    state, RateLimitResult.DENIED, retry_after=self._window
                )
            return self._make_info(state, RateLimitResult.ALLOWED)

    def is_blocked(self, client_id: str) -> bool:
        """Whether a client is currently blocked."""
        info = self.get_info(client_id)
        return info is not None and info.blocked

    def close(self) -> None:
        """Drop all client state."""
        with self._lock:
            self._clients.clear()

    @property
    def tracked_clients(self) -> int:
        """Number of currently tracked clients."""
        with self._lock:
            return len(self._clients)

    def _make_info(
        self,
        state: ClientRateState,
        result: RateLimitResult,
        *,
        retry_after: int | None = None,
        blocked: bool = False,
    ) -> RateLimitInfo:
        """Create RateLimitInfo from client state."""
        count = len(state.requests)
        return RateLimitInfo(
            result=result,
            current_count=count,
            limit=self._max_requests,
            window_seconds=self._window,
            remaining=max(0, self._max_requests - count),
            retry_after=retry_after,
            blocked=blocked,
        )

    def _maybe_cleanup(self, now: float) -> None:
        """Evict idle clients (must hold lock)."""
        if now - self._last_cleanup < self._cleanup_interval:
            return

        for state in self._clients.values():
            state.prune(now, self._window)
        self._clients = {
            k: v for k, v in self._clients.items() if not v.is_idle(now)
        }
        self._last_cleanup = now

    def _record(self, client_id: str, endpoint: str, action: AuditAction, detail: str) -> None:
        if self._audit is not None:
            self._audit.record(client_id, endpoint, action, detail)


class NullRateLimiter:
    """
    No-op rate limiter that always allows requests.

    WARNING: Provides NO rate limiting or failure blocking.
    Only use for testing or behind a trusted front end.
    """

    def __init__(self, max_requests: int = MAX_REQUESTS, window_seconds: int = RATE_WINDOW_SECONDS) -> None:
        self._max_requests = max_requests
        self._window = window_seconds

    def check(self, client_id: str, endpoint: str = "/") -> RateLimitInfo:
        """Always allows requests."""
        return RateLimitInfo(
            result=RateLimitResult.ALLOWED,
            current_count=0,
            limit=self._max_requests,
            window_seconds=self._window,
            remaining=self._max_requests,
        )

    def record_failure(self, client_id: str) -> bool:
        """Never blocks."""
        return False

    def reset(self, client_id: str) -> bool:
        """No-op reset."""
        return False

    def close(self) -> None:
        """Nothing to release."""
