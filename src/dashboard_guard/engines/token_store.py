"""
Token Store for Dashboard Guard.

Owns the persisted dashboard token: load, save, rotate, validate, info.

Rotation supports zero-downtime rollover: the replaced token stays valid
for a grace period, so existing holders keep working while they pick up
the new one. Tokens also expire outright after a maximum age.

Missing or unreadable state means "no token configured" (open legacy mode);
it never crashes the gate.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from dashboard_guard.audit import AuditAction
from dashboard_guard.core.credentials import TokenState, generate_token, tokens_match

if TYPE_CHECKING:
    from dashboard_guard.audit import AuditLogger

logger = logging.getLogger(__name__)

TOKEN_MAX_AGE_SECONDS = 7 * 24 * 60 * 60  # 7 days
GRACE_PERIOD_SECONDS = 60 * 60  # 1 hour

# On-disk field names
FIELD_TOKEN = "DASHBOARD_TOKEN"
FIELD_CREATED = "TOKEN_CREATED"
FIELD_PREVIOUS = "PREVIOUS_TOKEN"
FIELD_PREVIOUS_EXPIRES = "PREVIOUS_EXPIRES"

_HEADER = "# Dashboard token (auto-managed)\n"

_MS_PER_HOUR = 3_600_000
_MS_PER_DAY = 86_400_000


class TokenPersistenceError(OSError):
    """Token state could not be written."""


class LoadStatus(str, Enum):
    """Outcome of reading persisted token state."""

    LOADED = "loaded"
    ABSENT = "absent"  # No file: legitimate open mode
    CORRUPT = "corrupt"  # Unreadable or unparseable: warn-worthy


@dataclass(frozen=True)
class LoadResult:
    """Result of reading persisted token state."""

    status: LoadStatus
    state: TokenState = field(default_factory=TokenState)
    error: str | None = None


class TokenStatus(str, Enum):
    """Outcome of validating a candidate token."""

    NO_TOKEN_CONFIGURED = "no_token_configured"
    VALID = "valid"
    VALID_GRACE = "valid_grace"
    TOKEN_EXPIRED = "token_expired"
    PREVIOUS_TOKEN_EXPIRED = "previous_token_expired"
    INVALID_TOKEN = "invalid_token"


@dataclass(frozen=True)
class TokenValidation:
    """Result of validating a candidate token."""

    status: TokenStatus
    hint: str | None = None

    @property
    def is_valid(self) -> bool:
        """Whether the candidate grants access (open mode included)."""
        return self.status in (
            TokenStatus.NO_TOKEN_CONFIGURED,
            TokenStatus.VALID,
            TokenStatus.VALID_GRACE,
        )


@dataclass(frozen=True)
class TokenInfo:
    """Non-sensitive diagnostics about the current token."""

    age_hours: int
    remaining_hours: int
    expired: bool
    max_age_days: float


def parse_token_state(content: str) -> tuple[TokenState, list[str]]:
    """
    Parse the ``KEY=VALUE`` token file format field by field.

    Lines that are not ``KEY=VALUE`` are skipped and a timestamp that is
    not an integer is read as missing; each is reported as a problem.
    A garbled auxiliary field never discards an intact token.

    Returns:
        Parsed state and a list of problems found
    """
    fields: dict[str, str] = {}
    problems: list[str] = []
    for lineno, raw in enumerate(content.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            problems.append(f"line {lineno}: expected KEY=VALUE")
            continue
        fields[key.strip()] = value.strip()

    def _int(name: str) -> int | None:
        value = fields.get(name)
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            problems.append(f"{name} is not an integer timestamp")
            return None

    state = TokenState(
        current_token=fields.get(FIELD_TOKEN) or None,
        current_created_at=_int(FIELD_CREATED),
        previous_token=fields.get(FIELD_PREVIOUS) or None,
        previous_expires_at=_int(FIELD_PREVIOUS_EXPIRES),
    )
    return state, problems


def format_token_state(state: TokenState) -> str:
    """Render token state in the on-disk format."""
    lines = [_HEADER]
    if state.current_token:
        lines.append(f"{FIELD_TOKEN}={state.current_token}\n")
    if state.current_created_at is not None:
        lines.append(f"{FIELD_CREATED}={state.current_created_at}\n")
    if state.previous_token:
        lines.append(f"{FIELD_PREVIOUS}={state.previous_token}\n")
        if state.previous_expires_at is not None:
            lines.append(f"{FIELD_PREVIOUS_EXPIRES}={state.previous_expires_at}\n")
    return "".join(lines)


class TokenStore:
    """
    File-backed dashboard token store.

    Validation reads a cached snapshot that is refreshed after a short TTL.
    Rotation builds the new state in full, persists it atomically, and then
    swaps the cached reference, so readers never observe a half-rotated
    state.

    Usage:
        store = TokenStore(Path("~/.dashboard-guard/secrets/dashboard.env").expanduser())

        token = store.rotate()
        result = store.validate(candidate)
        if result.status == TokenStatus.VALID_GRACE:
            ...
    """

    def __init__(
        self,
        token_file: Path,
        *,
        max_age_seconds: int = TOKEN_MAX_AGE_SECONDS,
        grace_seconds: int = GRACE_PERIOD_SECONDS,
        cache_ttl: float = 5.0,
        audit_logger: AuditLogger | None = None,
        expiry_hint: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize token store.

        Args:
            token_file: Persisted state location
            max_age_seconds: Lifetime of a current token
            grace_seconds: How long a replaced token stays valid
            cache_ttl: Seconds a loaded snapshot is reused (0 = always reload)
            audit_logger: Records token_rotated events
            expiry_hint: Remediation text returned with TOKEN_EXPIRED
            clock: Time source (epoch seconds)
        """
        self._token_file = Path(token_file)
        self._max_age_ms = max_age_seconds * 1000
        self._grace_ms = grace_seconds * 1000
        self._cache_ttl = cache_ttl
        self._audit = audit_logger
        self._expiry_hint = expiry_hint or (
            "Token has expired. Rotate it locally with: dashboard-guard rotate"
        )
        self._clock = clock
        self._lock = threading.RLock()
        self._cached: TokenState | None = None
        self._cached_at = 0.0

    @property
    def token_file(self) -> Path:
        """Persisted state location."""
        return self._token_file

    @property
    def grace_seconds(self) -> int:
        """Grace period after rotation."""
        return self._grace_ms // 1000

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def load(self) -> LoadResult:
        """Read persisted state from disk. Never raises."""
        try:
            content = self._token_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return LoadResult(status=LoadStatus.ABSENT)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read token file %s: %s", self._token_file, e)
            return LoadResult(status=LoadStatus.CORRUPT, error=str(e))

        state, problems = parse_token_state(content)
        if not problems:
            return LoadResult(status=LoadStatus.LOADED, state=state)

        error = "; ".join(problems)
        if not state.is_configured:
            logger.warning(
                "Token file %s is malformed (%s); running without a token",
                self._token_file,
                error,
            )
            return LoadResult(status=LoadStatus.CORRUPT, error=error)

        # Token recovered: bad timestamps read as missing, which validate() rejects
        logger.warning("Token file %s has malformed entries: %s", self._token_file, error)
        return LoadResult(status=LoadStatus.LOADED, state=state, error=error)

    def save(self, state: TokenState) -> None:
        """
        Persist state with owner-only permissions.

        Writes a temp file in the same directory and renames it into place.

        Raises:
            TokenPersistenceError: If the state could not be written
        """
        directory = self._token_file.parent
        tmp_path: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd, tmp_path = tempfile.mkstemp(
                dir=directory, prefix=f".{self._token_file.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                os.fchmod(f.fileno(), 0o600)
                f.write(format_token_state(state))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._token_file)
            tmp_path = None
        except OSError as e:
            raise TokenPersistenceError(
                f"Failed to write token state to {self._token_file}: {e}"
            ) from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.debug("Could not remove temp file %s", tmp_path)

    def current_state(self) -> TokenState:
        """Cached state snapshot, reloaded after the TTL expires."""
        now = self._clock()
        cached = self._cached
        if cached is not None and now - self._cached_at < self._cache_ttl:
            return cached

        with self._lock:
            if self._cached is None or now - self._cached_at >= self._cache_ttl:
                self._cached = self.load().state
                self._cached_at = now
            return self._cached

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next read reloads from disk."""
        with self._lock:
            self._cached = None

    def rotate(self, *, client_id: str = "SYSTEM", endpoint: str = "/internal") -> str:
        """
        Replace the current token with a freshly generated one.

        The replaced token stays valid for the grace period; any older
        previous token is discarded.

        Args:
            client_id: Who triggered the rotation (for the audit log)
            endpoint: Where it was triggered from (for the audit log)

        Returns:
            The new token

        Raises:
            TokenPersistenceError: If the new state could not be written
        """
        with self._lock:
            old_state = self.load().state
            new_token = generate_token()
            new_state = old_state.rotated(new_token, self._now_ms(), self._grace_ms)

            self.save(new_state)
            self._cached = new_state
            self._cached_at = self._clock()

        logger.info("Dashboard token rotated")
        if self._audit is not None:
            self._audit.record(
                client_id,
                endpoint,
                AuditAction.TOKEN_ROTATED,
                f"New token created, old token valid for {self.grace_seconds}s grace period",
            )
        return new_token

    def validate(self, candidate: str | None) -> TokenValidation:
        """
        Validate a candidate token.

        The current token is checked before the previous one.
        """
        state = self.current_state()
        if not state.is_configured:
            return TokenValidation(TokenStatus.NO_TOKEN_CONFIGURED)

        now_ms = self._now_ms()

        if tokens_match(state.current_token, candidate):
            # Unknown creation time is treated as expired (fail closed)
            if (
                state.current_created_at is None
                or now_ms - state.current_created_at > self._max_age_ms
            ):
                return TokenValidation(TokenStatus.TOKEN_EXPIRED, hint=self._expiry_hint)
            return TokenValidation(TokenStatus.VALID)

        if tokens_match(state.previous_token, candidate):
            if state.previous_expires_at is not None and now_ms < state.previous_expires_at:
                return TokenValidation(TokenStatus.VALID_GRACE)
            return TokenValidation(TokenStatus.PREVIOUS_TOKEN_EXPIRED)

        return TokenValidation(TokenStatus.INVALID_TOKEN)

    def info(self) -> TokenInfo | None:
        """Token age and expiry diagnostics, or None without a token."""
        state = self.current_state()
        if not state.is_configured or state.current_created_at is None:
            return None

        age_ms = self._now_ms() - state.current_created_at
        remaining_ms = self._max_age_ms - age_ms
        return TokenInfo(
            age_hours=round(age_ms / _MS_PER_HOUR),
            remaining_hours=max(0, round(remaining_ms / _MS_PER_HOUR)),
            expired=remaining_ms <= 0,
            max_age_days=self._max_age_ms / _MS_PER_DAY,
        )
