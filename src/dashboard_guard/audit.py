"""
Security Audit Logging for Dashboard Guard.

Every security-relevant event (missing/failed auth, grace-period use,
rate limiting, token rotation) is appended to a JSON-lines file and
mirrored to Python logging.

The file is archived wholesale once it grows past a size ceiling.
Audit logging is best-effort: I/O failures are reported through logging
and never reach the request path.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable

MAX_LOG_SIZE = 5 * 1024 * 1024  # 5 MB

_diagnostics = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Audit action tags."""

    AUTH_MISSING = "auth_missing"
    AUTH_FAILED = "auth_failed"
    AUTH_GRACE = "auth_grace"
    RATE_EXCEEDED = "rate_exceeded"
    RATE_BLOCKED = "rate_blocked"
    TOKEN_ROTATED = "token_rotated"


# Actions logged at WARNING on the mirror logger
_WARNING_ACTIONS = frozenset(
    {
        AuditAction.AUTH_MISSING,
        AuditAction.AUTH_FAILED,
        AuditAction.RATE_EXCEEDED,
        AuditAction.RATE_BLOCKED,
    }
)


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit record."""

    timestamp: float
    client_id: str
    endpoint: str
    action: AuditAction
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk record layout."""
        return {
            "ts": datetime.fromtimestamp(self.timestamp, UTC).isoformat(
                timespec="milliseconds"
            ),
            "ip": self.client_id,
            "endpoint": self.endpoint,
            "action": self.action.value,
            "detail": self.detail,
        }

    def to_json(self) -> str:
        """Convert to a single JSON line (without newline)."""
        return json.dumps(self.to_dict(), ensure_ascii=False)


class AuditLogger:
    """
    Append-only audit log with size-based rotation.

    Thread-safe: rotation and append run under one lock, so each entry
    lands whole in exactly one file.

    Usage:
        audit = AuditLogger(Path("~/.dashboard-guard/audit.log").expanduser())
        audit.record("10.0.0.5", "/api/status", AuditAction.AUTH_FAILED, "invalid_token")
    """

    def __init__(
        self,
        log_path: Path,
        *,
        max_bytes: int = MAX_LOG_SIZE,
        logger_name: str = "dashboard_guard.security",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize audit logger.

        Args:
            log_path: Active JSON-lines log file
            max_bytes: Size above which the active file is archived
            logger_name: Name of the mirror Python logger
            clock: Time source (epoch seconds)
        """
        self._log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._logger = logging.getLogger(logger_name)
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def log_path(self) -> Path:
        """Active log file."""
        return self._log_path

    def record(
        self,
        client_id: str,
        endpoint: str,
        action: AuditAction | str,
        detail: str = "",
    ) -> AuditEntry:
        """
        Record one audit event.

        Args:
            client_id: Client identifier (network address or SYSTEM/CLI)
            endpoint: Requested resource
            action: Action tag
            detail: Free-text detail

        Returns:
            The recorded entry (returned even if the write failed)

        Raises:
            ValueError: If action is not an AuditAction value; raised before
                anything is written
        """
        entry = AuditEntry(
            timestamp=self._clock(),
            client_id=client_id,
            endpoint=endpoint,
            action=AuditAction(action),
            detail=detail,
        )
        line = entry.to_json()

        self._logger.log(
            logging.WARNING if entry.action in _WARNING_ACTIONS else logging.INFO,
            line,
        )

        with self._lock:
            try:
                self._maybe_rotate()
                self._append(line)
            except OSError as e:
                _diagnostics.error("Failed to write audit log %s: %s", self._log_path, e)

        return entry

    def _maybe_rotate(self) -> None:
        """Archive the active file if it exceeds the ceiling (must hold lock)."""
        try:
            size = self._log_path.stat().st_size
        except FileNotFoundError:
            return

        if size <= self._max_bytes:
            return

        archive = self._archive_path()
        os.replace(self._log_path, archive)
        _diagnostics.info("Archived audit log to %s (%d bytes)", archive, size)

    def _archive_path(self) -> Path:
        """Timestamp-qualified archive name, e.g. audit.1700000000000.log."""
        stamp = int(self._clock() * 1000)
        stem, suffix = self._log_path.stem, self._log_path.suffix
        candidate = self._log_path.with_name(f"{stem}.{stamp}{suffix}")

        counter = 1
        while candidate.exists():
            candidate = self._log_path.with_name(f"{stem}.{stamp}-{counter}{suffix}")
            counter += 1
        return candidate

    def _append(self, line: str) -> None:
        """Append one line (must hold lock)."""
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._log_path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def archives(self) -> list[Path]:
        """Archived log files, oldest first."""
        stem, suffix = self._log_path.stem, self._log_path.suffix
        pattern = f"{stem}.*{suffix}"
        return sorted(
            p for p in self._log_path.parent.glob(pattern) if p != self._log_path
        )
