"""Shared fixtures."""

import logging
from pathlib import Path

import pytest

from dashboard_guard.audit import AuditLogger


class FakeClock:
    """Manually advanced time source (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def audit_path(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "audit.log"


@pytest.fixture
def audit_logger(audit_path: Path, clock: FakeClock) -> AuditLogger:
    return AuditLogger(audit_path, clock=clock)


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo setup_logging() calls made by entry points under test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
