"""
Command-line token management.

Usage:
    dashboard-guard rotate                 # create or rotate the token
    dashboard-guard info                   # show token age and expiry
    dashboard-guard --secrets-dir DIR info
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dashboard_guard.audit import AuditLogger
from dashboard_guard.core.config import GuardSettings
from dashboard_guard.core.logging import setup_logging
from dashboard_guard.engines.token_store import TokenPersistenceError, TokenStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dashboard-guard",
        description="Manage the dashboard access token",
    )
    parser.add_argument("--secrets-dir", type=Path, help="Directory holding dashboard.env")
    parser.add_argument("--audit-log", type=Path, help="Audit log file")
    parser.add_argument("--log-level", default=None, help="Logging level")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("rotate", help="Generate a new token (old one stays valid for the grace period)")
    sub.add_parser("info", help="Show token age and expiry")
    return parser


def _store_from_args(args: argparse.Namespace) -> TokenStore:
    overrides = {}
    if args.secrets_dir:
        overrides["secrets_dir"] = args.secrets_dir
    if args.audit_log:
        overrides["audit_log_path"] = args.audit_log
    settings = GuardSettings(**overrides)

    setup_logging(args.log_level or settings.log_level)

    return TokenStore(
        settings.token_file,
        max_age_seconds=settings.token_max_age_seconds,
        grace_seconds=settings.grace_period_seconds,
        cache_ttl=0,
        audit_logger=AuditLogger(settings.audit_log_path, max_bytes=settings.max_log_bytes),
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    store = _store_from_args(args)

    if args.command == "rotate":
        try:
            token = store.rotate(client_id="CLI", endpoint="cli:rotate")
        except TokenPersistenceError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print(token)
        print(
            f"Previous token (if any) remains valid for {store.grace_seconds}s.",
            file=sys.stderr,
        )
        return 0

    info = store.info()
    if info is None:
        print("No token configured (dashboard is open).")
        return 0

    state = "EXPIRED" if info.expired else "valid"
    print(
        f"Token {state}: age {info.age_hours}h, "
        f"{info.remaining_hours}h remaining (max {info.max_age_days:g} days)"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
