"""
Credential primitives for Dashboard Guard.

Token generation, constant-time comparison, and the persisted token record.

Tokens are opaque random secrets. Nothing here signs or encrypts anything.
"""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass

# 32 random bytes = 256 bits of entropy, hex-encoded to 64 chars
TOKEN_BYTES = 32


def generate_token() -> str:
    """
    Generate a new dashboard token.

    Returns:
        Hex-encoded random token (256 bits of entropy)
    """
    return secrets.token_hex(TOKEN_BYTES)


def tokens_match(expected: str | None, candidate: str | None) -> bool:
    """
    Securely compare a candidate token to a stored token.

    Args:
        expected: Stored token (None never matches)
        candidate: Token supplied by the caller

    Returns:
        True if tokens match
    """
    if not expected or candidate is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))


@dataclass(frozen=True, repr=False)
class TokenState:
    """
    Persisted dashboard token state.

    Timestamps are epoch milliseconds, matching the on-disk format.
    The previous token only exists as a byproduct of rotation and is
    discarded by the next rotation.
    """

    current_token: str | None = None
    current_created_at: int | None = None
    previous_token: str | None = None
    previous_expires_at: int | None = None

    @property
    def is_configured(self) -> bool:
        """Whether a current token exists."""
        return bool(self.current_token)

    def rotated(self, new_token: str, now_ms: int, grace_ms: int) -> TokenState:
        """
        Build the state that results from rotating to ``new_token``.

        The current token (if any) becomes the previous token with a grace
        expiry; whatever previous token existed is dropped.
        """
        if self.current_token:
            return TokenState(
                current_token=new_token,
                current_created_at=now_ms,
                previous_token=self.current_token,
                previous_expires_at=now_ms + grace_ms,
            )
        return TokenState(current_token=new_token, current_created_at=now_ms)

    def __repr__(self) -> str:
        # Never leak secrets into logs or tracebacks
        return (
            f"TokenState(current_token={'***' if self.current_token else None}, "
            f"current_created_at={self.current_created_at}, "
            f"previous_token={'***' if self.previous_token else None}, "
            f"previous_expires_at={self.previous_expires_at})"
        )
