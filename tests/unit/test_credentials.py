"""Unit tests for credential primitives."""

from dashboard_guard.core.credentials import (
    TokenState,
    generate_token,
    tokens_match,
)


class TestGenerateToken:
    """Tests for token generation."""

    def test_token_has_256_bits(self) -> None:
        """Tokens are 32 random bytes, hex encoded."""
        token = generate_token()

        assert len(token) == 64
        int(token, 16)

    def test_tokens_are_unique(self) -> None:
        """Consecutive tokens differ."""
        tokens = {generate_token() for _ in range(100)}
        assert len(tokens) == 100


class TestTokensMatch:
    """Tests for constant-time comparison."""

    def test_match(self) -> None:
        assert tokens_match("abc123", "abc123") is True

    def test_mismatch(self) -> None:
        assert tokens_match("abc123", "abc124") is False
        assert tokens_match("abc123", "abc") is False

    def test_missing_values_never_match(self) -> None:
        assert tokens_match(None, "abc") is False
        assert tokens_match("", "") is False
        assert tokens_match("abc", None) is False


class TestTokenState:
    """Tests for the persisted token record."""

    def test_empty_state_is_not_configured(self) -> None:
        assert TokenState().is_configured is False

    def test_first_rotation_has_no_previous(self) -> None:
        """Rotating from nothing creates only a current token."""
        state = TokenState().rotated("new", now_ms=1000, grace_ms=500)

        assert state.current_token == "new"
        assert state.current_created_at == 1000
        assert state.previous_token is None
        assert state.previous_expires_at is None

    def test_rotation_demotes_current(self) -> None:
        """Current token becomes previous with a grace expiry."""
        state = TokenState(current_token="t1", current_created_at=0)
        rotated = state.rotated("t2", now_ms=1000, grace_ms=500)

        assert rotated.current_token == "t2"
        assert rotated.previous_token == "t1"
        assert rotated.previous_expires_at == 1500

    def test_rotation_discards_older_previous(self) -> None:
        """Previous tokens are never chained."""
        state = TokenState(
            current_token="t2",
            current_created_at=0,
            previous_token="t1",
            previous_expires_at=10,
        )
        rotated = state.rotated("t3", now_ms=1000, grace_ms=500)

        assert rotated.previous_token == "t2"
        assert "t1" not in (rotated.current_token, rotated.previous_token)

    def test_repr_hides_secrets(self) -> None:
        state = TokenState(current_token="supersecret", previous_token="oldsecret")

        assert "supersecret" not in repr(state)
        assert "oldsecret" not in repr(state)
