"""Unit tests for the FastAPI integration."""

import json
from pathlib import Path

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from dashboard_guard.app import create_app
from dashboard_guard.core.config import GuardSettings
from dashboard_guard.core.credentials import TokenState
from dashboard_guard.engines.authentication import INVALID_TOKEN_HINT, MISSING_HEADER_HINT
from dashboard_guard.engines.rate_limiter import InMemoryRateLimiter, NullRateLimiter
from dashboard_guard.engines.token_store import TokenStatus, TokenStore
from dashboard_guard.middleware.fastapi import GuardComponents, is_exempt


@pytest.fixture
def settings(tmp_path: Path) -> GuardSettings:
    return GuardSettings(
        secrets_dir=tmp_path / "secrets",
        audit_log_path=tmp_path / "audit.log",
        token_cache_ttl_seconds=0,
    )


@pytest.fixture
def existing_token(settings: GuardSettings) -> str:
    return TokenStore(settings.token_file).rotate()


def build_app(settings: GuardSettings) -> FastAPI:
    app = create_app(settings)

    @app.get("/api/status")
    async def status_route(request: Request) -> dict:
        return {"token_status": request.state.guard_decision.token_status.value}

    return app


@pytest.fixture
def client(settings: GuardSettings):
    with TestClient(build_app(settings)) as test_client:
        yield test_client


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestExemptPaths:
    """Tests for exempt path matching."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/health", True),
            ("/health/", True),
            ("/health/live", True),
            ("/healthz", False),
            ("/api/health", False),
        ],
    )
    def test_segment_matching(self, path: str, expected: bool) -> None:
        assert is_exempt(path, ["/health"]) is expected


class TestOpenMode:
    """No token configured."""

    def test_requests_pass(self, client: TestClient) -> None:
        response = client.get("/api/status")

        assert response.status_code == 200
        assert response.json() == {"token_status": "no_token_configured"}

    def test_token_info_unconfigured(self, client: TestClient) -> None:
        assert client.get("/api/token-info").json() == {"configured": False}

    def test_rotation_refused(self, client: TestClient) -> None:
        """The first token must be created locally."""
        response = client.post("/api/rotate")

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "rotation_requires_token"


class TestProtected:
    """Token configured."""

    def test_valid_token(self, existing_token: str, client: TestClient) -> None:
        response = client.get("/api/status", headers=auth(existing_token))

        assert response.status_code == 200
        assert response.json() == {"token_status": "valid"}

    def test_missing_header(self, existing_token: str, client: TestClient) -> None:
        response = client.get("/api/status")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json() == {
            "error": "authentication_required",
            "hint": MISSING_HEADER_HINT,
        }

    def test_wrong_token(
        self, existing_token: str, client: TestClient, settings: GuardSettings
    ) -> None:
        response = client.get("/api/status", headers=auth("wrong"))

        assert response.status_code == 403
        assert response.json() == {"error": "invalid_token", "hint": INVALID_TOKEN_HINT}

        entries = [json.loads(line) for line in settings.audit_log_path.read_text().splitlines()]
        assert entries[-1]["action"] == "auth_failed"
        assert entries[-1]["ip"] == "testclient"
        assert entries[-1]["endpoint"] == "/api/status"

    def test_expired_token(self, settings: GuardSettings) -> None:
        token = "a" * 64
        TokenStore(settings.token_file).save(
            TokenState(current_token=token, current_created_at=0)
        )

        with TestClient(build_app(settings)) as client:
            response = client.get("/api/status", headers=auth(token))

        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "token_expired"
        assert f"--secrets-dir {settings.secrets_dir}" in body["hint"]

    def test_health_exempt(self, existing_token: str, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_preflight_bypasses_gate(self, existing_token: str, client: TestClient) -> None:
        assert client.options("/api/status").status_code == 405

    def test_blocked_after_failures(self, existing_token: str, client: TestClient) -> None:
        for _ in range(5):
            assert client.get("/api/status", headers=auth("wrong")).status_code == 403

        response = client.get("/api/status", headers=auth(existing_token))

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "300"
        assert response.json() == {"error": "too_many_failures", "retryAfterSeconds": 300}

    def test_rate_limit_exceeded(self, existing_token: str, client: TestClient) -> None:
        for _ in range(30):
            client.get("/api/status", headers=auth(existing_token))

        response = client.get("/api/status", headers=auth(existing_token))

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert response.json()["error"] == "rate_limit_exceeded"


class TestAdminRoutes:
    """Rotation and token info over HTTP."""

    def test_rotate(self, existing_token: str, client: TestClient, settings: GuardSettings) -> None:
        response = client.post("/api/rotate", headers=auth(existing_token))

        assert response.status_code == 200
        body = response.json()
        assert body["graceSeconds"] == 3600
        assert body["token"] != existing_token
        assert len(body["token"]) == 64

        new = client.get("/api/status", headers=auth(body["token"]))
        old = client.get("/api/status", headers=auth(existing_token))
        assert new.json() == {"token_status": "valid"}
        assert old.json() == {"token_status": "valid_grace"}

        entries = [json.loads(line) for line in settings.audit_log_path.read_text().splitlines()]
        rotated = [e for e in entries if e["action"] == "token_rotated"]
        assert rotated[-1]["ip"] == "testclient"
        assert rotated[-1]["endpoint"] == "/api/rotate"

    def test_rotate_without_header_stopped_by_gate(
        self, existing_token: str, client: TestClient
    ) -> None:
        """The middleware rejects before the route runs."""
        response = client.post("/api/rotate")

        assert response.status_code == 401
        assert response.json()["error"] == "authentication_required"

    def test_token_info(self, existing_token: str, client: TestClient) -> None:
        response = client.get("/api/token-info", headers=auth(existing_token))

        assert response.json() == {
            "configured": True,
            "age_hours": 0,
            "remaining_hours": 168,
            "expired": False,
            "max_age_days": 7.0,
        }


class TestGuardComponents:
    """Tests for component wiring."""

    def test_from_settings(self, settings: GuardSettings) -> None:
        components = GuardComponents.from_settings(settings)

        assert isinstance(components.rate_limiter, InMemoryRateLimiter)
        assert components.token_store.token_file == settings.token_file
        assert components.audit_logger.log_path == settings.audit_log_path
        assert components.gate.token_store is components.token_store

    def test_rate_limiting_disabled(self, tmp_path: Path) -> None:
        settings = GuardSettings(secrets_dir=tmp_path, rate_limiting_enabled=False)

        components = GuardComponents.from_settings(settings)

        assert isinstance(components.rate_limiter, NullRateLimiter)

    def test_decision_exposed_to_routes(self, existing_token: str, client: TestClient) -> None:
        response = client.get("/api/status", headers=auth(existing_token))

        assert TokenStatus(response.json()["token_status"]) == TokenStatus.VALID
