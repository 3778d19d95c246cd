"""
Tests for application wiring: blueprints, muted background sweep and optional
error tracking.
"""

from unittest.mock import patch

from agenda.core.limiter_config import rate_limit_key
from agenda.main import init_sentry
from fixtures.app_fixtures import register_user


class TestCreateApp:
    def test_blueprints_registered(self, app):
        assert {"auth", "licenses", "businesses", "appointments", "records", "notifications", "health"} <= set(
            app.blueprints
        )

    def test_sweep_is_muted_in_tests(self, services):
        assert services.scheduler is not None
        assert services.scheduler.running is False


class TestSentry:
    def test_skipped_without_dsn(self, monkeypatch):
        monkeypatch.delenv("SENTRY_DSN", raising=False)
        assert init_sentry("development", "memory") is False

    def test_initialised_with_dsn(self, monkeypatch):
        monkeypatch.setenv("SENTRY_DSN", "https://public@sentry.example/1")
        with patch("sentry_sdk.init") as sentry_init:
            assert init_sentry("production", "sql") is True

        kwargs = sentry_init.call_args.kwargs
        assert kwargs["environment"] == "production"
        assert kwargs["send_default_pii"] is False
        assert len(kwargs["integrations"]) == 2


class TestRequestLogging:
    def test_request_id_is_echoed(self, client_factory):
        response = client_factory().get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    def test_request_id_is_generated(self, client_factory):
        response = client_factory().get("/health")
        assert len(response.headers["X-Request-ID"]) == 32


class TestRateLimitKey:
    def test_anonymous_caller_is_keyed_by_address(self, app):
        with app.test_request_context("/api/auth/login", environ_base={"REMOTE_ADDR": "10.0.0.7"}):
            assert rate_limit_key() == "addr:10.0.0.7"

    def test_bearer_caller_has_its_own_bucket(self, app):
        with app.test_request_context(
            "/api/licenses/sweep",
            headers={"Authorization": "Bearer token"},
            environ_base={"REMOTE_ADDR": "10.0.0.8"},
        ):
            assert rate_limit_key() == "service:10.0.0.8"

    def test_signed_in_caller_is_keyed_by_uid(self, app, client_factory):
        client = client_factory()
        register_user(client, "duena@agenda.test")
        uid = client.get("/api/auth/me").get_json()["data"]["user"]["uid"]

        with client:
            client.get("/api/auth/me")
            assert rate_limit_key() == f"user:{uid}"
