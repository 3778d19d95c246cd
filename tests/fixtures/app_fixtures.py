"""
Flask application fixtures for integration tests.

The app is built over the same in-memory store and frozen clock the service
fixtures use, so tests can seed documents directly and then drive the API.
"""

import pytest

from agenda.main import create_app

DEFAULT_PASSWORD = "secret123"


@pytest.fixture
def app(store, clock, agenda_config):
    """Create a Flask application for testing with proper configuration."""
    app = create_app(
        config=agenda_config,
        store=store,
        clock=clock,
        config_overrides={
            "TESTING": True,
            "SECRET_KEY": "test-secret-key",
            "PROPAGATE_EXCEPTIONS": True,
        },
    )
    yield app

    services = app.extensions["agenda"]
    if services.scheduler is not None:
        services.scheduler.stop()
    services.sessions.clear()
    services.license_monitor.cleanup()


@pytest.fixture
def services(app):
    return app.extensions["agenda"]


@pytest.fixture
def client_factory(app):
    """Each call returns a test client with its own cookie jar (one per user)."""

    def _make():
        return app.test_client()

    return _make


def register_user(client, email, role="owner", display_name=None, business_key=None):
    payload = {
        "email": email,
        "password": DEFAULT_PASSWORD,
        "displayName": display_name or email.split("@")[0].title(),
        "role": role,
    }
    if business_key:
        payload["businessKey"] = business_key
    return client.post("/api/auth/register", json=payload)


def login_user(client, email, password=DEFAULT_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})
