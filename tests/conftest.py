"""
Central pytest configuration for the agenda tests.

This file provides common fixtures, test markers, and setup
for both unit and integration tests.
"""

import os
import sys
from pathlib import Path

import pytest

# Add the project root and the tests directory to sys.path for imports to work
tests_root = Path(__file__).parent
project_root = tests_root.parent

sys.path.insert(0, str(tests_root))
sys.path.insert(0, str(project_root))

# Test environment (set early so import-time config getters see it)
os.environ["TESTING"] = "true"
os.environ["DISABLE_LICENSE_SWEEP"] = "1"  # No background sweep job in tests
os.environ["RATE_LIMIT_ENABLED"] = "0"  # Disable rate limiting in tests
os.environ["STORE_BACKEND"] = "memory"
os.environ["ADMIN_EMAIL"] = "admin@agenda.test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ.pop("SENTRY_DSN", None)

from fixtures.domain_fixtures import *  # noqa: E402,F401,F403
from fixtures.app_fixtures import *  # noqa: E402,F401,F403


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "services: mark test as service layer test")
    config.addinivalue_line("markers", "license: mark test as license-related")
    config.addinivalue_line("markers", "appointment: mark test as appointment-related")
    config.addinivalue_line("markers", "session: mark test as session-related")
    config.addinivalue_line("markers", "controllers: mark test as controller-related")
    config.addinivalue_line("markers", "repositories: mark test as repository test")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file location."""
    for item in items:
        path = str(item.fspath)
        if "unit" in path:
            item.add_marker(pytest.mark.unit)
        if "integration" in path:
            item.add_marker(pytest.mark.integration)
        if "license" in path or "license" in item.name:
            item.add_marker(pytest.mark.license)
        if "appointment" in path:
            item.add_marker(pytest.mark.appointment)
        if "session" in path:
            item.add_marker(pytest.mark.session)
