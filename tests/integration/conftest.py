"""Fixtures for HTTP-level tests."""

import pytest
from fastapi.testclient import TestClient

from gateway.app.container import ServiceContainer
from gateway.app.main import create_app


@pytest.fixture
def client(container: ServiceContainer) -> TestClient:
    """Test client over an app wired to in-memory fakes."""
    return TestClient(create_app(container))
