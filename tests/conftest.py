"""
Shared fixtures: a small seeded registry and a client bound to it.
"""
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import DeviceRegistry
from main import create_app
from seed import seed_registry

DEVICE_IDS = ["60-6b-44-84-dc-64", "b4-45-52-a2-f1-3c"]


@pytest.fixture
def registry():
    registry = DeviceRegistry()
    seed_registry(registry, DEVICE_IDS)
    return registry


@pytest.fixture
def client(registry):
    """Test client serving the `registry` fixture, lifespan included."""
    app = create_app(registry=registry, settings=Settings(LOG_LEVEL="DEBUG"))
    with TestClient(app) as test_client:
        yield test_client
