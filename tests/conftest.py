# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# Shared fixtures for all tests. Everything runs against the
# in-process MemoryDriver; no MongoDB server is needed.
#
# FIXTURES:
# ---------
# - config        → AppConfig with the memory backend
# - driver        → fresh MemoryDriver (connected by the gateway)
# - gateway       → connected Gateway over `driver`
# - shop          → DatabaseHandle for an allocated "shop" database
# - api           → fastapi TestClient over create_app(gateway)
# - sample_orders → a few order documents with an optional field
#
# ==============================================

import pytest
from fastapi.testclient import TestClient

from schemagate.api import create_app
from schemagate.config import AppConfig, StorageConfig, reset_config
from schemagate.gateway import Gateway
from schemagate.storage import MemoryDriver


@pytest.fixture(autouse=True)
def _fresh_config():
    """Never let a cached get_config() leak between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config():
    return AppConfig(storage=StorageConfig(backend="memory"))


@pytest.fixture
def driver():
    return MemoryDriver()


@pytest.fixture
def gateway(config, driver):
    gw = Gateway(config, driver=driver)
    gw.connect()
    yield gw
    gw.close()


@pytest.fixture
def shop(gateway):
    return gateway.allocate("shop")


@pytest.fixture
def api(gateway):
    return TestClient(create_app(gateway=gateway))


@pytest.fixture
def sample_orders():
    return [
        {"item": "pen", "qty": 3, "price": 1.5, "meta": {"source": "web"}},
        {"item": "ink", "qty": 1, "price": 4, "meta": {"source": "app"}},
        {"item": "pad", "qty": 10, "price": 2.25, "note": None, "meta": {"source": "web"}},
    ]
