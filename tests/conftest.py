# tests/conftest.py
import os

import pytest
from fastapi.testclient import TestClient

# Settings are cached on first use, so the environment must be prepared
# before the application module is imported.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("POLLING_ENABLED", "false")

from app.main import create_app  # noqa: E402


@pytest.fixture(scope="session")
def client() -> TestClient:
    """
    Shared TestClient fixture for all API tests.

    Uses the application factory; background polling is disabled so no
    request ever leaves the test process.
    """
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
