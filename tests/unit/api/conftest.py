"""Fixtures for API unit tests: app wired to an in-memory runtime, AsyncClient, identity headers."""

import pytest
from httpx import ASGITransport, AsyncClient

from carshare_activity.main import app


@pytest.fixture
def app_with_runtime(runtime):
    """App with the test runtime attached; ASGITransport does not run the lifespan."""
    app.state.runtime = runtime
    yield app
    del app.state.runtime


@pytest.fixture
async def async_client(app_with_runtime):
    """Async HTTP client for testing; uses the wired app."""
    transport = ASGITransport(app=app_with_runtime)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def user_headers():
    return {"X-User-ID": "u1", "X-User-Roles": "USER"}


@pytest.fixture
def manager_headers():
    return {"X-User-ID": "manager-1", "X-User-Roles": "MANAGER"}


@pytest.fixture
def admin_headers():
    return {"X-User-ID": "admin-1", "X-User-Roles": "ADMIN"}


@pytest.fixture
def super_admin_headers():
    return {"X-User-ID": "root-1", "X-User-Roles": "SUPER_ADMIN"}
