"""API fixtures: real JWT auth, mocked settlement services."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from arena_admin.api.deps import (
    get_fund_adjustment,
    get_ledger,
    get_lottery_settlement,
    get_match_cancellation,
    get_payment_settlement,
    get_tournament_settlement,
)
from arena_admin.main import app
from arena_admin.utils.jwt import create_access_token


def _provide(mock):
    def override():
        return mock

    return override


@pytest.fixture
def services():
    """One AsyncMock per settlement service dependency."""
    mocks = {
        get_payment_settlement: AsyncMock(),
        get_lottery_settlement: AsyncMock(),
        get_tournament_settlement: AsyncMock(),
        get_match_cancellation: AsyncMock(),
        get_fund_adjustment: AsyncMock(),
        get_ledger: AsyncMock(),
    }
    for dependency, mock in mocks.items():
        app.dependency_overrides[dependency] = _provide(mock)
    yield mocks
    app.dependency_overrides.clear()


@pytest.fixture
def client(services):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Build a bearer header for an admin or sub-admin token."""

    def build(role="admin", permissions=None):
        token = create_access_token("admin-123", role, permissions)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
def admin_headers(auth_headers):
    return auth_headers()
