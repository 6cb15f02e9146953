"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

import ticketry.dashboard as dash_module
from ticketry.dashboard import create_app
from tests.conftest import PopulatedDB


@pytest.fixture
def dashboard_db(populated_db: PopulatedDB) -> PopulatedDB:
    """Use the populated_db fixture for API tests.

    Reconnects the underlying DB with check_same_thread=False so the app
    can use it from the test client's event loop.
    """
    populated_db.db.reconnect(check_same_thread=False)
    return populated_db


@pytest.fixture
async def client(dashboard_db: PopulatedDB) -> AsyncIterator[AsyncClient]:
    """Test client serving project "test" of the populated DB."""
    dash_module._db = dashboard_db.db
    dash_module._project = dashboard_db.project
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    dash_module._db = None
    dash_module._project = "default"
