"""
Error Handling Tests

Store outages map to a configuration error, other database failures to a
database error; anything else is masked by the catch-all handler.
"""

import pytest
from unittest.mock import AsyncMock
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import InterfaceError, OperationalError

from linkrec_server.main import app
from linkrec_server.api.dependencies import get_engine
from linkrec_server.core.errors import ConfigurationError
from linkrec_server.indexing.engine import TfIdfEngine

PREFIX = "/admin/internal-linking"


@pytest.fixture
def failing_engine():
    mock_engine = AsyncMock(spec=TfIdfEngine)
    app.dependency_overrides[get_engine] = lambda: mock_engine
    yield mock_engine
    app.dependency_overrides = {}


async def _get(path):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path)


async def test_configuration_error(failing_engine):
    failing_engine.get_index_stats.side_effect = ConfigurationError("Unsupported database dialect: mysql")

    resp = await _get(f"{PREFIX}/index")

    assert resp.status_code == 500
    assert resp.json() == {
        "error": "configuration_error",
        "detail": "Unsupported database dialect: mysql",
    }


@pytest.mark.parametrize(
    "error",
    [
        OperationalError(None, None, Exception("connection refused")),
        OperationalError(
            "SELECT 1", {}, Exception("server closed the connection"), connection_invalidated=True
        ),
        InterfaceError("SELECT 1", {}, Exception("connection is closed")),
    ],
)
async def test_database_unreachable(failing_engine, error):
    failing_engine.get_index_progress.side_effect = error

    resp = await _get(f"{PREFIX}/progress")

    assert resp.status_code == 500
    assert resp.json() == {
        "error": "configuration_error",
        "detail": "Database is unreachable",
    }


async def test_deadlock_is_not_reported_as_outage(failing_engine):
    failing_engine.process_batch.side_effect = OperationalError(
        "UPDATE linking_index_state SET corpus_version=...", {}, Exception("deadlock detected")
    )

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post(f"{PREFIX}/process", json={"batchSize": 1})

    assert resp.status_code == 500
    assert resp.json() == {
        "error": "database_error",
        "detail": "Database operation failed",
    }
    assert "deadlock" not in resp.text


async def test_unhandled_error_is_masked(failing_engine):
    failing_engine.clear_index.side_effect = RuntimeError("secret internals")

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.delete(f"{PREFIX}/index")

    assert resp.status_code == 500
    assert resp.json() == {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }
    assert "secret" not in resp.text
