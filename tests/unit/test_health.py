"""Unit tests for health check endpoint."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from loyalty_sync import __version__


@pytest.fixture
def mock_pool():
    """Mock database connection pool."""
    pool = MagicMock()
    conn = AsyncMock()
    conn.fetchval = AsyncMock(return_value=1)
    pool.acquire = MagicMock(
        return_value=AsyncMock(__aenter__=AsyncMock(return_value=conn), __aexit__=AsyncMock())
    )
    return pool


def test_health_check_success(mock_pool):
    """Test health check returns 200 when database is healthy."""
    with patch("loyalty_sync.api.main.get_pool", return_value=mock_pool):
        from loyalty_sync.api.main import app

        client = TestClient(app)
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["service"] == "loyalty-sync"
        assert "environment" in response.json()


def test_health_check_database_failure():
    """Test health check returns 503 when database connection fails."""
    mock_pool_error = MagicMock()
    mock_pool_error.acquire.side_effect = Exception("Database connection failed")

    with patch("loyalty_sync.api.main.get_pool", return_value=mock_pool_error):
        from loyalty_sync.api.main import app

        client = TestClient(app)
        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert "Database connection failed" in response.json()["error"]


def test_root_endpoint():
    """Test root endpoint returns service information."""
    # Import without lifespan to avoid database connection
    from loyalty_sync.api.main import root

    result = asyncio.run(root())

    assert result["service"] == "Loyalty Sync"
    assert result["version"] == __version__
    assert result["status"] == "running"
