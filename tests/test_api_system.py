"""
Tests for the system endpoints and app-level error handling.
"""

from unittest.mock import patch

from config import settings
from exceptions import OrderNotFoundError


def test_health_reports_memory_backend(test_client):
    with patch.object(settings, "data_backend", "memory"):
        response = test_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["storage"]["backend"] == "memory"
    assert "configured" in body["channel"]


def test_root_lists_routers(test_client):
    body = test_client.get("/").json()

    assert body["endpoints"]["orders"] == "/api/orders"


def test_request_id_echoed(test_client):
    response = test_client.get("/", headers={"X-Request-Id": "abc123"})

    assert response.headers["X-Request-Id"] == "abc123"


def test_request_id_generated(test_client):
    response = test_client.get("/")

    assert len(response.headers["X-Request-Id"]) == 16


def test_app_error_handler_formats_error(test_client):
    from main import app

    @app.get("/_raise_not_found")
    async def _raise():
        raise OrderNotFoundError("order-x")

    response = test_client.get("/_raise_not_found")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ORDER_NOT_FOUND"
