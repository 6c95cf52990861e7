"""
Clipture Backend — HTTP Endpoint Tests
========================================

What:  Tests for every route and the global error envelope.
How:   HTTPX AsyncClient over ASGITransport; the database handle is either
       absent (None) or a mock whose ping is scripted per test.

What we test:
    ✅ /health returns the success envelope with status "healthy"
    ✅ /db-health: disconnected / unhealthy / healthy
    ✅ Welcome pages and placeholder routes
    ✅ Unknown routes, wrong methods, invalid input and crashes map to the envelope
"""

import asyncio
import logging

import pytest

from app import SERVICE_NAME, __version__
from app.exceptions import NotFoundError


def assert_envelope(body: dict, success: bool) -> None:
    assert body["success"] is success
    assert "timestamp" in body
    if success:
        assert "error" not in body
    else:
        assert "data" not in body


class TestHealth:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/health", "/api/v1/health"])
    async def test_health_is_healthy(self, test_client, path):
        response = await test_client.get(path)
        assert response.status_code == 200

        body = response.json()
        assert_envelope(body, success=True)
        assert body["data"]["status"] == "healthy"
        assert body["data"]["service"] == SERVICE_NAME
        assert body["data"]["version"] == __version__

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/db-health", "/api/v1/db-health"])
    async def test_db_health_disconnected_without_handle(self, test_client, path):
        response = await test_client.get(path)
        assert response.status_code == 200

        body = response.json()
        assert_envelope(body, success=True)
        assert body["data"]["status"] == "disconnected"
        assert body["data"]["database"] == "postgresql"

    @pytest.mark.asyncio
    async def test_db_health_disconnected_after_close(self, client_factory, fake_database):
        fake_database.is_connected = False
        async with client_factory(database=fake_database) as client:
            response = await client.get("/db-health")

        assert response.json()["data"]["status"] == "disconnected"
        fake_database.ping.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_db_health_healthy(self, client_factory, fake_database):
        async with client_factory(database=fake_database) as client:
            response = await client.get("/db-health")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "healthy"
        fake_database.ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_db_health_unhealthy_when_ping_fails(self, client_factory, fake_database):
        fake_database.ping.side_effect = OSError("connection refused")
        async with client_factory(database=fake_database) as client:
            response = await client.get("/db-health")

        assert response.status_code == 503
        body = response.json()
        assert_envelope(body, success=False)
        assert body["error"]["code"] == "DB_UNHEALTHY"
        assert body["error"]["message"] == "Database is not healthy"
        assert body["error"]["details"]["status"] == "unhealthy"
        assert body["error"]["details"]["error"] == "connection refused"

    @pytest.mark.asyncio
    async def test_db_health_unhealthy_when_ping_times_out(self, client_factory, fake_database):
        fake_database.ping.side_effect = asyncio.TimeoutError()
        async with client_factory(database=fake_database) as client:
            response = await client.get("/db-health")

        assert response.status_code == 503
        assert response.json()["error"]["details"]["error"] == "TimeoutError"


class TestInfoRoutes:

    @pytest.mark.asyncio
    async def test_root(self, test_client):
        response = await test_client.get("/")
        assert response.status_code == 200

        data = response.json()["data"]
        assert data["name"] == "Clipture API"
        assert data["status"] == "running"
        assert data["endpoints"] == {
            "health": "/health",
            "db_health": "/db-health",
            "api_v1": "/api/v1",
        }
        assert data["repository"].startswith("https://")

    @pytest.mark.asyncio
    async def test_api_v1_root(self, test_client):
        response = await test_client.get("/api/v1/")
        assert response.status_code == 200

        data = response.json()["data"]
        assert data["endpoints"] == {
            "health": "/api/v1/health",
            "db_health": "/api/v1/db-health",
        }
        assert "repository" not in data


class TestPlaceholders:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method, path, message", [
        ("POST", "/api/v1/auth/register", "Registration endpoint - to be implemented"),
        ("POST", "/api/v1/auth/login", "Login endpoint - to be implemented"),
        ("GET", "/api/v1/profile", "Profile endpoint - to be implemented"),
    ])
    async def test_placeholder_messages(self, test_client, method, path, message):
        response = await test_client.request(method, path)
        assert response.status_code == 200

        body = response.json()
        assert_envelope(body, success=True)
        assert body["data"] == {"message": message}


class TestErrorEnvelope:

    @pytest.mark.asyncio
    async def test_unknown_route_is_404_envelope(self, test_client):
        response = await test_client.get("/does-not-exist")
        assert response.status_code == 404

        body = response.json()
        assert_envelope(body, success=False)
        assert body["error"]["code"] == "NOT_FOUND"
        assert body["error"]["message"] == "The requested resource could not be found"
        assert body["error"]["details"] == {"documentation": "/api/docs"}

    @pytest.mark.asyncio
    async def test_wrong_method_is_405_envelope(self, test_client):
        response = await test_client.get("/api/v1/auth/login")
        assert response.status_code == 405
        assert response.json()["error"]["code"] == "METHOD_NOT_ALLOWED"

    @pytest.mark.asyncio
    async def test_application_error_keeps_its_status(self, client_factory, test_settings):
        from app.main import create_app

        app = create_app(test_settings)

        async def missing():
            raise NotFoundError(resource="capture", resource_id="abc")

        app.add_api_route("/missing", missing)
        async with client_factory(app=app) as client:
            response = await client.get("/missing")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["message"] == "capture with ID 'abc' was not found"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic_500(self, client_factory, test_settings, caplog):
        from app.main import create_app

        app = create_app(test_settings)

        async def boom():
            raise RuntimeError("secret internal detail")

        app.add_api_route("/boom", boom)
        with caplog.at_level(logging.ERROR, logger="app.main"):
            async with client_factory(app=app, raise_app_exceptions=False) as client:
                response = await client.get("/boom", headers={"X-Request-ID": "req-500"})

        assert response.status_code == 500
        body = response.json()
        assert_envelope(body, success=False)
        assert body["error"]["code"] == "INTERNAL_SERVER_ERROR"
        assert body["error"]["message"] == "Internal server error"
        assert "secret" not in response.text
        assert response.headers["X-Request-ID"] == "req-500"

        record = next(r for r in caplog.records if r.name == "app.main")
        assert record.request_id == "req-500"
        assert record.path == "/boom"

    @pytest.mark.asyncio
    async def test_invalid_input_is_422_envelope(self, client_factory, test_settings):
        from app.main import create_app

        app = create_app(test_settings)

        async def captures(limit: int):
            return {"limit": limit}

        app.add_api_route("/captures", captures)
        async with client_factory(app=app) as client:
            response = await client.get("/captures", params={"limit": "many"})

        assert response.status_code == 422
        body = response.json()
        assert_envelope(body, success=False)
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["message"] == "Request validation failed"
        errors = body["error"]["details"]["errors"]
        assert errors[0]["loc"] == ["query", "limit"]

    @pytest.mark.asyncio
    async def test_missing_input_is_422_envelope(self, client_factory, test_settings):
        from app.main import create_app

        app = create_app(test_settings)

        async def captures(limit: int):
            return {"limit": limit}

        app.add_api_route("/captures", captures)
        async with client_factory(app=app) as client:
            response = await client.get("/captures")

        assert response.status_code == 422
        errors = response.json()["error"]["details"]["errors"]
        assert errors[0]["type"] == "missing"
