"""Unit tests for the service info, /status and /health/services endpoints."""

import os
from unittest.mock import patch

from fastapi.testclient import TestClient

from taskmarket.main import app, create_app
from taskmarket.services.registry import ServiceContext

client = TestClient(app)


class UnhealthyService:
    async def health_check(self):
        return False


class TestStatusEndpoint:
    """Test cases for the /status endpoint."""

    def test_status_endpoint_basic(self):
        response = client.get("/status")

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"status", "build", "sha", "env"}
        assert data["status"] == "ok"

    def test_status_endpoint_with_environment_variables(self):
        test_env_vars = {
            "BUILD_NUMBER": "123",
            "GIT_SHA": "abc123def456",
            "ENVIRONMENT": "production"
        }

        with patch.dict(os.environ, test_env_vars):
            data = client.get("/status").json()

        assert data == {"status": "ok", "build": "123", "sha": "abc123def456", "env": "production"}

    def test_status_endpoint_with_github_sha(self):
        test_env_vars = {
            "BUILD_NUMBER": "456",
            "GITHUB_SHA": "github123sha456",
            "ENV": "staging"
        }

        with patch.dict(os.environ, test_env_vars):
            os.environ.pop("GIT_SHA", None)
            os.environ.pop("ENVIRONMENT", None)
            data = client.get("/status").json()

        assert data["sha"] == "github123sha456"
        assert data["env"] == "staging"

    def test_status_endpoint_local_development(self):
        with patch.dict(os.environ, {}, clear=True):
            data = client.get("/status").json()

        assert data["build"] == "local-dev"
        assert data["env"] == "development"
        # SHA should be either a git hash or "local-dev"
        assert data["sha"] == "local-dev" or len(data["sha"]) >= 8

    def test_status_endpoint_priority_order(self):
        """GIT_SHA takes priority over GITHUB_SHA, ENVIRONMENT over ENV."""
        test_env_vars = {
            "GIT_SHA": "priority_sha",
            "GITHUB_SHA": "fallback_sha",
            "ENVIRONMENT": "priority_env",
            "ENV": "fallback_env"
        }

        with patch.dict(os.environ, test_env_vars):
            data = client.get("/status").json()

        assert data["sha"] == "priority_sha"
        assert data["env"] == "priority_env"


def test_root_describes_the_service():
    data = client.get("/").json()

    assert data["status"] == "operational"
    assert data["docs"] == "/docs"


def test_every_response_carries_a_request_id():
    response = client.get("/status", headers={"X-Request-ID": "status-check-1"})

    assert response.headers["x-request-id"] == "status-check-1"


def test_health_services_ok(services):
    with TestClient(create_app(services=services)) as test_client:
        response = test_client.get("/health/services")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "services": {"audit": True, "admin": True}}


def test_health_services_degraded():
    services = ServiceContext()
    services.register("admin", UnhealthyService())

    response = TestClient(create_app(services=services)).get("/health/services")

    assert response.status_code == 503
    assert response.json() == {"status": "degraded", "services": {"admin": False}}
