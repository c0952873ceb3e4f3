"""
Unit tests for the MCP service HTTP surface.
"""

import pytest
from fastapi.testclient import TestClient

from service_mcp.app.main import MCPService, create_app
from shared.test_helpers import TestDataFactory, TestUser, create_test_config


@pytest.fixture
def app():
    """Create FastAPI app instance."""
    return create_app(config=create_test_config(api_key="service-key-789"))


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def user_token():
    return TestDataFactory.create_token(TestUser("user1", "tenant-1", "user"))


@pytest.fixture
def admin_token():
    return TestDataFactory.create_token(TestUser("user2", "tenant-2", "admin"))


class TestServiceEndpoints:
    """Test cases for the operational endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "modelo-mcp"
        assert data["version"] == "1.0.0"

    def test_liveness_and_readiness(self, client):
        assert client.get("/healthz").text == "ok"
        assert client.get("/readyz").text == "ready"

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "modelo-mcp"
        assert data["status"] == "ok"
        assert data["dependencies"] == {}

    def test_info_endpoint(self, client):
        data = client.get("/info").json()
        assert data == {
            "service": "modelo-mcp",
            "version": "1.0.0",
            "commit": "unknown",
            "buildTime": "unknown",
        }

    def test_metrics_endpoint(self, client):
        client.get("/")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "http_requests_total" in response.text
        assert "rate_limit_decisions_total" in response.text
        assert 'service="modelo-mcp"' in response.text

    def test_security_headers(self, client):
        response = client.get("/")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "max-age=31536000" in response.headers["Strict-Transport-Security"]

    def test_cors_preflight_allows_tenant_header(self, client):
        response = client.options(
            "/api/v1/ping",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
                "Access-Control-Request-Headers": "X-Tenant-ID",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"

    def test_service_instance_exposed_on_app_state(self, app):
        assert isinstance(app.state.mcp_service, MCPService)


class TestAuthenticatedRoutes:
    """Test cases for authentication and tenant resolution."""

    def test_ping_requires_authorization(self, client):
        response = client.get("/api/v1/ping")
        assert response.status_code == 401
        data = response.json()
        assert data["code"] == "AUTHENTICATION_ERROR"
        assert data["message"] == "Authorization header required"

    def test_ping_requires_bearer_scheme(self, client):
        response = client.get("/api/v1/ping", headers={"Authorization": "Basic abc"})
        assert response.status_code == 401
        assert response.json()["message"] == "Bearer token required"

    def test_ping_rejects_invalid_token(self, client):
        response = client.get("/api/v1/ping", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"

    def test_ping_rejects_token_signed_with_other_secret(self, client):
        token = TestDataFactory.create_token(TestUser("user1", "tenant-1", "user"), secret="other")
        response = client.get("/api/v1/ping", headers=TestDataFactory.auth_headers(token))
        assert response.status_code == 401

    def test_ping_rejects_expired_token(self, client):
        token = TestDataFactory.create_token(TestUser("user1", "tenant-1", "user"), expires_in=-60)
        response = client.get("/api/v1/ping", headers=TestDataFactory.auth_headers(token))
        assert response.status_code == 401

    def test_ping_uses_tenant_claim(self, client, user_token):
        response = client.get("/api/v1/ping", headers=TestDataFactory.auth_headers(user_token))
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "pong"
        assert data["tenant"] == "tenant-1"
        assert data["user"] == "user1"

    def test_tenant_header_overrides_claim(self, client, user_token):
        headers = TestDataFactory.auth_headers(user_token, tenant_id="tenant-9")
        response = client.get("/api/v1/ping", headers=headers)
        assert response.status_code == 200
        assert response.json()["tenant"] == "tenant-9"

    def test_ping_without_tenant_is_rejected(self, client):
        token = TestDataFactory.create_token(TestUser("orphan", None, "user"))
        response = client.get("/api/v1/ping", headers=TestDataFactory.auth_headers(token))
        assert response.status_code == 400
        assert response.json()["code"] == "TENANT_REQUIRED"

    def test_api_key_authentication(self, client):
        response = client.get(
            "/api/v1/ping",
            headers={"X-API-Key": "service-key-789", "X-Tenant-ID": "tenant-3"},
        )
        assert response.status_code == 200
        assert response.json()["user"] == "api-key"

    def test_invalid_api_key(self, client):
        response = client.get(
            "/api/v1/ping",
            headers={"X-API-Key": "wrong-key", "X-Tenant-ID": "tenant-3"},
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid API key"


class TestAdminRoutes:
    """Test cases for admin-only rate limit introspection."""

    def test_admin_route_forbidden_for_user(self, client, user_token):
        response = client.get("/api/v1/admin/rate-limit", headers=TestDataFactory.auth_headers(user_token))
        assert response.status_code == 403
        assert response.json()["message"] == "Admin access required"

    def test_admin_route_forbidden_without_role(self, client):
        token = TestDataFactory.create_token(TestUser("user1", "tenant-1", "user"), role=None)
        response = client.get("/api/v1/admin/rate-limit", headers=TestDataFactory.auth_headers(token))
        assert response.status_code == 403
        assert response.json()["message"] == "Role not found"

    def test_rate_limit_status(self, client, admin_token):
        response = client.get("/api/v1/admin/rate-limit", headers=TestDataFactory.auth_headers(admin_token))
        assert response.status_code == 200
        data = response.json()
        assert data["enabled"] is True
        assert data["requests_per_second"] == 100
        assert data["burst"] == 200
        assert data["tracked_tenants"] == 1

    def test_super_admin_allowed(self, client):
        token = TestDataFactory.create_token(TestUser("root", "tenant-1", "super_admin"))
        response = client.get("/api/v1/admin/rate-limit", headers=TestDataFactory.auth_headers(token))
        assert response.status_code == 200

    def test_tenant_budget_inspection(self, client, admin_token):
        headers = TestDataFactory.auth_headers(admin_token)
        client.get("/", headers={"X-Tenant-ID": "acme"})

        response = client.get("/api/v1/admin/rate-limit/acme", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert data["tenant_id"] == "acme"
        assert data["capacity"] == 200
        assert data["available_tokens"] <= 200

    def test_unknown_tenant_budget(self, client, admin_token):
        response = client.get("/api/v1/admin/rate-limit/ghost", headers=TestDataFactory.auth_headers(admin_token))
        assert response.status_code == 404
        assert response.json()["code"] == "TENANT_NOT_TRACKED"
