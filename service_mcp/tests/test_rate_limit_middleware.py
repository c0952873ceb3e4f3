"""
Unit tests for the admission middleware in the request pipeline.
"""

import pytest
from fastapi.testclient import TestClient

from service_mcp.app.main import create_app
from service_mcp.app.ratelimit import (
    AdmissionPolicy,
    AdmissionRegistry,
    DEFAULT_TENANT,
    TenantAdmissionController,
)
from shared.test_helpers import TestDataFactory, TestUser, create_test_config


class FrozenClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(500.0)


@pytest.fixture
def controller(clock):
    """Controller allowing a burst of two requests per tenant."""
    policy = AdmissionPolicy(enabled=True, requests_per_second=1, burst=2)
    return TenantAdmissionController(
        policy, AdmissionRegistry(), clock=clock, wall_clock=FrozenClock(1_700_000_000.0)
    )


@pytest.fixture
def client(controller):
    app = create_app(config=create_test_config(rps=1, burst=2), admission=controller)
    return TestClient(app)


class TestAdmissionMiddleware:
    """Test cases for AdmissionMiddleware."""

    def test_admitted_responses_carry_headers(self, client):
        first = client.get("/", headers={"X-Tenant-ID": "acme"})
        second = client.get("/", headers={"X-Tenant-ID": "acme"})

        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "1"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert first.headers["X-RateLimit-Reset"] == "1700000001"
        assert second.headers["X-RateLimit-Remaining"] == "0"

    def test_exhausted_tenant_gets_429(self, client):
        for _ in range(2):
            client.get("/", headers={"X-Tenant-ID": "acme"})

        response = client.get("/", headers={"X-Tenant-ID": "acme"})

        assert response.status_code == 429
        assert response.headers["X-RateLimit-Limit"] == "1"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == "1700000001"
        data = response.json()
        assert data["code"] == "RATE_LIMIT_EXCEEDED"
        assert data["message"] == "Rate limit exceeded"
        assert data["details"] == {"tenant_id": "acme", "limit": 1}

    def test_rejected_response_keeps_security_headers(self, client):
        for _ in range(3):
            response = client.get("/", headers={"X-Tenant-ID": "acme"})

        assert response.status_code == 429
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_other_tenants_unaffected(self, client):
        for _ in range(3):
            client.get("/", headers={"X-Tenant-ID": "acme"})

        response = client.get("/", headers={"X-Tenant-ID": "globex"})
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Remaining"] == "1"

    def test_requests_without_tenant_share_default_budget(self, client, controller):
        client.get("/")
        client.get("/")

        assert DEFAULT_TENANT in controller.registry
        assert client.get("/").status_code == 429

    def test_tenant_claim_used_for_budget(self, client, controller):
        token = TestDataFactory.create_token(TestUser("user1", "tenant-1", "user"))
        response = client.get("/api/v1/ping", headers=TestDataFactory.auth_headers(token))

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Remaining"] == "1"
        assert "tenant-1" in controller.registry

    def test_refill_readmits_tenant(self, client, clock):
        for _ in range(3):
            client.get("/", headers={"X-Tenant-ID": "acme"})

        clock.now += 1
        response = client.get("/", headers={"X-Tenant-ID": "acme"})
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_operational_endpoints_are_exempt(self, client, controller):
        for _ in range(5):
            assert client.get("/healthz").status_code == 200
            assert client.get("/metrics").status_code == 200

        assert len(controller.registry) == 0

    def test_decisions_exported_as_metrics(self, client):
        for _ in range(3):
            client.get("/", headers={"X-Tenant-ID": "acme"})

        text = client.get("/metrics").text
        assert 'rate_limit_decisions_total{decision="admitted"} 2.0' in text
        assert 'rate_limit_decisions_total{decision="rejected"} 1.0' in text
        assert "rate_limit_tracked_tenants 1.0" in text


class TestDisabledAdmission:
    """Test cases for the disabled pass-through."""

    @pytest.fixture
    def client(self):
        app = create_app(config=create_test_config(enabled=False, rps=1, burst=1))
        return TestClient(app)

    def test_no_limit_and_no_headers(self, client):
        for _ in range(20):
            response = client.get("/", headers={"X-Tenant-ID": "acme"})
            assert response.status_code == 200
            assert "X-RateLimit-Limit" not in response.headers

        service = client.app.state.mcp_service
        assert len(service.admission.registry) == 0
