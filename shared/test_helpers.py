"""
Test helper functions and factory methods for modelo-mcp services.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from jose import jwt

from shared.config import JWTSettings, RateLimitSettings, SecuritySettings, ServiceConfig

TEST_JWT_SECRET = "test-secret"


@dataclass
class TestUser:
    """Test user data."""
    user_id: str
    tenant_id: Optional[str]
    role: str

    __test__ = False


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def create_token(user: TestUser, secret: str = TEST_JWT_SECRET, expires_in: int = 3600,
                     **extra_claims: Any) -> str:
        """Sign an HS256 token carrying the user's claims."""
        now = int(time.time())
        claims: Dict[str, Any] = {
            "sub": user.user_id,
            "user_id": user.user_id,
            "role": user.role,
            "iat": now,
            "exp": now + expires_in,
        }
        if user.tenant_id:
            claims["tenant_id"] = user.tenant_id
        claims.update(extra_claims)
        return jwt.encode(claims, secret, algorithm="HS256")

    @staticmethod
    def auth_headers(token: str, tenant_id: Optional[str] = None) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {token}"}
        if tenant_id:
            headers["X-Tenant-ID"] = tenant_id
        return headers


def create_test_config(rps: float = 100, burst: int = 200, enabled: bool = True,
                       max_tenants: int = 0, api_key: Optional[str] = None) -> ServiceConfig:
    """Service configuration isolated from the message bus and tracing."""
    return ServiceConfig(
        service_name="modelo-mcp",
        port=8080,
        env="test",
        rate_limit=RateLimitSettings(enabled=enabled, rps=rps, burst=burst, max_tenants=max_tenants),
        jwt=JWTSettings(secret=TEST_JWT_SECRET),
        security=SecuritySettings(allowed_origins=["http://localhost:3000"], api_key=api_key),
    )
