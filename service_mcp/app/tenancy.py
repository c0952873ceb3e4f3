"""
Tenant resolution for inbound requests.
"""

from typing import Optional

from fastapi import Request

from shared.errors import TenantRequiredError
from shared.logging import set_user_context

TENANT_HEADER = "X-Tenant-ID"


def resolve_tenant_id(request: Request) -> Optional[str]:
    """Resolve the tenant with header override, then the authenticated claim."""
    header_tenant = request.headers.get(TENANT_HEADER)
    if isinstance(header_tenant, str) and header_tenant.strip():
        return header_tenant.strip()

    claim_tenant = getattr(request.state, "claims_tenant_id", None)
    if isinstance(claim_tenant, str) and claim_tenant:
        return claim_tenant

    return None


class TenantMiddleware:
    """Stores the resolved tenant on ``request.state.tenant_id``."""

    async def dispatch(self, request: Request, call_next):
        tenant_id = resolve_tenant_id(request)
        request.state.tenant_id = tenant_id
        if tenant_id:
            set_user_context(tenant_id=tenant_id)
        return await call_next(request)


def require_tenant(request: Request) -> str:
    """FastAPI dependency for tenant-scoped routes."""
    tenant_id = getattr(request.state, "tenant_id", None)
    if not tenant_id:
        raise TenantRequiredError()
    return tenant_id
