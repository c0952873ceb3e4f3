"""
HTTP pipeline stage enforcing per-tenant admission control.
"""

from typing import Iterable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from shared.errors import RateLimitError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import add_span_attributes

from .admission import DEFAULT_TENANT, TenantAdmissionController

DEFAULT_EXEMPT_PATHS = ("/healthz", "/readyz", "/health", "/metrics")


class AdmissionMiddleware:
    """Rate limiting middleware for FastAPI.

    Must run after tenant resolution: the tenant is read from
    ``request.state.tenant_id`` and falls back to ``DEFAULT_TENANT``.
    """

    def __init__(self, controller: TenantAdmissionController,
                 metrics: Optional[MetricsCollector] = None,
                 exempt_paths: Iterable[str] = DEFAULT_EXEMPT_PATHS):
        self.controller = controller
        self.metrics = metrics
        self.exempt_paths = frozenset(exempt_paths)
        self.logger = get_logger("mcp.rate_limit_middleware")

    async def dispatch(self, request: Request, call_next):
        if not self.controller.enabled or request.url.path in self.exempt_paths:
            return await call_next(request)

        tenant_id = self._get_tenant_id(request)
        decision = self.controller.admit(tenant_id)
        add_span_attributes(**{"mcp.tenant_id": tenant_id, "mcp.admitted": decision.admitted})
        if self.metrics:
            self.metrics.record_admission(decision.admitted, len(self.controller.registry))

        if decision.rejected:
            self.logger.warning(
                "Rate limit exceeded",
                tenant_id=tenant_id,
                path=request.url.path,
                limit=decision.limit
            )
            error = RateLimitError(details={"tenant_id": tenant_id, "limit": decision.limit})
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_response().model_dump(exclude_none=True),
                headers=decision.headers()
            )

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response

    def _get_tenant_id(self, request: Request) -> str:
        tenant_id = getattr(request.state, "tenant_id", None)
        if isinstance(tenant_id, str) and tenant_id:
            return tenant_id
        return DEFAULT_TENANT
