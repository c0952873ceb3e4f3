"""
MCP backend service.
"""

from typing import Any, Dict, Optional

from fastapi import Depends

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import MCPServiceException

from .auth import AuthContext, AuthMiddleware, JWTAuthenticator, require_admin, require_auth
from .bus import BusConsumer, BusProducer, EchoHandler
from .ratelimit import AdmissionMiddleware, AdmissionPolicy, TenantAdmissionController
from .security import add_security_headers
from .tenancy import TenantMiddleware, require_tenant

SERVICE_NAME = "modelo-mcp"


class MCPService(BaseService):
    """MCP service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None,
                 admission: Optional[TenantAdmissionController] = None):
        config = config or get_config(SERVICE_NAME)
        # Pipeline collaborators must exist before BaseService registers middleware
        self.admission = admission or TenantAdmissionController(
            AdmissionPolicy.from_settings(config.rate_limit)
        )
        self.authenticator = JWTAuthenticator(
            config.jwt.secret,
            issuer=config.jwt.issuer,
            audience=config.jwt.audience,
            algorithms=config.jwt.algorithms,
            api_key=config.security.api_key,
        )
        super().__init__(config.service_name, config.port, config=config)

        self.bus_producer: Optional[BusProducer] = None
        self.bus_consumer: Optional[BusConsumer] = None

        @self.app.on_event("startup")
        async def _startup():
            self.logger.info("Starting service", version=self.config.version, commit=self.config.commit,
                             rate_limit_enabled=self.admission.enabled)
            if self.config.bus.enabled:
                await self._start_bus()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self._stop_bus()
            self.logger.info("Service stopped")

        self._setup_mcp_routes()
        self.app.state.mcp_service = self

    def _setup_request_pipeline(self):
        # Registered innermost first; requests flow security -> auth -> tenant -> admission
        self.app.middleware("http")(
            AdmissionMiddleware(self.admission, metrics=self.metrics).dispatch
        )
        self.app.middleware("http")(TenantMiddleware().dispatch)
        self.app.middleware("http")(AuthMiddleware(self.authenticator).dispatch)
        self.app.middleware("http")(add_security_headers)

    async def _start_bus(self):
        bus = self.config.bus
        self.bus_producer = BusProducer(bus.bootstrap_servers, client_id=self.service_name)
        await self.bus_producer.start()

        self.bus_consumer = BusConsumer(bus.bootstrap_servers, bus.group_id, metrics=self.metrics)
        self.bus_consumer.subscribe(
            bus.request_topic,
            EchoHandler(self.bus_producer, self.service_name, bus.reply_topic)
        )
        await self.bus_consumer.start()

    async def _stop_bus(self):
        if self.bus_consumer:
            await self.bus_consumer.stop()
        if self.bus_producer:
            await self.bus_producer.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        if not self.config.bus.enabled:
            return {}
        running = self.bus_consumer is not None and self.bus_consumer.is_running()
        return {"bus": "ok" if running else "error"}

    def _setup_mcp_routes(self):
        """Set up MCP-specific routes."""

        @self.app.get("/")
        async def root():
            return {
                "service": self.service_name,
                "message": f"MCP backend - {self.service_name}",
                "version": self.config.version
            }

        @self.app.get("/api/v1/ping")
        async def ping(user: AuthContext = Depends(require_auth),
                       tenant_id: str = Depends(require_tenant)):
            """Authenticated, tenant-scoped liveness probe for clients."""
            return {
                "message": "pong",
                "service": self.service_name,
                "tenant": tenant_id,
                "user": user.user_id
            }

        @self.app.get("/api/v1/admin/rate-limit")
        async def rate_limit_status(admin: AuthContext = Depends(require_admin)) -> Dict[str, Any]:
            policy = self.admission.policy
            return {
                "enabled": policy.enabled,
                "requests_per_second": policy.requests_per_second,
                "burst": policy.burst,
                "max_tenants": policy.max_tenants,
                "tracked_tenants": len(self.admission.registry),
            }

        @self.app.get("/api/v1/admin/rate-limit/{tenant_id}")
        async def tenant_rate_limit(tenant_id: str,
                                    admin: AuthContext = Depends(require_admin)) -> Dict[str, Any]:
            budget = self.admission.inspect(tenant_id)
            if budget is None:
                raise MCPServiceException("TENANT_NOT_TRACKED", "Tenant has no admission budget",
                                          details={"tenant_id": tenant_id}, status_code=404)
            return {"tenant_id": tenant_id, **budget}


def create_app(config: Optional[ServiceConfig] = None,
               admission: Optional[TenantAdmissionController] = None):
    """Create FastAPI application."""
    service = MCPService(config=config, admission=admission)
    return service.app


if __name__ == "__main__":
    service = MCPService()
    service.run()
