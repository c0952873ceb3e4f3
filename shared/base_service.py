"""
Base service class for modelo-mcp services.
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST
from typing import Dict, Optional
import time

from shared.config import ServiceConfig, get_config
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import get_metrics_collector
from shared.errors import MCPServiceException
from shared.tracing import configure_tracing, instrument_app


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int = 8080, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level, env=self.config.env)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name, version=self.config.version)

        self.app = self._create_app()

        if self.config.enable_tracing:
            configure_tracing(
                service_name,
                self.config.otel_exporter,
                self.config.enable_console_tracing,
                version=self.config.version,
                env=self.config.env,
            )
            instrument_app(self.app)

        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        docs_enabled = self.config.env in ("local", "development")
        return FastAPI(
            title=f"{self.service_name} service",
            description=f"MCP backend - {self.service_name}",
            version=self.config.version,
            docs_url="/docs" if docs_enabled else None,
            redoc_url="/redoc" if docs_enabled else None,
        )

    def _setup_request_pipeline(self):
        """Register service middleware. Runs inside timing and CORS."""

    def _setup_middleware(self):
        """Set up middleware.

        Middleware registered later wraps earlier middleware, so the service
        pipeline goes first, request timing second and CORS outermost.
        """
        self._setup_request_pipeline()

        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            set_request_id(request.headers.get("X-Request-ID"))
            start_time = time.time()
            try:
                response = await call_next(request)
                duration = time.time() - start_time

                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration=duration
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )
                return response
            finally:
                clear_context()

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=self.config.security.allowed_origins,
            allow_credentials=True,
            allow_methods=["POST", "OPTIONS", "GET", "PUT", "DELETE", "PATCH"],
            allow_headers=[
                "Content-Type", "Content-Length", "Accept-Encoding", "X-CSRF-Token",
                "Authorization", "Accept", "Origin", "Cache-Control",
                "X-Requested-With", "X-Tenant-ID",
            ],
            expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
        )

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/healthz", response_class=PlainTextResponse)
        async def liveness():
            return "ok"

        @self.app.get("/readyz", response_class=PlainTextResponse)
        async def readiness():
            return "ready"

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                dependencies = await self._check_dependencies()
                self.metrics.record_health_check("ok")

                return {
                    "service": self.service_name,
                    "status": "ok",
                    "uptime_seconds": self._get_uptime(),
                    "dependencies": dependencies,
                    "version": self.config.version,
                    "commit": self.config.commit
                }
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={
                        "service": self.service_name,
                        "status": "error",
                        "error": str(e)
                    }
                )

        @self.app.get("/info")
        async def info():
            return {
                "service": self.service_name,
                "version": self.config.version,
                "commit": self.config.commit,
                "buildTime": self.config.build_time,
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.render(), media_type=CONTENT_TYPE_LATEST)

        @self.app.exception_handler(MCPServiceException)
        async def service_exception_handler(request: Request, exc: MCPServiceException):
            self.logger.warning(
                "Request failed",
                code=exc.code,
                message=exc.message,
                path=request.url.path,
                status_code=exc.status_code
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={
                    "code": "INTERNAL_ERROR",
                    "message": "Internal server error",
                    "details": {}
                }
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
