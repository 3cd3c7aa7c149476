"""
FastAPI scaffolding shared by Claim Assignment Service processes.

``BaseService`` owns the app and its lifespan, request metrics, the ``/health``
and ``/metrics`` endpoints, and the mapping of service errors to HTTP
responses. Subclasses add routes and override the lifecycle hooks.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from shared.config import ServiceConfig, get_config
from shared.errors import AssignmentServiceError
from shared.logging import configure_logging, get_logger
from shared.metrics import get_metrics_collector

SERVICE_VERSION = "1.0.0"

# Unlisted error codes map to 400
ERROR_STATUS_CODES: Dict[str, int] = {
    "NOT_FOUND": 404,
    "QUEUE_CONNECTION_ERROR": 503,
    "EXTERNAL_SERVICE_ERROR": 502,
    "CONFIGURATION_ERROR": 500,
}

# Polled by probes and scrapers; logged at debug only
QUIET_PATHS = frozenset({"/health", "/metrics"})


def status_code_for(error: AssignmentServiceError) -> int:
    return ERROR_STATUS_CODES.get(error.code, 400)


def error_response(error: AssignmentServiceError) -> JSONResponse:
    """Render a service error as ``{code, message, details}``."""
    return JSONResponse(
        status_code=status_code_for(error),
        content=error.to_response().model_dump()
    )


class BaseService:
    """FastAPI service with lifecycle hooks, health and metrics."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._started_at = time.monotonic()

        configure_logging(service_name, self.config.log_level)

        self.app = FastAPI(
            title=f"{service_name.title()} Service",
            description=f"Claim Assignment - {service_name.title()} Service",
            version=SERVICE_VERSION,
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url=None,
            lifespan=self._lifespan,
        )
        self._install_middleware()
        self._install_error_handlers()
        self._install_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.start()
        try:
            yield
        finally:
            await self.stop()

    def _install_middleware(self):

        @self.app.middleware("http")
        async def record_request(request: Request, call_next):
            started = time.perf_counter()
            response = await call_next(request)
            duration = time.perf_counter() - started

            path = request.url.path
            self.metrics.record_http_request(
                method=request.method,
                endpoint=path,
                status_code=response.status_code,
                duration=duration
            )

            log = self.logger.debug if path in QUIET_PATHS else self.logger.info
            log(
                "HTTP request",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )
            return response

    def _install_error_handlers(self):

        @self.app.exception_handler(AssignmentServiceError)
        async def service_error_handler(request: Request, exc: AssignmentServiceError):
            self.logger.warning(
                "Request failed",
                path=request.url.path,
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            self.metrics.record_error(exc.code)
            return error_response(exc)

        @self.app.exception_handler(Exception)
        async def unhandled_error_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}
            )

    def _install_routes(self):

        @self.app.get("/health")
        async def health():
            """Dependency report; 503 unless every dependency is usable."""
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            status = self._overall_status(dependencies)
            self.metrics.record_health_check(status)
            return JSONResponse(
                status_code=200 if status == "ok" else 503,
                content={
                    "service": self.service_name,
                    "status": status,
                    "uptime_seconds": round(time.monotonic() - self._started_at, 3),
                    "dependencies": dependencies,
                    "version": SERVICE_VERSION,
                    "commit": os.getenv("GIT_COMMIT", "unknown"),
                }
            )

        @self.app.get("/metrics")
        async def metrics():
            return Response(
                content=generate_latest(self.metrics.registry),
                media_type=CONTENT_TYPE_LATEST
            )

    def _overall_status(self, dependencies: Dict[str, Any]) -> str:
        """``ok`` or ``degraded``. Subclasses decide which dependencies matter."""
        return "ok"

    async def _check_dependencies(self) -> Dict[str, Any]:
        return {}

    async def start(self):
        """Start service components. Override in subclasses."""

    async def stop(self):
        """Stop service components. Override in subclasses."""

    def run(self):
        """Serve the app with uvicorn."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
