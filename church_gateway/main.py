"""
FastAPI Gateway Application Factory
===================================

Entry point for the gateway that sits between the church management web
client and its backends.

Architecture:
    Web client -> Gateway (this service) -> Backend API
                                         -> Supabase (Auth, Postgres RPCs)

Routers:
    - /api-proxy/*   : Public image proxy to API_URL
    - /api/files*    : File listing, deletion and upload proxy
    - /api/members   : Member listing and creation proxy
    - /api/auth/*    : Member tokens, default passwords, password check, RLS bootstrap
    - /api/admin/*   : Admin role assignment
    - /health        : Health check endpoint

Running the Service:
    Development:
        uvicorn church_gateway.main:app --reload --host 0.0.0.0 --port 3000

    Production:
        uvicorn church_gateway.main:app --host 0.0.0.0 --port 3000 --workers 4

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn church_gateway.main:app --reload
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .admin import admin_router
from .auth import auth_router
from .config import Settings, get_settings, validate_configuration
from .errors import register_exception_handlers
from .proxy import proxy_router
from .supabase_client import SupabaseGateway, build_gateway

SERVICE_NAME = "church-gateway"
SERVICE_VERSION = "1.0.0"


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stderr)],
    )


class AppState:
    """
    Application state container.

    Holds the resources shared by all requests: settings, the backend HTTP
    client (connection pool only) and the Supabase gateway.
    """

    def __init__(self, settings: Settings, supabase: SupabaseGateway):
        self.settings = settings
        self.supabase = supabase
        self.http_client: Optional[httpx.AsyncClient] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: configure logging, report configuration problems, open the
    backend HTTP client. Shutdown: close the client.
    """
    app_state: AppState = app.state.app_state
    settings = app_state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("church_gateway.main")

    config_status = validate_configuration(settings)
    for error in config_status["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in config_status["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    app_state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS, connect=10.0),
    )

    logger.info(
        "Gateway service started",
        extra={
            "api_url": settings.api_url_str,
            "backend_api_url": settings.backend_api_url_str,
            "version": SERVICE_VERSION,
        },
    )

    yield

    logger.info("Shutting down gateway service")
    await app_state.http_client.aclose()
    app_state.http_client = None


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Configuration to use; loaded from the environment if omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Church Gateway",
        description="Backend proxy and credential issuance for the church management app",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.app_state = AppState(settings=settings, supabase=build_gateway(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_exception_handlers(app)

    app.include_router(proxy_router)
    app.include_router(auth_router)
    app.include_router(admin_router)

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "supabase_configured": app.state.app_state.supabase.is_available(),
        }

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "image_proxy": "/api-proxy",
                "files": "/api/files",
                "members": "/api/members",
                "auth": "/api/auth",
                "admin": "/api/admin",
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "church_gateway.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
