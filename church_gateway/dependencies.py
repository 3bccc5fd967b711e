"""
FastAPI Dependencies
Shared resources held in app state: settings, backend HTTP client, Supabase
"""

import httpx
from fastapi import HTTPException, Request, status

from .supabase_client import SupabaseGateway
from .config import Settings


def _app_state(request: Request):
    if not hasattr(request.app.state, "app_state"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application state not initialized",
        )
    return request.app.state.app_state


def get_app_settings(request: Request) -> Settings:
    return _app_state(request).settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    """
    Dependency to get the backend HTTP client from app state.

    The client is created in the application lifespan.
    """
    client = _app_state(request).http_client
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Backend client not available",
        )
    return client


def get_supabase_gateway(request: Request) -> SupabaseGateway:
    return _app_state(request).supabase
