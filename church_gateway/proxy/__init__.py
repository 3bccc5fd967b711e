"""
Proxy Package
=============

Endpoints that forward requests to the backend API and relay its answer.

Main Components:
----------------
- forwarding.py: header allow-list, JSON relay, image relay
- routes.py: FastAPI router with the proxy endpoints

Usage:
------
    from church_gateway.proxy import proxy_router
    app.include_router(proxy_router)
"""

from .routes import proxy_router

__all__ = ["proxy_router"]
