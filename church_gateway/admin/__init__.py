"""
Admin Package

Routes that manage admin privileges of members. Every route here is behind
the admin gate from church_gateway.auth.session.
"""

from .routes import admin_router

__all__ = ["admin_router"]
