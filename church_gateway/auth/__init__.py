"""
Authentication Package

Session resolution, the admin gate and the credential routes.

Modules:
- session: access token extraction, Supabase session lookup, admin check
- passwords: default password generation and bcrypt hashing
- routes: /api/auth/* credential endpoints

The admin flow:
1. Caller sends a Supabase access token (Bearer header or session cookie)
2. Gateway resolves it to a user through Supabase Auth (401 otherwise)
3. Gateway calls the is_admin() database function as that user (403 otherwise)
4. The route performs its lookup and RPC and shapes the JSON envelope
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
