"""
Supabase Client Wrapper
Identity lookups, member rows and database RPCs for the credential routes
"""

import logging
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import Client, create_client

logger = logging.getLogger(__name__)

MEMBERS_TABLE = "members"

# PostgREST / Postgres codes for "no such function" and malformed ids
MISSING_FUNCTION_CODES = {"PGRST202", "42883"}
INVALID_TEXT_REPRESENTATION = "22P02"


class RemoteProcedureError(Exception):
    """A Supabase query, RPC or admin call failed."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def is_missing_function(self, function_name: str) -> bool:
        if self.code in MISSING_FUNCTION_CODES:
            return True
        return f'function "{function_name}" does not exist' in self.message


# =============================================================================
# Query helpers shared by the service-role and user-scoped clients
# =============================================================================

def _find_member(client: Client, field: str, value: str, columns: str) -> Optional[Dict[str, Any]]:
    try:
        response = (
            client.table(MEMBERS_TABLE)
            .select(columns)
            .eq(field, value)
            .limit(1)
            .execute()
        )
    except APIError as e:
        # a malformed uuid cannot match any row
        if e.code == INVALID_TEXT_REPRESENTATION:
            return None
        raise RemoteProcedureError(e.message or str(e), code=e.code) from e

    return response.data[0] if response.data else None


def _call_rpc(client: Client, function_name: str, params: Optional[Dict[str, Any]]) -> Any:
    try:
        response = client.rpc(function_name, params or {}).execute()
    except APIError as e:
        raise RemoteProcedureError(e.message or str(e), code=e.code) from e

    logger.debug(f"RPC {function_name} completed")
    return response.data


class UserScope:
    """
    Database access as one session user over a single client.

    RLS applies and RPCs such as is_admin see auth.uid(). Opened once per
    request; close() releases the client's connection pool.
    """

    def __init__(self, client: Client, access_token: str):
        self.client = client
        self.access_token = access_token

    def is_admin(self) -> bool:
        """Run the is_admin() predicate as the session user."""
        return bool(self.rpc("is_admin"))

    def get_member(self, member_id: str, columns: str = "id") -> Optional[Dict[str, Any]]:
        return _find_member(self.client, "id", member_id, columns)

    def rpc(self, function_name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return _call_rpc(self.client, function_name, params)

    def close(self) -> None:
        self.client.postgrest.session.close()


class SupabaseGateway:
    """
    Supabase access for the gateway.

    Identity lookups go through a shared anon-key client (the token is passed
    per call, no session is stored). User-scoped database work goes through
    open_user_scope(); everything else uses the service-role client.
    """

    def __init__(self, url: str, anon_key: str, service_key: str):
        self.url = url
        self.anon_key = anon_key
        self.service_key = service_key
        self._anon_client: Optional[Client] = None
        self._service_client: Optional[Client] = None

    def is_available(self) -> bool:
        """Check if Supabase is configured for user-scoped calls"""
        return bool(self.url and self.anon_key)

    # =========================================================================
    # Clients
    # =========================================================================

    def _auth_client(self) -> Client:
        if self._anon_client is None:
            self._anon_client = create_client(self.url, self.anon_key)
        return self._anon_client

    def _admin_client(self) -> Client:
        if self._service_client is None:
            if not (self.url and self.service_key):
                raise RemoteProcedureError("Supabase service role client not available")

            self._service_client = create_client(self.url, self.service_key)
            logger.info("Supabase service role client initialized")
        return self._service_client

    def open_user_scope(self, access_token: str) -> UserScope:
        """
        Build a client that runs queries as the token's user.

        The caller owns the returned scope and must close() it.
        """
        if not self.is_available():
            raise RemoteProcedureError("Supabase client not available")

        client = create_client(self.url, self.anon_key)
        client.postgrest.auth(access_token)
        return UserScope(client, access_token)

    # =========================================================================
    # Identity
    # =========================================================================

    def get_user(self, access_token: str) -> Optional[Dict[str, Any]]:
        """
        Resolve an access token to the identity provider's user.

        Returns:
            dict with id, email and metadata, or None if the token is not valid
        """
        if not self.is_available():
            logger.error("Supabase credentials not configured, cannot resolve session")
            return None

        try:
            response = self._auth_client().auth.get_user(access_token)
        except Exception as e:
            logger.warning(f"Session lookup failed: {e}")
            return None

        if not response or not response.user:
            return None

        return {
            "id": response.user.id,
            "email": response.user.email,
            "metadata": response.user.user_metadata or {},
        }

    def set_user_role(self, user_id: str, role: str) -> None:
        """Write the role into the auth user's metadata (admin API)."""
        try:
            self._admin_client().auth.admin.update_user_by_id(
                user_id, {"user_metadata": {"role": role}}
            )
        except RemoteProcedureError:
            raise
        except Exception as e:
            raise RemoteProcedureError(str(e)) from e

    # =========================================================================
    # Members table (service role)
    # =========================================================================

    def get_member(self, member_id: str, columns: str = "id") -> Optional[Dict[str, Any]]:
        return _find_member(self._admin_client(), "id", member_id, columns)

    def get_member_by_email(self, email: str, columns: str = "*") -> Optional[Dict[str, Any]]:
        return _find_member(self._admin_client(), "email", email, columns)

    def update_member(self, member_id: str, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            response = (
                self._admin_client()
                .table(MEMBERS_TABLE)
                .update(values)
                .eq("id", member_id)
                .execute()
            )
        except APIError as e:
            raise RemoteProcedureError(e.message or str(e), code=e.code) from e

        if not response.data:
            logger.warning("Member update matched no rows", extra={"member_id": member_id})
        return response.data or []

    # =========================================================================
    # RPC (service role)
    # =========================================================================

    def rpc(self, function_name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Call a Postgres function through PostgREST with the service-role key.

        Raises:
            RemoteProcedureError: If the call fails
        """
        return _call_rpc(self._admin_client(), function_name, params)


def build_gateway(settings) -> SupabaseGateway:
    gateway = SupabaseGateway(
        url=settings.SUPABASE_URL,
        anon_key=settings.SUPABASE_ANON_KEY,
        service_key=settings.SUPABASE_SERVICE_ROLE_KEY,
    )
    if not gateway.is_available():
        logger.warning("Supabase credentials not found in configuration")
    return gateway
