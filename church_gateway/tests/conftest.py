"""
Shared fixtures: an in-memory Supabase stand-in, a recording backend
transport, and a TestClient wired to both through dependency overrides.
"""

from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from church_gateway.config import Settings
from church_gateway.dependencies import get_http_client, get_supabase_gateway
from church_gateway.main import create_app
from church_gateway.supabase_client import RemoteProcedureError

ADMIN_TOKEN = "admin-access-token"
MEMBER_TOKEN = "member-access-token"


class FakeSupabase:
    """
    In-memory replacement for SupabaseGateway.

    rpc_results maps a function name to a value, an exception to raise, or a
    list of those consumed one per call.
    """

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {
            ADMIN_TOKEN: {"id": "admin-1", "email": "pastor@church.org", "metadata": {"role": "admin"}},
            MEMBER_TOKEN: {"id": "member-9", "email": "usher@church.org", "metadata": {}},
        }
        self.admin_tokens = {ADMIN_TOKEN}
        self.admin_check_error: Optional[RemoteProcedureError] = None
        self.members: Dict[str, Dict[str, Any]] = {}
        self.rpc_results: Dict[str, Any] = {}
        self.rpc_calls: List[tuple] = []
        self.updates: List[tuple] = []
        self.update_error: Optional[RemoteProcedureError] = None
        self.role_updates: List[tuple] = []
        self.role_error: Optional[RemoteProcedureError] = None
        self.scopes: List["FakeUserScope"] = []
        self.member_lookup_error: Optional[RemoteProcedureError] = None

    def is_available(self) -> bool:
        return True

    def add_member(self, member_id: str, **fields) -> Dict[str, Any]:
        row = {"id": member_id, **fields}
        self.members[member_id] = row
        return row

    def get_user(self, access_token: str):
        return self.users.get(access_token)

    def open_user_scope(self, access_token: str) -> "FakeUserScope":
        scope = FakeUserScope(self, access_token)
        self.scopes.append(scope)
        return scope

    def get_member(self, member_id, columns="id"):
        if self.member_lookup_error:
            raise self.member_lookup_error
        row = self.members.get(member_id)
        return dict(row) if row else None

    def get_member_by_email(self, email, columns="*"):
        for row in self.members.values():
            if row.get("email") == email:
                return dict(row)
        return None

    def update_member(self, member_id, values):
        if self.update_error:
            raise self.update_error
        self.updates.append((member_id, values))
        self.members[member_id].update(values)
        return [self.members[member_id]]

    def set_user_role(self, user_id, role):
        if self.role_error:
            raise self.role_error
        self.role_updates.append((user_id, role))

    def rpc(self, function_name, params=None, access_token=None):
        """Service-role call; user scopes pass their token through."""
        self.rpc_calls.append((function_name, params or {}, access_token))
        result = self.rpc_results.get(function_name)
        if isinstance(result, list):
            result = result.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def rpc_names(self) -> List[str]:
        return [call[0] for call in self.rpc_calls]


class FakeUserScope:
    """Per-request user client handed out by FakeSupabase.open_user_scope."""

    def __init__(self, supabase: FakeSupabase, access_token: str):
        self.supabase = supabase
        self.access_token = access_token
        self.closed = False

    def is_admin(self) -> bool:
        if self.supabase.admin_check_error:
            raise self.supabase.admin_check_error
        return self.access_token in self.supabase.admin_tokens

    def get_member(self, member_id, columns="id"):
        return self.supabase.get_member(member_id, columns)

    def rpc(self, function_name, params=None):
        return self.supabase.rpc(function_name, params, access_token=self.access_token)

    def close(self) -> None:
        self.closed = True


class RecordingBackend:
    """httpx.MockTransport handler that records requests and replays a canned answer."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = (
            lambda request: httpx.Response(200, json={"success": True, "data": []})
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def respond_with(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def settings():
    return Settings(
        API_URL="http://images.backend.test",
        BACKEND_API_URL="http://api.backend.test",
        SUPABASE_URL="https://project.supabase.test",
        SUPABASE_ANON_KEY="anon-key",
        SUPABASE_SERVICE_ROLE_KEY="service-key",
        RLS_SETUP_KEY="setup-key-for-tests-0123456789abcdef",
        BCRYPT_ROUNDS=4,
    )


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def app(settings, supabase, backend):
    app = create_app(settings)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(backend))

    app.dependency_overrides[get_supabase_gateway] = lambda: supabase
    app.dependency_overrides[get_http_client] = lambda: http_client
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def admin_token():
    return ADMIN_TOKEN


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def member_headers():
    return {"Authorization": f"Bearer {MEMBER_TOKEN}"}
