"""
Tests for the credential routes: member tokens, default passwords,
password verification, admin role assignment and the RLS bootstrap.
"""

import bcrypt
import pytest
from fastapi import status

from church_gateway.auth.passwords import hash_password
from church_gateway.supabase_client import RemoteProcedureError


@pytest.fixture
def ruth(supabase):
    return supabase.add_member(
        "m1",
        first_name="Ruth",
        last_name="Naomi",
        email="ruth@church.org",
        role="member",
        password_hash=None,
        password_reset_required=False,
    )


# ============================================================================
# generate-token
# ============================================================================

def test_generate_token_returns_token_member_and_default_expiry(client, supabase, ruth, admin_headers, admin_token):
    supabase.rpc_results["generate_member_token"] = "tok_5f1c2a"

    response = client.post("/api/auth/generate-token", json={"member_id": "m1"}, headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "success": True,
        "token": "tok_5f1c2a",
        "member": {"id": "m1", "name": "Ruth Naomi", "email": "ruth@church.org"},
        "expires_in_days": 30,
    }
    assert supabase.rpc_calls == [
        ("generate_member_token", {"member_id_param": "m1", "days_valid": 30}, admin_token)
    ]


@pytest.mark.parametrize("days_valid", [1, 7, 90, 365])
def test_generate_token_echoes_days_valid(client, supabase, ruth, admin_headers, days_valid):
    supabase.rpc_results["generate_member_token"] = "tok"

    response = client.post(
        "/api/auth/generate-token",
        json={"member_id": "m1", "days_valid": days_valid},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["expires_in_days"] == days_valid
    assert supabase.rpc_calls[0][1]["days_valid"] == days_valid


def test_generate_token_requires_member_id(client, supabase, admin_headers):
    response = client.post("/api/auth/generate-token", json={}, headers=admin_headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["message"] == "Member ID is required"
    assert supabase.rpc_calls == []


def test_generate_token_rejects_non_positive_days(client, ruth, admin_headers):
    response = client.post(
        "/api/auth/generate-token",
        json={"member_id": "m1", "days_valid": 0},
        headers=admin_headers,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["success"] is False


def test_generate_token_rpc_failure_surfaces_message(client, supabase, ruth, admin_headers):
    supabase.rpc_results["generate_member_token"] = RemoteProcedureError("permission denied for table member_tokens")

    response = client.post("/api/auth/generate-token", json={"member_id": "m1"}, headers=admin_headers)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {
        "success": False,
        "error": {"message": "Error generating token: permission denied for table member_tokens"},
    }


@pytest.mark.parametrize("rpc_result", [None, "", {"token": "tok"}, 42])
def test_generate_token_rejects_unusable_rpc_result(client, supabase, ruth, admin_headers, rpc_result):
    supabase.rpc_results["generate_member_token"] = rpc_result

    response = client.post("/api/auth/generate-token", json={"member_id": "m1"}, headers=admin_headers)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"]["message"] == "Error generating token: no token returned"


def test_generate_token_uses_one_user_client_and_closes_it(client, supabase, ruth, admin_headers):
    supabase.rpc_results["generate_member_token"] = "tok"

    client.post("/api/auth/generate-token", json={"member_id": "m1"}, headers=admin_headers)

    assert len(supabase.scopes) == 1
    assert supabase.scopes[0].closed is True


def test_user_client_closed_when_request_fails(client, supabase, ruth, admin_headers):
    supabase.rpc_results["generate_member_token"] = RemoteProcedureError("boom")

    client.post("/api/auth/generate-token", json={"member_id": "m1"}, headers=admin_headers)

    assert [scope.closed for scope in supabase.scopes] == [True]


def test_malformed_json_is_400(client, admin_headers):
    response = client.post(
        "/api/auth/generate-token",
        content=b"{not json",
        headers={**admin_headers, "Content-Type": "application/json"},
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["success"] is False


# ============================================================================
# invalidate-tokens
# ============================================================================

def test_invalidate_tokens(client, supabase, ruth, admin_headers, admin_token):
    response = client.post("/api/auth/invalidate-tokens", json={"member_id": "m1"}, headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "success": True,
        "message": "All tokens for this member have been invalidated",
    }
    assert supabase.rpc_calls == [("invalidate_member_tokens", {"member_id_param": "m1"}, admin_token)]


def test_invalidate_tokens_requires_member_id(client, supabase, admin_headers):
    response = client.post("/api/auth/invalidate-tokens", json={}, headers=admin_headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["message"] == "Member ID is required"
    assert supabase.rpc_calls == []


def test_invalidate_tokens_rpc_failure(client, supabase, ruth, admin_headers):
    supabase.rpc_results["invalidate_member_tokens"] = RemoteProcedureError("deadlock detected")

    response = client.post("/api/auth/invalidate-tokens", json={"member_id": "m1"}, headers=admin_headers)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"]["message"] == "Error invalidating tokens: deadlock detected"


# ============================================================================
# Missing members
# ============================================================================

@pytest.mark.parametrize(
    "path, body",
    [
        ("/api/auth/generate-token", {"member_id": "ghost"}),
        ("/api/auth/invalidate-tokens", {"member_id": "ghost"}),
        ("/api/auth/set-default-password", {"memberId": "ghost"}),
    ],
)
def test_unknown_member_is_404_without_mutation(client, supabase, ruth, admin_headers, path, body):
    response = client.post(path, json=body, headers=admin_headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"success": False, "error": {"message": "Member not found"}}
    assert supabase.rpc_calls == []
    assert supabase.updates == []


def test_member_lookup_failure_is_500(client, supabase, ruth, admin_headers):
    supabase.member_lookup_error = RemoteProcedureError("JWT expired", code="PGRST301")

    response = client.post("/api/auth/invalidate-tokens", json={"member_id": "m1"}, headers=admin_headers)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"]["message"] == "Error looking up member: JWT expired"
    assert supabase.rpc_calls == []


# ============================================================================
# set-default-password
# ============================================================================

def test_set_default_password_stores_hash_and_reset_flag(client, supabase, ruth, admin_headers):
    response = client.post("/api/auth/set-default-password", json={"memberId": "m1"}, headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Default password set successfully"
    assert body["member"] == {"id": "m1", "name": "Ruth Naomi", "email": "ruth@church.org"}

    password = body["defaultPassword"]
    assert len(password) == 10

    member_id, values = supabase.updates[0]
    assert member_id == "m1"
    assert values["password_reset_required"] is True
    assert values["last_password_change"]
    assert values["password_hash"] != password
    assert bcrypt.checkpw(password.encode(), values["password_hash"].encode())


def test_set_default_password_accepts_snake_case_id(client, supabase, ruth, admin_headers):
    response = client.post("/api/auth/set-default-password", json={"member_id": "m1"}, headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert len(supabase.updates) == 1


def test_set_default_password_requires_member_id(client, admin_headers):
    response = client.post("/api/auth/set-default-password", json={}, headers=admin_headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_set_default_password_persistence_failure(client, supabase, ruth, admin_headers):
    supabase.update_error = RemoteProcedureError("new row violates row-level security policy")

    response = client.post("/api/auth/set-default-password", json={"memberId": "m1"}, headers=admin_headers)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"]["message"] == "Failed to set default password"


# ============================================================================
# verify-password
# ============================================================================

def test_verify_password_success_hides_hash(client, supabase, ruth):
    ruth.update(password_hash=hash_password("Shalom#2024", rounds=4), password_reset_required=True)

    response = client.post(
        "/api/auth/verify-password",
        json={"email": "ruth@church.org", "password": "Shalom#2024"},
    )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["success"] is True
    assert body["passwordResetRequired"] is True
    assert body["member"]["id"] == "m1"
    assert "password_hash" not in body["member"]


def test_verify_password_wrong_password(client, ruth):
    ruth.update(password_hash=hash_password("Shalom#2024", rounds=4))

    response = client.post(
        "/api/auth/verify-password",
        json={"email": "ruth@church.org", "password": "wrong"},
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"]["message"] == "Invalid credentials"


def test_verify_password_unknown_email_looks_like_wrong_password(client, ruth):
    response = client.post(
        "/api/auth/verify-password",
        json={"email": "nobody@church.org", "password": "whatever"},
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"]["message"] == "Invalid credentials"


def test_verify_password_flags_missing_password(client, ruth):
    response = client.post(
        "/api/auth/verify-password",
        json={"email": "ruth@church.org", "password": "anything"},
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    body = response.json()
    assert body["needsPasswordSetup"] is True
    assert body["memberId"] == "m1"
    assert body["email"] == "ruth@church.org"


def test_verify_password_requires_both_fields(client):
    response = client.post("/api/auth/verify-password", json={"email": "ruth@church.org"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST


# ============================================================================
# set-admin-role
# ============================================================================

def test_set_admin_role(client, supabase, ruth, admin_headers):
    response = client.post("/api/admin/set-admin-role", json={"email": "ruth@church.org"}, headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"] == "Successfully set admin role for user: ruth@church.org"
    assert supabase.updates == [("m1", {"role": "admin"})]
    assert supabase.role_updates == [("m1", "admin")]


def test_set_admin_role_unknown_email(client, supabase, ruth, admin_headers):
    response = client.post("/api/admin/set-admin-role", json={"email": "ghost@church.org"}, headers=admin_headers)

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"]["message"] == "No user found with email: ghost@church.org"
    assert supabase.updates == []


def test_set_admin_role_requires_email(client, supabase, admin_headers):
    response = client.post("/api/admin/set-admin-role", json={}, headers=admin_headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["message"] == "Email is required"
    assert supabase.updates == []


def test_set_admin_role_rejects_malformed_email(client, supabase, admin_headers):
    response = client.post("/api/admin/set-admin-role", json={"email": "not-an-email"}, headers=admin_headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["success"] is False
    assert supabase.updates == []


def test_set_admin_role_member_update_failure(client, supabase, ruth, admin_headers):
    supabase.update_error = RemoteProcedureError("permission denied for table members")

    response = client.post("/api/admin/set-admin-role", json={"email": "ruth@church.org"}, headers=admin_headers)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"]["message"] == (
        "Error updating member role: permission denied for table members"
    )
    assert supabase.role_updates == []


def test_set_admin_role_metadata_failure(client, supabase, ruth, admin_headers):
    supabase.role_error = RemoteProcedureError("User not found")

    response = client.post("/api/admin/set-admin-role", json={"email": "ruth@church.org"}, headers=admin_headers)

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"]["message"] == "Error updating user metadata: User not found"


# ============================================================================
# disable-rls
# ============================================================================

def test_disable_rls_rejects_wrong_key(client, supabase):
    response = client.get("/api/auth/disable-rls", params={"key": "super-admin-setup-key"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert supabase.rpc_calls == []


def test_disable_rls_rejects_missing_key(client, supabase):
    response = client.get("/api/auth/disable-rls")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert supabase.rpc_calls == []


def test_disable_rls_closed_when_key_not_configured(client, supabase, settings):
    settings.RLS_SETUP_KEY = None

    response = client.get("/api/auth/disable-rls", params={"key": ""})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert supabase.rpc_calls == []


def test_disable_rls_single_call_when_function_exists(client, supabase, settings):
    response = client.get("/api/auth/disable-rls", params={"key": settings.RLS_SETUP_KEY})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["success"] is True
    assert supabase.rpc_names == ["disable_members_rls"]
    # privileged client: no user token
    assert supabase.rpc_calls[0][2] is None


def test_disable_rls_creates_missing_function_then_retries(client, supabase, settings):
    supabase.rpc_results["disable_members_rls"] = [
        RemoteProcedureError('function "disable_members_rls" does not exist'),
        None,
    ]

    response = client.get("/api/auth/disable-rls", params={"key": settings.RLS_SETUP_KEY})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True, "message": "RLS disabled for members table"}
    assert supabase.rpc_names == [
        "disable_members_rls",
        "create_disable_rls_function",
        "disable_members_rls",
    ]


def test_disable_rls_recognises_postgrest_missing_function_code(client, supabase, settings):
    supabase.rpc_results["disable_members_rls"] = [
        RemoteProcedureError("Could not find the function public.disable_members_rls", code="PGRST202"),
        None,
    ]

    response = client.get("/api/auth/disable-rls", params={"key": settings.RLS_SETUP_KEY})

    assert response.status_code == status.HTTP_200_OK
    assert supabase.rpc_names[1] == "create_disable_rls_function"


def test_disable_rls_retry_failure_is_500(client, supabase, settings):
    supabase.rpc_results["disable_members_rls"] = [
        RemoteProcedureError('function "disable_members_rls" does not exist'),
        RemoteProcedureError("permission denied"),
    ]

    response = client.get("/api/auth/disable-rls", params={"key": settings.RLS_SETUP_KEY})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"]["message"] == (
        "Error disabling RLS after creating function: permission denied"
    )
    assert len(supabase.rpc_calls) == 3


def test_disable_rls_create_failure_is_500(client, supabase, settings):
    supabase.rpc_results["disable_members_rls"] = RemoteProcedureError(
        'function "disable_members_rls" does not exist'
    )
    supabase.rpc_results["create_disable_rls_function"] = RemoteProcedureError("must be owner of table members")

    response = client.get("/api/auth/disable-rls", params={"key": settings.RLS_SETUP_KEY})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"]["message"] == "Error creating function: must be owner of table members"
    assert supabase.rpc_names == ["disable_members_rls", "create_disable_rls_function"]


def test_disable_rls_other_error_is_not_retried(client, supabase, settings):
    supabase.rpc_results["disable_members_rls"] = RemoteProcedureError("permission denied")

    response = client.get("/api/auth/disable-rls", params={"key": settings.RLS_SETUP_KEY})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"]["message"] == "Error disabling RLS: permission denied"
    assert supabase.rpc_names == ["disable_members_rls"]
