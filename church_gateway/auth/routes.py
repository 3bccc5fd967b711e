"""
Credential Routes
=================

Token issuance/invalidation, default password assignment, member password
verification and the RLS bootstrap endpoint.

Supabase calls are blocking, so these handlers are plain functions and
FastAPI runs them in its thread pool.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from ..config import Settings
from ..dependencies import get_app_settings, get_supabase_gateway
from ..errors import error_body
from ..models import (
    DefaultPasswordResponse,
    GenerateTokenRequest,
    GenerateTokenResponse,
    MemberIdRequest,
    MessageResponse,
    VerifyPasswordRequest,
    VerifyPasswordResponse,
    member_summary,
)
from ..supabase_client import RemoteProcedureError, SupabaseGateway, UserScope
from .passwords import DEFAULT_PASSWORD_LENGTH, generate_secure_password, hash_password, verify_password
from .session import AdminSession, require_admin

logger = logging.getLogger(__name__)

auth_router = APIRouter(
    prefix="/api/auth",
    tags=["credentials"],
)


def _require_member_id(member_id: Optional[str]) -> str:
    if not member_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Member ID is required",
        )
    return member_id


def _load_member(
    db: Union[SupabaseGateway, UserScope],
    member_id: str,
    columns: str,
) -> dict:
    """
    Look up a member or fail the request.

    Args:
        db: The admin's user scope, or the gateway for service-role lookups

    Raises:
        HTTPException: 404 if the member does not exist, 500 on lookup failure
    """
    try:
        member = db.get_member(member_id, columns=columns)
    except RemoteProcedureError as e:
        logger.error(f"Member lookup failed: {e.message}", extra={"member_id": member_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error looking up member: {e.message}",
        )

    if not member:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Member not found",
        )
    return member


# =============================================================================
# Member Tokens
# =============================================================================

@auth_router.post("/generate-token", response_model=GenerateTokenResponse)
def generate_token(
    body: GenerateTokenRequest,
    admin: AdminSession = Depends(require_admin),
):
    """
    Issue an opaque login token for a member.

    The token is produced by the generate_member_token() database function,
    running as the calling admin.
    """
    member_id = _require_member_id(body.member_id)
    member = _load_member(admin.db, member_id, "id, first_name, last_name, email")

    try:
        token = admin.db.rpc(
            "generate_member_token",
            {"member_id_param": member_id, "days_valid": body.days_valid},
        )
    except RemoteProcedureError as e:
        logger.error(f"Token generation failed: {e.message}", extra={"member_id": member_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error generating token: {e.message}",
        )

    if not token or not isinstance(token, str):
        logger.error(
            "generate_member_token returned no usable token",
            extra={"member_id": member_id, "result_type": type(token).__name__},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error generating token: no token returned",
        )

    logger.info(
        "Issued member token",
        extra={"member_id": member_id, "days_valid": body.days_valid, "admin_id": admin.user_id},
    )
    return GenerateTokenResponse(
        token=token,
        member=member_summary(member.get("id", member_id), member),
        expires_in_days=body.days_valid,
    )


@auth_router.post("/invalidate-tokens", response_model=MessageResponse)
def invalidate_tokens(
    body: MemberIdRequest,
    admin: AdminSession = Depends(require_admin),
):
    member_id = _require_member_id(body.member_id)
    _load_member(admin.db, member_id, "id")

    try:
        admin.db.rpc("invalidate_member_tokens", {"member_id_param": member_id})
    except RemoteProcedureError as e:
        logger.error(f"Token invalidation failed: {e.message}", extra={"member_id": member_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error invalidating tokens: {e.message}",
        )

    logger.info("Invalidated member tokens", extra={"member_id": member_id, "admin_id": admin.user_id})
    return MessageResponse(message="All tokens for this member have been invalidated")


# =============================================================================
# Member Passwords
# =============================================================================

@auth_router.post("/set-default-password", response_model=DefaultPasswordResponse)
def set_default_password(
    body: MemberIdRequest,
    admin: AdminSession = Depends(require_admin),
    gateway: SupabaseGateway = Depends(get_supabase_gateway),
    settings: Settings = Depends(get_app_settings),
):
    """
    Assign a random default password and force a reset on next login.

    The plain text password is returned once in the response.
    TODO: deliver the password by email instead of returning it.
    """
    member_id = _require_member_id(body.member_id)
    member = _load_member(gateway, member_id, "id, email, first_name, last_name")

    default_password = generate_secure_password(DEFAULT_PASSWORD_LENGTH)
    update = {
        "password_hash": hash_password(default_password, rounds=settings.BCRYPT_ROUNDS),
        "password_reset_required": True,
        "last_password_change": datetime.now(timezone.utc).isoformat(),
    }

    try:
        gateway.update_member(member_id, update)
    except RemoteProcedureError as e:
        logger.error(f"Failed to store default password: {e.message}", extra={"member_id": member_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to set default password",
        )

    logger.info("Default password set", extra={"member_id": member_id, "admin_id": admin.user_id})
    return DefaultPasswordResponse(
        message="Default password set successfully",
        defaultPassword=default_password,
        member=member_summary(member_id, member),
    )


@auth_router.post("/verify-password", response_model=VerifyPasswordResponse)
def verify_member_password(
    body: VerifyPasswordRequest,
    gateway: SupabaseGateway = Depends(get_supabase_gateway),
):
    """
    Check a member's email and password.

    Answers 401 for unknown emails and wrong passwords alike. Members whose
    password was never set get needsPasswordSetup in the error body.
    """
    if not body.email or not body.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email and password are required",
        )

    try:
        member = gateway.get_member_by_email(body.email)
    except RemoteProcedureError as e:
        logger.error(f"Member lookup by email failed: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )

    if not member:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    password_hash = member.get("password_hash")
    if not password_hash:
        logger.info("Password not set for member", extra={"member_id": member.get("id")})
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content=error_body(
                "Password not set for this account",
                memberId=member.get("id"),
                email=member.get("email"),
                needsPasswordSetup=True,
            ),
        )

    if not verify_password(body.password, password_hash):
        logger.info("Password verification failed", extra={"member_id": member.get("id")})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    member_data = {key: value for key, value in member.items() if key != "password_hash"}
    return VerifyPasswordResponse(
        member=member_data,
        passwordResetRequired=bool(member.get("password_reset_required")),
    )


# =============================================================================
# RLS Bootstrap
# =============================================================================

@auth_router.get("/disable-rls", response_model=MessageResponse)
def disable_rls(
    key: Optional[str] = Query(None),
    gateway: SupabaseGateway = Depends(get_supabase_gateway),
    settings: Settings = Depends(get_app_settings),
):
    """
    Setup-time endpoint: disable row level security on the members table.

    Gated by RLS_SETUP_KEY. If the disable_members_rls() function is missing
    it is created through create_disable_rls_function() and called once more.
    """
    expected = settings.RLS_SETUP_KEY
    if not expected or not key or not secrets.compare_digest(key.encode(), expected.encode()):
        logger.warning("Rejected RLS bootstrap request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    try:
        gateway.rpc("disable_members_rls")
    except RemoteProcedureError as e:
        if not e.is_missing_function("disable_members_rls"):
            logger.error(f"Error disabling RLS: {e.message}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error disabling RLS: {e.message}",
            )

        logger.info("disable_members_rls() missing, creating it")
        try:
            gateway.rpc("create_disable_rls_function")
        except RemoteProcedureError as create_error:
            logger.error(f"Error creating function: {create_error.message}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating function: {create_error.message}",
            )

        try:
            gateway.rpc("disable_members_rls")
        except RemoteProcedureError as retry_error:
            logger.error(f"Error disabling RLS after creating function: {retry_error.message}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error disabling RLS after creating function: {retry_error.message}",
            )

    logger.warning("Row level security disabled for members table")
    return MessageResponse(message="RLS disabled for members table")
