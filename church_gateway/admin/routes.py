"""
Admin routes: role assignment for existing members.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ..auth.session import AdminSession, require_admin
from ..dependencies import get_supabase_gateway
from ..models import MessageResponse, SetAdminRoleRequest
from ..supabase_client import RemoteProcedureError, SupabaseGateway

logger = logging.getLogger(__name__)

admin_router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
)

ADMIN_ROLE = "admin"


@admin_router.post("/set-admin-role", response_model=MessageResponse)
def set_admin_role(
    body: SetAdminRoleRequest,
    admin: AdminSession = Depends(require_admin),
    gateway: SupabaseGateway = Depends(get_supabase_gateway),
):
    """
    Promote a member to admin.

    Writes members.role and the auth user's metadata; the member row id is
    the auth user id.
    """
    if not body.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is required",
        )

    try:
        member = gateway.get_member_by_email(body.email, columns="id, email, first_name, last_name")
    except RemoteProcedureError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error finding user: {e.message}",
        )

    if not member:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No user found with email: {body.email}",
        )

    try:
        gateway.update_member(member["id"], {"role": ADMIN_ROLE})
    except RemoteProcedureError as e:
        logger.error(f"Error updating member role: {e.message}", extra={"member_id": member["id"]})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error updating member role: {e.message}",
        )

    try:
        gateway.set_user_role(member["id"], ADMIN_ROLE)
    except RemoteProcedureError as e:
        logger.error(f"Error updating user metadata: {e.message}", extra={"member_id": member["id"]})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error updating user metadata: {e.message}",
        )

    logger.info("Granted admin role", extra={"member_id": member["id"], "admin_id": admin.user_id})
    return MessageResponse(message=f"Successfully set admin role for user: {member['email']}")
