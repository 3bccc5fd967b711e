"""
Data Models Module

Pydantic models for request bodies and response envelopes of the
credential and admin routes. Proxy routes relay backend bodies untouched;
only the admin proxies that validate their input have request models here.
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field

DEFAULT_TOKEN_DAYS_VALID = 30


# ============================================================================
# Request Models
# ============================================================================

class GenerateTokenRequest(BaseModel):
    """Request body for issuing a member token."""
    member_id: Optional[str] = Field(None, description="Member to issue the token for")
    days_valid: int = Field(
        default=DEFAULT_TOKEN_DAYS_VALID,
        description="Days until the token expires",
        ge=1,
    )


class MemberIdRequest(BaseModel):
    """Request body naming a single member (accepts member_id or memberId)."""
    member_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("member_id", "memberId"),
        description="Member identifier",
    )


class VerifyPasswordRequest(BaseModel):
    """Member login check."""
    email: Optional[EmailStr] = Field(None, description="Member email")
    password: Optional[str] = Field(None, description="Plain text password")


class SetAdminRoleRequest(BaseModel):
    """Request body for promoting a member to admin."""
    email: Optional[EmailStr] = Field(None, description="Email of the member to promote")


class ResetPasswordsRequest(BaseModel):
    """Bulk password reset: every member, or the listed ones."""
    type: Optional[str] = Field(None, description="'all' or 'selected'")
    memberIds: Optional[List[str]] = Field(None, description="Members to reset when type is 'selected'")


class CreateAdministratorRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None


class UpdateAdministratorRequest(BaseModel):
    """Partial update; empty strings count as "leave unchanged"."""
    status: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

    def changes(self) -> Dict[str, str]:
        return {key: value for key, value in self.model_dump().items() if value not in (None, "")}


# ============================================================================
# Response Models
# ============================================================================

class MemberSummary(BaseModel):
    """Minimal member identity echoed back by credential routes."""
    id: str
    name: str
    email: Optional[str] = None


class GenerateTokenResponse(BaseModel):
    success: bool = True
    token: str = Field(..., description="Opaque member token")
    member: MemberSummary
    expires_in_days: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class DefaultPasswordResponse(BaseModel):
    """
    Plain text password is returned exactly once so an admin can hand it over;
    the member must change it on next login.
    """
    success: bool = True
    message: str
    defaultPassword: str
    member: MemberSummary


class VerifyPasswordResponse(BaseModel):
    success: bool = True
    member: Dict[str, Any]
    passwordResetRequired: bool = False


# ============================================================================
# Helpers
# ============================================================================

def member_summary(member_id: str, row: Dict[str, Any]) -> MemberSummary:
    name = f"{row.get('first_name') or ''} {row.get('last_name') or ''}".strip()
    return MemberSummary(id=str(member_id), name=name, email=row.get("email"))
