"""
Proxy Routes - Backend Request Forwarding
=========================================

Endpoints that forward requests to the backend API and relay its answer.

Security Model:
---------------
1. Gated routes require an Authorization header; it is forwarded verbatim
   and validated by the backend, not here. The /api/admin proxies also
   require it to be a Bearer token
2. Only Authorization, User-Agent and Content-Type are forwarded
3. The image proxy is public and forwards User-Agent only
4. The /api/admin proxies reshape the backend answer; backend errors keep
   their status with the backend's error text

Endpoints:
----------
- GET    /api-proxy/{path}                 -> {API_URL}/{path}
- GET    /api/files                        -> {BACKEND_API_URL}/api/files
- DELETE /api/files/{file_id}              -> {BACKEND_API_URL}/api/files/{file_id}
- POST   /api/files/upload-article-image   -> {BACKEND_API_URL}/files/upload-article-image
- GET    /api/members                      -> {BACKEND_API_URL}/members
- POST   /api/members                      -> {BACKEND_API_URL}/members
- POST   /api/admin/reset-passwords          -> {BACKEND_API_URL}/password-management/reset-passwords
- GET    /api/admin/password-list            -> {BACKEND_API_URL}/password-management/password-list
- GET    /api/admin/verify-passwords         -> {BACKEND_API_URL}/password-management/verify-passwords
- GET    /api/admin/administrators           -> {BACKEND_API_URL}/administrators
- POST   /api/admin/administrators           -> {BACKEND_API_URL}/administrators
- PATCH  /api/admin/administrators/{id}      -> PUT {BACKEND_API_URL}/administrators/{id}
- POST   /api/admin/administrators/{id}/reset-password
                                           -> {BACKEND_API_URL}/administrators/{id}/reset-password
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse

from ..auth.session import extract_token_from_header
from ..config import Settings
from ..dependencies import get_app_settings, get_http_client
from ..models import CreateAdministratorRequest, ResetPasswordsRequest, UpdateAdministratorRequest
from .forwarding import (
    build_forward_headers,
    fetch_backend_json,
    fetch_image,
    forward_json,
    join_url,
    send_to_backend,
)

logger = logging.getLogger(__name__)

proxy_router = APIRouter(tags=["proxy"])

JSON_CONTENT_TYPE = "application/json"

DEFAULT_PAGE = "1"
DEFAULT_PAGE_SIZE = "20"

RESET_TYPES = ("all", "selected")


# ============================================================================
# Dependencies
# ============================================================================

async def require_authorization_header(request: Request) -> str:
    """
    Dependency that only checks an Authorization header is present.

    Raises:
        HTTPException: 401 if the header is missing
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
        )
    return auth_header


async def require_bearer_token(request: Request) -> str:
    """
    Dependency for the admin proxies: the Authorization header must carry a
    Bearer token. The backend validates the token itself.

    Raises:
        HTTPException: 401 if there is no Bearer token
    """
    if not extract_token_from_header(request.headers.get("Authorization")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization token required",
        )
    return request.headers["Authorization"]


def admin_backend_headers(request: Request) -> Dict[str, str]:
    return build_forward_headers(
        request.headers,
        default_content_type=JSON_CONTENT_TYPE,
        allowed=("authorization", "user-agent"),
    )


# ============================================================================
# Image Proxy
# ============================================================================

@proxy_router.get("/api-proxy/{path:path}")
async def proxy_image(
    path: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    backend_url = join_url(settings.api_url_str, path)
    if request.url.query:
        backend_url = f"{backend_url}?{request.url.query}"

    logger.debug(f"Proxying image request from {request.url.path} to {backend_url}")

    headers = build_forward_headers(request.headers, allowed=("user-agent",))
    return await fetch_image(client, backend_url, headers)


# ============================================================================
# Files
# ============================================================================

@proxy_router.get("/api/files")
async def list_files(
    request: Request,
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    _auth: str = Depends(require_authorization_header),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    # empty values fall back to the defaults too
    params = {"page": page or DEFAULT_PAGE, "limit": limit or DEFAULT_PAGE_SIZE}
    if search:
        params["search"] = search

    return await forward_json(
        client,
        "GET",
        join_url(settings.backend_api_url_str, "/api/files"),
        build_forward_headers(request.headers, default_content_type=JSON_CONTENT_TYPE),
        params=params,
    )


@proxy_router.delete("/api/files/{file_id}")
async def delete_file(
    file_id: str,
    request: Request,
    _auth: str = Depends(require_authorization_header),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    return await forward_json(
        client,
        "DELETE",
        join_url(settings.backend_api_url_str, f"/api/files/{file_id}"),
        build_forward_headers(request.headers, default_content_type=JSON_CONTENT_TYPE),
    )


@proxy_router.post("/api/files/upload-article-image")
async def upload_article_image(
    request: Request,
    _auth: str = Depends(require_authorization_header),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Forward a multipart image upload from the rich text editor.

    The body is relayed byte for byte with its Content-Type so the
    multipart boundary stays valid.
    """
    body = await request.body()
    return await forward_json(
        client,
        "POST",
        join_url(settings.backend_api_url_str, "/files/upload-article-image"),
        build_forward_headers(request.headers),
        content=body,
    )


# ============================================================================
# Members
# ============================================================================

@proxy_router.get("/api/members")
async def list_members(
    request: Request,
    _auth: str = Depends(require_authorization_header),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    # pagination and filters pass through as-is
    return await forward_json(
        client,
        "GET",
        join_url(settings.backend_api_url_str, "/members"),
        build_forward_headers(request.headers, default_content_type=JSON_CONTENT_TYPE),
        params=list(request.query_params.multi_items()) or None,
    )


@proxy_router.post("/api/members")
async def create_member(
    request: Request,
    _auth: str = Depends(require_authorization_header),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    body = await request.body()
    return await forward_json(
        client,
        "POST",
        join_url(settings.backend_api_url_str, "/members"),
        build_forward_headers(request.headers, default_content_type=JSON_CONTENT_TYPE),
        content=body,
    )


# ============================================================================
# Password Management
# ============================================================================

@proxy_router.post("/api/admin/reset-passwords")
async def reset_passwords(
    body: ResetPasswordsRequest,
    request: Request,
    _auth: str = Depends(require_bearer_token),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    if body.type not in RESET_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid reset type. Must be 'all' or 'selected'",
        )
    if body.type == "selected" and body.memberIds is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Member IDs are required for selected reset",
        )

    payload = {"type": body.type}
    if body.type == "selected":
        payload["memberIds"] = body.memberIds

    result = await fetch_backend_json(
        client,
        "POST",
        join_url(settings.backend_api_url_str, "/password-management/reset-passwords"),
        admin_backend_headers(request),
        json_body=payload,
        failure_message="Failed to reset passwords",
    )

    logger.info("Member passwords reset", extra={"reset_type": body.type, "count": result.get("count")})
    return {
        "success": True,
        "count": result.get("count"),
        "message": "Passwords reset successfully",
    }


@proxy_router.get("/api/admin/password-list")
async def download_password_list(
    request: Request,
    _auth: str = Depends(require_bearer_token),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Relay the backend's plain text password reference list as a download.
    """
    url = join_url(settings.backend_api_url_str, "/password-management/password-list")
    response = await send_to_backend(client, "GET", url, admin_backend_headers(request))

    if response.is_error:
        logger.warning(f"Backend answered {response.status_code}", extra={"method": "GET", "url": url})
        raise HTTPException(
            status_code=response.status_code,
            detail="Failed to generate password list",
        )

    filename = f"password-reference-list-{datetime.now(timezone.utc).date().isoformat()}.txt"
    return PlainTextResponse(
        response.text,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@proxy_router.get("/api/admin/verify-passwords")
async def verify_passwords(
    request: Request,
    _auth: str = Depends(require_bearer_token),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    result = await fetch_backend_json(
        client,
        "GET",
        join_url(settings.backend_api_url_str, "/password-management/verify-passwords"),
        admin_backend_headers(request),
        failure_message="Failed to verify passwords",
    )
    return {
        "success": True,
        "correct": result.get("correct"),
        "incorrect": result.get("incorrect"),
        "missing": result.get("missing"),
        "message": "Password verification completed",
    }


# ============================================================================
# Administrators
# ============================================================================

@proxy_router.get("/api/admin/administrators")
async def list_administrators(
    request: Request,
    _auth: str = Depends(require_bearer_token),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    result = await fetch_backend_json(
        client,
        "GET",
        join_url(settings.backend_api_url_str, "/administrators"),
        admin_backend_headers(request),
        failure_message="Failed to fetch administrators",
    )
    return {"success": True, "data": result.get("administrators")}


@proxy_router.post("/api/admin/administrators")
async def create_administrator(
    body: CreateAdministratorRequest,
    request: Request,
    _auth: str = Depends(require_bearer_token),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    if not (body.first_name and body.last_name and body.email and body.password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="All fields are required",
        )

    result = await fetch_backend_json(
        client,
        "POST",
        join_url(settings.backend_api_url_str, "/administrators"),
        admin_backend_headers(request),
        json_body=body.model_dump(),
        failure_message="Failed to create administrator",
    )
    return {
        "success": True,
        "data": result.get("data"),
        "message": "Administrator created successfully",
    }


@proxy_router.patch("/api/admin/administrators/{admin_id}")
async def update_administrator(
    admin_id: str,
    body: UpdateAdministratorRequest,
    request: Request,
    _auth: str = Depends(require_bearer_token),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Partial update, sent to the backend as PUT with only the non-empty fields.
    """
    if not body.model_fields_set:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one field is required for update",
        )

    result = await fetch_backend_json(
        client,
        "PUT",
        join_url(settings.backend_api_url_str, f"/administrators/{admin_id}"),
        admin_backend_headers(request),
        json_body=body.changes(),
        failure_message="Failed to update administrator",
    )
    return {
        "success": True,
        "data": result.get("administrator"),
        "message": "Administrator updated successfully",
    }


@proxy_router.post("/api/admin/administrators/{admin_id}/reset-password")
async def reset_administrator_password(
    admin_id: str,
    request: Request,
    _auth: str = Depends(require_bearer_token),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    result = await fetch_backend_json(
        client,
        "POST",
        join_url(settings.backend_api_url_str, f"/administrators/{admin_id}/reset-password"),
        admin_backend_headers(request),
        failure_message="Failed to reset administrator password",
    )
    return {
        "success": True,
        "newPassword": result.get("password"),
        "message": result.get("message"),
    }
