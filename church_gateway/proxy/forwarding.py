"""
Backend Request Forwarding
==========================

Helpers shared by the proxy routes. A forwarded request carries only the
allow-listed headers; the backend's status code is relayed unchanged.
There are no retries.
"""

import logging
from typing import Any, Dict, Mapping, Optional

import httpx
from fastapi import HTTPException, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response

logger = logging.getLogger(__name__)

FORWARDED_HEADERS = ("authorization", "user-agent", "content-type")

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


def build_forward_headers(
    original_headers: Mapping[str, str],
    default_content_type: Optional[str] = None,
    allowed: tuple = FORWARDED_HEADERS,
) -> Dict[str, str]:
    """
    Build headers for a backend request.

    Args:
        original_headers: Inbound request headers (case-insensitive mapping)
        default_content_type: Content-Type to send when the caller sent none
        allowed: Lower-case header names that may be forwarded

    Returns:
        Headers dict for the backend request
    """
    headers = {}
    for name in allowed:
        value = original_headers.get(name)
        if value:
            headers[name.title()] = value

    if default_content_type and "Content-Type" not in headers:
        headers["Content-Type"] = default_content_type

    return headers


def join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


async def send_to_backend(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: Dict[str, str],
    **kwargs: Any,
) -> httpx.Response:
    """
    Send one backend request.

    Raises:
        HTTPException: 500 on network failure
    """
    try:
        return await client.request(method, url, headers=headers, **kwargs)
    except httpx.HTTPError as e:
        logger.error(
            f"Backend request failed: {e}",
            extra={"method": method, "url": url},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )


def _json_body(response: httpx.Response, method: str, url: str) -> Any:
    try:
        return response.json()
    except ValueError:
        logger.error(
            "Backend returned a non-JSON body",
            extra={"method": method, "url": url, "status_code": response.status_code},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )


def backend_error_message(payload: Any, default: str) -> str:
    """Pull the error text out of a backend body ({error: str} or {error: {message}})."""
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        if isinstance(error, str) and error:
            return error
    return default


async def forward_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: Dict[str, str],
    params: Optional[Any] = None,
    content: Optional[bytes] = None,
) -> Response:
    """
    Forward a request to a JSON backend and relay its response.

    Returns:
        The backend status code with its JSON body unchanged, or an empty
        body when the backend sent none.

    Raises:
        HTTPException: 500 on network failure or a non-JSON backend body
    """
    response = await send_to_backend(client, method, url, headers, params=params, content=content)

    if not response.content:
        return Response(status_code=response.status_code)

    payload = _json_body(response, method, url)

    if response.is_error:
        logger.warning(
            f"Backend answered {response.status_code}",
            extra={"method": method, "url": url},
        )

    return JSONResponse(content=payload, status_code=response.status_code)


async def fetch_backend_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: Dict[str, str],
    json_body: Optional[Dict[str, Any]] = None,
    failure_message: str = "Internal server error",
) -> Dict[str, Any]:
    """
    Call the backend for a route that reshapes the answer.

    Returns:
        The parsed JSON body of a 2xx answer ({} when empty)

    Raises:
        HTTPException: the backend's status with its error text (or
            failure_message) on a non-2xx answer; 500 on network failure or
            a non-JSON body
    """
    response = await send_to_backend(client, method, url, headers, json=json_body)

    payload = _json_body(response, method, url) if response.content else {}

    if response.is_error:
        logger.warning(
            f"Backend answered {response.status_code}",
            extra={"method": method, "url": url},
        )
        raise HTTPException(
            status_code=response.status_code,
            detail=backend_error_message(payload, failure_message),
        )

    return payload if isinstance(payload, dict) else {}


async def fetch_image(
    client: httpx.AsyncClient,
    url: str,
    headers: Dict[str, str],
) -> Response:
    """
    Fetch a binary resource and relay it with a long-lived cache header.

    Non-2xx backend answers become 404 "Image not found"; network failures
    become 500 "Internal Server Error". Both are plain text.
    """
    try:
        response = await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"Error proxying image request: {e}", extra={"url": url})
        return PlainTextResponse("Internal Server Error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if not response.is_success:
        logger.warning(
            f"Backend image request failed: {response.status_code}",
            extra={"url": url},
        )
        return PlainTextResponse("Image not found", status_code=status.HTTP_404_NOT_FOUND)

    content_type = response.headers.get("content-type") or "application/octet-stream"
    return Response(
        content=response.content,
        status_code=status.HTTP_200_OK,
        headers={
            "Content-Type": content_type,
            "Cache-Control": IMMUTABLE_CACHE_CONTROL,
        },
    )
