"""
Shared HTTP plumbing for the backend clients.

Every request goes through ``send`` so transport failures become
``NetworkError`` and through ``decode_json`` so non-2xx responses become
``ServerError`` carrying the server's ``message`` when it sent one.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from medride.config import Settings
from medride.domain.exceptions import NetworkError, ServerError

logger = logging.getLogger(__name__)

JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def build_http_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """AsyncClient bound to the backend with a bounded timeout on every call."""
    return httpx.AsyncClient(
        base_url=settings.backend_url,
        timeout=settings.request_timeout_seconds,
        headers=JSON_HEADERS,
        transport=transport,
    )


async def send(
    http: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    headers: Optional[dict[str, str]] = None,
    json: Any = None,
    params: Optional[dict[str, Any]] = None,
) -> httpx.Response:
    try:
        response = await http.request(
            method, path, headers=headers, json=json, params=params
        )
    except httpx.TimeoutException as exc:
        logger.warning("%s %s timed out", method, path)
        raise NetworkError(
            "Request timed out. Please check your connection and try again."
        ) from exc
    except httpx.TransportError as exc:
        logger.warning("%s %s failed: %s", method, path, exc)
        raise NetworkError() from exc

    logger.debug("%s %s -> %d", method, path, response.status_code)
    return response


def error_message(response: httpx.Response) -> Optional[str]:
    """Server-provided ``message`` (or ``detail``), if the body is JSON."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if isinstance(message, str) and message:
            return message
    return None


def decode_json(response: httpx.Response) -> dict[str, Any]:
    if not response.is_success:
        raise ServerError(response.status_code, error_message(response))
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError:
        raise ServerError(
            response.status_code, "Server returned a non-JSON response"
        )
    if not isinstance(body, dict):
        raise ServerError(response.status_code, "Unexpected response from server")
    return body
