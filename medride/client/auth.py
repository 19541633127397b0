"""Unauthenticated auth endpoints: sign-in and token refresh."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from medride.domain.entities import AuthTokens
from medride.domain.enums import UserRole
from medride.domain.exceptions import ServerError

from .base import decode_json, send
from .schemas import SigninRequest, TokenResponse, validate_request

logger = logging.getLogger(__name__)


def _parse_tokens(body: dict, status_code: int) -> AuthTokens:
    try:
        return TokenResponse.model_validate(body).to_entity()
    except PydanticValidationError as exc:
        raise ServerError(status_code, "Server returned no tokens") from exc


class AuthClient:
    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def signin(self, phone: str, role: UserRole = UserRole.DRIVER) -> AuthTokens:
        """POST /auth/signin.  Phone must be 10 digits (checked locally)."""
        request = validate_request(SigninRequest, phone=phone, role=role)
        response = await send(
            self.http, "POST", "/auth/signin", json=request.model_dump(mode="json")
        )
        body = decode_json(response)
        logger.info("Signed in as %s", request.role.value)
        return _parse_tokens(body, response.status_code)

    async def refresh_token(self, refresh_token: str) -> AuthTokens:
        """POST /auth/refresh-token.  Non-2xx raises ``ServerError``."""
        response = await send(
            self.http,
            "POST",
            "/auth/refresh-token",
            json={"refresh_token": refresh_token},
        )
        body = decode_json(response)
        return _parse_tokens(body, response.status_code)
