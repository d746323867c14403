"""Shared request validation helpers for the routers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from tutor_market_service.core.exceptions import ServiceError
from tutor_market_service.core.state import get_app_state

if TYPE_CHECKING:
    from fastapi import Request

    from tutor_market_service.models import Principal


def _reject_constant(name: str) -> Any:
    msg = f"Non-finite number {name} is not valid JSON"
    raise ValueError(msg)


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure.

    NaN and Infinity literals are rejected; they cannot be stored or rendered.
    """
    try:
        data = json.loads(raw_body, parse_constant=_reject_constant)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


def extract_bearer_token(authorization: str | None) -> str:
    """Extract the session token from an Authorization header."""
    if authorization is None:
        raise ServiceError(
            "INVALID_TOKEN",
            "Missing Authorization header",
            401,
            {},
        )

    if not authorization.startswith("Bearer "):
        raise ServiceError(
            "INVALID_TOKEN",
            "Authorization header must use Bearer scheme",
            401,
            {},
        )

    token = authorization[len("Bearer ") :]
    if not token:
        raise ServiceError(
            "INVALID_TOKEN",
            "Bearer token must not be empty",
            401,
            {},
        )

    return token


def current_principal(request: Request) -> Principal:
    """Resolve the caller of an authenticated endpoint."""
    token = extract_bearer_token(request.headers.get("authorization"))

    state = get_app_state()
    if state.identity_provider is None:
        msg = "IdentityProvider not initialized"
        raise RuntimeError(msg)

    return state.identity_provider.authenticate(token)
