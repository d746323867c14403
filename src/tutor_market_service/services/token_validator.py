"""Session token validation and principal extraction."""

from __future__ import annotations

import base64
import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from joserfc.errors import JoseError

from tutor_market_service.core.exceptions import ServiceError
from tutor_market_service.models import Principal, Role

if TYPE_CHECKING:
    from tutor_market_service.services.token_signer import TokenSigner


def decode_base64url_json(part: str, section_name: str) -> dict[str, Any]:
    """Decode a base64url JSON object from a JWS part."""
    padded = part + "=" * (-len(part) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded)
    except Exception as exc:
        raise ServiceError(
            "INVALID_TOKEN",
            f"Token {section_name} is not valid base64url",
            401,
            {},
        ) from exc

    try:
        value = json.loads(decoded)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_TOKEN",
            f"Token {section_name} is not valid JSON",
            401,
            {},
        ) from exc

    if not isinstance(value, dict):
        raise ServiceError(
            "INVALID_TOKEN",
            f"Token {section_name} must be a JSON object",
            401,
            {},
        )
    return value


class TokenValidator:
    """Validates session tokens and turns them back into a Principal."""

    def __init__(self, signer: TokenSigner) -> None:
        self._signer = signer

    def validate(self, token: str) -> Principal:
        """
        Verify a session token and return the principal it carries.

        Error precedence:
        1. INVALID_TOKEN — empty or not three-part compact JWS
        2. INVALID_TOKEN — signature does not verify with the service key
        3. INVALID_TOKEN — payload missing claims, unknown role, or expired

        Raises:
            ServiceError: INVALID_TOKEN
        """
        if not token:
            raise ServiceError("INVALID_TOKEN", "Token must be a non-empty string", 401, {})

        parts = token.split(".")
        if len(parts) != 3:
            raise ServiceError(
                "INVALID_TOKEN",
                "Token must be in JWS compact serialization format (header.payload.signature)",
                401,
                {},
            )

        header = decode_base64url_json(parts[0], "header")
        if header.get("kid") != self._signer.issuer:
            raise ServiceError("INVALID_TOKEN", "Token was not issued by this service", 401, {})

        try:
            payload_bytes = self._signer.verify(token)
        except (JoseError, ValueError) as exc:
            raise ServiceError(
                "INVALID_TOKEN",
                "Token signature verification failed",
                401,
                {},
            ) from exc

        try:
            payload = json.loads(payload_bytes)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ServiceError("INVALID_TOKEN", "Token payload is not valid JSON", 401, {}) from exc
        if not isinstance(payload, dict):
            raise ServiceError("INVALID_TOKEN", "Token payload must be a JSON object", 401, {})

        for claim in ("sub", "name", "role", "exp"):
            if claim not in payload:
                raise ServiceError("INVALID_TOKEN", f"Token is missing claim: {claim}", 401, {})

        expires_at = payload["exp"]
        if not isinstance(expires_at, int) or isinstance(expires_at, bool):
            raise ServiceError("INVALID_TOKEN", "Token exp claim must be an integer", 401, {})
        if datetime.now(UTC).timestamp() >= expires_at:
            raise ServiceError("INVALID_TOKEN", "Token has expired", 401, {})

        try:
            role = Role(payload["role"])
        except ValueError as exc:
            raise ServiceError("INVALID_TOKEN", "Token carries an unknown role", 401, {}) from exc

        return Principal(id=str(payload["sub"]), name=str(payload["name"]), role=role)
