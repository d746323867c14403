"""User registration, login, and principal resolution."""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from tutor_market_service.core.exceptions import ServiceError
from tutor_market_service.logging import get_logger
from tutor_market_service.models import Principal, Role
from tutor_market_service.services.market_store import DuplicateEmailError

if TYPE_CHECKING:
    from tutor_market_service.services.market_store import MarketStore
    from tutor_market_service.services.token_signer import TokenSigner
    from tutor_market_service.services.token_validator import TokenValidator

_HASH_SCHEME = "pbkdf2_sha256"
_MIN_PASSWORD_LENGTH = 8


def _now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def hash_password(password: str, iterations: int) -> str:
    """Hash a password as ``pbkdf2_sha256$<iterations>$<salt>$<digest>``."""
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)
    salt_b64 = base64.b64encode(salt).decode()
    digest_b64 = base64.b64encode(digest).decode()
    return f"{_HASH_SCHEME}${iterations}${salt_b64}${digest_b64}"


def verify_password(password: str, encoded: str) -> bool:
    """Check a password against an encoded hash in constant time."""
    try:
        scheme, iterations_text, salt_b64, digest_b64 = encoded.split("$")
        iterations = int(iterations_text)
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(digest_b64)
    except ValueError:
        return False
    if scheme != _HASH_SCHEME:
        return False
    actual = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)
    return hmac.compare_digest(actual, expected)


def _require_text(data: dict[str, Any], field_name: str) -> str:
    value = data.get(field_name)
    if not isinstance(value, str) or not value.strip():
        raise ServiceError(
            "INVALID_PAYLOAD",
            f"Field '{field_name}' must be a non-empty string",
            400,
            {},
        )
    return value


class IdentityProvider:
    """
    Issues principals to registered users.

    Users are kept in the shared store. A successful register or login
    returns the principal together with a signed session token; every
    later request presents that token and is resolved back to a principal
    by authenticate().
    """

    def __init__(
        self,
        store: MarketStore,
        signer: TokenSigner,
        validator: TokenValidator,
        token_ttl_seconds: int,
        password_hash_iterations: int,
    ) -> None:
        self._store = store
        self._signer = signer
        self._validator = validator
        self._token_ttl_seconds = token_ttl_seconds
        self._password_hash_iterations = password_hash_iterations
        self._logger = get_logger(__name__)

    def _issue(self, principal: Principal) -> dict[str, Any]:
        issued_at = int(datetime.now(UTC).timestamp())
        token = self._signer.sign(
            {
                "sub": principal.id,
                "name": principal.name,
                "role": principal.role.value,
                "iat": issued_at,
                "exp": issued_at + self._token_ttl_seconds,
            }
        )
        return {"principal": principal.to_dict(), "token": token}

    def register(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Register a new user and sign them in.

        Raises:
            ServiceError: INVALID_PAYLOAD, EMAIL_IN_USE
        """
        name = _require_text(data, "name").strip()
        email = _require_text(data, "email").strip().lower()
        password = _require_text(data, "password")
        role_value = _require_text(data, "role")

        if "@" not in email:
            raise ServiceError("INVALID_PAYLOAD", "Field 'email' must be an email address", 400, {})
        if len(password) < _MIN_PASSWORD_LENGTH:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Password must be at least {_MIN_PASSWORD_LENGTH} characters",
                400,
                {},
            )
        try:
            role = Role(role_value)
        except ValueError as exc:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "Field 'role' must be 'student' or 'tutor'",
                400,
                {},
            ) from exc

        if self._store.get_user_by_email(email) is not None:
            raise ServiceError("EMAIL_IN_USE", "Email already in use", 409, {})

        user_id = f"u-{uuid.uuid4()}"
        try:
            self._store.put(
                "users",
                {
                    "user_id": user_id,
                    "name": name,
                    "email": email,
                    "role": role.value,
                    "password_hash": hash_password(password, self._password_hash_iterations),
                    "registered_at": _now_iso(),
                },
            )
        except DuplicateEmailError as exc:
            raise ServiceError("EMAIL_IN_USE", "Email already in use", 409, {}) from exc

        self._logger.info("User registered", extra={"user_id": user_id, "role": role.value})
        return self._issue(Principal(id=user_id, name=name, role=role))

    def login(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Sign in an existing user.

        Unknown email and wrong password are indistinguishable to the caller.

        Raises:
            ServiceError: INVALID_PAYLOAD, INVALID_CREDENTIALS
        """
        email = _require_text(data, "email").strip().lower()
        password = _require_text(data, "password")

        user = self._store.get_user_by_email(email)
        if user is None or not verify_password(password, str(user["password_hash"])):
            raise ServiceError("INVALID_CREDENTIALS", "Invalid credentials", 401, {})

        principal = Principal(id=user["user_id"], name=user["name"], role=Role(user["role"]))
        return self._issue(principal)

    def authenticate(self, token: str) -> Principal:
        """
        Resolve a bearer token to the principal of a still-registered user.

        Raises:
            ServiceError: INVALID_TOKEN
        """
        claimed = self._validator.validate(token)
        user = self._store.get("users", claimed.id)
        if user is None:
            raise ServiceError("INVALID_TOKEN", "Token subject is not a registered user", 401, {})
        return Principal(id=user["user_id"], name=user["name"], role=Role(user["role"]))
