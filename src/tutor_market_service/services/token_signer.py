"""Ed25519 JWS signer for session tokens."""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    load_pem_private_key,
)
from joserfc import jws
from joserfc.jwk import OKPKey


def ensure_signing_key(private_key_path: str) -> None:
    """Generate and persist an Ed25519 private key if none exists at the path yet."""
    key_file = Path(private_key_path)
    if key_file.exists():
        return
    key = Ed25519PrivateKey.generate()
    pem = key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())
    key_file.parent.mkdir(parents=True, exist_ok=True)
    key_file.write_bytes(pem)


class TokenSigner:
    """
    Creates and verifies JWS compact tokens with the service's Ed25519 key.

    The service is both issuer and verifier of its session tokens, so a
    single key pair is loaded from PEM and used in both directions.
    """

    def __init__(self, issuer: str, private_key_path: str) -> None:
        self._issuer = issuer

        pem_data = Path(private_key_path).read_bytes()
        private_key = load_pem_private_key(pem_data, password=None)
        if not isinstance(private_key, Ed25519PrivateKey):
            msg = "Signing key must be an Ed25519 private key"
            raise ValueError(msg)

        raw_private = private_key.private_bytes_raw()
        raw_public = private_key.public_key().public_bytes_raw()

        jwk_dict: dict[str, str | list[str]] = {
            "kty": "OKP",
            "crv": "Ed25519",
            "d": base64.urlsafe_b64encode(raw_private).rstrip(b"=").decode(),
            "x": base64.urlsafe_b64encode(raw_public).rstrip(b"=").decode(),
        }
        self._key = OKPKey.import_key(jwk_dict)

    @property
    def issuer(self) -> str:
        return self._issuer

    def sign(self, payload: dict[str, Any]) -> str:
        """
        Create a JWS compact serialization token.

        Args:
            payload: The JWS payload as a dict.

        Returns:
            JWS compact serialization string (header.payload.signature)
        """
        protected = {"alg": "EdDSA", "kid": self._issuer}
        payload_bytes = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
        return jws.serialize_compact(protected, payload_bytes, self._key, algorithms=["EdDSA"])

    def verify(self, token: str) -> bytes:
        """
        Verify a token's signature and return the raw payload bytes.

        Raises joserfc errors (or ValueError for structurally broken input)
        when the token was not produced by this signer.
        """
        obj = jws.deserialize_compact(token, self._key, algorithms=["EdDSA"])
        return obj.payload
