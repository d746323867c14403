"""Shared test helpers for configuration and session tokens."""

from __future__ import annotations

import base64
import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

WEBHOOK_SECRET = "test-webhook-secret"


def make_config_yaml(
    tmp_path: Path,
    *,
    tutor_visibility: str = "all",
    allow_manual_settlement: bool = True,
    max_body_size: int = 1048576,
) -> str:
    """Render a complete service config rooted in tmp_path."""
    return f"""\
service:
  name: "tutor-market"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{tmp_path / "logs"}"
database:
  path: "{tmp_path / "market.db"}"
auth:
  signing_key_path: "{tmp_path / "keys" / "session.pem"}"
  token_ttl_seconds: 3600
  password_hash_iterations: 1000
payments:
  currency: "USD"
  tutor_visibility: "{tutor_visibility}"
  allow_manual_settlement: {"true" if allow_manual_settlement else "false"}
payment_provider:
  base_url: "http://localhost:8090"
  checkout_path: "/checkouts"
  timeout_seconds: 5
  webhook_secret: "{WEBHOOK_SECRET}"
request:
  max_body_size: {max_body_size}
limits:
  max_title_length: 200
  max_description_length: 10000
  max_message_length: 2000
"""


def write_config(tmp_path: Path, **overrides: Any) -> Path:
    """Write a config file into tmp_path and return its path."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(make_config_yaml(tmp_path, **overrides))
    return config_path


def make_fake_jws(payload: dict[str, Any], kid: str = "tutor-market") -> str:
    """Build a structurally valid but unsigned JWS (for format-only tests)."""
    header = (
        base64.urlsafe_b64encode(json.dumps({"alg": "EdDSA", "kid": kid}).encode())
        .rstrip(b"=")
        .decode()
    )
    body = base64.urlsafe_b64encode(json.dumps(payload).encode()).rstrip(b"=").decode()
    signature = base64.urlsafe_b64encode(b"fake-signature").rstrip(b"=").decode()
    return f"{header}.{body}.{signature}"


def tamper_jws(token: str) -> str:
    """Alter the payload of a JWS after signing (creates invalid signature)."""
    parts = token.split(".")
    payload_bytes = base64.urlsafe_b64decode(parts[1] + "==")
    payload = json.loads(payload_bytes)
    payload["role"] = "student" if payload.get("role") == "tutor" else "tutor"
    new_payload = base64.urlsafe_b64encode(json.dumps(payload).encode()).rstrip(b"=").decode()
    return f"{parts[0]}.{new_payload}.{parts[2]}"
