"""
Configuration management for the tutor market service.

Loads configuration from YAML with ZERO defaults.
Every value must be explicitly specified or startup fails.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class DatabaseConfig(BaseModel):
    """Database configuration."""

    model_config = ConfigDict(extra="forbid")
    path: str


class AuthConfig(BaseModel):
    """Session token and password hashing configuration."""

    model_config = ConfigDict(extra="forbid")
    signing_key_path: str
    token_ttl_seconds: int
    password_hash_iterations: int


class PaymentsConfig(BaseModel):
    """Payment tracking policy."""

    model_config = ConfigDict(extra="forbid")
    currency: str
    tutor_visibility: Literal["all", "accepted_bidder"]
    allow_manual_settlement: bool


class PaymentProviderConfig(BaseModel):
    """External payment provider connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    checkout_path: str
    timeout_seconds: int
    webhook_secret: str


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class LimitsConfig(BaseModel):
    """Input size limits."""

    model_config = ConfigDict(extra="forbid")
    max_title_length: int
    max_description_length: int
    max_message_length: int


class Settings(BaseModel):
    """
    Root configuration container.

    All fields are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    auth: AuthConfig
    payments: PaymentsConfig
    payment_provider: PaymentProviderConfig
    request: RequestConfig
    limits: LimitsConfig


def get_config_path() -> Path:
    """Determine configuration file path from CONFIG_PATH or the working directory."""
    configured = os.environ.get("CONFIG_PATH")
    if configured:
        return Path(configured)
    return Path.cwd() / "config.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and validate settings. Cached until clear_settings_cache() is called."""
    config_path = get_config_path()
    raw = yaml.safe_load(config_path.read_text())
    if not isinstance(raw, dict):
        msg = f"Invalid config file: {config_path}"
        raise ValueError(msg)
    return Settings(**raw)


def clear_settings_cache() -> None:
    """Forget cached settings so the next get_settings() re-reads the file."""
    get_settings.cache_clear()
