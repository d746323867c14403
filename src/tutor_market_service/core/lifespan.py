"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from tutor_market_service.clients.payment_provider_client import PaymentProviderClient
from tutor_market_service.config import get_settings
from tutor_market_service.core.state import init_app_state
from tutor_market_service.logging import get_logger, setup_logging
from tutor_market_service.services.bid_manager import BidManager
from tutor_market_service.services.identity_provider import IdentityProvider
from tutor_market_service.services.market_store import MarketStore
from tutor_market_service.services.payment_manager import PaymentManager
from tutor_market_service.services.task_manager import TaskManager
from tutor_market_service.services.token_signer import TokenSigner, ensure_signing_key
from tutor_market_service.services.token_validator import TokenValidator
from tutor_market_service.services.workflow_engine import WorkflowEngine

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    # Session tokens are signed with a key generated on first start
    ensure_signing_key(settings.auth.signing_key_path)
    signer = TokenSigner(
        issuer=settings.service.name,
        private_key_path=settings.auth.signing_key_path,
    )

    store = MarketStore(db_path=settings.database.path)
    state.store = store

    state.identity_provider = IdentityProvider(
        store=store,
        signer=signer,
        validator=TokenValidator(signer),
        token_ttl_seconds=settings.auth.token_ttl_seconds,
        password_hash_iterations=settings.auth.password_hash_iterations,
    )

    workflow = WorkflowEngine(store)
    state.workflow = workflow

    state.task_manager = TaskManager(
        store=store,
        workflow=workflow,
        max_title_length=settings.limits.max_title_length,
        max_description_length=settings.limits.max_description_length,
    )
    state.bid_manager = BidManager(
        store=store,
        workflow=workflow,
        max_message_length=settings.limits.max_message_length,
    )

    # HTTP client for the external payment provider
    provider_client = PaymentProviderClient(
        base_url=settings.payment_provider.base_url,
        checkout_path=settings.payment_provider.checkout_path,
        timeout_seconds=settings.payment_provider.timeout_seconds,
    )
    state.payment_manager = PaymentManager(
        store=store,
        workflow=workflow,
        provider_client=provider_client,
        currency=settings.payments.currency,
        tutor_visibility=settings.payments.tutor_visibility,
        allow_manual_settlement=settings.payments.allow_manual_settlement,
        webhook_secret=settings.payment_provider.webhook_secret,
    )
    state.payment_provider_client = provider_client

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": settings.database.path,
            "payment_provider_base_url": settings.payment_provider.base_url,
            "tutor_visibility": settings.payments.tutor_visibility,
            "allow_manual_settlement": settings.payments.allow_manual_settlement,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    store.close()
    await provider_client.close()
