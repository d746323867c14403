"""Async HTTP client for the external payment provider."""

from __future__ import annotations

from typing import Any

import httpx

from tutor_market_service.core.exceptions import ServiceError
from tutor_market_service.logging import get_logger


class PaymentProviderClient:
    """
    Client for opening checkouts with the payment provider.

    The provider never moves money on our behalf synchronously: a checkout
    is opened here, and the provider later reports the outcome through the
    confirmation webhook, keyed by the checkout reference returned now.
    """

    def __init__(
        self,
        base_url: str,
        checkout_path: str,
        timeout_seconds: int,
    ) -> None:
        self._base_url = base_url
        self._checkout_path = checkout_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def create_checkout(self, payment: dict[str, Any], currency: str) -> str:
        """
        Open a checkout for a payment.

        Args:
            payment: The payment entity (payment_id, task_id, amount are sent)
            currency: ISO currency code the amount is expressed in

        Returns:
            The provider's checkout reference

        Raises:
            ServiceError: PAYMENT_PROVIDER_UNAVAILABLE (502) on connection/timeout
                errors, unexpected statuses, or a response without checkout_ref
        """
        logger = get_logger(__name__)
        payment_id = payment["payment_id"]

        try:
            response = await self._client.post(
                self._checkout_path,
                json={
                    "payment_id": payment_id,
                    "task_id": payment["task_id"],
                    "amount": payment["amount"],
                    "currency": currency,
                },
            )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning(
                "Payment provider connection failed",
                extra={"error": str(exc), "payment_id": payment_id, "base_url": self._base_url},
            )
            raise ServiceError(
                error="PAYMENT_PROVIDER_UNAVAILABLE",
                message="Cannot connect to payment provider",
                status_code=502,
                details={},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Payment provider HTTP error",
                extra={"error": str(exc), "payment_id": payment_id, "base_url": self._base_url},
            )
            raise ServiceError(
                error="PAYMENT_PROVIDER_UNAVAILABLE",
                message="Payment provider request failed",
                status_code=502,
                details={},
            ) from exc

        if response.status_code not in (200, 201):
            logger.warning(
                "Payment provider unexpected status on checkout",
                extra={
                    "status_code": response.status_code,
                    "payment_id": payment_id,
                    "base_url": self._base_url,
                },
            )
            raise ServiceError(
                error="PAYMENT_PROVIDER_UNAVAILABLE",
                message="Payment provider returned unexpected status",
                status_code=502,
                details={},
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ServiceError(
                error="PAYMENT_PROVIDER_UNAVAILABLE",
                message="Payment provider returned a non-JSON response",
                status_code=502,
                details={},
            ) from exc

        checkout_ref = body.get("checkout_ref") if isinstance(body, dict) else None
        if not isinstance(checkout_ref, str) or not checkout_ref:
            raise ServiceError(
                error="PAYMENT_PROVIDER_UNAVAILABLE",
                message="Payment provider response is missing checkout_ref",
                status_code=502,
                details={},
            )
        return checkout_ref

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
