"""Payment settlement, visibility, and provider checkout."""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING, Any

from tutor_market_service.core.exceptions import ServiceError
from tutor_market_service.logging import get_logger
from tutor_market_service.models import Role

if TYPE_CHECKING:
    from tutor_market_service.clients.payment_provider_client import PaymentProviderClient
    from tutor_market_service.models import Principal
    from tutor_market_service.services.market_store import MarketStore
    from tutor_market_service.services.workflow_engine import WorkflowEngine


class PaymentManager:
    """
    Acts on payments the WorkflowEngine created at acceptance time.

    A payment is settled either manually by the student who owns the task
    (when allow_manual_settlement is on) or by the provider's confirmation
    callback for a checkout opened through create_checkout().

    Tutor visibility:
    - "all": every tutor sees every payment
    - "accepted_bidder": a tutor sees only payments for their accepted bids
    """

    def __init__(
        self,
        store: MarketStore,
        workflow: WorkflowEngine,
        provider_client: PaymentProviderClient,
        currency: str,
        tutor_visibility: str,
        allow_manual_settlement: bool,
        webhook_secret: str,
    ) -> None:
        self._store = store
        self._workflow = workflow
        self._provider_client = provider_client
        self._currency = currency
        self._tutor_visibility = tutor_visibility
        self._allow_manual_settlement = allow_manual_settlement
        self._webhook_secret = webhook_secret
        self._logger = get_logger(__name__)

    def set_provider_client(self, provider_client: PaymentProviderClient) -> None:
        """Swap the payment provider client."""
        self._provider_client = provider_client

    def _can_view(self, principal: Principal, payment: dict[str, Any]) -> bool:
        if principal.is_student:
            return bool(payment["student_id"] == principal.id)
        if self._tutor_visibility == "all":
            return True
        return bool(payment["tutor_id"] == principal.id)

    def _require_owned_payment(self, principal: Principal, payment_id: str, action: str) -> dict[str, Any]:
        self._workflow.require_role(principal, Role.STUDENT, action)
        payment = self._workflow.require_payment(payment_id)
        task = self._workflow.require_task(payment["task_id"])
        if task["student_id"] != principal.id:
            raise ServiceError(
                "UNAUTHORIZED",
                f"Only the student who owns the task can {action}",
                403,
                {},
            )
        return payment

    async def mark_paid(self, principal: Principal, payment_id: str) -> dict[str, Any]:
        """
        Mark a payment as paid.

        Error precedence:
        1. UNAUTHORIZED — caller is not a student
        2. MANUAL_SETTLEMENT_DISABLED — settlement is provider-only
        3. NOT_FOUND / UNAUTHORIZED / ALREADY_PAID — from the WorkflowEngine
        """
        self._workflow.require_role(principal, Role.STUDENT, "mark payments as paid")
        if not self._allow_manual_settlement:
            raise ServiceError(
                "MANUAL_SETTLEMENT_DISABLED",
                "Payments can only be settled through the payment provider",
                409,
                {"payment_id": payment_id},
            )
        return self._workflow.mark_paid(principal, payment_id)

    async def list_payments(self, principal: Principal) -> list[dict[str, Any]]:
        """List the payments visible to the caller, in creation order."""
        return self._store.list_entities(
            "payments",
            lambda payment: self._can_view(principal, payment),
        )

    async def get_payment_status(self, principal: Principal, task_id: str) -> dict[str, Any]:
        """
        Report where a task stands in the payment flow.

        The payment is None while the task is still open.
        """
        task = self._workflow.require_task(task_id)
        payment = self._store.get_payment_for_task(task_id)

        if principal.is_student:
            allowed = task["student_id"] == principal.id
        elif self._tutor_visibility == "all":
            allowed = True
        else:
            allowed = payment is not None and payment["tutor_id"] == principal.id

        if not allowed:
            raise ServiceError(
                "UNAUTHORIZED",
                "Not allowed to view the payment for this task",
                403,
                {},
            )

        return {"task_id": task_id, "status": task["status"], "payment": payment}

    async def create_checkout(self, principal: Principal, payment_id: str) -> dict[str, Any]:
        """
        Open a provider checkout for an unpaid payment.

        The checkout reference is stored once; asking again returns the
        stored payment without contacting the provider.

        Error precedence:
        1. UNAUTHORIZED — caller is not a student
        2. NOT_FOUND — payment does not exist
        3. UNAUTHORIZED — caller does not own the task
        4. ALREADY_PAID — payment is already settled
        5. PAYMENT_PROVIDER_UNAVAILABLE — provider call failed
        """
        payment = self._require_owned_payment(principal, payment_id, "open a checkout")

        if payment["paid"]:
            raise ServiceError(
                "ALREADY_PAID",
                "Payment is already marked as paid",
                409,
                {"payment_id": payment_id},
            )

        if payment["checkout_ref"] is not None:
            return payment

        checkout_ref = await self._provider_client.create_checkout(payment, self._currency)

        # A concurrent call may have attached its reference first; keep that one.
        if self._store.attach_checkout_ref(payment_id, checkout_ref):
            self._logger.info(
                "Checkout opened",
                extra={"payment_id": payment_id, "checkout_ref": checkout_ref},
            )
        return self._workflow.require_payment(payment_id)

    async def on_payment_confirmed(self, presented_secret: str | None, data: dict[str, Any]) -> dict[str, Any]:
        """
        Settle a payment from the provider's confirmation callback.

        Error precedence:
        1. INVALID_TOKEN — webhook secret missing or wrong
        2. INVALID_PAYLOAD — checkout_ref missing or not a string
        3. NOT_FOUND — unknown checkout reference
        4. ALREADY_PAID — payment is already settled
        """
        if presented_secret is None or not hmac.compare_digest(
            presented_secret.encode(), self._webhook_secret.encode()
        ):
            raise ServiceError("INVALID_TOKEN", "Webhook secret does not match", 401, {})

        checkout_ref = data.get("checkout_ref")
        if not isinstance(checkout_ref, str) or not checkout_ref:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "Field 'checkout_ref' must be a non-empty string",
                400,
                {},
            )

        return self._workflow.confirm_checkout(checkout_ref)
