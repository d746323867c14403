"""Bid submission and listing."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from tutor_market_service.core.exceptions import ServiceError
from tutor_market_service.models import Role
from tutor_market_service.services.workflow_engine import is_finite_number

if TYPE_CHECKING:
    from tutor_market_service.models import Principal
    from tutor_market_service.services.market_store import MarketStore
    from tutor_market_service.services.workflow_engine import WorkflowEngine


class BidManager:
    """Validates bid payloads and hands them to the WorkflowEngine."""

    def __init__(
        self,
        store: MarketStore,
        workflow: WorkflowEngine,
        max_message_length: int,
    ) -> None:
        self._store = store
        self._workflow = workflow
        self._max_message_length = max_message_length

    async def submit_bid(
        self,
        principal: Principal,
        task_id: str,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Submit a bid on a task.

        Error precedence:
        1. UNAUTHORIZED — caller is not a tutor
        2. NOT_FOUND — task does not exist
        3. INVALID_PAYLOAD — amount missing or not a finite number, message not a string
        4. INVALID_AMOUNT — amount below zero
        """
        self._workflow.require_role(principal, Role.TUTOR, "submit bids")
        self._workflow.require_task(task_id)

        amount = data.get("amount")
        if not is_finite_number(amount):
            raise ServiceError("INVALID_PAYLOAD", "Field 'amount' must be a finite number", 400, {})

        message = data.get("message", "")
        if not isinstance(message, str):
            raise ServiceError("INVALID_PAYLOAD", "Field 'message' must be a string", 400, {})
        if len(message) > self._max_message_length:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Message must be at most {self._max_message_length} characters",
                400,
                {"max_length": self._max_message_length},
            )

        return self._workflow.place_bid(principal, task_id, amount, message)

    async def accept_bid(self, principal: Principal, task_id: str, bid_id: str) -> dict[str, Any]:
        """Accept a bid and return the payment created for the task."""
        return self._workflow.accept_bid(principal, task_id, bid_id)

    async def list_bids(self, task_id: str) -> list[dict[str, Any]]:
        """List all bids on a task in the order they were placed."""
        self._workflow.require_task(task_id)
        return self._store.list_entities("bids", lambda bid: bid["task_id"] == task_id)
