"""Task lifecycle state machine. Every write to tasks, bids and payments goes through here."""

from __future__ import annotations

import math
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from tutor_market_service.core.exceptions import ServiceError
from tutor_market_service.logging import get_logger
from tutor_market_service.models import Role
from tutor_market_service.services.market_store import (
    PaymentAlreadyPaidError,
    TaskAlreadyAcceptedError,
)

if TYPE_CHECKING:
    from tutor_market_service.models import Principal
    from tutor_market_service.services.market_store import MarketStore


def _now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def is_finite_number(value: object) -> bool:
    """Check if value is a finite int or float (not bool)."""
    if not isinstance(value, int | float) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def not_found(kind: str, entity_id: str) -> ServiceError:
    """Build the NOT_FOUND error for a dangling id."""
    return ServiceError(
        "NOT_FOUND",
        f"{kind.capitalize()} not found",
        404,
        {"kind": kind, "id": entity_id},
    )


class WorkflowEngine:
    """
    Enforces the Open -> Accepted -> Paid lifecycle of a task.

    The engine is the only component that writes tasks, bids and payments.
    Each public method checks its preconditions against the store and then
    commits; a rejected call leaves the store untouched.

    Invariants:
    - a task is accepted at most once, and its accepted bid belongs to it
    - exactly one payment exists per accepted task, created in the same
      transaction that sets accepted_bid_id, with the bid amount frozen
    - paid only moves from False to True
    """

    def __init__(self, store: MarketStore) -> None:
        self._store = store
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @staticmethod
    def require_role(principal: Principal, role: Role, action: str) -> None:
        if principal.role is not role:
            raise ServiceError(
                "UNAUTHORIZED",
                f"Only a {role.value} can {action}",
                403,
                {"role": principal.role.value},
            )

    def require_task(self, task_id: str) -> dict[str, Any]:
        """Load a task or raise NOT_FOUND."""
        task = self._store.get("tasks", task_id)
        if task is None:
            raise not_found("task", task_id)
        return task

    def require_payment(self, payment_id: str) -> dict[str, Any]:
        """Load a payment or raise NOT_FOUND."""
        payment = self._store.get("payments", payment_id)
        if payment is None:
            raise not_found("payment", payment_id)
        return payment

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def open_task(
        self,
        principal: Principal,
        title: str,
        description: str,
        due_date: str,
        budget: float | None,
    ) -> dict[str, Any]:
        """Post a new task owned by the calling student."""
        self.require_role(principal, Role.STUDENT, "post tasks")

        task_id = f"t-{uuid.uuid4()}"
        self._store.put(
            "tasks",
            {
                "task_id": task_id,
                "student_id": principal.id,
                "title": title,
                "description": description,
                "due_date": due_date,
                "budget": budget,
                "accepted_bid_id": None,
                "created_at": _now_iso(),
                "accepted_at": None,
            },
        )
        self._logger.info("Task opened", extra={"task_id": task_id, "student_id": principal.id})
        return self.require_task(task_id)

    def place_bid(
        self,
        principal: Principal,
        task_id: str,
        amount: float,
        message: str,
    ) -> dict[str, Any]:
        """
        Record a tutor's offer on a task.

        Error precedence:
        1. UNAUTHORIZED — caller is not a tutor
        2. NOT_FOUND — task does not exist
        3. INVALID_AMOUNT — amount below zero or not finite

        Bids on an already accepted task are kept as history.
        """
        self.require_role(principal, Role.TUTOR, "submit bids")
        task = self.require_task(task_id)

        if not is_finite_number(amount):
            raise ServiceError("INVALID_AMOUNT", "Bid amount must be a finite number", 400, {})
        if amount < 0:
            raise ServiceError(
                "INVALID_AMOUNT",
                "Bid amount must not be negative",
                400,
                {"amount": amount},
            )

        bid_id = f"bid-{uuid.uuid4()}"
        bid = {
            "bid_id": bid_id,
            "task_id": task_id,
            "tutor_id": principal.id,
            "amount": amount,
            "message": message,
            "created_at": _now_iso(),
        }
        self._store.put("bids", bid)

        if task["accepted_bid_id"] is not None:
            self._logger.info(
                "Bid recorded on accepted task",
                extra={"task_id": task_id, "bid_id": bid_id},
            )
        else:
            self._logger.info(
                "Bid placed",
                extra={"task_id": task_id, "bid_id": bid_id, "tutor_id": principal.id},
            )
        stored = self._store.get("bids", bid_id)
        if stored is None:
            msg = f"Bid {bid_id} not found after insert"
            raise RuntimeError(msg)
        return stored

    def accept_bid(self, principal: Principal, task_id: str, bid_id: str) -> dict[str, Any]:
        """
        Accept one bid for a task and create the task's payment.

        Error precedence:
        1. UNAUTHORIZED — caller is not a student
        2. NOT_FOUND — task does not exist
        3. UNAUTHORIZED — caller does not own the task
        4. NOT_FOUND — bid does not exist
        5. BID_TASK_MISMATCH — bid belongs to another task
        6. ALREADY_ACCEPTED — task already has an accepted bid (same bid included)

        Returns the new payment.
        """
        self.require_role(principal, Role.STUDENT, "accept bids")
        task = self.require_task(task_id)

        if task["student_id"] != principal.id:
            raise ServiceError(
                "UNAUTHORIZED",
                "Only the student who posted the task can accept bids",
                403,
                {},
            )

        bid = self._store.get("bids", bid_id)
        if bid is None:
            raise not_found("bid", bid_id)

        if bid["task_id"] != task_id:
            raise ServiceError(
                "BID_TASK_MISMATCH",
                "Bid does not belong to this task",
                409,
                {"task_id": task_id, "bid_id": bid_id},
            )

        if task["accepted_bid_id"] is not None:
            raise self._already_accepted(task_id, task["accepted_bid_id"])

        accepted_at = _now_iso()
        payment_id = f"pay-{uuid.uuid4()}"
        try:
            self._store.commit_acceptance(
                task_id,
                bid_id,
                accepted_at,
                {
                    "payment_id": payment_id,
                    "task_id": task_id,
                    "bid_id": bid_id,
                    "student_id": task["student_id"],
                    "tutor_id": bid["tutor_id"],
                    "amount": bid["amount"],
                    "paid": False,
                    "created_at": accepted_at,
                    "paid_at": None,
                    "checkout_ref": None,
                },
            )
        except TaskAlreadyAcceptedError as exc:
            current = self.require_task(task_id)
            raise self._already_accepted(task_id, current["accepted_bid_id"]) from exc

        self._logger.info(
            "Bid accepted",
            extra={
                "task_id": task_id,
                "bid_id": bid_id,
                "payment_id": payment_id,
                "amount": bid["amount"],
            },
        )
        return self.require_payment(payment_id)

    @staticmethod
    def _already_accepted(task_id: str, accepted_bid_id: str | None) -> ServiceError:
        return ServiceError(
            "ALREADY_ACCEPTED",
            "Task already has an accepted bid",
            409,
            {"task_id": task_id, "accepted_bid_id": accepted_bid_id},
        )

    def mark_paid(self, principal: Principal, payment_id: str) -> dict[str, Any]:
        """
        Settle a payment on behalf of the student who owns its task.

        Error precedence:
        1. UNAUTHORIZED — caller is not a student
        2. NOT_FOUND — payment does not exist
        3. UNAUTHORIZED — caller does not own the payment's task
        4. ALREADY_PAID — payment is already settled
        """
        self.require_role(principal, Role.STUDENT, "mark payments as paid")
        payment = self.require_payment(payment_id)

        task = self.require_task(payment["task_id"])
        if task["student_id"] != principal.id:
            raise ServiceError(
                "UNAUTHORIZED",
                "Only the student who owns the task can mark its payment as paid",
                403,
                {},
            )

        return self._settle(payment, source="manual")

    def confirm_checkout(self, checkout_ref: str) -> dict[str, Any]:
        """
        Settle the payment behind a provider checkout.

        Error precedence:
        1. NOT_FOUND — no payment carries this checkout reference
        2. ALREADY_PAID — payment is already settled
        """
        payment = self._store.get_payment_by_checkout_ref(checkout_ref)
        if payment is None:
            raise not_found("checkout", checkout_ref)
        return self._settle(payment, source="provider")

    def _settle(self, payment: dict[str, Any], source: str) -> dict[str, Any]:
        payment_id = str(payment["payment_id"])
        if payment["paid"]:
            raise self._already_paid(payment_id)

        try:
            self._store.commit_settlement(payment_id, _now_iso())
        except PaymentAlreadyPaidError as exc:
            raise self._already_paid(payment_id) from exc

        self._logger.info(
            "Payment settled",
            extra={"payment_id": payment_id, "task_id": payment["task_id"], "source": source},
        )
        return self.require_payment(payment_id)

    @staticmethod
    def _already_paid(payment_id: str) -> ServiceError:
        return ServiceError(
            "ALREADY_PAID",
            "Payment is already marked as paid",
            409,
            {"payment_id": payment_id},
        )
