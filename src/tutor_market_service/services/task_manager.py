"""Task posting and querying."""

from __future__ import annotations

import re
from datetime import date
from typing import TYPE_CHECKING, Any

from tutor_market_service.core.exceptions import ServiceError
from tutor_market_service.models import Role, TaskStatus
from tutor_market_service.services.workflow_engine import is_finite_number

if TYPE_CHECKING:
    from tutor_market_service.models import Principal
    from tutor_market_service.services.market_store import MarketStore
    from tutor_market_service.services.workflow_engine import WorkflowEngine

_DUE_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_VALID_STATUSES = frozenset(status.value for status in TaskStatus)


class TaskManager:
    """
    Creates tasks on behalf of students and answers task queries.

    Field validation happens here; the lifecycle write itself is delegated
    to the WorkflowEngine. Reads go straight to the store.
    """

    def __init__(
        self,
        store: MarketStore,
        workflow: WorkflowEngine,
        max_title_length: int,
        max_description_length: int,
    ) -> None:
        self._store = store
        self._workflow = workflow
        self._max_title_length = max_title_length
        self._max_description_length = max_description_length

    async def create_task(self, principal: Principal, data: dict[str, Any]) -> dict[str, Any]:
        """
        Post a new task.

        Error precedence:
        1. UNAUTHORIZED — caller is not a student
        2. INVALID_PAYLOAD — title, description or due_date missing or malformed
        3. INVALID_PAYLOAD — budget present but not a finite number
        4. INVALID_AMOUNT — budget below zero
        """
        self._workflow.require_role(principal, Role.STUDENT, "post tasks")

        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ServiceError("INVALID_PAYLOAD", "Field 'title' must be a non-empty string", 400, {})
        if len(title) > self._max_title_length:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Title must be at most {self._max_title_length} characters",
                400,
                {"max_length": self._max_title_length},
            )

        description = data.get("description", "")
        if not isinstance(description, str):
            raise ServiceError("INVALID_PAYLOAD", "Field 'description' must be a string", 400, {})
        if len(description) > self._max_description_length:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Description must be at most {self._max_description_length} characters",
                400,
                {"max_length": self._max_description_length},
            )

        due_date = data.get("due_date")
        if not isinstance(due_date, str) or _DUE_DATE_RE.match(due_date) is None:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "Field 'due_date' must be a date in YYYY-MM-DD format",
                400,
                {},
            )
        try:
            date.fromisoformat(due_date)
        except ValueError as exc:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "Field 'due_date' is not a valid calendar date",
                400,
                {},
            ) from exc

        budget = data.get("budget")
        if budget is not None:
            if not is_finite_number(budget):
                raise ServiceError(
                    "INVALID_PAYLOAD",
                    "Field 'budget' must be a finite number",
                    400,
                    {},
                )
            if budget < 0:
                raise ServiceError(
                    "INVALID_AMOUNT",
                    "Budget must not be negative",
                    400,
                    {"budget": budget},
                )

        return self._workflow.open_task(principal, title.strip(), description, due_date, budget)

    async def get_task(self, task_id: str) -> dict[str, Any]:
        """Get a single task with its derived status."""
        return self._workflow.require_task(task_id)

    async def list_tasks(
        self,
        student_id: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        """List tasks, most recent first, optionally filtered by owner and status."""
        if status is not None and status not in _VALID_STATUSES:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Unknown task status: {status}",
                400,
                {"allowed": sorted(_VALID_STATUSES)},
            )

        def matches(task: dict[str, Any]) -> bool:
            if student_id is not None and task["student_id"] != student_id:
                return False
            return status is None or task["status"] == status

        return self._store.list_entities("tasks", matches, newest_first=True)

    async def get_tasks_by_student(self, student_id: str) -> list[dict[str, Any]]:
        """All tasks posted by one student, most recent first."""
        return await self.list_tasks(student_id=student_id)

    def get_stats(self) -> dict[str, Any]:
        """Task counts for the health endpoint."""
        tasks_by_status = self._store.count_tasks_by_status()
        return {
            "total_tasks": sum(tasks_by_status.values()),
            "tasks_by_status": tasks_by_status,
        }
