"""Task posting and query endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tutor_market_service.core.state import get_app_state
from tutor_market_service.routers.validation import current_principal, parse_json_body
from tutor_market_service.schemas import TaskResponse

router = APIRouter()


# ---------------------------------------------------------------------------
# POST /tasks — create task (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Post a new task as the authenticated student."""
    principal = current_principal(request)
    body = await request.body()
    data = parse_json_body(body)

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    result = await state.task_manager.create_task(principal, data)
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /tasks — list tasks (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.get("/tasks")
async def list_tasks(request: Request) -> dict[str, Any]:
    """List tasks, most recent first, with optional student_id and status filters."""
    student_id = request.query_params.get("student_id")
    status = request.query_params.get("status")

    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    tasks = await state.task_manager.list_tasks(student_id=student_id, status=status)
    return {"tasks": tasks}


@router.get("/students/{student_id}/tasks")
async def get_tasks_by_student(student_id: str) -> dict[str, Any]:
    """List every task a student has posted."""
    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    tasks = await state.task_manager.get_tasks_by_student(student_id)
    return {"tasks": tasks}


# ---------------------------------------------------------------------------
# GET /tasks/{task_id} — MUST be LAST (parameterized catch-all)
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str) -> dict[str, Any]:
    """Get task details including its derived status."""
    state = get_app_state()
    if state.task_manager is None:
        msg = "TaskManager not initialized"
        raise RuntimeError(msg)

    return await state.task_manager.get_task(task_id)
