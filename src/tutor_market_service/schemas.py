"""Pydantic response models for the API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    total_tasks: int
    tasks_by_status: dict[str, int]


class PrincipalResponse(BaseModel):
    """Response model for GET /auth/me."""

    model_config = ConfigDict(extra="forbid")
    id: str
    name: str
    role: Literal["student", "tutor"]


class TaskResponse(BaseModel):
    """Full task detail response model."""

    model_config = ConfigDict(extra="forbid")
    task_id: str
    student_id: str
    title: str
    description: str
    due_date: str
    budget: float | None
    status: Literal["open", "accepted", "paid"]
    accepted_bid_id: str | None
    created_at: str
    accepted_at: str | None
