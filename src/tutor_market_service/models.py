"""Domain value types shared across the service layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    """Closed set of marketplace roles."""

    STUDENT = "student"
    TUTOR = "tutor"


class TaskStatus(StrEnum):
    """Lifecycle state of a task. Transitions only move forward."""

    OPEN = "open"
    ACCEPTED = "accepted"
    PAID = "paid"


@dataclass(frozen=True)
class Principal:
    """Authenticated actor performing an operation."""

    id: str
    name: str
    role: Role

    @property
    def is_student(self) -> bool:
        return self.role is Role.STUDENT

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "role": self.role.value}
