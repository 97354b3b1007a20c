"""Data models for the external records probes observe."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RecordId = Union[int, str]


class TaskStatus(str, Enum):
    """Task statuses reported by the backend."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ActorType(str, Enum):
    """Who produced a task context event."""
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class Task(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: RecordId
    title: str = ""
    status: Union[TaskStatus, str] = TaskStatus.PENDING
    task_type: Optional[str] = Field(None, alias="type")
    user_id: Optional[str] = None
    template_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class TaskContextEvent(BaseModel):
    """Append-only audit record of an action taken against a task."""

    model_config = ConfigDict(extra="ignore")

    id: RecordId
    task_id: Optional[RecordId] = None
    operation: str = ""
    actor_type: Optional[Union[ActorType, str]] = None
    actor_id: Optional[str] = None
    data: Dict[str, Any] = {}
    reasoning: Optional[str] = None
    created_at: Optional[datetime] = None


class MigrationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    applied: bool


def group_events_by_actor(events: Iterable[TaskContextEvent]) -> Dict[str, List[str]]:
    """Map each actor id (``system`` when absent) to its operations, in event order."""

    grouped: Dict[str, List[str]] = {}
    for event in events:
        grouped.setdefault(event.actor_id or "system", []).append(event.operation)
    return grouped


def pending_migrations(records: Iterable[MigrationRecord]) -> List[MigrationRecord]:
    return [record for record in records if not record.applied]


__all__ = [
    "ActorType",
    "MigrationRecord",
    "RecordId",
    "Task",
    "TaskContextEvent",
    "TaskStatus",
    "group_events_by_actor",
    "pending_migrations",
]
