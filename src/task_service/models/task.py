"""Pydantic models for task API."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


class TaskStatus(str, Enum):
    """Task status enumeration."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskFields(BaseModel):
    """The client-writable fields, validated identically on create and update."""

    title: str = Field(..., min_length=TITLE_MIN_LENGTH, max_length=TITLE_MAX_LENGTH)
    description: str = Field("", max_length=DESCRIPTION_MAX_LENGTH)
    status: TaskStatus

    @field_validator("description", mode="before")
    @classmethod
    def none_description_is_empty(cls, v: object) -> object:
        return "" if v is None else v


class TaskCreate(TaskFields):
    """Request model for creating a task. Any client-sent ``id`` is ignored."""


class TaskUpdate(TaskFields):
    """Request model for updating a task; all three fields are replaced."""


class Task(TaskFields):
    """Response model for a task."""

    id: int = Field(..., gt=0)
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def check_timestamps(self) -> "Task":
        if self.created_at > self.updated_at:
            raise ValueError("created_at must not be later than updated_at")
        return self
