"""Models package."""

from .task import Task, TaskCreate, TaskFields, TaskStatus, TaskUpdate

__all__ = [
    "TaskStatus",
    "TaskFields",
    "TaskCreate",
    "TaskUpdate",
    "Task",
]
