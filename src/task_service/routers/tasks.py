"""Task API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from ..db import TaskRepository
from ..models import Task, TaskCreate, TaskStatus, TaskUpdate

router = APIRouter(prefix="/tasks", tags=["tasks"])


def get_repository(request: Request) -> TaskRepository:
    """Repository wired up by the application lifespan, bound to the request deadline."""
    repository: TaskRepository = request.app.state.repository
    return repository.with_deadline(getattr(request.state, "deadline", None))


Repository = Annotated[TaskRepository, Depends(get_repository)]


@router.get("", response_model=list[Task])
def list_tasks(repo: Repository, status: TaskStatus | None = None):
    """Get all tasks, optionally filtered by status."""
    return repo.list(status=status)


@router.get("/{task_id}", response_model=Task)
def get_task(task_id: int, repo: Repository):
    """Get a task by ID."""
    return repo.get(task_id)


@router.post("", response_model=Task, status_code=status.HTTP_201_CREATED)
def create_task(task_data: TaskCreate, repo: Repository):
    """Create a new task."""
    return repo.create(task_data.title, task_data.description, task_data.status)


@router.put("/{task_id}", response_model=Task)
def update_task(task_id: int, task_data: TaskUpdate, repo: Repository):
    """Replace a task's title, description and status."""
    return repo.update(
        task_id, task_data.title, task_data.description, task_data.status
    )


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(task_id: int, repo: Repository):
    """Delete a task. Deleting a task that does not exist also succeeds."""
    repo.delete(task_id)
