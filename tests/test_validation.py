"""Tests for task payload constraints and violation reporting."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from task_service.models import Task, TaskCreate, TaskStatus, TaskUpdate
from task_service.validation import collect_violations, is_malformed_body


@pytest.mark.parametrize("model", [TaskCreate, TaskUpdate])
def test_create_and_update_share_constraints(model) -> None:
    payload = model(title="Buy milk", status="in_progress")
    assert payload.description == ""
    assert payload.status is TaskStatus.IN_PROGRESS

    with pytest.raises(ValidationError):
        model(title="ab", status="todo")


def test_every_violation_is_reported() -> None:
    with pytest.raises(ValidationError) as exc_info:
        TaskCreate(title="x" * 101, description="y" * 501, status="archived")

    violations = collect_violations(exc_info.value.errors())

    assert {v.field for v in violations} == {"title", "description", "status"}
    assert {v.type for v in violations} == {"string_too_long", "enum"}


def test_collect_violations_strips_location_prefix() -> None:
    errors = [
        {"loc": ("body", "title"), "msg": "too short", "type": "string_too_short"},
        {"loc": ("query", "status"), "msg": "bad", "type": "enum"},
        {"loc": ("body",), "msg": "Field required", "type": "missing"},
    ]

    assert [v.field for v in collect_violations(errors)] == ["title", "status", "body"]


def test_malformed_body_detection() -> None:
    assert is_malformed_body([{"loc": ("body", 1), "type": "json_invalid"}])
    assert is_malformed_body([{"loc": ("body",), "type": "missing"}])
    assert not is_malformed_body([{"loc": ("body", "title"), "type": "missing"}])


def test_task_rejects_updated_before_created() -> None:
    now = datetime.now(timezone.utc)
    with pytest.raises(ValidationError):
        Task(
            id=1,
            title="Buy milk",
            status="todo",
            created_at=now,
            updated_at=now - timedelta(seconds=1),
        )


def test_task_requires_positive_id() -> None:
    now = datetime.now(timezone.utc)
    with pytest.raises(ValidationError):
        Task(id=0, title="Buy milk", status="todo", created_at=now, updated_at=now)
