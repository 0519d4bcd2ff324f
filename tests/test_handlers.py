"""Handler behaviour: repository injection, error mapping and deadlines."""

import asyncio
import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import event

from task_service.config import Settings
from task_service.main import create_app
from task_service.routers.tasks import get_repository

from .fakes import FailingTaskRepository, FakeTaskRepository

VALID = {"title": "Buy milk", "description": "2%", "status": "todo"}


def test_handlers_use_injected_repository(
    fake_app: FastAPI, fake_repo: FakeTaskRepository
) -> None:
    client = TestClient(fake_app)

    created = client.post("/tasks", json=VALID).json()

    assert fake_repo.tasks[created["id"]].title == "Buy milk"
    assert client.get(f"/tasks/{created['id']}").json() == created


def test_validation_failure_never_reaches_repository(
    fake_app: FastAPI, fake_repo: FakeTaskRepository
) -> None:
    client = TestClient(fake_app)

    response = client.post("/tasks", json={**VALID, "status": "archived"})

    assert response.status_code == 400
    assert fake_repo.tasks == {}


@pytest.mark.parametrize(
    ("method", "path", "operation"),
    [
        ("POST", "/tasks", "create"),
        ("GET", "/tasks", "fetch"),
        ("GET", "/tasks/1", "fetch"),
        ("PUT", "/tasks/1", "update"),
        ("DELETE", "/tasks/1", "delete"),
    ],
)
def test_persistence_errors_map_to_500_without_detail(
    settings: Settings, method: str, path: str, operation: str
) -> None:
    app = create_app(settings)
    failing = FailingTaskRepository()
    app.dependency_overrides[get_repository] = lambda: failing
    client = TestClient(app)

    kwargs = {"json": VALID} if method in ("POST", "PUT") else {}
    response = client.request(method, path, **kwargs)

    assert response.status_code == 500
    assert response.json() == {"detail": f"Failed to {operation} task"}
    assert failing.message not in response.text


def test_slow_request_times_out(settings: Settings) -> None:
    app = create_app(settings.model_copy(update={"read_timeout": 0.05}))

    @app.get("/slow")
    async def slow():
        await asyncio.sleep(1.0)
        return {"ok": True}

    response = TestClient(app).get("/slow")

    assert response.status_code == 504
    assert response.json() == {"detail": "Request timed out"}
    assert "X-Request-ID" in response.headers


def test_write_past_deadline_is_not_committed(settings: Settings) -> None:
    app = create_app(settings.model_copy(update={"write_timeout": 0.1}))

    def stall_before_insert(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().startswith("INSERT"):
            time.sleep(0.2)

    with TestClient(app) as client:
        engine = app.state.database.engine
        event.listen(engine, "before_cursor_execute", stall_before_insert)
        try:
            response = client.post("/tasks", json=VALID)
        finally:
            event.remove(engine, "before_cursor_execute", stall_before_insert)

        assert response.status_code == 504
        assert response.json() == {"detail": "Request timed out"}
        assert client.get("/tasks").json() == []
