"""Pytest configuration and fixtures."""

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from task_service.config import Settings
from task_service.db import Database, TaskRepository, create_sqlite_engine
from task_service.main import create_app
from task_service.routers.tasks import get_repository

from .fakes import FakeTaskRepository


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "tasks.db"


@pytest.fixture()
def settings(db_path: Path) -> Settings:
    """Settings pointing at a per-test database with a small pool."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{db_path}",
        pool_min_size=1,
        pool_max_size=4,
        pool_health_check_interval=3600,
        pool_acquire_timeout=2,
    )


@pytest.fixture()
def database(db_path: Path) -> Iterator[Database]:
    engine = create_sqlite_engine(
        f"sqlite:///{db_path}", min_size=1, max_size=4, acquire_timeout=1
    )
    with Database(engine, min_size=1, health_check_interval=3600) as database:
        yield database


@pytest.fixture()
def repository(database: Database) -> TaskRepository:
    repo = TaskRepository(database)
    repo.init_schema()
    return repo


@pytest.fixture()
def client(settings: Settings) -> Iterator[TestClient]:
    """Client against the real app; entering it runs the lifespan (pool + schema)."""
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture()
def fake_repo() -> FakeTaskRepository:
    return FakeTaskRepository()


@pytest.fixture()
def fake_app(settings: Settings, fake_repo: FakeTaskRepository) -> FastAPI:
    """App whose handlers talk to an in-memory repository; the lifespan is not run."""
    app = create_app(settings)
    app.dependency_overrides[get_repository] = lambda: fake_repo
    return app


@pytest.fixture()
def restore_logging() -> Iterator[None]:
    """Undo any logging configuration a test installs."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)
