"""SQLite persistence for tasks."""

import copy
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import PersistenceError, PoolError, TaskNotFoundError
from ..logger import get_logger
from ..models import Task, TaskStatus
from .engine import Database

logger = get_logger(__name__)

# Current time as integer Unix epoch milliseconds, evaluated by the database.
# SQLite keeps 'now' stable within one statement, so both columns match on insert.
NOW_MS = "CAST((julianday('now') - 2440587.5) * 86400000 AS INTEGER)"

TASK_COLUMNS = "id, title, description, status, created_at, updated_at"

# Range of an SQLite INTEGER, and so of any stored id.
SQLITE_INTEGER_MIN = -(2**63)
SQLITE_INTEGER_MAX = 2**63 - 1


def _from_epoch_ms(value: object) -> object:
    if isinstance(value, int):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return value


def row_to_task(row: Mapping[str, Any]) -> Task:
    """Decode a ``tasks`` row.

    Raises:
        pydantic.ValidationError: The stored row breaks a Task invariant.
    """
    data = dict(row)
    data["created_at"] = _from_epoch_ms(data.get("created_at"))
    data["updated_at"] = _from_epoch_ms(data.get("updated_at"))
    return Task.model_validate(data)


def _storable_id(task_id: int) -> bool:
    return SQLITE_INTEGER_MIN <= task_id <= SQLITE_INTEGER_MAX


class TaskRepository:
    """CRUD operations over the ``tasks`` table.

    Every method runs a single statement (plus a read-back of the same row)
    in one transaction. Driver and pool failures surface as
    :class:`PersistenceError`; a missing row as :class:`TaskNotFoundError`.
    A repository bound to a deadline with :meth:`with_deadline` raises
    :class:`DeadlineExceededError` and commits nothing once it passes.
    """

    def __init__(self, database: Database, strict_row_decoding: bool = False):
        self._database = database
        self.strict_row_decoding = strict_row_decoding
        self.deadline: float | None = None

    def with_deadline(self, deadline: float | None) -> "TaskRepository":
        """Copy of this repository whose work stops at ``deadline`` (``time.monotonic()``)."""
        bound = copy.copy(self)
        bound.deadline = deadline
        return bound

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Connection]:
        try:
            with self._database.transaction(self.deadline) as conn:
                yield conn
        except (SQLAlchemyError, PoolError) as e:
            logger.error("task_query_failed", operation=operation, error=str(e))
            raise PersistenceError(str(e), operation=operation) from e

    def init_schema(self) -> None:
        """Create the tasks table and its index if they do not exist."""
        with self._transaction("initialize") as conn:
            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL
                        CHECK (status IN ('todo', 'in_progress', 'done')),
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            """))
            conn.execute(text("""
                CREATE INDEX IF NOT EXISTS idx_tasks_status
                ON tasks(status)
            """))

    def create(self, title: str, description: str, status: TaskStatus) -> Task:
        """Insert a new task and return it with its id and timestamps."""
        with self._transaction("create") as conn:
            result = conn.execute(
                text(f"""
                    INSERT INTO tasks (title, description, status, created_at, updated_at)
                    VALUES (:title, :description, :status, {NOW_MS}, {NOW_MS})
                """),
                {
                    "title": title,
                    "description": description,
                    "status": TaskStatus(status).value,
                },
            )
            row = self._select_one(conn, result.lastrowid)

        task = self._decode_one(row, "create")
        logger.info("task_created", task_id=task.id, status=task.status.value)
        return task

    def list(self, status: TaskStatus | None = None) -> list[Task]:
        """Get all tasks ordered by id, optionally filtered by status.

        Rows that fail to decode are logged and skipped unless
        ``strict_row_decoding`` is set, in which case the listing fails.
        """
        with self._transaction("fetch") as conn:
            if status is not None:
                result = conn.execute(
                    text(f"SELECT {TASK_COLUMNS} FROM tasks WHERE status = :status ORDER BY id"),
                    {"status": TaskStatus(status).value},
                )
            else:
                result = conn.execute(text(f"SELECT {TASK_COLUMNS} FROM tasks ORDER BY id"))
            rows = result.mappings().all()

        tasks = []
        for row in rows:
            try:
                tasks.append(row_to_task(row))
            except (TypeError, ValueError) as e:
                logger.error("task_decode_failed", task_id=row["id"], error=str(e))
                if self.strict_row_decoding:
                    raise PersistenceError(
                        f"Task {row['id']} could not be decoded", operation="fetch"
                    ) from e
        return tasks

    def get(self, task_id: int) -> Task:
        """Get a task by ID."""
        if not _storable_id(task_id):
            raise TaskNotFoundError(task_id)

        with self._transaction("fetch") as conn:
            row = self._select_one(conn, task_id)

        if row is None:
            raise TaskNotFoundError(task_id)
        return self._decode_one(row, "fetch")

    def update(
        self, task_id: int, title: str, description: str, status: TaskStatus
    ) -> Task:
        """Replace a task's mutable fields and advance ``updated_at``."""
        if not _storable_id(task_id):
            raise TaskNotFoundError(task_id)

        with self._transaction("update") as conn:
            result = conn.execute(
                text(f"""
                    UPDATE tasks
                    SET title = :title, description = :description, status = :status,
                        updated_at = MAX({NOW_MS}, updated_at + 1)
                    WHERE id = :id
                """),
                {
                    "title": title,
                    "description": description,
                    "status": TaskStatus(status).value,
                    "id": task_id,
                },
            )
            if result.rowcount == 0:
                raise TaskNotFoundError(task_id)
            row = self._select_one(conn, task_id)

        task = self._decode_one(row, "update")
        logger.info("task_updated", task_id=task_id, status=task.status.value)
        return task

    def delete(self, task_id: int) -> None:
        """Delete a task by ID. Deleting a missing task is not an error."""
        if not _storable_id(task_id):
            logger.info("task_deleted", task_id=task_id, existed=False)
            return

        with self._transaction("delete") as conn:
            result = conn.execute(text("DELETE FROM tasks WHERE id = :id"), {"id": task_id})
            existed = result.rowcount > 0
        logger.info("task_deleted", task_id=task_id, existed=existed)

    @staticmethod
    def _select_one(conn: Connection, task_id: int) -> Mapping[str, Any] | None:
        return (
            conn.execute(
                text(f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = :id"), {"id": task_id}
            )
            .mappings()
            .first()
        )

    @staticmethod
    def _decode_one(row: Mapping[str, Any], operation: str) -> Task:
        try:
            return row_to_task(row)
        except (TypeError, ValueError) as e:
            logger.error("task_decode_failed", task_id=row["id"], error=str(e))
            raise PersistenceError(
                f"Task {row['id']} could not be decoded", operation=operation
            ) from e
