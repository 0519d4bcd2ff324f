"""Exception hierarchy for the task service."""


class TaskServiceError(Exception):
    """Base exception for all task service errors."""

    pass


class TaskNotFoundError(TaskServiceError):
    """No task matches the requested id."""

    def __init__(self, task_id: int):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class PersistenceError(TaskServiceError):
    """A database operation failed.

    Attributes:
        operation: Short verb naming the failed operation ("create", "fetch", ...)
    """

    def __init__(self, message: str, operation: str = "process"):
        super().__init__(message)
        self.operation = operation


class PoolError(PersistenceError):
    """The connection pool could not provide a usable connection."""

    pass


class PoolTimeoutError(PoolError):
    """No connection became available before the acquire timeout."""

    pass


class PoolClosedError(PoolError):
    """The pool has been closed and hands out no more connections."""

    pass


class DeadlineExceededError(TaskServiceError):
    """The request deadline passed before the database work finished; nothing was committed."""

    pass
