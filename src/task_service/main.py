"""FastAPI application entry point."""

import sys
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import Settings, get_settings
from .db import TaskRepository, create_database
from .exceptions import DeadlineExceededError, PersistenceError, TaskNotFoundError
from .logger import get_logger, setup_logging
from .middleware import install_middleware, timeout_response
from .routers import tasks
from .validation import request_validation_handler

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the connection pool and ensure the schema on startup; close it on shutdown."""
    settings: Settings = app.state.settings
    database = create_database(settings)
    try:
        database.open()
        repository = TaskRepository(database, strict_row_decoding=settings.strict_row_decoding)
        repository.init_schema()
    except PersistenceError:
        database.close()
        raise

    app.state.database = database
    app.state.repository = repository
    logger.info("service_started", database=str(settings.database_path))
    try:
        yield
    finally:
        logger.info("service_stopping")
        database.close()


async def task_not_found_handler(request: Request, exc: TaskNotFoundError) -> JSONResponse:
    logger.info("task_not_found", task_id=exc.task_id, method=request.method)
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": "Task not found"},
    )


async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error(
        "persistence_error",
        operation=exc.operation,
        method=request.method,
        path=request.url.path,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": f"Failed to {exc.operation} task"},
    )


async def deadline_exceeded_handler(request: Request, exc: DeadlineExceededError) -> JSONResponse:
    logger.error(
        "request_deadline_exceeded",
        method=request.method,
        path=request.url.path,
        error=str(exc),
    )
    return timeout_response()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application. The pool is opened by the lifespan, not here.

    Also usable as a uvicorn factory: ``uvicorn task_service.main:create_app --factory``.
    """
    settings = settings or get_settings()
    if not structlog.is_configured():
        setup_logging(settings.log_level, json_logs=settings.log_json)

    app = FastAPI(
        title="Task Service",
        description="CRUD service for task records",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(TaskNotFoundError, task_not_found_handler)
    app.add_exception_handler(PersistenceError, persistence_error_handler)
    app.add_exception_handler(DeadlineExceededError, deadline_exceeded_handler)
    install_middleware(app, settings)

    app.include_router(tasks.router)
    return app


def main():
    """Run the application with uvicorn.

    uvicorn handles SIGINT/SIGTERM: it stops accepting connections, waits for
    in-flight requests, then runs the lifespan shutdown which closes the pool.
    """
    import uvicorn

    try:
        settings = get_settings()
    except ValidationError as e:
        setup_logging()
        logger.critical("invalid_configuration", error=str(e))
        sys.exit(1)

    setup_logging(settings.log_level, json_logs=settings.log_json)
    logger.info("service_starting", host=settings.host, port=settings.port)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
        timeout_graceful_shutdown=int(settings.shutdown_timeout),
    )


if __name__ == "__main__":
    main()
