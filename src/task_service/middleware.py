"""Per-request context: request id, access logging and deadlines."""

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from ulid import ULID

from .config import Settings
from .logger import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
READ_METHODS = {"GET", "HEAD", "OPTIONS"}

# Seconds past the repository deadline before the response itself is abandoned.
DEADLINE_GRACE = 0.25


def timeout_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        content={"detail": "Request timed out"},
    )


def install_middleware(app: FastAPI, settings: Settings) -> None:
    """Attach the request context middleware to ``app``."""

    @app.middleware("http")
    async def request_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(ULID())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        timeout = (
            settings.read_timeout
            if request.method in READ_METHODS
            else settings.write_timeout
        )
        started = time.perf_counter()
        request.state.deadline = time.monotonic() + timeout
        try:
            response = await asyncio.wait_for(
                call_next(request), timeout=timeout + DEADLINE_GRACE
            )
        except asyncio.TimeoutError:
            logger.error(
                "request_timed_out",
                method=request.method,
                path=request.url.path,
                timeout=timeout,
            )
            response = timeout_response()

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response
