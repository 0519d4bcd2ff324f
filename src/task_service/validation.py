"""Translation of request validation failures into 400/404 responses."""

from collections.abc import Sequence
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .logger import get_logger

logger = get_logger(__name__)

# Error types meaning the body could not be read as a JSON object at all.
MALFORMED_BODY_TYPES = {"missing", "model_type", "model_attributes_type", "dict_type"}


class Violation(BaseModel):
    """A single violated constraint."""

    field: str
    message: str
    type: str


def collect_violations(errors: Sequence[Any]) -> list[Violation]:
    """Flatten pydantic/FastAPI error dicts into field-level violations.

    The leading location segment ("body", "query", "path") is dropped, so a
    too-short title is reported as field ``title``.
    """
    violations = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        field = ".".join(loc[1:]) if len(loc) > 1 else (loc[0] if loc else "")
        violations.append(
            Violation(
                field=field,
                message=error.get("msg", ""),
                type=error.get("type", ""),
            )
        )
    return violations


def is_malformed_body(errors: Sequence[Any]) -> bool:
    """True when the body itself is missing, unparseable, or not an object."""
    for error in errors:
        loc = tuple(error.get("loc", ()))
        if error.get("type") == "json_invalid":
            return True
        if loc == ("body",) and error.get("type") in MALFORMED_BODY_TYPES:
            return True
    return False


def _is_path_error(errors: Sequence[Any]) -> bool:
    return any(tuple(error.get("loc", ()))[:1] == ("path",) for error in errors)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Map request validation failures to HTTP responses.

    A path id that does not parse as an integer cannot name a task, so it is
    reported as 404. Everything else is a 400 listing the violated fields.
    """
    errors = exc.errors()

    if _is_path_error(errors):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": "Task not found"},
        )

    violations = collect_violations(errors)
    detail = "Invalid request body" if is_malformed_body(errors) else "Validation failed"
    logger.info(
        "request_rejected",
        method=request.method,
        path=request.url.path,
        reason=detail,
        fields=[v.field for v in violations],
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": detail,
            "errors": [v.model_dump() for v in violations],
        },
    )
