"""Mapping of engine errors and denials to HTTP responses."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from hr_workflow.authz.gate import Decision
from hr_workflow.errors import (
    AccessDeniedError,
    ConstraintViolationError,
    DeletionBlockedError,
    EntityNotFoundError,
    ImmutableRecordError,
    InvalidTransitionError,
    OverrideActiveError,
    WorkflowError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[WorkflowError], tuple[int, str]] = {
    AccessDeniedError: (status.HTTP_403_FORBIDDEN, "DENIED"),
    EntityNotFoundError: (status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    InvalidTransitionError: (status.HTTP_409_CONFLICT, "INVALID_TRANSITION"),
    DeletionBlockedError: (status.HTTP_409_CONFLICT, "DELETION_BLOCKED"),
    ImmutableRecordError: (status.HTTP_409_CONFLICT, "IMMUTABLE_RECORD"),
    OverrideActiveError: (status.HTTP_409_CONFLICT, "OVERRIDE_ACTIVE"),
    ConstraintViolationError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "CONSTRAINT_VIOLATION"),
}


def ensure_permitted(decision: Decision) -> None:
    """Turn a denial into the 403 response of the outer surface."""
    if not decision:
        reason = decision.reason.value if decision.reason else "DENIED"
        raise AccessDeniedError(reason)


def _error_body(exc: WorkflowError, code: str) -> dict[str, Any]:
    body: dict[str, Any] = {"detail": str(exc), "code": code}
    if isinstance(exc, AccessDeniedError):
        body["code"] = exc.reason
    elif isinstance(exc, ConstraintViolationError):
        body["context"] = {"field": exc.field, "detail": exc.detail}
    elif isinstance(exc, InvalidTransitionError):
        body["context"] = {"from_status": exc.from_status, "to_status": exc.to_status}
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
        for cls in type(exc).__mro__:
            if cls in ERROR_STATUS:
                status_code, code = ERROR_STATUS[cls]
                break
        else:
            status_code, code = status.HTTP_400_BAD_REQUEST, "WORKFLOW_ERROR"
        logger.info("%s %s -> %s: %s", request.method, request.url.path, status_code, exc)
        return JSONResponse(status_code=status_code, content=_error_body(exc, code))

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Invalid request body",
                "code": "VALIDATION_ERROR",
                "context": {"errors": exc.errors(include_url=False, include_context=False)},
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )
