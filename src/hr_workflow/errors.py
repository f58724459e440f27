"""Exceptions raised by the workflow engine.

Authorization denials are not exceptions inside the core: the gate returns
a ``Decision``. ``AccessDeniedError`` exists only for outer surfaces that
have no result object to carry a denial (the maintenance override).
"""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base class for workflow engine errors."""


class InvalidTransitionError(WorkflowError):
    """Raised when a state change is not defined from the current state."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConstraintViolationError(WorkflowError):
    """Raised when a value breaks a declared constraint (enum, uniqueness, tree shape)."""

    def __init__(self, message: str, *, field: str | None = None, detail: Any = None):
        self.field = field
        self.detail = detail
        super().__init__(message)


class EntityNotFoundError(WorkflowError):
    """Raised when an entity id does not resolve to a record."""

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class DeletionBlockedError(WorkflowError):
    """Raised when deleting a record in a guarded state without the maintenance override."""

    def __init__(self, entity_type: str, entity_id: Any, status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        super().__init__(
            f"Cannot delete {entity_type} {entity_id} in status '{status}'. "
            "Use a compensating entry instead."
        )


class ImmutableRecordError(WorkflowError):
    """Raised on any attempt to update or delete an append-only record."""

    def __init__(self, table: str, operation: str):
        self.table = table
        self.operation = operation
        super().__init__(f"{table} is append-only; {operation} is not allowed")


class OverrideActiveError(WorkflowError):
    """Raised when the maintenance override is requested while already held."""


class AccessDeniedError(WorkflowError):
    """Raised at outer surfaces when the caller lacks the required role."""

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or f"Access denied: {reason}")
