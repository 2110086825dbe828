"""Workflow error taxonomy.

Every error carries a stable ``code`` and the HTTP status the API layer
answers with. Handlers recover them at the boundary and turn them into a
structured ``{success, message, code}`` result.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID


class WorkflowError(Exception):
    """Base class for all workflow failures."""

    code = "WORKFLOW_ERROR"
    http_status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Structured result for the caller."""
        return {"success": False, "message": self.message, "code": self.code}


class Unauthorized(WorkflowError):
    """Actor lacks the permission bound to this stage."""

    code = "UNAUTHORIZED"
    http_status = 403

    def __init__(self, actor_id: UUID | None, permission: str, stage: str | None = None):
        self.actor_id = actor_id
        self.permission = permission
        self.stage = stage
        msg = f"Permission '{permission}' required"
        if stage:
            msg += f" for stage '{stage}'"
        super().__init__(msg)


class InvalidTransitionError(WorkflowError):
    """Requested action has no edge from the current status."""

    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, entity_type: str, from_status: str, action: str, reason: str | None = None):
        self.entity_type = entity_type
        self.from_status = from_status
        self.action = action
        self.reason = reason
        msg = f"Cannot {action} {entity_type} in status '{from_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ValidationError(WorkflowError):
    """Missing or malformed input."""

    code = "VALIDATION_ERROR"
    http_status = 422

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFoundError(WorkflowError):
    """Entity id does not exist."""

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class ConcurrencyConflict(WorkflowError):
    """Status changed between read and guarded write."""

    code = "CONCURRENCY_CONFLICT"
    http_status = 409

    def __init__(self, entity_type: str, entity_id: Any, expected_status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_status = expected_status
        super().__init__(
            f"{entity_type} {entity_id} is no longer in status '{expected_status}'"
        )


class DerivedWriteError(WorkflowError):
    """A same-transaction derived write failed; the operation was rolled back."""

    code = "DERIVED_WRITE_FAILED"
    http_status = 500


class BulkUpdateError(WorkflowError):
    """One or more items of an all-or-nothing bulk update failed validation."""

    code = "BULK_UPDATE_FAILED"
    http_status = 422

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        super().__init__(f"{len(errors)} item(s) failed; nothing was updated")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data
