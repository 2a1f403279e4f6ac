"""Expected, recoverable failures raised by the approval workflow.

Every class carries an HTTP-style ``status_code`` and a machine readable
``code`` so transports can translate them without a lookup table. Storage
outages are deliberately absent: they propagate as whatever the storage
layer raises and are reported as internal errors.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


class ExpenseWorkflowError(Exception):
    """Base class for the business error taxonomy."""

    status_code = 500
    code = "EXPENSE_WORKFLOW_ERROR"
    default_message = "Expense workflow error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Return the payload sent to API callers."""

        return {"code": self.code, "message": self.message}


class NotFound(ExpenseWorkflowError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Expense not found"

    def __init__(self, expense_id: str, message: Optional[str] = None):
        self.expense_id = expense_id
        super().__init__(message or f"Expense {expense_id} not found")


class Unauthorized(ExpenseWorkflowError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class Forbidden(ExpenseWorkflowError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class ForbiddenTransition(Forbidden):
    """Action is not legal from the claim's current state."""

    code = "FORBIDDEN_TRANSITION"

    def __init__(self, action: str, state: str, message: Optional[str] = None):
        self.action = action
        self.state = state
        super().__init__(
            message or f"Cannot {action} an expense in state '{state}'"
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update(action=self.action, state=self.state)
        return payload


class ValidationError(ExpenseWorkflowError):
    """Payload or business-rule violation.

    ``errors`` keeps every individual message so forms can show them all,
    mirroring the ``(result, errors)`` convention of the form parsers.
    """

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"

    def __init__(self, errors: Iterable[str]):
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors) or self.default_message)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = list(self.errors)
        return payload


class Conflict(ExpenseWorkflowError):
    """The expense changed between load and save."""

    status_code = 409
    code = "CONFLICT"

    def __init__(
        self, expense_id: str, expected_version: int, actual_version: Optional[int]
    ):
        self.expense_id = expense_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Expense {expense_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version}); "
            "reload and retry"
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update(
            expected_version=self.expected_version,
            actual_version=self.actual_version,
        )
        return payload
