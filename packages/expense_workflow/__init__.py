"""Expense approval workflow shared across apps.

The package holds the claim model, the transition table, the authorization
guard, the audit recorder and the dispatcher that ties them together. It
has no web or database dependencies.
"""

from .audit import AuditRecorder, describe_action
from .authorization import AuthorizationGuard, Directory, OrganizationRole
from .dispatcher import ActionDispatcher, ExpenseRepository, parse_action
from .errors import (
    Conflict,
    ExpenseWorkflowError,
    Forbidden,
    ForbiddenTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)
from .expenses import (
    AuditAction,
    AuditEntry,
    BatchOutcome,
    Expense,
    ExpenseAction,
    ExpenseChanges,
    ExpenseDraft,
    ExpenseState,
    LineItem,
)
from .memory import InMemoryDirectory, InMemoryExpenseRepository
from .state_machine import TRANSITIONS, StateMachine

__all__ = [
    "ActionDispatcher",
    "AuditAction",
    "AuditEntry",
    "AuditRecorder",
    "AuthorizationGuard",
    "BatchOutcome",
    "Conflict",
    "Directory",
    "Expense",
    "ExpenseAction",
    "ExpenseChanges",
    "ExpenseDraft",
    "ExpenseRepository",
    "ExpenseState",
    "ExpenseWorkflowError",
    "Forbidden",
    "ForbiddenTransition",
    "InMemoryDirectory",
    "InMemoryExpenseRepository",
    "LineItem",
    "NotFound",
    "OrganizationRole",
    "StateMachine",
    "TRANSITIONS",
    "Unauthorized",
    "ValidationError",
    "describe_action",
    "parse_action",
]
