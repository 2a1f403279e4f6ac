"""In-memory collaborators for the approval workflow.

Useful for tests, scripts and background processors that do not need a
database. :class:`InMemoryExpenseRepository` honours the same optimistic
concurrency contract as the SQL repository: a save is accepted only when the
stored version still matches the version the caller loaded.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple

from .authorization import OrganizationRole
from .errors import Conflict, NotFound
from .expenses import Expense, ExpenseState, utcnow

REVIEW_STATES = frozenset(
    {
        ExpenseState.PRE_APPROVAL_PENDING,
        ExpenseState.PRE_APPROVED,
        ExpenseState.APPROVAL_PENDING,
    }
)

OWNER_SCOPES = ("all", "private", "org")


def matches_scope(expense: Expense, scope: str) -> bool:
    """Return ``True`` when ``expense`` belongs to an owner list ``scope``."""

    if scope not in OWNER_SCOPES:
        raise ValueError(f"Unknown scope {scope!r}; expected one of {OWNER_SCOPES}")
    if scope == "private":
        return expense.is_private
    if scope == "org":
        return not expense.is_private
    return True


def check_append_only(current: Expense, updated: Expense) -> None:
    """Refuse a save that rewrites or drops persisted audit entries."""

    persisted = current.audit_log
    if updated.audit_log[: len(persisted)] != persisted:
        raise ValueError(f"Audit log of expense {current.id} cannot be rewritten")


class InMemoryExpenseRepository:
    """Dictionary backed repository guarded by a lock."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._expenses: Dict[str, Expense] = {}
        self._lock = threading.Lock()

    def add(self, expense: Expense) -> Expense:
        """Persist a brand new claim as version 1."""

        with self._lock:
            existing = self._expenses.get(expense.id)
            if existing is not None:
                raise Conflict(expense.id, 0, existing.version)
            now = self._clock()
            stored = replace(expense, version=1, created_at=now, updated_at=now)
            self._expenses[expense.id] = stored
        return stored

    def load(self, expense_id: str) -> Expense:
        with self._lock:
            expense = self._expenses.get(expense_id)
        if expense is None:
            raise NotFound(expense_id)
        return expense

    def save(self, expense: Expense, expected_version: int) -> Expense:
        """Store ``expense`` if nobody saved since ``expected_version``."""

        with self._lock:
            current = self._expenses.get(expense.id)
            if current is None:
                raise NotFound(expense.id)
            if current.version != expected_version:
                raise Conflict(expense.id, expected_version, current.version)
            check_append_only(current, expense)
            stored = replace(
                expense,
                version=expected_version + 1,
                created_at=current.created_at,
                updated_at=self._clock(),
            )
            self._expenses[expense.id] = stored
        return stored

    def list_for_owner(
        self, owner_id: str, *, scope: str = "all", include_deleted: bool = False
    ) -> List[Expense]:
        return self._select(
            lambda expense: expense.owner_id == owner_id
            and matches_scope(expense, scope)
            and (include_deleted or not expense.is_deleted)
        )

    def list_review_queue(
        self, manager_id: str, organization_id: Optional[str] = None
    ) -> List[Expense]:
        """Claims waiting on ``manager_id``, excluding their own."""

        return self._select(
            lambda expense: manager_id in expense.manager_ids
            and expense.owner_id != manager_id
            and expense.state in REVIEW_STATES
            and not expense.is_deleted
            and (organization_id is None or expense.organization_id == organization_id)
        )

    def list_approved(self, organization_id: str) -> List[Expense]:
        return self._select(
            lambda expense: expense.organization_id == organization_id
            and expense.state is ExpenseState.APPROVED
            and not expense.is_deleted
        )

    def _select(self, predicate: Callable[[Expense], bool]) -> List[Expense]:
        with self._lock:
            expenses = [expense for expense in self._expenses.values() if predicate(expense)]
        return sorted(
            expenses, key=lambda expense: (expense.created_at, expense.id), reverse=True
        )


class InMemoryDirectory:
    """Organization directory backed by a ``(organization, user) -> role`` map."""

    def __init__(self) -> None:
        self._roles: Dict[Tuple[str, str], OrganizationRole] = {}

    def add_member(
        self,
        organization_id: str,
        user_id: str,
        role: OrganizationRole = OrganizationRole.MEMBER,
    ) -> None:
        self._roles[(organization_id, user_id)] = OrganizationRole(role)

    def remove_member(self, organization_id: str, user_id: str) -> None:
        self._roles.pop((organization_id, user_id), None)

    def is_organization_member(self, organization_id: str, user_id: str) -> bool:
        return (organization_id, user_id) in self._roles

    def get_role(
        self, organization_id: str, user_id: str
    ) -> Optional[OrganizationRole]:
        return self._roles.get((organization_id, user_id))

    def organizations_for(self, user_id: str) -> Set[str]:
        return {organization for organization, member in self._roles if member == user_id}
