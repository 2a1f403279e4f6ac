"""Orchestration entry point for every expense mutation.

A request runs load -> guard -> state machine -> business rules -> apply ->
audit -> save. Nothing is locked: correctness under concurrent requests
rests on the repository rejecting a save whose expected version is stale,
in which case :class:`~.errors.Conflict` reaches the caller, who should
reload and retry. A transition is never applied on top of stale data.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Protocol, Union

from . import rules
from .audit import (
    CREATION_FIELDS,
    DELETION_FIELDS,
    EDITABLE_FIELDS,
    STATE_FIELDS,
    AuditRecorder,
    snapshot,
)
from .authorization import AuthorizationGuard, Directory, require_actor
from .errors import Conflict, ExpenseWorkflowError, Forbidden, ValidationError
from .expenses import (
    SOFT_DELETE_ACTIONS,
    AuditAction,
    BatchOutcome,
    Expense,
    ExpenseAction,
    ExpenseChanges,
    ExpenseDraft,
    ExpenseState,
    utcnow,
)
from .state_machine import AUDIT_ACTIONS, StateMachine, transition_actions

logger = logging.getLogger(__name__)

DISPATCHABLE_ACTIONS = tuple(
    action for action in ExpenseAction if action is not ExpenseAction.EDIT
)


class ExpenseRepository(Protocol):
    """Persistence contract consumed by the dispatcher."""

    def add(self, expense: Expense) -> Expense:
        ...

    def load(self, expense_id: str) -> Expense:
        ...

    def save(self, expense: Expense, expected_version: int) -> Expense:
        ...


def parse_action(action: Union[str, ExpenseAction]) -> ExpenseAction:
    """Translate a requested action name, rejecting unknown names."""

    try:
        parsed = ExpenseAction(str(getattr(action, "value", action)).strip().lower())
    except ValueError:
        parsed = None
    if parsed is None or parsed not in DISPATCHABLE_ACTIONS:
        allowed = ", ".join(item.value for item in DISPATCHABLE_ACTIONS)
        raise ValidationError([f"Unknown action {action!r}. Expected one of: {allowed}."])
    return parsed


class ActionDispatcher:
    """Validates and applies actions on expense claims."""

    def __init__(
        self,
        repository: ExpenseRepository,
        directory: Directory,
        *,
        clock: Callable[[], datetime] = utcnow,
        state_machine: Optional[StateMachine] = None,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        self.repository = repository
        self.guard = AuthorizationGuard(directory)
        self.state_machine = state_machine or StateMachine()
        self.recorder = AuditRecorder(clock)
        self._clock = clock
        self._id_factory = id_factory

    def create(
        self,
        actor_id: Optional[str],
        draft: ExpenseDraft,
        *,
        comment: Optional[str] = None,
    ) -> Expense:
        """Open a new Draft claim owned by ``actor_id``."""

        owner_id = self.guard.check_create(actor_id, draft)
        rules.validate_fields(
            owner_id=owner_id,
            organization_id=draft.organization_id,
            total_amount=draft.total_amount,
            manager_ids=frozenset(draft.manager_ids),
            line_items=draft.line_items,
            today=self._today(),
        )
        expense = Expense(
            id=self._id_factory(),
            owner_id=owner_id,
            organization_id=draft.organization_id,
            manager_ids=frozenset(draft.manager_ids),
            total_amount=draft.total_amount,
            line_items=tuple(draft.line_items),
            state=ExpenseState.DRAFT,
        )
        expense = self.recorder.record(
            AuditAction.CREATED, owner_id, None, expense, CREATION_FIELDS, comment=comment
        )
        saved = self.repository.add(expense)
        logger.info("Created expense %s for owner %s", saved.id, owner_id)
        return saved

    def get(self, expense_id: str, actor_id: Optional[str]) -> Expense:
        """Return an expense the actor is allowed to see."""

        actor_id = require_actor(actor_id)
        expense = self.repository.load(expense_id)
        self.guard.check_view(actor_id, expense)
        return expense

    def dispatch(
        self,
        expense_id: str,
        actor_id: Optional[str],
        action: Union[str, ExpenseAction],
        *,
        comment: Optional[str] = None,
    ) -> Expense:
        """Apply a lifecycle or soft-delete action and return the saved claim."""

        actor_id = require_actor(actor_id)
        action = parse_action(action)
        expense = self.repository.load(expense_id)
        self._check_not_deleted(expense, action)
        self.guard.check(actor_id, expense, action)

        if action in SOFT_DELETE_ACTIONS:
            self.state_machine.validate_deletion(action, expense.state, expense.is_deleted)
            deleted_at = self._clock() if action is ExpenseAction.DELETE else None
            updated = replace(expense, deleted_at=deleted_at)
            fields = DELETION_FIELDS
        else:
            destination = self.state_machine.validate(expense.state, action)
            rules.validate_action(action, expense)
            updated = replace(expense, state=destination)
            fields = STATE_FIELDS

        updated = self.recorder.record(
            AUDIT_ACTIONS[action], actor_id, expense, updated, fields, comment=comment
        )
        saved = self._save(updated, expense.version)
        logger.info(
            "Expense %s: %s by %s -> %s (version %s)",
            saved.id,
            action.value,
            actor_id,
            saved.state.value,
            saved.version,
        )
        return saved

    def edit(
        self,
        expense_id: str,
        actor_id: Optional[str],
        changes: ExpenseChanges,
        *,
        comment: Optional[str] = None,
    ) -> Expense:
        """Change the Draft-only fields of a claim."""

        actor_id = require_actor(actor_id)
        if changes.is_empty():
            raise ValidationError(["No changes were supplied."])
        expense = self.repository.load(expense_id)
        self._check_not_deleted(expense, ExpenseAction.EDIT)
        self.guard.check(actor_id, expense, ExpenseAction.EDIT)
        self.state_machine.validate_edit(expense.state)

        updated = replace(
            expense,
            total_amount=(
                expense.total_amount
                if changes.total_amount is None
                else changes.total_amount
            ),
            manager_ids=(
                expense.manager_ids
                if changes.manager_ids is None
                else frozenset(changes.manager_ids)
            ),
            line_items=(
                expense.line_items
                if changes.line_items is None
                else tuple(changes.line_items)
            ),
        )
        rules.validate_fields(
            owner_id=expense.owner_id,
            organization_id=expense.organization_id,
            total_amount=updated.total_amount,
            manager_ids=updated.manager_ids,
            line_items=updated.line_items,
            today=self._today(),
        )
        if snapshot(expense, EDITABLE_FIELDS) == snapshot(updated, EDITABLE_FIELDS):
            raise ValidationError(["No changes were supplied."])
        updated = self.recorder.record(
            AuditAction.UPDATED, actor_id, expense, updated, EDITABLE_FIELDS, comment=comment
        )
        saved = self._save(updated, expense.version)
        logger.info("Expense %s updated by %s (version %s)", saved.id, actor_id, saved.version)
        return saved

    def list_valid_actions(
        self, expense: Expense, actor_id: Optional[str]
    ) -> List[ExpenseAction]:
        """Actions ``actor_id`` could request right now, without side effects."""

        if not actor_id:
            return []

        def allowed(action: ExpenseAction) -> bool:
            return self.guard.is_allowed(actor_id, expense, action)

        if expense.is_deleted:
            return [ExpenseAction.RESTORE] if allowed(ExpenseAction.RESTORE) else []

        actions: List[ExpenseAction] = []
        if self.state_machine.can_edit(expense.state) and allowed(ExpenseAction.EDIT):
            actions.append(ExpenseAction.EDIT)
        for action in transition_actions():
            if self.state_machine.can_transition(expense.state, action) and allowed(action):
                actions.append(action)
        if allowed(ExpenseAction.DELETE):
            actions.append(ExpenseAction.DELETE)
        return actions

    def reimburse_many(
        self,
        expense_ids: Iterable[str],
        actor_id: Optional[str],
        *,
        comment: Optional[str] = None,
    ) -> BatchOutcome:
        """Reimburse several claims, each under its own optimistic check."""

        actor_id = require_actor(actor_id)
        expense_ids = list(dict.fromkeys(expense_ids))
        if not expense_ids:
            raise ValidationError(["At least one expense id is required."])
        outcome = BatchOutcome()
        for expense_id in expense_ids:
            try:
                outcome.reimbursed.append(
                    self.dispatch(
                        expense_id, actor_id, ExpenseAction.REIMBURSE, comment=comment
                    )
                )
            except ExpenseWorkflowError as exc:
                outcome.failures[expense_id] = exc
        return outcome

    def _check_not_deleted(self, expense: Expense, action: ExpenseAction) -> None:
        if expense.is_deleted and action is not ExpenseAction.RESTORE:
            raise Forbidden(f"Cannot {action.value} a deleted expense")

    def _save(self, expense: Expense, expected_version: int) -> Expense:
        try:
            return self.repository.save(expense, expected_version)
        except Conflict:
            logger.warning(
                "Concurrent modification of expense %s at version %s",
                expense.id,
                expected_version,
            )
            raise

    def _today(self) -> date:
        return self._clock().date()
