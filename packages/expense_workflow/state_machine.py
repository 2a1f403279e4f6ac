"""Authoritative transition table for expense claims.

Each row maps ``(action, source state)`` to a destination state. Adding a
new action means adding rows here, not editing call sites. ``submit`` is
the only action whose destination depends on the source: a draft goes to
pre-approval, a pre-approved claim goes to final approval.

``delete`` and ``restore`` are not state transitions. They toggle
``deleted_at`` and are validated by :meth:`StateMachine.validate_deletion`.
``edit`` never changes the state but is only legal while the claim is a
draft, see :meth:`StateMachine.validate_edit`.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Mapping, Tuple

from .errors import ForbiddenTransition
from .expenses import AuditAction, ExpenseAction, ExpenseState

S = ExpenseState
A = ExpenseAction

TRANSITIONS: Mapping[Tuple[ExpenseAction, ExpenseState], ExpenseState] = {
    (A.SUBMIT, S.DRAFT): S.PRE_APPROVAL_PENDING,
    (A.SUBMIT, S.PRE_APPROVED): S.APPROVAL_PENDING,
    (A.APPROVE, S.PRE_APPROVAL_PENDING): S.PRE_APPROVED,
    (A.APPROVE, S.APPROVAL_PENDING): S.APPROVED,
    (A.REJECT, S.PRE_APPROVAL_PENDING): S.REJECTED,
    (A.REJECT, S.PRE_APPROVED): S.REJECTED,
    (A.REJECT, S.APPROVAL_PENDING): S.REJECTED,
    (A.REIMBURSE, S.APPROVED): S.REIMBURSED,
    (A.REOPEN, S.REJECTED): S.DRAFT,
}

EDITABLE_STATES: FrozenSet[ExpenseState] = frozenset({S.DRAFT})
TERMINAL_STATES: FrozenSet[ExpenseState] = frozenset({S.REIMBURSED})

AUDIT_ACTIONS: Dict[ExpenseAction, AuditAction] = {
    A.SUBMIT: AuditAction.SUBMITTED,
    A.APPROVE: AuditAction.APPROVED,
    A.REJECT: AuditAction.REJECTED,
    A.REIMBURSE: AuditAction.REIMBURSED,
    A.REOPEN: AuditAction.REOPENED,
    A.DELETE: AuditAction.DELETED,
    A.RESTORE: AuditAction.RESTORED,
    A.EDIT: AuditAction.UPDATED,
}


def transition_actions() -> List[ExpenseAction]:
    """Return the actions that move a claim between states, in table order."""

    seen: List[ExpenseAction] = []
    for action, _ in TRANSITIONS:
        if action not in seen:
            seen.append(action)
    return seen


class StateMachine:
    """Pure, stateless validator over :data:`TRANSITIONS`."""

    def __init__(
        self,
        transitions: Mapping[
            Tuple[ExpenseAction, ExpenseState], ExpenseState
        ] = TRANSITIONS,
    ):
        self._transitions = dict(transitions)

    def validate(self, state: ExpenseState, action: ExpenseAction) -> ExpenseState:
        """Return the destination state or raise :class:`ForbiddenTransition`."""

        action = ExpenseAction(action)
        state = ExpenseState(state)
        try:
            return self._transitions[(action, state)]
        except KeyError:
            raise ForbiddenTransition(action.value, state.value) from None

    def can_transition(self, state: ExpenseState, action: ExpenseAction) -> bool:
        return (ExpenseAction(action), ExpenseState(state)) in self._transitions

    def source_states(self, action: ExpenseAction) -> FrozenSet[ExpenseState]:
        """Return every state ``action`` is legal from."""

        action = ExpenseAction(action)
        return frozenset(
            source for (candidate, source) in self._transitions if candidate == action
        )

    def available_actions(self, state: ExpenseState) -> List[ExpenseAction]:
        """Return the transition actions legal from ``state``."""

        state = ExpenseState(state)
        return [
            action
            for action in transition_actions()
            if (action, state) in self._transitions
        ]

    @staticmethod
    def can_edit(state: ExpenseState) -> bool:
        return ExpenseState(state) in EDITABLE_STATES

    @staticmethod
    def validate_edit(state: ExpenseState) -> None:
        """Raise unless the Draft-only fields may change in ``state``."""

        if not StateMachine.can_edit(state):
            raise ForbiddenTransition(
                ExpenseAction.EDIT.value,
                ExpenseState(state).value,
                "Only draft expenses can be updated",
            )

    @staticmethod
    def validate_deletion(
        action: ExpenseAction, state: ExpenseState, is_deleted: bool
    ) -> None:
        """Check the soft-delete flag is in the condition ``action`` needs."""

        action = ExpenseAction(action)
        if action is ExpenseAction.DELETE and is_deleted:
            raise ForbiddenTransition(
                action.value, ExpenseState(state).value, "Expense is already deleted"
            )
        if action is ExpenseAction.RESTORE and not is_deleted:
            raise ForbiddenTransition(
                action.value, ExpenseState(state).value, "Expense is not deleted"
            )


def iter_transitions() -> Iterable[Tuple[ExpenseAction, ExpenseState, ExpenseState]]:
    """Yield ``(action, source, destination)`` rows for documentation and tests."""

    for (action, source), destination in TRANSITIONS.items():
        yield action, source, destination
