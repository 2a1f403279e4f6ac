"""Unit tests for the transition table."""

from __future__ import annotations

import itertools

import pytest

from packages.expense_workflow import (
    ExpenseAction,
    ExpenseState,
    ForbiddenTransition,
    StateMachine,
)
from packages.expense_workflow.state_machine import TRANSITIONS, iter_transitions

S = ExpenseState
A = ExpenseAction

EXPECTED_ROWS = {
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

INVALID_PAIRS = [
    (state, action)
    for action, state in itertools.product(ExpenseAction, ExpenseState)
    if (action, state) not in EXPECTED_ROWS
]


def test_table_matches_documented_rows():
    """The table holds exactly the documented rows."""

    assert dict(TRANSITIONS) == EXPECTED_ROWS
    assert sorted(iter_transitions()) == sorted(
        (action, source, destination)
        for (action, source), destination in EXPECTED_ROWS.items()
    )


@pytest.mark.parametrize(("action", "source"), sorted(EXPECTED_ROWS))
def test_valid_transitions(action, source):
    """Every documented row yields its destination."""

    assert StateMachine().validate(source, action) is EXPECTED_ROWS[(action, source)]


@pytest.mark.parametrize(("state", "action"), INVALID_PAIRS)
def test_every_other_pair_is_a_forbidden_transition(state, action):
    """Pairs outside the table are rejected with the attempted state."""

    with pytest.raises(ForbiddenTransition) as excinfo:
        StateMachine().validate(state, action)
    assert excinfo.value.state == state.value
    assert excinfo.value.action == action.value
    assert excinfo.value.status_code == 403


def test_submit_destination_depends_on_source():
    machine = StateMachine()
    assert machine.validate(S.DRAFT, A.SUBMIT) is S.PRE_APPROVAL_PENDING
    assert machine.validate(S.PRE_APPROVED, A.SUBMIT) is S.APPROVAL_PENDING


def test_reimbursed_is_terminal():
    assert StateMachine().available_actions(S.REIMBURSED) == []


def test_validate_accepts_raw_values():
    assert StateMachine().validate("Approved", "reimburse") is S.REIMBURSED


def test_source_states_for_reject():
    assert StateMachine().source_states(A.REJECT) == {
        S.PRE_APPROVAL_PENDING,
        S.PRE_APPROVED,
        S.APPROVAL_PENDING,
    }


@pytest.mark.parametrize("state", [state for state in ExpenseState if state is not S.DRAFT])
def test_edit_is_draft_only(state):
    StateMachine.validate_edit(S.DRAFT)
    with pytest.raises(ForbiddenTransition):
        StateMachine.validate_edit(state)


@pytest.mark.parametrize("state", list(ExpenseState))
def test_soft_delete_flag_is_independent_of_state(state):
    StateMachine.validate_deletion(A.DELETE, state, is_deleted=False)
    StateMachine.validate_deletion(A.RESTORE, state, is_deleted=True)
    with pytest.raises(ForbiddenTransition):
        StateMachine.validate_deletion(A.DELETE, state, is_deleted=True)
    with pytest.raises(ForbiddenTransition):
        StateMachine.validate_deletion(A.RESTORE, state, is_deleted=False)
