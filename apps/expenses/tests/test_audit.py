"""Unit tests for audit entry construction."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

from conftest import MANAGER, OWNER, line_item, make_expense
from packages.expense_workflow import AuditAction, AuditRecorder, ExpenseState, describe_action
from packages.expense_workflow.audit import (
    CREATION_FIELDS,
    EDITABLE_FIELDS,
    STATE_FIELDS,
    diff_snapshots,
)


def test_transition_entry_holds_only_state(clock):
    recorder = AuditRecorder(clock)
    before = make_expense()
    after = replace(before, state=ExpenseState.PRE_APPROVAL_PENDING)

    entry = recorder.build(AuditAction.SUBMITTED, OWNER, before, after, STATE_FIELDS)

    assert entry.action == "submitted"
    assert entry.actor_id == OWNER
    assert entry.previous_values == {"state": "Draft"}
    assert entry.updated_values == {"state": "Pre-Approval Pending"}
    assert entry.date == datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def test_edit_entry_is_restricted_to_changed_fields(clock):
    recorder = AuditRecorder(clock)
    before = make_expense()
    after = replace(before, total_amount=Decimal("150"))

    entry = recorder.build(AuditAction.UPDATED, OWNER, before, after, EDITABLE_FIELDS)

    assert entry.previous_values == {"total_amount": "120.00"}
    assert entry.updated_values == {"total_amount": "150.00"}


def test_line_item_and_manager_snapshots_are_json_safe(clock):
    recorder = AuditRecorder(clock)
    before = make_expense()
    after = replace(
        before,
        manager_ids=frozenset({"zed", MANAGER}),
        line_items=before.line_items + (line_item("9.5", attachments=("r.pdf",)),),
    )

    entry = recorder.build(AuditAction.UPDATED, OWNER, before, after, EDITABLE_FIELDS)

    assert set(entry.updated_values) == {"manager_ids", "line_items"}
    assert entry.updated_values["manager_ids"] == [MANAGER, "zed"]
    assert entry.updated_values["line_items"][1] == {
        "amount": "9.50",
        "date": "2024-04-15",
        "description": "Client dinner",
        "category": "meals",
        "attachments": ["r.pdf"],
    }


def test_noop_change_is_informational(clock):
    recorder = AuditRecorder(clock)
    expense = make_expense()

    entry = recorder.build(
        AuditAction.UPDATED, OWNER, expense, expense, EDITABLE_FIELDS, comment="checked"
    )

    assert entry.previous_values is None
    assert entry.updated_values is None
    assert entry.comment == "checked"


def test_creation_records_initial_values(clock):
    expense = make_expense()
    recorded = AuditRecorder(clock).record(
        AuditAction.CREATED, OWNER, None, expense, CREATION_FIELDS
    )

    (entry,) = recorded.audit_log
    assert entry.previous_values is None
    assert entry.updated_values["state"] == "Draft"
    assert entry.updated_values["organization_id"] is None
    assert expense.audit_log == ()


def test_record_appends_without_touching_earlier_entries(clock):
    recorder = AuditRecorder(clock)
    first = recorder.record(
        AuditAction.CREATED, OWNER, None, make_expense(), CREATION_FIELDS
    )
    second = recorder.record(
        AuditAction.SUBMITTED,
        OWNER,
        first,
        replace(first, state=ExpenseState.PRE_APPROVAL_PENDING),
        STATE_FIELDS,
    )

    assert len(second.audit_log) == 2
    assert second.audit_log[0] is first.audit_log[0]


def test_entry_dates_never_go_backwards():
    times = iter(
        [
            datetime(2024, 5, 2, tzinfo=timezone.utc),
            datetime(2024, 5, 1, tzinfo=timezone.utc),
        ]
    )
    recorder = AuditRecorder(lambda: next(times))
    first = recorder.record(
        AuditAction.CREATED, OWNER, None, make_expense(), CREATION_FIELDS
    )
    second = recorder.record(AuditAction.UPDATED, OWNER, first, first, EDITABLE_FIELDS)

    assert second.audit_log[1].date == second.audit_log[0].date


def test_diff_snapshots_handles_added_keys():
    previous, updated = diff_snapshots({"a": 1}, {"a": 1, "b": 2})
    assert previous == {}
    assert updated == {"b": 2}


def test_describe_action_labels():
    assert describe_action("approved") == "Approved by Manager"
    assert describe_action(AuditAction.REIMBURSED) == "Marked as Reimbursed"
    assert describe_action("submitted-for-final_approval") == "Submitted For Final Approval"
