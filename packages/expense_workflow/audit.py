"""Audit trail construction for expense claims.

The recorder snapshots the fields an action touches before and after the
mutation, keeps only those whose values differ, and appends one
:class:`AuditEntry` to the claim. Appending through :meth:`AuditRecorder.record`
is the only way an audit log grows.
"""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from .expenses import AuditAction, AuditEntry, Expense, format_amount, utcnow

STATE_FIELDS: Tuple[str, ...] = ("state",)
DELETION_FIELDS: Tuple[str, ...] = ("deleted_at",)
EDITABLE_FIELDS: Tuple[str, ...] = ("total_amount", "manager_ids", "line_items")
CREATION_FIELDS: Tuple[str, ...] = ("organization_id", "state") + EDITABLE_FIELDS

ACTION_LABELS: Dict[str, str] = {
    AuditAction.CREATED.value: "Expense Draft Created",
    AuditAction.UPDATED.value: "Updated",
    AuditAction.SUBMITTED.value: "Submitted for Approval",
    AuditAction.APPROVED.value: "Approved by Manager",
    AuditAction.REJECTED.value: "Rejected by Manager",
    AuditAction.REIMBURSED.value: "Marked as Reimbursed",
    AuditAction.REOPENED.value: "Reopened as Draft",
    AuditAction.DELETED.value: "Deleted",
    AuditAction.RESTORED.value: "Restored",
}


def describe_action(action: str) -> str:
    """Return a human-readable label for an audit action.

    Unknown actions fall back to title case with separators replaced by
    spaces, e.g. ``"submitted-for-review"`` becomes ``"Submitted For Review"``.
    """

    action = getattr(action, "value", action)
    if action in ACTION_LABELS:
        return ACTION_LABELS[action]
    return re.sub(r"[-_]+", " ", action).title()


def snapshot_field(expense: Expense, name: str) -> Any:
    """Return a JSON-safe copy of one expense field."""

    value = getattr(expense, name)
    if name == "state":
        return value.value
    if name == "total_amount":
        return format_amount(value)
    if name == "manager_ids":
        return sorted(value)
    if name == "line_items":
        return [item.snapshot() for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def snapshot(expense: Expense, fields: Iterable[str]) -> Dict[str, Any]:
    return {name: snapshot_field(expense, name) for name in fields}


def diff_snapshots(
    previous: Dict[str, Any], updated: Dict[str, Any]
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Restrict both snapshots to the keys whose values differ.

    Returns ``(None, None)`` when nothing changed so the entry stays purely
    informational.
    """

    changed = [
        key
        for key in dict.fromkeys(list(previous) + list(updated))
        if previous.get(key) != updated.get(key)
    ]
    if not changed:
        return None, None
    return (
        {key: previous[key] for key in changed if key in previous},
        {key: updated[key] for key in changed if key in updated},
    )


class AuditRecorder:
    """Builds and appends audit entries for every successful mutation."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    def build(
        self,
        action: AuditAction,
        actor_id: str,
        before: Optional[Expense],
        after: Expense,
        fields: Iterable[str],
        *,
        comment: Optional[str] = None,
    ) -> AuditEntry:
        """Return the entry describing the change from ``before`` to ``after``.

        ``before`` is ``None`` for a newly created claim, in which case the
        initial values of ``fields`` are recorded as ``updated_values``.
        """

        fields = tuple(fields)
        updated = snapshot(after, fields)
        if before is None:
            previous_values, updated_values = None, updated or None
        else:
            previous_values, updated_values = diff_snapshots(
                snapshot(before, fields), updated
            )
        return AuditEntry(
            action=AuditAction(action).value,
            date=self._entry_date(after),
            actor_id=actor_id,
            previous_values=previous_values,
            updated_values=updated_values,
            comment=comment or None,
        )

    def record(
        self,
        action: AuditAction,
        actor_id: str,
        before: Optional[Expense],
        after: Expense,
        fields: Iterable[str],
        *,
        comment: Optional[str] = None,
    ) -> Expense:
        """Return ``after`` with the matching entry appended to its log."""

        entry = self.build(action, actor_id, before, after, fields, comment=comment)
        return replace(after, audit_log=after.audit_log + (entry,))

    def _entry_date(self, expense: Expense) -> datetime:
        now = self._clock()
        if expense.audit_log:
            last = expense.audit_log[-1].date
            # Entry dates never go backwards even if the clock does.
            if now < last:
                return last
        return now
