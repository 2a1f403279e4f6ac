"""Presentation helpers for the expense approvals API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from packages.expense_workflow import AuditEntry, Expense, ExpenseAction, describe_action
from packages.expense_workflow.expenses import format_amount


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_audit_entry(entry: AuditEntry) -> Dict[str, Any]:
    """Return the JSON representation of one audit entry."""

    return {
        "action": entry.action,
        "label": describe_action(entry.action),
        "date": _iso(entry.date),
        "actor_id": entry.actor_id,
        "previous_values": (
            dict(entry.previous_values) if entry.previous_values is not None else None
        ),
        "updated_values": (
            dict(entry.updated_values) if entry.updated_values is not None else None
        ),
        "comment": entry.comment,
    }


def serialize_expense(
    expense: Expense, valid_actions: Optional[Iterable[ExpenseAction]] = None
) -> Dict[str, Any]:
    """Return the full aggregate, audit log included, as JSON-safe data."""

    payload: Dict[str, Any] = {
        "id": expense.id,
        "owner_id": expense.owner_id,
        "organization_id": expense.organization_id,
        "manager_ids": sorted(expense.manager_ids),
        "total_amount": format_amount(expense.total_amount),
        "state": expense.state.value,
        "line_items": [item.snapshot() for item in expense.line_items],
        "audit_log": [serialize_audit_entry(entry) for entry in expense.audit_log],
        "created_at": _iso(expense.created_at),
        "updated_at": _iso(expense.updated_at),
        "deleted_at": _iso(expense.deleted_at),
        "version": expense.version,
    }
    if valid_actions is not None:
        payload["valid_actions"] = [action.value for action in valid_actions]
    return payload


def build_preview(expense: Expense) -> str:
    """Render a copy-ready summary of a claim and its history."""

    lines = [
        f"Expense: {expense.id}",
        f"Owner: {expense.owner_id}",
        f"Organization: {expense.organization_id or 'Personal'}",
        f"Managers: {', '.join(sorted(expense.manager_ids)) or 'None assigned'}",
        f"State: {expense.state.value}" + (" (deleted)" if expense.is_deleted else ""),
        f"Total: ${format_amount(expense.total_amount)}",
        "",
        "Line Items:",
    ]
    if not expense.line_items:
        lines.append("  - No line items recorded yet.")
    else:
        for item in expense.line_items:
            attachments = (
                f" ({len(item.attachments)} attachment(s))" if item.attachments else ""
            )
            lines.append(
                "  - "
                f"{item.date:%Y-%m-%d} | {item.category or 'Uncategorized'} | "
                f"{item.description or 'No description'} | "
                f"${format_amount(item.amount)}{attachments}"
            )
    if expense.line_items and expense.line_items_total() != expense.total_amount:
        lines.append(
            f"  ! Line items add up to ${format_amount(expense.line_items_total())}"
        )
    lines.extend(["", "History:"])
    for entry in expense.audit_log:
        comment = f" - {entry.comment}" if entry.comment else ""
        lines.append(
            f"  - {entry.date:%Y-%m-%d %H:%M} | {describe_action(entry.action)} "
            f"by {entry.actor_id}{comment}"
        )
    if not expense.audit_log:
        lines.append("  - No history recorded.")
    return "\n".join(lines)
