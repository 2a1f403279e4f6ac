"""Request payload parsing and validation helpers.

Parsers return ``(result, errors)``; ``result`` is ``None`` when parsing
fails. They check shape and syntax only. Business rules such as future
dated line items live in :mod:`packages.expense_workflow.rules`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, FrozenSet, List, Mapping, Optional, Tuple

from packages.expense_workflow import ExpenseChanges, ExpenseDraft, LineItem

DATE_INPUT_FORMAT = "%Y-%m-%d"
MAX_COMMENT_LENGTH = 1000


@dataclass(slots=True)
class ActionRequest:
    """Validated body of the action endpoint."""

    action: str
    comment: Optional[str]


def _get(payload: Mapping[str, Any], name: str, alias: str) -> Any:
    """Read ``name`` falling back to its camelCase ``alias``."""

    if name in payload:
        return payload[name]
    return payload.get(alias)


def _parse_amount(raw: Any, label: str, errors: List[str]) -> Optional[Decimal]:
    if raw is None or isinstance(raw, bool) or str(raw).strip() == "":
        errors.append(f"{label} is required.")
        return None
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        errors.append(f"{label} must be a valid number.")
        return None
    if not amount.is_finite():
        errors.append(f"{label} must be a valid number.")
        return None
    return amount


def _parse_date(raw: Any, label: str, errors: List[str]) -> Optional[date]:
    """Accept ``YYYY-MM-DD`` or a full ISO timestamp, nothing else."""

    text = str(raw).strip() if isinstance(raw, str) else ""
    try:
        return datetime.strptime(text, DATE_INPUT_FORMAT).date()
    except ValueError:
        pass
    if "T" in text:
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    errors.append(f"{label} is required and must be YYYY-MM-DD.")
    return None


def _optional_text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def parse_line_items(raw: Any) -> Tuple[Optional[Tuple[LineItem, ...]], List[str]]:
    """Validate a list of line item objects."""

    if not isinstance(raw, list):
        return None, ["Line items must be a list."]
    errors: List[str] = []
    items: List[LineItem] = []
    for index, entry in enumerate(raw, start=1):
        label = f"Line item {index}"
        if not isinstance(entry, Mapping):
            errors.append(f"{label} must be an object.")
            continue
        amount = _parse_amount(entry.get("amount"), f"{label}: Amount", errors)
        expense_date = _parse_date(entry.get("date"), f"{label}: Date", errors)
        attachments = entry.get("attachments") or []
        if not isinstance(attachments, list) or not all(
            isinstance(reference, str) for reference in attachments
        ):
            errors.append(f"{label}: Attachments must be a list of references.")
            attachments = []
        if amount is None or expense_date is None:
            continue
        items.append(
            LineItem(
                amount=amount,
                date=expense_date,
                description=_optional_text(entry.get("description")),
                category=_optional_text(entry.get("category")),
                attachments=tuple(attachments),
            )
        )
    if errors:
        return None, errors
    return tuple(items), []


def _parse_manager_ids(raw: Any, errors: List[str]) -> Optional[FrozenSet[str]]:
    if not isinstance(raw, list) or not all(isinstance(value, str) for value in raw):
        errors.append("Manager ids must be a list of strings.")
        return None
    return frozenset(value.strip() for value in raw)


def parse_create_payload(
    payload: Any,
) -> Tuple[Optional[ExpenseDraft], List[str]]:
    """Validate the body of ``POST /expenses``."""

    if not isinstance(payload, Mapping):
        return None, ["Request body must be a JSON object."]
    errors: List[str] = []
    total_amount = _parse_amount(
        _get(payload, "total_amount", "totalAmount"), "Total amount", errors
    )
    manager_ids = _parse_manager_ids(
        _get(payload, "manager_ids", "managerIds") or [], errors
    )
    line_items, item_errors = parse_line_items(
        _get(payload, "line_items", "lineItems") or []
    )
    errors.extend(item_errors)
    organization_id = _optional_text(_get(payload, "organization_id", "organizationId"))

    if errors:
        return None, errors
    return (
        ExpenseDraft(
            total_amount=total_amount,
            manager_ids=manager_ids,
            line_items=line_items,
            organization_id=organization_id,
        ),
        [],
    )


def parse_update_payload(
    payload: Any,
) -> Tuple[Optional[ExpenseChanges], List[str]]:
    """Validate the body of ``PUT /expenses/<id>``; omitted fields stay as is."""

    if not isinstance(payload, Mapping):
        return None, ["Request body must be a JSON object."]
    errors: List[str] = []
    total_amount = manager_ids = line_items = None

    raw_total = _get(payload, "total_amount", "totalAmount")
    if raw_total is not None:
        total_amount = _parse_amount(raw_total, "Total amount", errors)
    raw_managers = _get(payload, "manager_ids", "managerIds")
    if raw_managers is not None:
        manager_ids = _parse_manager_ids(raw_managers, errors)
    raw_items = _get(payload, "line_items", "lineItems")
    if raw_items is not None:
        line_items, item_errors = parse_line_items(raw_items)
        errors.extend(item_errors)

    changes = ExpenseChanges(
        total_amount=total_amount, manager_ids=manager_ids, line_items=line_items
    )
    if not errors and changes.is_empty():
        errors.append("No changes were supplied.")
    if errors:
        return None, errors
    return changes, []


def parse_action_payload(payload: Any) -> Tuple[Optional[ActionRequest], List[str]]:
    """Validate the body of the action endpoint."""

    if not isinstance(payload, Mapping):
        return None, ["Request body must be a JSON object."]
    errors: List[str] = []
    action = _optional_text(payload.get("action"))
    if action is None:
        errors.append("Action is required.")
    comment = payload.get("comment")
    if comment is not None and not isinstance(comment, str):
        errors.append("Comment must be text.")
        comment = None
    comment = _optional_text(comment)
    if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
        errors.append(f"Comment cannot exceed {MAX_COMMENT_LENGTH} characters.")
    if errors:
        return None, errors
    return ActionRequest(action=action, comment=comment), []
