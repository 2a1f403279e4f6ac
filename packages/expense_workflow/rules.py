"""Business rules checked before a mutation is applied."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import FrozenSet, Iterable, List, Optional

from .errors import ValidationError
from .expenses import CENT, Expense, ExpenseAction, LineItem

MAX_AMOUNT_DIGITS = 15


def amount_errors(label: str, amount: Decimal) -> List[str]:
    """Return problems with a monetary amount."""

    if not isinstance(amount, Decimal) or not amount.is_finite():
        return [f"{label} must be a valid number."]
    # Cents must fit a signed 64-bit column.
    if amount and amount.adjusted() >= MAX_AMOUNT_DIGITS:
        return [f"{label} is too large."]
    errors: List[str] = []
    if amount < 0:
        errors.append(f"{label} cannot be negative.")
    if amount != amount.quantize(CENT):
        errors.append(f"{label} cannot have more than two decimal places.")
    return errors


def line_item_errors(items: Iterable[LineItem], today: date) -> List[str]:
    errors: List[str] = []
    for index, item in enumerate(items, start=1):
        errors.extend(amount_errors(f"Line item {index}: Amount", item.amount))
        if item.date > today:
            errors.append(f"Line item {index}: Date cannot be in the future.")
    return errors


def manager_errors(
    manager_ids: FrozenSet[str], owner_id: str, organization_id: Optional[str]
) -> List[str]:
    errors: List[str] = []
    if organization_id is not None and not manager_ids:
        errors.append("At least one manager is required for organization expenses.")
    if owner_id in manager_ids:
        errors.append("You cannot assign yourself as a manager.")
    if any(not str(manager_id).strip() for manager_id in manager_ids):
        errors.append("Manager ids cannot be blank.")
    return errors


def validate_fields(
    *,
    owner_id: str,
    organization_id: Optional[str],
    total_amount: Decimal,
    manager_ids: FrozenSet[str],
    line_items: Iterable[LineItem],
    today: date,
) -> None:
    """Raise :class:`ValidationError` if the editable fields are invalid."""

    errors = amount_errors("Total amount", total_amount)
    errors.extend(manager_errors(manager_ids, owner_id, organization_id))
    errors.extend(line_item_errors(line_items, today))
    if errors:
        raise ValidationError(errors)


def validate_action(action: ExpenseAction, expense: Expense) -> None:
    """Check the rules a transition carries on top of the state table."""

    if ExpenseAction(action) is ExpenseAction.SUBMIT and not expense.line_items:
        raise ValidationError(["Cannot submit expense without line items."])
