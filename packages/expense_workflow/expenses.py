"""Expense claim domain models.

These dataclasses provide a shared, immutable representation of an expense
claim, its line items and its audit history. They intentionally avoid
persistence concerns so the models can be used from multiple applications
(for example the Flask API or background processors). Every mutation
produces a new snapshot through :func:`dataclasses.replace`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .errors import ExpenseWorkflowError


class ExpenseState(str, Enum):
    """Lifecycle states an expense claim moves through."""

    DRAFT = "Draft"
    PRE_APPROVAL_PENDING = "Pre-Approval Pending"
    PRE_APPROVED = "Pre-Approved"
    APPROVAL_PENDING = "Approval Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    REIMBURSED = "Reimbursed"


class ExpenseAction(str, Enum):
    """Operations an actor may request on an existing claim."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REIMBURSE = "reimburse"
    REOPEN = "reopen"
    DELETE = "delete"
    RESTORE = "restore"
    EDIT = "edit"


class AuditAction(str, Enum):
    """Names recorded on :class:`AuditEntry` instances."""

    CREATED = "created"
    UPDATED = "updated"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REIMBURSED = "reimbursed"
    REOPENED = "reopened"
    DELETED = "deleted"
    RESTORED = "restored"


# Actions whose only effect is toggling ``deleted_at``.
SOFT_DELETE_ACTIONS: FrozenSet[ExpenseAction] = frozenset(
    {ExpenseAction.DELETE, ExpenseAction.RESTORE}
)

# Actions a manager or finance admin performs on someone else's claim.
REVIEW_ACTIONS: FrozenSet[ExpenseAction] = frozenset(
    {ExpenseAction.APPROVE, ExpenseAction.REJECT, ExpenseAction.REIMBURSE}
)


CENT = Decimal("0.01")


def format_amount(amount: Decimal) -> str:
    """Render an amount with exactly two decimals, e.g. ``Decimal("5")`` -> ``"5.00"``."""

    if isinstance(amount, Decimal) and amount.is_finite():
        return str(amount.quantize(CENT))
    return str(amount)


def to_minor_units(amount: Decimal) -> int:
    """Convert an amount to integer cents, e.g. ``Decimal("12.34")`` -> ``1234``."""

    return int((amount * 100).to_integral_value())


def from_minor_units(cents: int) -> Decimal:
    return (Decimal(cents) / Decimal(100)).quantize(CENT)


def utcnow() -> datetime:
    """Default clock returning an aware UTC timestamp."""

    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class LineItem:
    """Single expensed cost captured on a claim."""

    amount: Decimal
    date: date
    description: Optional[str] = None
    category: Optional[str] = None
    attachments: Tuple[str, ...] = ()

    def amount_in_minor_units(self) -> int:
        """Return the amount expressed in the currency's minor units.

        Monetary values are stored in cents to avoid floating point
        rounding issues. For example, ``Decimal('12.34')`` becomes ``1234``
        when expressed in minor units.
        """

        return to_minor_units(self.amount)

    def snapshot(self) -> Dict[str, Any]:
        """Return a JSON-safe copy used in audit entries and API payloads."""

        return {
            "amount": format_amount(self.amount),
            "date": self.date.isoformat(),
            "description": self.description,
            "category": self.category,
            "attachments": list(self.attachments),
        }


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """One immutable historical fact about a claim."""

    action: str
    date: datetime
    actor_id: str
    previous_values: Optional[Mapping[str, Any]] = None
    updated_values: Optional[Mapping[str, Any]] = None
    comment: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Expense:
    """Aggregate root for an expense claim and its lifecycle."""

    id: str
    owner_id: str
    organization_id: Optional[str] = None
    manager_ids: FrozenSet[str] = frozenset()
    total_amount: Decimal = Decimal("0")
    line_items: Tuple[LineItem, ...] = ()
    state: ExpenseState = ExpenseState.DRAFT
    deleted_at: Optional[datetime] = None
    audit_log: Tuple[AuditEntry, ...] = ()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    @property
    def is_private(self) -> bool:
        """Return ``True`` for personal claims without an organization."""

        return self.organization_id is None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def line_items_total(self) -> Decimal:
        """Sum the amounts of every line item on the claim."""

        return sum((item.amount for item in self.line_items), Decimal())


@dataclass(frozen=True, slots=True)
class ExpenseDraft:
    """Input accepted when a new claim is created."""

    total_amount: Decimal
    manager_ids: FrozenSet[str] = frozenset()
    line_items: Tuple[LineItem, ...] = ()
    organization_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ExpenseChanges:
    """Partial edit of the Draft-only fields; ``None`` leaves a field as is."""

    total_amount: Optional[Decimal] = None
    manager_ids: Optional[FrozenSet[str]] = None
    line_items: Optional[Tuple[LineItem, ...]] = None

    def is_empty(self) -> bool:
        return (
            self.total_amount is None
            and self.manager_ids is None
            and self.line_items is None
        )


@dataclass(slots=True)
class BatchOutcome:
    """Aggregate result returned by a batch reimbursement."""

    reimbursed: List[Expense] = field(default_factory=list)
    failures: Dict[str, ExpenseWorkflowError] = field(default_factory=dict)
