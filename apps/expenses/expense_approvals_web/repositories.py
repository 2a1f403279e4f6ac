"""Database access layer for the expense approvals web app."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from packages.expense_workflow import (
    AuditEntry,
    Conflict,
    Expense,
    ExpenseState,
    LineItem,
    NotFound,
)
from packages.expense_workflow.expenses import from_minor_units, to_minor_units, utcnow
from packages.expense_workflow.memory import REVIEW_STATES, OWNER_SCOPES

from .database import (
    expense_audit_entries,
    expense_line_items,
    expense_managers,
    expenses,
    session_scope,
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; every stored timestamp is UTC."""

    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ExpensesRepository:
    """Loads and saves expense aggregates with optimistic concurrency.

    A save is a conditional ``UPDATE ... WHERE version = :expected``. When no
    row matches, the claim was either never stored (:class:`NotFound`) or
    saved by someone else since it was loaded (:class:`Conflict`). Line
    items and managers are rewritten with the row; audit entries are only
    ever inserted.
    """

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow):
        self._engine = engine
        self._clock = clock

    def add(self, expense: Expense) -> Expense:
        """Persist a brand new claim as version 1."""

        now = self._clock()
        try:
            with session_scope(self._engine) as session:
                session.execute(
                    insert(expenses).values(
                        id=expense.id,
                        owner_id=expense.owner_id,
                        organization_id=expense.organization_id,
                        total_amount_cents=to_minor_units(expense.total_amount),
                        state=expense.state.value,
                        deleted_at=expense.deleted_at,
                        version=1,
                        created_at=now,
                        updated_at=now,
                    )
                )
                self._write_children(session, expense)
                self._append_audit_entries(
                    session, expense.id, expense.audit_log, start=0
                )
        except IntegrityError:
            existing = self._current_version(expense.id)
            if existing is None:
                raise
            raise Conflict(expense.id, 0, existing) from None
        return self.load(expense.id)

    def load(self, expense_id: str) -> Expense:
        """Fetch a single claim including items, managers and history."""

        with session_scope(self._engine) as session:
            row = session.execute(
                select(expenses).where(expenses.c.id == expense_id)
            ).one_or_none()
            if row is None:
                raise NotFound(expense_id)
            return self._hydrate(session, [row])[0]

    def save(self, expense: Expense, expected_version: int) -> Expense:
        """Store ``expense`` if nobody saved it since ``expected_version``."""

        with session_scope(self._engine) as session:
            result = session.execute(
                update(expenses)
                .where(
                    expenses.c.id == expense.id,
                    expenses.c.version == expected_version,
                )
                .values(
                    organization_id=expense.organization_id,
                    total_amount_cents=to_minor_units(expense.total_amount),
                    state=expense.state.value,
                    deleted_at=expense.deleted_at,
                    version=expected_version + 1,
                    updated_at=self._clock(),
                )
            )
            if result.rowcount == 0:
                current = session.execute(
                    select(expenses.c.version).where(expenses.c.id == expense.id)
                ).scalar_one_or_none()
                if current is None:
                    raise NotFound(expense.id)
                raise Conflict(expense.id, expected_version, current)

            persisted = session.execute(
                select(func.count())
                .select_from(expense_audit_entries)
                .where(expense_audit_entries.c.expense_id == expense.id)
            ).scalar_one()
            if len(expense.audit_log) < persisted:
                raise ValueError(f"Audit log of expense {expense.id} cannot shrink")
            self._write_children(session, expense)
            self._append_audit_entries(
                session, expense.id, expense.audit_log[persisted:], start=persisted
            )
        return self.load(expense.id)

    def list_for_owner(
        self, owner_id: str, *, scope: str = "all", include_deleted: bool = False
    ) -> List[Expense]:
        """Return claims owned by ``owner_id``, newest first."""

        if scope not in OWNER_SCOPES:
            raise ValueError(f"Unknown scope {scope!r}; expected one of {OWNER_SCOPES}")
        query = select(expenses).where(expenses.c.owner_id == owner_id)
        if scope == "private":
            query = query.where(expenses.c.organization_id.is_(None))
        elif scope == "org":
            query = query.where(expenses.c.organization_id.is_not(None))
        if not include_deleted:
            query = query.where(expenses.c.deleted_at.is_(None))
        return self._fetch(query)

    def list_review_queue(
        self, manager_id: str, organization_id: Optional[str] = None
    ) -> List[Expense]:
        """Return claims awaiting a decision from ``manager_id``."""

        query = (
            select(expenses)
            .join(expense_managers, expense_managers.c.expense_id == expenses.c.id)
            .where(
                expense_managers.c.manager_id == manager_id,
                expenses.c.owner_id != manager_id,
                expenses.c.state.in_([state.value for state in REVIEW_STATES]),
                expenses.c.deleted_at.is_(None),
            )
        )
        if organization_id is not None:
            query = query.where(expenses.c.organization_id == organization_id)
        return self._fetch(query)

    def list_approved(self, organization_id: str) -> List[Expense]:
        """Return approved organization claims waiting for reimbursement."""

        return self._fetch(
            select(expenses).where(
                expenses.c.organization_id == organization_id,
                expenses.c.state == ExpenseState.APPROVED.value,
                expenses.c.deleted_at.is_(None),
            )
        )

    def _current_version(self, expense_id: str) -> Optional[int]:
        with session_scope(self._engine) as session:
            return session.execute(
                select(expenses.c.version).where(expenses.c.id == expense_id)
            ).scalar_one_or_none()

    def _fetch(self, query) -> List[Expense]:
        query = query.order_by(expenses.c.created_at.desc(), expenses.c.id.desc())
        with session_scope(self._engine) as session:
            rows = session.execute(query).all()
            return self._hydrate(session, rows)

    def _write_children(self, session: Session, expense: Expense) -> None:
        session.execute(
            delete(expense_line_items).where(
                expense_line_items.c.expense_id == expense.id
            )
        )
        session.execute(
            delete(expense_managers).where(expense_managers.c.expense_id == expense.id)
        )
        if expense.line_items:
            session.execute(
                insert(expense_line_items),
                [
                    {
                        "expense_id": expense.id,
                        "position": position,
                        "expense_date": item.date,
                        "amount_cents": item.amount_in_minor_units(),
                        "description": item.description,
                        "category": item.category,
                        "attachments": list(item.attachments),
                    }
                    for position, item in enumerate(expense.line_items)
                ],
            )
        if expense.manager_ids:
            session.execute(
                insert(expense_managers),
                [
                    {"expense_id": expense.id, "manager_id": manager_id}
                    for manager_id in sorted(expense.manager_ids)
                ],
            )

    @staticmethod
    def _append_audit_entries(
        session: Session, expense_id: str, entries: Sequence[AuditEntry], *, start: int
    ) -> None:
        if not entries:
            return
        session.execute(
            insert(expense_audit_entries),
            [
                {
                    "expense_id": expense_id,
                    "position": start + offset,
                    "action": entry.action,
                    "actor_id": entry.actor_id,
                    "occurred_at": entry.date,
                    "previous_values": (
                        dict(entry.previous_values)
                        if entry.previous_values is not None
                        else None
                    ),
                    "updated_values": (
                        dict(entry.updated_values)
                        if entry.updated_values is not None
                        else None
                    ),
                    "comment": entry.comment,
                }
                for offset, entry in enumerate(entries)
            ],
        )

    def _hydrate(self, session: Session, rows: Iterable) -> List[Expense]:
        """Convert expense rows plus their child rows into aggregates."""

        rows = list(rows)
        ids = [row._mapping["id"] for row in rows]
        if not ids:
            return []
        items: Dict[str, List[LineItem]] = {expense_id: [] for expense_id in ids}
        for item_row in session.execute(
            select(expense_line_items)
            .where(expense_line_items.c.expense_id.in_(ids))
            .order_by(expense_line_items.c.position)
        ):
            values = item_row._mapping
            items[values["expense_id"]].append(self._row_to_item(item_row))
        managers: Dict[str, set] = {expense_id: set() for expense_id in ids}
        for manager_row in session.execute(
            select(expense_managers).where(expense_managers.c.expense_id.in_(ids))
        ):
            values = manager_row._mapping
            managers[values["expense_id"]].add(values["manager_id"])
        history: Dict[str, List[AuditEntry]] = {expense_id: [] for expense_id in ids}
        for entry_row in session.execute(
            select(expense_audit_entries)
            .where(expense_audit_entries.c.expense_id.in_(ids))
            .order_by(expense_audit_entries.c.position)
        ):
            values = entry_row._mapping
            history[values["expense_id"]].append(self._row_to_entry(entry_row))

        return [
            self._row_to_expense(
                row,
                line_items=items[row._mapping["id"]],
                manager_ids=managers[row._mapping["id"]],
                audit_log=history[row._mapping["id"]],
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_expense(row, *, line_items, manager_ids, audit_log) -> Expense:
        """Convert a SQLAlchemy row to an :class:`Expense`."""

        values = row._mapping
        return Expense(
            id=values["id"],
            owner_id=values["owner_id"],
            organization_id=values["organization_id"],
            manager_ids=frozenset(manager_ids),
            total_amount=from_minor_units(values["total_amount_cents"]),
            line_items=tuple(line_items),
            state=ExpenseState(values["state"]),
            deleted_at=_aware(values["deleted_at"]),
            audit_log=tuple(audit_log),
            created_at=_aware(values["created_at"]),
            updated_at=_aware(values["updated_at"]),
            version=values["version"],
        )

    @staticmethod
    def _row_to_item(row) -> LineItem:
        """Convert a SQLAlchemy row to a :class:`LineItem`."""

        values = row._mapping
        return LineItem(
            amount=from_minor_units(values["amount_cents"]),
            date=values["expense_date"],
            description=values["description"],
            category=values["category"],
            attachments=tuple(values["attachments"] or ()),
        )

    @staticmethod
    def _row_to_entry(row) -> AuditEntry:
        """Convert a SQLAlchemy row to an :class:`AuditEntry`."""

        values = row._mapping
        return AuditEntry(
            action=values["action"],
            date=_aware(values["occurred_at"]),
            actor_id=values["actor_id"],
            previous_values=values["previous_values"],
            updated_values=values["updated_values"],
            comment=values["comment"],
        )
