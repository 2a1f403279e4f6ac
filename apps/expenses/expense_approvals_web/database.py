"""Database setup utilities for the expense approvals web app."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

metadata = MetaData()

expenses = Table(
    "expenses",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("owner_id", String(64), nullable=False, index=True),
    Column("organization_id", String(64), nullable=True, index=True),
    Column("total_amount_cents", Integer, nullable=False, default=0),
    Column("state", String(32), nullable=False, index=True),
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    # Optimistic concurrency token, bumped by every successful save.
    Column("version", Integer, nullable=False, default=1),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

expense_line_items = Table(
    "expense_line_items",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "expense_id",
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("position", Integer, nullable=False),
    Column("expense_date", Date, nullable=False),
    Column("amount_cents", Integer, nullable=False),
    Column("description", Text, nullable=True),
    Column("category", String(120), nullable=True),
    Column("attachments", JSON, nullable=False, default=list),
)

expense_managers = Table(
    "expense_managers",
    metadata,
    Column(
        "expense_id",
        ForeignKey("expenses.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("manager_id", String(64), primary_key=True, index=True),
)

expense_audit_entries = Table(
    "expense_audit_entries",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "expense_id",
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("position", Integer, nullable=False),
    Column("action", String(32), nullable=False),
    Column("actor_id", String(64), nullable=False),
    Column("occurred_at", DateTime(timezone=True), nullable=False),
    Column("previous_values", JSON, nullable=True),
    Column("updated_values", JSON, nullable=True),
    Column("comment", Text, nullable=True),
    UniqueConstraint("expense_id", "position", name="uq_audit_expense_position"),
)

organization_members = Table(
    "organization_members",
    metadata,
    Column("organization_id", String(64), primary_key=True),
    Column("user_id", String(64), primary_key=True, index=True),
    Column("role", String(16), nullable=False, default="member"),
)


def create_db_engine(database_url: str) -> Engine:
    """Return a SQLAlchemy engine for the provided URL."""

    return create_engine(database_url, future=True)


def init_schema(engine: Engine) -> None:
    """Create database tables if they do not exist."""

    metadata.create_all(engine)


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Context manager that yields a SQLAlchemy :class:`Session`."""

    with Session(engine, future=True) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
