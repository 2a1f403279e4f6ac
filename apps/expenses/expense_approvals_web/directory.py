"""Organization directory backed by the ``organization_members`` table."""

from __future__ import annotations

from typing import Optional, Set

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Engine

from packages.expense_workflow import OrganizationRole

from .database import organization_members, session_scope


class SqlDirectory:
    """Answers membership and role questions for :class:`AuthorizationGuard`."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def is_organization_member(self, organization_id: str, user_id: str) -> bool:
        return self.get_role(organization_id, user_id) is not None

    def get_role(
        self, organization_id: str, user_id: str
    ) -> Optional[OrganizationRole]:
        with session_scope(self._engine) as session:
            role = session.execute(
                select(organization_members.c.role).where(
                    organization_members.c.organization_id == organization_id,
                    organization_members.c.user_id == user_id,
                )
            ).scalar_one_or_none()
        return OrganizationRole(role) if role is not None else None

    def organizations_for(self, user_id: str) -> Set[str]:
        with session_scope(self._engine) as session:
            rows = session.execute(
                select(organization_members.c.organization_id).where(
                    organization_members.c.user_id == user_id
                )
            ).scalars()
            return set(rows)

    def set_role(
        self, organization_id: str, user_id: str, role: OrganizationRole
    ) -> None:
        """Create or replace a membership; used by the ``grant-role`` command."""

        role = OrganizationRole(role)
        with session_scope(self._engine) as session:
            session.execute(
                delete(organization_members).where(
                    organization_members.c.organization_id == organization_id,
                    organization_members.c.user_id == user_id,
                )
            )
            session.execute(
                insert(organization_members).values(
                    organization_id=organization_id,
                    user_id=user_id,
                    role=role.value,
                )
            )

    def remove_member(self, organization_id: str, user_id: str) -> None:
        with session_scope(self._engine) as session:
            session.execute(
                delete(organization_members).where(
                    organization_members.c.organization_id == organization_id,
                    organization_members.c.user_id == user_id,
                )
            )
