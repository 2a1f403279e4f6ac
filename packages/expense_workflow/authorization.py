"""Actor-class based authorization for expense actions.

The guard answers one question: may this actor request this action on this
claim? It knows nothing about states beyond what the action implies; the
state machine decides whether the action is legal *now*. Organization
facts come from a :class:`Directory` collaborator so the rules can be
exercised without any transport or database.

Actor classes:

* **Owner** may create, edit, submit, reopen, delete and restore.
* **Assigned manager** may approve and reject. On organization claims the
  manager must also be a current member of the organization.
* **Organization admin/owner** may reimburse without being an assigned
  manager. Assigned managers (with membership on organization claims) may
  reimburse too.

Nobody reviews their own claim: approve, reject and reimburse are denied
when the actor owns the claim, whatever other roles they hold.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Protocol, Set

from .errors import Forbidden, Unauthorized
from .expenses import REVIEW_ACTIONS, Expense, ExpenseAction, ExpenseDraft

logger = logging.getLogger(__name__)


class OrganizationRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"


FINANCE_ROLES = frozenset({OrganizationRole.ADMIN, OrganizationRole.OWNER})

OWNER_ACTIONS = frozenset(
    {
        ExpenseAction.SUBMIT,
        ExpenseAction.REOPEN,
        ExpenseAction.DELETE,
        ExpenseAction.RESTORE,
        ExpenseAction.EDIT,
    }
)


class Directory(Protocol):
    """Organization membership and role lookups."""

    def is_organization_member(self, organization_id: str, user_id: str) -> bool:
        ...

    def get_role(
        self, organization_id: str, user_id: str
    ) -> Optional[OrganizationRole]:
        ...

    def organizations_for(self, user_id: str) -> Set[str]:
        ...


class AuthorizationGuard:
    """Allow/deny decisions for ``(actor, expense, action)`` triples."""

    def __init__(self, directory: Directory):
        self._directory = directory

    def check(self, actor_id: Optional[str], expense: Expense, action: ExpenseAction) -> None:
        """Raise :class:`Forbidden` unless ``actor_id`` may perform ``action``."""

        actor_id = require_actor(actor_id)
        reason = self._denial_reason(actor_id, expense, ExpenseAction(action))
        if reason is not None:
            logger.warning(
                "Denied %s on expense %s for actor %s: %s",
                ExpenseAction(action).value,
                expense.id,
                actor_id,
                reason,
            )
            raise Forbidden(reason)

    def is_allowed(
        self, actor_id: Optional[str], expense: Expense, action: ExpenseAction
    ) -> bool:
        if not actor_id:
            return False
        return self._denial_reason(actor_id, expense, ExpenseAction(action)) is None

    def check_create(self, actor_id: Optional[str], draft: ExpenseDraft) -> str:
        """Validate that ``actor_id`` may open a claim described by ``draft``.

        Returns the authenticated actor id, which becomes the claim owner.
        """

        actor_id = require_actor(actor_id)
        if draft.organization_id is not None and not self._directory.is_organization_member(
            draft.organization_id, actor_id
        ):
            raise Forbidden("Only organization members can create organization expenses")
        return actor_id

    def can_view(self, actor_id: Optional[str], expense: Expense) -> bool:
        """Owners, assigned managers and organization finance roles may read."""

        if not actor_id:
            return False
        if actor_id == expense.owner_id or actor_id in expense.manager_ids:
            return True
        return self._holds_finance_role(actor_id, expense)

    def check_view(self, actor_id: Optional[str], expense: Expense) -> None:
        actor_id = require_actor(actor_id)
        if not self.can_view(actor_id, expense):
            raise Forbidden("You do not have access to this expense")

    def check_membership(self, actor_id: Optional[str], organization_id: str) -> str:
        actor_id = require_actor(actor_id)
        if not self._directory.is_organization_member(organization_id, actor_id):
            raise Forbidden("Not a member of this organization")
        return actor_id

    def check_finance_access(self, actor_id: Optional[str], organization_id: str) -> str:
        """Only organization admins and owners see the reimbursement queue."""

        actor_id = require_actor(actor_id)
        role = self._directory.get_role(organization_id, actor_id)
        if role is None or OrganizationRole(role) not in FINANCE_ROLES:
            raise Forbidden("Only organization admins can manage reimbursements")
        return actor_id

    def _denial_reason(
        self, actor_id: str, expense: Expense, action: ExpenseAction
    ) -> Optional[str]:
        is_owner = actor_id == expense.owner_id

        if action in OWNER_ACTIONS:
            if is_owner:
                return None
            return f"Only the expense owner can {action.value} this expense"

        if action in REVIEW_ACTIONS and is_owner:
            return "You cannot review your own expense"

        if action in (ExpenseAction.APPROVE, ExpenseAction.REJECT):
            if self._is_qualified_manager(actor_id, expense):
                return None
            return f"Only assigned managers can {action.value} this expense"

        if action is ExpenseAction.REIMBURSE:
            # Admin OR assigned-manager-with-membership; both paths are kept.
            if self._holds_finance_role(actor_id, expense):
                return None
            if self._is_qualified_manager(actor_id, expense):
                return None
            return "Only assigned managers or organization admins can reimburse this expense"

        return f"Unsupported action {action.value}"

    def _is_qualified_manager(self, actor_id: str, expense: Expense) -> bool:
        if actor_id not in expense.manager_ids:
            return False
        if expense.organization_id is None:
            return True
        return self._directory.is_organization_member(expense.organization_id, actor_id)

    def _holds_finance_role(self, actor_id: str, expense: Expense) -> bool:
        if expense.organization_id is not None:
            organizations = {expense.organization_id}
        else:
            # Personal claims are settled by the finance team of any
            # organization the claimant belongs to.
            organizations = self._directory.organizations_for(expense.owner_id)
        for organization_id in organizations:
            role = self._directory.get_role(organization_id, actor_id)
            if role is not None and OrganizationRole(role) in FINANCE_ROLES:
                return True
        return False


def require_actor(actor_id: Optional[str]) -> str:
    """Return ``actor_id`` or raise :class:`Unauthorized` when it is missing."""

    if actor_id is None or not str(actor_id).strip():
        raise Unauthorized()
    return str(actor_id).strip()
