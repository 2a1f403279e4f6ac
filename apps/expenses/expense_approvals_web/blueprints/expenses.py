"""HTTP routes for the expense approval workflow."""

from __future__ import annotations

from typing import Any, Tuple

from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import current_user, login_required

from packages.expense_workflow import (
    Conflict,
    ExpenseWorkflowError,
    Forbidden,
    ValidationError,
)

from .. import get_dispatcher, get_repository
from ..forms import parse_action_payload, parse_create_payload, parse_update_payload
from ..services import build_preview, serialize_audit_entry, serialize_expense

expenses_bp = Blueprint("expenses", __name__)

TRUE_VALUES = {"1", "true", "yes", "on"}


@expenses_bp.app_errorhandler(ExpenseWorkflowError)
def handle_workflow_error(error: ExpenseWorkflowError) -> Tuple[Response, int]:
    """Translate the business error taxonomy into JSON responses."""

    if isinstance(error, (Conflict, Forbidden)):
        current_app.logger.warning("%s %s: %s", request.method, request.path, error)
    else:
        current_app.logger.info("%s %s: %s", request.method, request.path, error)
    return jsonify({"error": error.to_dict()}), error.status_code


def _json_body() -> Any:
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError(["Request body must be valid JSON."])
    return payload


def _actor_id() -> str:
    return current_user.get_id()


@expenses_bp.post("/expenses")
@login_required
def create_expense() -> Tuple[Response, int]:
    """Open a new draft owned by the caller."""

    draft, errors = parse_create_payload(_json_body())
    if errors or draft is None:
        raise ValidationError(errors)
    dispatcher = get_dispatcher()
    expense = dispatcher.create(_actor_id(), draft)
    return (
        jsonify(
            serialize_expense(expense, dispatcher.list_valid_actions(expense, _actor_id()))
        ),
        201,
    )


@expenses_bp.get("/expenses")
@login_required
def list_expenses() -> Response:
    """List the caller's own claims."""

    scope = request.args.get("scope", "all")
    if scope not in ("all", "private", "org"):
        raise ValidationError(["Scope must be one of: all, private, org."])
    include_deleted = request.args.get("include_deleted", "").lower() in TRUE_VALUES
    expenses = get_repository().list_for_owner(
        _actor_id(), scope=scope, include_deleted=include_deleted
    )
    return jsonify(
        {
            "expenses": [serialize_expense(expense) for expense in expenses],
            "total": len(expenses),
        }
    )


@expenses_bp.get("/expenses/<expense_id>")
@login_required
def view_expense(expense_id: str) -> Response:
    """Return one claim with the actions the caller may take."""

    dispatcher = get_dispatcher()
    expense = dispatcher.get(expense_id, _actor_id())
    return jsonify(
        serialize_expense(expense, dispatcher.list_valid_actions(expense, _actor_id()))
    )


@expenses_bp.put("/expenses/<expense_id>")
@login_required
def update_expense(expense_id: str) -> Response:
    """Edit the Draft-only fields of a claim."""

    payload = _json_body()
    changes, errors = parse_update_payload(payload)
    if errors or changes is None:
        raise ValidationError(errors)
    comment = payload.get("comment") if isinstance(payload.get("comment"), str) else None
    dispatcher = get_dispatcher()
    expense = dispatcher.edit(expense_id, _actor_id(), changes, comment=comment)
    return jsonify(
        serialize_expense(expense, dispatcher.list_valid_actions(expense, _actor_id()))
    )


@expenses_bp.patch("/expenses/<expense_id>")
@login_required
def apply_action(expense_id: str) -> Response:
    """Single action endpoint: submit, approve, reject, reimburse, ..."""

    action_request, errors = parse_action_payload(_json_body())
    if errors or action_request is None:
        raise ValidationError(errors)
    dispatcher = get_dispatcher()
    expense = dispatcher.dispatch(
        expense_id,
        _actor_id(),
        action_request.action,
        comment=action_request.comment,
    )
    return jsonify(
        serialize_expense(expense, dispatcher.list_valid_actions(expense, _actor_id()))
    )


@expenses_bp.get("/expenses/<expense_id>/actions")
@login_required
def valid_actions(expense_id: str) -> Response:
    """Tell a UI which buttons to show for this claim."""

    dispatcher = get_dispatcher()
    expense = dispatcher.get(expense_id, _actor_id())
    actions = dispatcher.list_valid_actions(expense, _actor_id())
    return jsonify(
        {
            "expense_id": expense.id,
            "state": expense.state.value,
            "actions": [action.value for action in actions],
        }
    )


@expenses_bp.get("/expenses/<expense_id>/audit")
@login_required
def audit_trail(expense_id: str) -> Response:
    """Return the claim's history, oldest entry first."""

    expense = get_dispatcher().get(expense_id, _actor_id())
    return jsonify(
        {
            "expense_id": expense.id,
            "entries": [serialize_audit_entry(entry) for entry in expense.audit_log],
        }
    )


@expenses_bp.get("/expenses/<expense_id>/preview")
@login_required
def preview_expense(expense_id: str) -> Response:
    """Render a copy-ready plain text summary."""

    expense = get_dispatcher().get(expense_id, _actor_id())
    return Response(build_preview(expense), mimetype="text/plain")


@expenses_bp.get("/review-queue")
@login_required
def review_queue() -> Response:
    """Claims waiting on the caller's approval or rejection."""

    organization_id = request.args.get("organization_id") or None
    if organization_id is not None:
        get_dispatcher().guard.check_membership(_actor_id(), organization_id)
    expenses = get_repository().list_review_queue(_actor_id(), organization_id)
    return jsonify({"expenses": [serialize_expense(expense) for expense in expenses]})


@expenses_bp.get("/finance/approved")
@login_required
def approved_expenses() -> Response:
    """Approved organization claims waiting for reimbursement."""

    organization_id = request.args.get("organization_id") or ""
    if not organization_id:
        raise ValidationError(["organization_id is required."])
    get_dispatcher().guard.check_finance_access(_actor_id(), organization_id)
    expenses = get_repository().list_approved(organization_id)
    return jsonify({"expenses": [serialize_expense(expense) for expense in expenses]})


@expenses_bp.post("/finance/reimburse")
@login_required
def reimburse_expenses() -> Response:
    """Reimburse a batch of claims; each one succeeds or fails on its own."""

    payload = _json_body()
    expense_ids = payload.get("expense_ids") if isinstance(payload, dict) else None
    if not isinstance(expense_ids, list) or not all(
        isinstance(expense_id, str) for expense_id in expense_ids
    ):
        raise ValidationError(["expense_ids must be a list of expense ids."])
    comment = payload.get("comment") if isinstance(payload.get("comment"), str) else None
    outcome = get_dispatcher().reimburse_many(expense_ids, _actor_id(), comment=comment)
    return jsonify(
        {
            "reimbursed": [serialize_expense(expense) for expense in outcome.reimbursed],
            "failures": {
                expense_id: error.to_dict()
                for expense_id, error in outcome.failures.items()
            },
        }
    )
