"""Unit tests for request payload parsing helpers."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from expense_approvals_web.forms import (
    MAX_COMMENT_LENGTH,
    parse_action_payload,
    parse_create_payload,
    parse_line_items,
    parse_update_payload,
)


def test_parse_create_payload_success():
    """Validate that a well-formed claim passes."""

    draft, errors = parse_create_payload(
        {
            "total_amount": "42.50",
            "manager_ids": ["manager-1", " manager-2 "],
            "organization_id": "org-acme",
            "line_items": [
                {
                    "amount": "42.50",
                    "date": "2024-04-02",
                    "description": "Taxi",
                    "category": "travel",
                    "attachments": ["receipts/taxi.pdf"],
                }
            ],
        }
    )
    assert not errors
    assert draft is not None
    assert draft.total_amount == Decimal("42.50")
    assert draft.manager_ids == frozenset({"manager-1", "manager-2"})
    assert draft.organization_id == "org-acme"
    (item,) = draft.line_items
    assert item.date == date(2024, 4, 2)
    assert item.attachments == ("receipts/taxi.pdf",)


def test_parse_create_payload_accepts_camel_case():
    draft, errors = parse_create_payload(
        {"totalAmount": 10, "managerIds": ["manager-1"], "lineItems": []}
    )
    assert not errors
    assert draft.total_amount == Decimal("10")
    assert draft.organization_id is None
    assert draft.line_items == ()


def test_parse_create_payload_errors():
    """Ensure missing or malformed fields surface validation errors."""

    draft, errors = parse_create_payload(
        {
            "manager_ids": "manager-1",
            "line_items": [{"amount": "abc", "date": "04/02/2024"}, "taxi"],
        }
    )
    assert draft is None
    assert "Total amount is required." in errors
    assert "Manager ids must be a list of strings." in errors
    assert "Line item 1: Amount must be a valid number." in errors
    assert "Line item 1: Date is required and must be YYYY-MM-DD." in errors
    assert "Line item 2 must be an object." in errors


def test_parse_create_payload_rejects_non_objects():
    draft, errors = parse_create_payload(["total_amount"])
    assert draft is None
    assert errors == ["Request body must be a JSON object."]


def test_parse_line_items_rejects_bad_attachments():
    items, errors = parse_line_items(
        [{"amount": "1", "date": "2024-01-01", "attachments": "receipt.pdf"}]
    )
    assert items is None
    assert errors == ["Line item 1: Attachments must be a list of references."]


def test_parse_update_payload_keeps_omitted_fields():
    changes, errors = parse_update_payload({"total_amount": "15"})
    assert not errors
    assert changes.total_amount == Decimal("15")
    assert changes.manager_ids is None
    assert changes.line_items is None


def test_parse_update_payload_requires_a_change():
    changes, errors = parse_update_payload({"comment": "nothing to see"})
    assert changes is None
    assert errors == ["No changes were supplied."]


def test_parse_action_payload():
    request, errors = parse_action_payload({"action": " approve ", "comment": " Looks good "})
    assert not errors
    assert request.action == "approve"
    assert request.comment == "Looks good"

    request, errors = parse_action_payload({"comment": 12})
    assert request is None
    assert errors == ["Action is required.", "Comment must be text."]

    request, errors = parse_action_payload(
        {"action": "reject", "comment": "x" * (MAX_COMMENT_LENGTH + 1)}
    )
    assert request is None
    assert errors == [f"Comment cannot exceed {MAX_COMMENT_LENGTH} characters."]


def test_parse_line_items_dates():
    items, errors = parse_line_items(
        [{"amount": "1", "date": "2024-04-02T10:30:00"}, {"amount": "2", "date": "2024-04-03"}]
    )
    assert not errors
    assert [item.date for item in items] == [date(2024, 4, 2), date(2024, 4, 3)]

    for raw in ("2024-01-01junk", "2024-01-01 trailing", 20240101):
        items, errors = parse_line_items([{"amount": "1", "date": raw}])
        assert items is None
        assert errors == ["Line item 1: Date is required and must be YYYY-MM-DD."]
