"""Unit tests for the bill draft and the extraction merge."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from app.models.enums import BillStatus
from app.schemas.ai import DraftBillFields, ExtractedBiller
from app.schemas.medical_bill import DocumentCreate
from app.workflow.draft import DraftBill, merge_leaves


def test_extraction_fills_blank_draft():
    fields = DraftBillFields(biller={"name": "Acme Hospital"}, totals={"amount_billed": 500})

    draft = DraftBill().merge_extracted(fields)

    assert draft.biller.name == "Acme Hospital"
    assert draft.totals.amount_billed == Decimal("500.00")
    # Everything else keeps its blank default
    assert draft.biller.phone is None
    assert draft.account.guarantor_name is None
    assert draft.date_of_service is None
    assert draft.totals.patient_responsibility == Decimal("0")
    assert draft.status == BillStatus.UNPAID
    assert draft.notes is None


def test_extraction_keeps_user_typed_fields():
    draft = DraftBill().with_edits({"biller": {"phone": "555-0100"}, "notes": "typed by me"})

    merged = draft.merge_extracted(DraftBillFields(biller={"name": "Acme Hospital"}))

    assert merged.biller.name == "Acme Hospital"
    assert merged.biller.phone == "555-0100"
    assert merged.notes == "typed by me"


def test_extraction_overwrites_present_fields():
    draft = DraftBill().with_edits({"biller": {"name": "Old Name"}, "due_date": date(2026, 1, 1)})

    merged = draft.merge_extracted(
        DraftBillFields(biller={"name": "New Name"}, due_date=date(2026, 2, 1))
    )

    assert merged.biller.name == "New Name"
    assert merged.due_date == date(2026, 2, 1)


def test_null_leaf_from_extraction_counts_as_absent():
    draft = DraftBill().with_edits({"biller": {"name": "Typed"}})

    merged = draft.merge_extracted(
        DraftBillFields(biller=ExtractedBiller(name=None, phone="555-0199"))
    )

    assert merged.biller.name == "Typed"
    assert merged.biller.phone == "555-0199"


def test_negative_extracted_amount_is_ignored():
    draft = DraftBill().with_edits({"totals": {"insurance_paid": "40"}})

    merged = draft.merge_extracted(
        DraftBillFields(totals={"insurance_paid": "-40", "amount_billed": "100"})
    )

    assert merged.totals.insurance_paid == Decimal("40.00")
    assert merged.totals.amount_billed == Decimal("100.00")


def test_user_edit_can_clear_a_field():
    draft = DraftBill().with_edits({"notes": "remove me"})
    assert draft.with_edits({"notes": None}).notes is None


@pytest.mark.parametrize(
    "base,patch",
    [
        ({"a": 1, "b": {"c": 2, "d": 3}}, {"b": {"c": 9}}),
        ({"a": 1, "b": {"c": 2}}, {"a": 5}),
        ({"a": 1, "b": {"c": 2}}, {}),
    ],
)
def test_merge_leaves_service_wins_missing_stays(base, patch):
    merged = merge_leaves(base, patch, skip_none=True)
    for key, value in patch.items():
        if isinstance(value, dict):
            for leaf, leaf_value in value.items():
                assert merged[key][leaf] == leaf_value
        else:
            assert merged[key] == value
    for key, value in base.items():
        if key not in patch:
            assert merged[key] == value
        elif isinstance(value, dict):
            for leaf, leaf_value in value.items():
                if leaf not in patch[key]:
                    assert merged[key][leaf] == leaf_value


def test_to_create_carries_documents_and_owner():
    member_id = uuid4()
    draft = DraftBill(family_member_id=member_id).with_edits({"biller": {"name": "Acme"}})
    doc = DocumentCreate(
        storage_key="bills/u/1.pdf", filename="1.pdf", mime_type="application/pdf", size=10
    )

    bill = draft.to_create([doc])

    assert bill.biller.name == "Acme"
    assert bill.family_member_id == member_id
    assert bill.documents == [doc]
    assert bill.ai_analysis is None


def test_to_update_replaces_every_group():
    draft = DraftBill().with_edits({"biller": {"name": "Acme"}})

    update = draft.to_update([])

    dumped = update.model_dump(exclude_unset=True)
    assert {"biller", "account", "totals", "status", "notes"} <= set(dumped)
    assert "family_member_id" not in dumped
