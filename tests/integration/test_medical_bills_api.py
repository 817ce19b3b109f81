"""
API tests for /medical-bills and /ai with the database and collaborators stubbed.
Covers: error envelopes, request validation, staging uploads, payment intents.
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import NotFoundError
from app.main import app
from app.models.enums import BillStatus, PaymentMethod
from app.models.medical_bill import BillPayment, MedicalBill
from app.models.user import User
from app.utils.time import get_utc_now

LEDGER = "app.services.bill_ledger_service.BillLedgerService"


@pytest.fixture
def current_user(user_id):
    return User(id=user_id, email="owner@example.com", first_name="Pat", last_name="Doe", is_active=True)


@pytest.fixture(autouse=True)
def overrides(current_user):
    db = AsyncMock(spec=AsyncSession)
    app.dependency_overrides[deps.get_current_user] = lambda: current_user
    app.dependency_overrides[deps.get_db] = lambda: db
    yield db
    app.dependency_overrides.clear()


def _bill(user_id, **kwargs):
    now = get_utc_now()
    defaults = dict(
        id=uuid.uuid4(),
        user_id=user_id,
        biller={"name": "Acme Hospital"},
        account={},
        amount_billed=Decimal("500"),
        insurance_paid=Decimal("0"),
        insurance_adjusted=Decimal("0"),
        patient_responsibility=Decimal("300"),
        status=BillStatus.UNPAID,
        created_at=now,
        updated_at=now,
        documents=[],
        payments=[],
    )
    defaults.update(kwargs)
    return MedicalBill(**defaults)


@pytest.mark.asyncio
async def test_missing_token_is_rejected(async_client: AsyncClient):
    app.dependency_overrides.pop(deps.get_current_user)
    resp = await async_client.get("/medical-bills")
    assert resp.status_code in (401, 403)


@pytest.mark.asyncio
async def test_get_bill_includes_derived_balance(async_client: AsyncClient, user_id):
    payment = BillPayment(id=uuid.uuid4(), amount=Decimal("120"), date=date(2026, 3, 1), method=PaymentMethod.CHECK)
    bill = _bill(user_id, payments=[payment])

    with patch(f"{LEDGER}.get_bill_or_404", new_callable=AsyncMock, return_value=bill):
        resp = await async_client.get(f"/medical-bills/{bill.id}")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["biller"]["name"] == "Acme Hospital"
    assert Decimal(data["remaining"]) == Decimal("180")
    assert Decimal(data["amount_paid"]) == Decimal("120")
    assert data["status"] == "unpaid"


@pytest.mark.asyncio
async def test_missing_bill_uses_error_envelope(async_client: AsyncClient):
    with patch(f"{LEDGER}.get_bill_or_404", new_callable=AsyncMock,
               side_effect=NotFoundError("Medical bill not found")):
        resp = await async_client.get(f"/medical-bills/{uuid.uuid4()}")

    assert resp.status_code == 404
    assert resp.json() == {
        "success": False,
        "error": {"code": "RESOURCE_NOT_FOUND", "message": "Medical bill not found"},
    }


@pytest.mark.asyncio
async def test_create_without_biller_name_is_400(async_client: AsyncClient, overrides):
    resp = await async_client.post("/medical-bills", json={"biller": {"name": "  "}})

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
    overrides.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_negative_totals_are_422(async_client: AsyncClient):
    resp = await async_client.post(
        "/medical-bills",
        json={"biller": {"name": "Acme"}, "totals": {"amount_billed": -5}},
    )

    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_stage_rejects_unsupported_type(async_client: AsyncClient):
    with patch("app.services.storage_service.upload", new_callable=AsyncMock) as mock_upload:
        resp = await async_client.post(
            "/medical-bills/stage",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

    assert resp.status_code == 400
    assert "File type not allowed" in resp.json()["error"]["message"]
    mock_upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_stage_image_returns_document_metadata(async_client: AsyncClient, user_id):
    key = f"mymedicalcabinet-user-documents/{user_id}/bills/abc.png"
    with patch("app.services.storage_service.upload", new_callable=AsyncMock, return_value=key) as mock_upload:
        resp = await async_client.post(
            "/medical-bills/stage",
            files={"file": ("scan.png", b"\x89PNG\r\n", "image/png")},
        )

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["storage_key"] == key
    assert data["filename"] == "abc.png"
    assert data["original_name"] == "scan.png"
    assert data["mime_type"] == "image/png"
    assert data["size"] == 6
    assert mock_upload.await_args.args[0].endswith(f"{user_id}/bills")


@pytest.mark.asyncio
async def test_payment_intent_for_zero_is_402(async_client: AsyncClient):
    with patch(f"{LEDGER}.get_bill_or_404", new_callable=AsyncMock) as mock_get:
        resp = await async_client.post(
            f"/medical-bills/{uuid.uuid4()}/payment-intent", json={"amount": "0"}
        )

    assert resp.status_code == 402
    assert resp.json()["error"]["code"] == "PAYMENT_FAILED"
    mock_get.assert_not_awaited()


@pytest.mark.asyncio
async def test_analyze_without_key_is_precondition_failure(async_client: AsyncClient):
    resp = await async_client.post("/ai/analyze-medical-bill", json={"filename": "scan.png"})

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "ANALYSIS_PRECONDITION_FAILED"


@pytest.mark.asyncio
async def test_extract_without_pages_is_400(async_client: AsyncClient):
    resp = await async_client.post("/medical-bills/extract", json={"documents": []})

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_list_is_scoped_to_family_member(async_client: AsyncClient, user_id):
    member_id = uuid.uuid4()
    bill = _bill(user_id, family_member_id=member_id)

    with patch(f"{LEDGER}.resolve_family_member", new_callable=AsyncMock, return_value=member_id), \
            patch(f"{LEDGER}.list_bills", new_callable=AsyncMock, return_value=[bill]) as mock_list:
        resp = await async_client.get("/medical-bills", params={"familyMemberId": str(member_id)})

    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    assert body["data"][0]["family_member_id"] == str(member_id)
    assert mock_list.await_args.args[2] == member_id
