"""Unit tests for the extraction and analysis services."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    AnalysisError, AnalysisPreconditionError, ExtractionError, NotFoundError,
    StorageError, ValidationError,
)
from app.schemas.ai import BillAnalysisResult, DraftBillFields, StagedDocumentRef
from app.services.bill_analysis_service import BillAnalysisService
from app.services.bill_extraction_service import BillExtractionService

KEY_ACCESS = "app.services.bill_ledger_service.BillLedgerService.ensure_key_access"
GET_CONTENT = "app.services.storage_service.get_content"


def _ai_client(result=None, error=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=result, side_effect=error)
    return client


def _refs(count):
    return [
        StagedDocumentRef(
            storage_key=f"prefix/u/bills/{i}.pdf",
            mime_type="application/pdf",
            original_name=f"page{i}.pdf",
        )
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_extract_requires_a_page():
    with pytest.raises(ValidationError):
        await BillExtractionService.extract(AsyncMock(spec=AsyncSession), uuid4(), [])


@pytest.mark.asyncio
async def test_extract_rejects_too_many_pages():
    refs = _refs(settings.BILL_MAX_EXTRACTION_PAGES + 1)
    with patch(KEY_ACCESS, new_callable=AsyncMock) as mock_access:
        with pytest.raises(ValidationError):
            await BillExtractionService.extract(AsyncMock(spec=AsyncSession), uuid4(), refs)
    mock_access.assert_not_awaited()


@pytest.mark.asyncio
async def test_extract_reads_all_pages_as_one_bill():
    fields = DraftBillFields(biller={"name": "Acme Hospital"}, totals={"amount_billed": "500"})
    client = _ai_client(result=fields)

    with patch(KEY_ACCESS, new_callable=AsyncMock) as mock_access, \
            patch(GET_CONTENT, new_callable=AsyncMock, return_value=b"%PDF"), \
            patch("app.services.bill_extraction_service.document_to_markdown",
                  new_callable=AsyncMock, side_effect=["first page", "second page"]), \
            patch("app.services.bill_extraction_service.get_ai_client", return_value=client):
        result = await BillExtractionService.extract(AsyncMock(spec=AsyncSession), uuid4(), _refs(2))

    assert result is fields
    assert mock_access.await_count == 2
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["response_model"] is DraftBillFields
    prompt = kwargs["messages"][-1]["content"]
    assert prompt.index("## Page 1 (page0.pdf)") < prompt.index("## Page 2 (page1.pdf)")
    assert "first page" in prompt and "second page" in prompt


@pytest.mark.asyncio
async def test_extract_refuses_unreadable_keys():
    with patch(KEY_ACCESS, new_callable=AsyncMock, side_effect=NotFoundError("Document not found")), \
            patch("app.services.bill_extraction_service.get_ai_client") as mock_factory:
        with pytest.raises(NotFoundError):
            await BillExtractionService.extract(AsyncMock(spec=AsyncSession), uuid4(), _refs(1))
    mock_factory.assert_not_called()


@pytest.mark.asyncio
async def test_extract_wraps_model_failure():
    client = _ai_client(error=RuntimeError("model timeout"))

    with patch(KEY_ACCESS, new_callable=AsyncMock), \
            patch(GET_CONTENT, new_callable=AsyncMock, return_value=b"%PDF"), \
            patch("app.services.bill_extraction_service.document_to_markdown",
                  new_callable=AsyncMock, return_value="text"), \
            patch("app.services.bill_extraction_service.get_ai_client", return_value=client):
        with pytest.raises(ExtractionError):
            await BillExtractionService.extract(AsyncMock(spec=AsyncSession), uuid4(), _refs(1))


@pytest.mark.asyncio
async def test_extract_wraps_storage_failure():
    with patch(KEY_ACCESS, new_callable=AsyncMock), \
            patch(GET_CONTENT, new_callable=AsyncMock, side_effect=StorageError("Document unavailable")):
        with pytest.raises(ExtractionError) as exc_info:
            await BillExtractionService.extract(AsyncMock(spec=AsyncSession), uuid4(), _refs(1))
    assert "Document unavailable" in exc_info.value.message


@pytest.mark.asyncio
async def test_analyze_requires_storage_key():
    with patch("app.services.bill_analysis_service.get_ai_client") as mock_factory:
        with pytest.raises(AnalysisPreconditionError) as exc_info:
            await BillAnalysisService.analyze(AsyncMock(spec=AsyncSession), uuid4(), None)
    assert exc_info.value.status_code == 400
    mock_factory.assert_not_called()


@pytest.mark.asyncio
async def test_analyze_returns_snapshot():
    result = BillAnalysisResult(
        summary="Duplicate lab charge",
        errors_found=[{"type": "duplicate_charge", "description": "CBC billed twice",
                       "line_item_index": 3, "estimated_overcharge": "45"}],
        totals={"estimated_savings": "45"},
        dispute_letter_text="Dear billing office,",
    )
    client = _ai_client(result=result)

    with patch(KEY_ACCESS, new_callable=AsyncMock), \
            patch(GET_CONTENT, new_callable=AsyncMock, return_value=b"\x89PNG"), \
            patch("app.services.bill_analysis_service.document_to_markdown",
                  new_callable=AsyncMock, return_value="text") as mock_convert, \
            patch("app.services.bill_analysis_service.get_ai_client", return_value=client):
        analysis = await BillAnalysisService.analyze(
            AsyncMock(spec=AsyncSession), uuid4(), "prefix/u/bills/a.png", "scan.png"
        )

    assert mock_convert.await_args.args[1] == "image/png"
    assert analysis.summary == "Duplicate lab charge"
    assert analysis.errors_found[0].line_item_index == 3
    assert analysis.estimated_savings == Decimal("45.00")
    assert analysis.analyzed_at is not None


@pytest.mark.asyncio
async def test_analyze_wraps_failure():
    client = _ai_client(error=RuntimeError("throttled"))

    with patch(KEY_ACCESS, new_callable=AsyncMock), \
            patch(GET_CONTENT, new_callable=AsyncMock, return_value=b"%PDF"), \
            patch("app.services.bill_analysis_service.document_to_markdown",
                  new_callable=AsyncMock, return_value="text"), \
            patch("app.services.bill_analysis_service.get_ai_client", return_value=client):
        with pytest.raises(AnalysisError) as exc_info:
            await BillAnalysisService.analyze(AsyncMock(spec=AsyncSession), uuid4(), "prefix/u/bills/a.pdf")
    assert exc_info.value.code == "ANALYSIS_FAILED"
