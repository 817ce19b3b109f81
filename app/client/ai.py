"""Clients for the extraction and analysis endpoints"""

from typing import Any, Optional, Sequence

from app.client.base import ApiClient
from app.config import settings
from app.core.exceptions import (
    AnalysisError,
    AnalysisPreconditionError,
    ExtractionError,
    ValidationError,
)
from app.schemas.ai import AiAnalysis, DraftBillFields, ExtractRequest, StagedDocumentRef


class ExtractionClient(ApiClient):
    default_error = ExtractionError

    def __init__(self, *args: Any, max_pages: Optional[int] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.max_pages = max_pages or settings.BILL_MAX_EXTRACTION_PAGES

    async def extract(self, documents: Sequence[StagedDocumentRef]) -> DraftBillFields:
        """
        Submit all pages as one bill; returns only the fields that were read.

        Empty or oversized submissions fail without a request.
        """
        if not documents:
            raise ValidationError("Upload at least one page before extracting")
        if len(documents) > self.max_pages:
            raise ValidationError(
                f"Too many pages. Extract at most {self.max_pages} at a time."
            )
        payload = ExtractRequest(documents=list(documents))
        data = await self.request(
            "POST", "/medical-bills/extract", json=payload.model_dump(mode="json")
        )
        return DraftBillFields.model_validate(data or {})


class AnalysisClient(ApiClient):
    default_error = AnalysisError

    async def analyze(
        self, storage_key: Optional[str], display_name: Optional[str] = None
    ) -> AiAnalysis:
        """A document without a storage key is never sent."""
        if not storage_key:
            raise AnalysisPreconditionError("This document has not been uploaded yet")
        data = await self.request(
            "POST",
            "/ai/analyze-medical-bill",
            json={"storage_key": storage_key, "filename": display_name},
        )
        return AiAnalysis.model_validate(data)
