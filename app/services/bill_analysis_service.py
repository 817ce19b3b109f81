"""Analysis: one bill document -> itemized errors, fair price and a dispute letter"""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import AnalysisError, AnalysisPreconditionError, MedicalBillError
from app.core.logging import get_logger
from app.schemas.ai import AiAnalysis, BillAnalysisResult
from app.services import storage_service as storage
from app.services.bill_ledger_service import BillLedgerService
from app.utils.ai import document_to_markdown, get_ai_client
from app.utils.files import guess_mime_type

logger = get_logger(__name__)

ANALYSIS_PROMPT = (
    "You are a medical billing advocate reviewing a patient's bill. Identify "
    "billing errors such as duplicate charges, upcoding, unbundling, pricing far "
    "above fair market rates, coding errors, balance billing and insurance "
    "processing mistakes. For each finding give its type, a plain-language "
    "description, the zero-based line item index when it applies and the "
    "estimated overcharge in dollars. Fill the totals from the bill, estimate a "
    "fair price total and the savings, recommend what the patient should offer, "
    "and when errors were found draft a short, polite dispute letter."
)


class BillAnalysisService:
    @staticmethod
    async def analyze(
        db: AsyncSession,
        user_id: UUID,
        storage_key: Optional[str],
        filename: Optional[str] = None,
    ) -> AiAnalysis:
        """
        Analyze one stored document. The result is a fresh snapshot; callers
        replace any earlier analysis with it.
        """
        if not storage_key:
            raise AnalysisPreconditionError("This document has not been uploaded yet")
        await BillLedgerService.ensure_key_access(db, user_id, storage_key)

        display_name = filename or storage_key.rsplit("/", 1)[-1]
        try:
            content = await storage.get_content(storage_key)
            markdown_content = await document_to_markdown(content, guess_mime_type(storage_key))

            ai_client = get_ai_client()
            result = await ai_client.chat.completions.create(
                model=settings.ai_model,
                response_model=BillAnalysisResult,
                messages=[
                    {"role": "system", "content": ANALYSIS_PROMPT},
                    {"role": "user", "content": f"Bill: {display_name}\n\n{markdown_content}"},
                ],
            )
        except MedicalBillError as e:
            logger.warning("Bill analysis failed", extra={"storage_key": storage_key, "error": str(e)})
            raise AnalysisError(f"Could not analyze {display_name}: {e.message}") from e
        except Exception as e:
            logger.error("Bill analysis failed", extra={"storage_key": storage_key}, exc_info=True)
            raise AnalysisError(f"Could not analyze {display_name}. Please try again.") from e

        analysis = AiAnalysis(**result.model_dump())
        logger.info(
            "Bill analyzed",
            extra={
                "storage_key": storage_key,
                "errors_found": len(analysis.errors_found),
                "estimated_savings": str(analysis.estimated_savings),
            },
        )
        return analysis
