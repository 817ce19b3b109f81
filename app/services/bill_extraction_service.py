"""Extraction: staged bill pages -> sparse DraftBillFields"""

from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ExtractionError, MedicalBillError, ValidationError
from app.core.logging import get_logger
from app.schemas.ai import DraftBillFields, StagedDocumentRef
from app.services import storage_service as storage
from app.services.bill_ledger_service import BillLedgerService
from app.utils.ai import document_to_markdown, get_ai_client

logger = get_logger(__name__)

EXTRACTION_PROMPT = (
    "You read scanned medical bills. The pages below all belong to ONE bill. "
    "Consolidate them into a single record. Only fill a field when the value is "
    "printed on the bill; leave every other field empty rather than guessing. "
    "Amounts are in dollars without currency symbols. Dates are ISO (YYYY-MM-DD). "
    "The account portal code is the patient portal or MyChart activation code."
)


class BillExtractionService:
    @staticmethod
    async def pages_to_markdown(documents: List[StagedDocumentRef]) -> str:
        """Fetch every page and join their markdown, in submission order"""
        sections = []
        for index, doc in enumerate(documents, 1):
            content = await storage.get_content(doc.storage_key)
            markdown = await document_to_markdown(content, doc.mime_type)
            sections.append(f"## Page {index} ({doc.display_name})\n\n{markdown}")
        return "\n\n".join(sections)

    @staticmethod
    async def extract(
        db: AsyncSession, user_id: UUID, documents: List[StagedDocumentRef]
    ) -> DraftBillFields:
        """
        Read all staged pages as one bill.

        Raises:
            ValidationError: no pages, or more than BILL_MAX_EXTRACTION_PAGES
            NotFoundError: a page the user cannot read
            ExtractionError: storage, conversion or model failure
        """
        if not documents:
            raise ValidationError("Upload at least one page before extracting")
        if len(documents) > settings.BILL_MAX_EXTRACTION_PAGES:
            raise ValidationError(
                f"Too many pages. Extract at most {settings.BILL_MAX_EXTRACTION_PAGES} at a time."
            )
        for doc in documents:
            await BillLedgerService.ensure_key_access(db, user_id, doc.storage_key)

        try:
            markdown_content = await BillExtractionService.pages_to_markdown(documents)

            ai_client = get_ai_client()
            fields = await ai_client.chat.completions.create(
                model=settings.ai_model,
                response_model=DraftBillFields,
                messages=[
                    {"role": "system", "content": EXTRACTION_PROMPT},
                    {"role": "user", "content": f"Bill pages:\n\n{markdown_content}"},
                ],
            )
        except MedicalBillError as e:
            logger.warning("Bill extraction failed", extra={"pages": len(documents), "error": str(e)})
            raise ExtractionError(f"Could not read the bill: {e.message}") from e
        except Exception as e:
            logger.error("Bill extraction failed", extra={"pages": len(documents)}, exc_info=True)
            raise ExtractionError("Could not read the bill. Please try again.") from e

        logger.info(
            "Bill extracted",
            extra={"pages": len(documents), "fields": sorted(fields.sparse().keys())},
        )
        return fields
