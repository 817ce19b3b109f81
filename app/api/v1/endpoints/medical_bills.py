"""Medical bill endpoints: ledger CRUD, documents, payments, staging and extraction"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.config import settings
from app.core.exceptions import MedicalBillError, NotFoundError
from app.core.logging import get_logger
from app.core.rate_limit import AI_LIMIT, limiter
from app.models.user import User
from app.schemas.ai import AiAnalysis, DraftBillFields, ExtractRequest
from app.schemas.medical_bill import (
    BillCreate, BillResponse, BillSummary, BillUpdate,
    DocumentCreate, DocumentResponse, DownloadUrlResponse,
    PaymentCreate, PaymentIntentCreate, PaymentIntentResponse, PaymentResponse,
)
from app.schemas.responses import ListResponse, MessageResponse, SuccessResponse
from app.services import storage_service as storage
from app.services.bill_extraction_service import BillExtractionService
from app.services.bill_ledger_service import BillLedgerService
from app.services.payment_service import PaymentService
from app.utils.files import guess_mime_type, validate_bill_upload

logger = get_logger(__name__)

router = APIRouter()


async def _store_upload(user: User, file: UploadFile) -> DocumentCreate:
    """Validate and store one uploaded page; returns the metadata to attach it later"""
    original_name = file.filename or "document"
    mime_type = guess_mime_type(original_name, file.content_type)
    # Read one byte past the limit so oversize files are detected without buffering them whole
    content = await file.read(settings.BILL_MAX_UPLOAD_BYTES + 1)
    validate_bill_upload(original_name, mime_type, len(content))

    key = await storage.upload(
        f"{storage.user_prefix(user.id)}/bills", original_name, content, content_type=mime_type
    )
    return DocumentCreate(
        storage_key=key,
        filename=key.rsplit("/", 1)[-1],
        original_name=original_name,
        mime_type=mime_type,
        size=len(content),
    )


# --- Collection ---
@router.get("", response_model=ListResponse[BillResponse])
async def list_bills(
    family_member_id: Optional[UUID] = Depends(deps.get_family_member_scope),
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """List bills, newest service date first."""
    bills = await BillLedgerService.list_bills(db, current_user.id, family_member_id)
    data = [BillResponse.model_validate(b) for b in bills]
    return ListResponse(count=len(data), data=data)


@router.get("/summary", response_model=SuccessResponse[BillSummary])
async def bills_summary(
    family_member_id: Optional[UUID] = Depends(deps.get_family_member_scope),
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    summary = await BillLedgerService.get_summary(db, current_user.id, family_member_id)
    return SuccessResponse(data=summary)


@router.post("", response_model=SuccessResponse[BillResponse], status_code=status.HTTP_201_CREATED)
async def create_bill(
    bill_in: BillCreate,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Create a bill with its staged documents and optional analysis in one write.
    """
    bill = await BillLedgerService.create_bill(db, current_user.id, bill_in)
    return SuccessResponse(data=BillResponse.model_validate(bill), message="Medical bill added")


# --- Staging & extraction ---
@router.post("/stage", response_model=SuccessResponse[DocumentCreate], status_code=status.HTTP_201_CREATED)
async def stage_document(
    file: UploadFile = File(...),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Upload one bill page before the bill exists. The returned metadata is
    sent back in `documents` (create) or `new_documents` (update) on save.
    """
    staged = await _store_upload(current_user, file)
    return SuccessResponse(data=staged, message="Page uploaded")


@router.post(
    "/extract",
    response_model=SuccessResponse[DraftBillFields],
    response_model_exclude_none=True,
)
@limiter.limit(AI_LIMIT)
async def extract_bill(
    request: Request,
    extract_in: ExtractRequest,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """Read staged pages as one bill. Fields that could not be read are omitted."""
    fields = await BillExtractionService.extract(db, current_user.id, extract_in.documents)
    return SuccessResponse(data=fields, message="Bill details extracted")


# --- Single bill ---
@router.get("/{bill_id}", response_model=SuccessResponse[BillResponse])
async def get_bill(
    bill_id: UUID,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    bill = await BillLedgerService.get_bill_or_404(db, bill_id, current_user.id)
    return SuccessResponse(data=BillResponse.model_validate(bill))


@router.put("/{bill_id}", response_model=SuccessResponse[BillResponse])
async def update_bill(
    bill_id: UUID,
    bill_in: BillUpdate,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    bill = await BillLedgerService.update_bill(db, bill_id, current_user.id, bill_in)
    return SuccessResponse(data=BillResponse.model_validate(bill), message="Medical bill updated")


@router.delete("/{bill_id}", response_model=MessageResponse)
async def delete_bill(
    bill_id: UUID,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    await BillLedgerService.delete_bill(db, bill_id, current_user.id)
    return MessageResponse(message="Medical bill deleted")


# --- Documents ---
@router.post(
    "/{bill_id}/documents",
    response_model=SuccessResponse[DocumentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_document(
    bill_id: UUID,
    doc_in: DocumentCreate,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """Attach an already-staged page to a bill."""
    document = await BillLedgerService.add_document(db, bill_id, current_user.id, doc_in)
    return SuccessResponse(data=DocumentResponse.model_validate(document), message="Document added")


@router.post(
    "/{bill_id}/documents/upload",
    response_model=SuccessResponse[DocumentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    bill_id: UUID,
    file: UploadFile = File(...),
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """Upload a page straight onto an existing bill."""
    await BillLedgerService.get_bill_or_404(db, bill_id, current_user.id)
    staged = await _store_upload(current_user, file)
    try:
        document = await BillLedgerService.add_document(db, bill_id, current_user.id, staged)
    except MedicalBillError:
        await storage.delete(staged.storage_key)
        raise
    return SuccessResponse(data=DocumentResponse.model_validate(document), message="Document added")


@router.delete("/{bill_id}/documents/{document_id}", response_model=MessageResponse)
async def remove_document(
    bill_id: UUID,
    document_id: UUID,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    await BillLedgerService.remove_document(db, bill_id, current_user.id, document_id)
    return MessageResponse(message="Document removed")


@router.get(
    "/{bill_id}/documents/{document_id}/download-url",
    response_model=SuccessResponse[DownloadUrlResponse],
)
async def document_download_url(
    bill_id: UUID,
    document_id: UUID,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    bill = await BillLedgerService.get_bill_or_404(db, bill_id, current_user.id)
    document = next((d for d in bill.documents if d.id == document_id), None)
    if document is None:
        raise NotFoundError("Document not found")
    url = await storage.get_download_url(document.storage_key)
    return SuccessResponse(data=DownloadUrlResponse(download_url=url))


# --- Payments ---
@router.post(
    "/{bill_id}/payments",
    response_model=SuccessResponse[PaymentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_payment(
    bill_id: UUID,
    payment_in: PaymentCreate,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    payment = await BillLedgerService.add_payment(db, bill_id, current_user.id, payment_in)
    return SuccessResponse(data=PaymentResponse.model_validate(payment), message="Payment recorded")


@router.delete("/{bill_id}/payments/{payment_id}", response_model=MessageResponse)
async def remove_payment(
    bill_id: UUID,
    payment_id: UUID,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    await BillLedgerService.remove_payment(db, bill_id, current_user.id, payment_id)
    return MessageResponse(message="Payment deleted")


@router.post("/{bill_id}/payment-intent", response_model=SuccessResponse[PaymentIntentResponse])
async def create_payment_intent(
    bill_id: UUID,
    intent_in: PaymentIntentCreate,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Start a card payment. The payment is only recorded once the client
    reports a successful capture via POST /{bill_id}/payments.
    """
    intent = await PaymentService.create_intent(db, bill_id, current_user.id, intent_in.amount)
    return SuccessResponse(data=intent)


# --- Analysis ---
@router.put("/{bill_id}/analysis", response_model=SuccessResponse[BillResponse])
async def set_analysis(
    bill_id: UUID,
    analysis_in: AiAnalysis,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """Replace the bill's analysis snapshot."""
    bill = await BillLedgerService.set_analysis(db, bill_id, current_user.id, analysis_in)
    return SuccessResponse(data=BillResponse.model_validate(bill), message="Analysis saved")
