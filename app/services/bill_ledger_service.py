"""Bill Ledger - the authoritative record of bills, their documents, payments and analysis"""

import uuid
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import NotFoundError, PersistenceError, ValidationError
from app.core.logging import get_logger
from app.models.enums import BillStatus
from app.models.medical_bill import BillDocument, BillPayment, MedicalBill
from app.models.user import FamilyMember
from app.schemas.ai import AiAnalysis
from app.schemas.medical_bill import (
    BillCreate, BillerInfo, BillSummary, BillTotals, BillUpdate,
    DocumentCreate, PaymentCreate,
)
from app.services import storage_service as storage
from app.utils.money import ZERO, coerce_amount
from app.utils.time import get_utc_now

logger = get_logger(__name__)


class BillLedgerService:
    # --- helpers ---
    @staticmethod
    def _require_biller_name(biller: Optional[BillerInfo]) -> None:
        if biller is None or not biller.name.strip():
            raise ValidationError("Biller name is required")

    @staticmethod
    def _require_own_key(user_id: UUID, storage_key: str) -> None:
        if not storage_key.startswith(f"{storage.user_prefix(user_id)}/"):
            raise ValidationError("Document does not belong to this account")

    @staticmethod
    def _apply_totals(bill: MedicalBill, totals: BillTotals) -> None:
        bill.amount_billed = totals.amount_billed
        bill.insurance_paid = totals.insurance_paid
        bill.insurance_adjusted = totals.insurance_adjusted
        bill.patient_responsibility = totals.patient_responsibility

    @staticmethod
    def _attach_document(bill: MedicalBill, user_id: UUID, doc: DocumentCreate) -> BillDocument:
        BillLedgerService._require_own_key(user_id, doc.storage_key)
        position = max((d.position for d in bill.documents), default=-1) + 1
        document = BillDocument(
            id=uuid.uuid4(),
            filename=doc.filename,
            original_name=doc.original_name,
            mime_type=doc.mime_type,
            size=doc.size,
            storage_key=doc.storage_key,
            uploaded_at=get_utc_now(),
            position=position,
        )
        bill.documents.append(document)
        return document

    @staticmethod
    async def _commit(db: AsyncSession, action: str) -> None:
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Ledger write rejected", extra={"action": action, "error": str(e.orig)})
            raise ValidationError(
                "That document or payment is already recorded"
            ) from e
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Ledger write failed", extra={"action": action}, exc_info=True)
            raise PersistenceError(f"Could not {action}") from e

    @staticmethod
    def _bill_query():
        return select(MedicalBill).options(
            selectinload(MedicalBill.documents),
            selectinload(MedicalBill.payments),
        )

    # --- reads ---
    @staticmethod
    async def resolve_family_member(
        db: AsyncSession, user_id: UUID, family_member_id: Optional[UUID]
    ) -> Optional[UUID]:
        """Return the id if it belongs to the user; raise NotFoundError otherwise"""
        if family_member_id is None:
            return None
        result = await db.execute(
            select(FamilyMember.id).where(
                FamilyMember.id == family_member_id,
                FamilyMember.user_id == user_id,
            )
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Family member not found")
        return family_member_id

    @staticmethod
    async def ensure_key_access(db: AsyncSession, user_id: UUID, storage_key: str) -> None:
        """A key is readable if it is under the user's prefix or attached to one of their bills"""
        if storage_key.startswith(f"{storage.user_prefix(user_id)}/"):
            return
        result = await db.execute(
            select(BillDocument.id)
            .join(MedicalBill, BillDocument.bill_id == MedicalBill.id)
            .where(BillDocument.storage_key == storage_key, MedicalBill.user_id == user_id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Document not found")

    @staticmethod
    async def get_bill(db: AsyncSession, bill_id: UUID, user_id: UUID) -> Optional[MedicalBill]:
        """Get a bill with its documents and payments, scoped to the owner."""
        result = await db.execute(
            BillLedgerService._bill_query().where(
                MedicalBill.id == bill_id,
                MedicalBill.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_bill_or_404(db: AsyncSession, bill_id: UUID, user_id: UUID) -> MedicalBill:
        bill = await BillLedgerService.get_bill(db, bill_id, user_id)
        if bill is None:
            raise NotFoundError("Medical bill not found")
        return bill

    @staticmethod
    async def list_bills(
        db: AsyncSession,
        user_id: UUID,
        family_member_id: Optional[UUID] = None,
    ) -> List[MedicalBill]:
        """Newest service date first; bills without one sort last."""
        query = BillLedgerService._bill_query().where(MedicalBill.user_id == user_id)
        if family_member_id is not None:
            query = query.where(MedicalBill.family_member_id == family_member_id)
        result = await db.execute(
            query.order_by(
                MedicalBill.date_of_service.desc().nulls_last(),
                MedicalBill.created_at.desc(),
            )
        )
        return list(result.scalars().all())

    @staticmethod
    def summarize(bills: List[MedicalBill]) -> BillSummary:
        summary = BillSummary(total_bills=len(bills))
        for bill in bills:
            summary.total_billed += bill.amount_billed or ZERO
            summary.total_insurance_paid += bill.insurance_paid or ZERO
            summary.total_patient_responsibility += bill.patient_responsibility or ZERO
            summary.total_paid += bill.amount_paid
            if bill.ai_analysis:
                savings = (bill.ai_analysis.get("totals") or {}).get("estimated_savings")
                summary.total_ai_savings += coerce_amount(savings)
            if bill.status in summary.by_status:
                summary.by_status[bill.status] += 1
        summary.total_owed = max(summary.total_patient_responsibility - summary.total_paid, ZERO)
        return summary

    @staticmethod
    async def get_summary(
        db: AsyncSession,
        user_id: UUID,
        family_member_id: Optional[UUID] = None,
    ) -> BillSummary:
        bills = await BillLedgerService.list_bills(db, user_id, family_member_id)
        return BillLedgerService.summarize(bills)

    # --- writes ---
    @staticmethod
    async def create_bill(db: AsyncSession, user_id: UUID, data: BillCreate) -> MedicalBill:
        """
        Create a bill together with its staged documents and analysis snapshot.

        One commit covers the bill, every document and the snapshot, so a
        failure leaves nothing behind.
        """
        BillLedgerService._require_biller_name(data.biller)
        family_member_id = await BillLedgerService.resolve_family_member(
            db, user_id, data.family_member_id
        )

        bill = MedicalBill(
            id=uuid.uuid4(),
            user_id=user_id,
            family_member_id=family_member_id,
            biller=data.biller.model_dump(),
            account=data.account.model_dump(),
            date_of_service=data.date_of_service,
            date_received=data.date_received,
            statement_date=data.statement_date,
            due_date=data.due_date,
            status=data.status or BillStatus.UNPAID,
            notes=data.notes,
            ai_analysis=data.ai_analysis.model_dump(mode="json") if data.ai_analysis else None,
            documents=[],
            payments=[],
        )
        BillLedgerService._apply_totals(bill, data.totals)
        for doc in data.documents:
            BillLedgerService._attach_document(bill, user_id, doc)

        db.add(bill)
        await BillLedgerService._commit(db, "add medical bill")
        logger.info(
            "Medical bill created",
            extra={"bill_id": str(bill.id), "documents": len(data.documents)},
        )
        return await BillLedgerService.get_bill_or_404(db, bill.id, user_id)

    @staticmethod
    async def update_bill(
        db: AsyncSession, bill_id: UUID, user_id: UUID, data: BillUpdate
    ) -> MedicalBill:
        """Partial update; biller/account/totals are replaced as whole sub-objects."""
        bill = await BillLedgerService.get_bill_or_404(db, bill_id, user_id)

        update_data = data.model_dump(exclude_unset=True)
        update_data.pop("new_documents", None)

        if "biller" in update_data:
            update_data.pop("biller")
            BillLedgerService._require_biller_name(data.biller)
            bill.biller = data.biller.model_dump()
        if "account" in update_data:
            update_data.pop("account")
            bill.account = data.account.model_dump() if data.account else {}
        if "totals" in update_data:
            update_data.pop("totals")
            BillLedgerService._apply_totals(bill, data.totals or BillTotals())
        if update_data.get("status", BillStatus.UNPAID) is None:
            update_data.pop("status")

        for field, value in update_data.items():
            setattr(bill, field, value)

        for doc in data.new_documents:
            BillLedgerService._attach_document(bill, user_id, doc)

        await BillLedgerService._commit(db, "update medical bill")
        return await BillLedgerService.get_bill_or_404(db, bill_id, user_id)

    @staticmethod
    async def delete_bill(db: AsyncSession, bill_id: UUID, user_id: UUID) -> None:
        bill = await BillLedgerService.get_bill_or_404(db, bill_id, user_id)
        keys = [d.storage_key for d in bill.documents]

        await db.delete(bill)
        await BillLedgerService._commit(db, "delete medical bill")

        for key in keys:
            await storage.delete(key)
        logger.info("Medical bill deleted", extra={"bill_id": str(bill_id)})

    @staticmethod
    async def add_document(
        db: AsyncSession, bill_id: UUID, user_id: UUID, doc: DocumentCreate
    ) -> BillDocument:
        bill = await BillLedgerService.get_bill_or_404(db, bill_id, user_id)
        document = BillLedgerService._attach_document(bill, user_id, doc)
        await BillLedgerService._commit(db, "add document")
        return document

    @staticmethod
    async def remove_document(
        db: AsyncSession, bill_id: UUID, user_id: UUID, document_id: UUID
    ) -> bool:
        """
        Remove a document from the ledger, then delete its bytes.

        The ledger is the source of truth: the row is gone once this returns,
        even when storage cleanup fails. Returns whether the bytes were deleted.
        """
        bill = await BillLedgerService.get_bill_or_404(db, bill_id, user_id)
        document = next((d for d in bill.documents if d.id == document_id), None)
        if document is None:
            raise NotFoundError("Document not found")

        storage_key = document.storage_key
        bill.documents.remove(document)
        await BillLedgerService._commit(db, "remove document")

        return await storage.delete(storage_key)

    @staticmethod
    async def add_payment(
        db: AsyncSession, bill_id: UUID, user_id: UUID, data: PaymentCreate
    ) -> BillPayment:
        """Record a payment. Status is left alone; the balance is derived on read."""
        bill = await BillLedgerService.get_bill_or_404(db, bill_id, user_id)
        if data.payment_intent_id and any(
            p.payment_intent_id == data.payment_intent_id for p in bill.payments
        ):
            raise ValidationError("This payment has already been recorded")

        payment = BillPayment(
            id=uuid.uuid4(),
            amount=data.amount,
            date=data.date or get_utc_now().date(),
            method=data.method,
            reference_number=data.reference_number,
            notes=data.notes,
            payment_intent_id=data.payment_intent_id,
            created_at=get_utc_now(),
        )
        bill.payments.append(payment)
        await BillLedgerService._commit(db, "add payment")
        logger.info(
            "Payment recorded",
            extra={"bill_id": str(bill_id), "amount": str(data.amount), "method": data.method.value},
        )
        return payment

    @staticmethod
    async def remove_payment(
        db: AsyncSession, bill_id: UUID, user_id: UUID, payment_id: UUID
    ) -> None:
        bill = await BillLedgerService.get_bill_or_404(db, bill_id, user_id)
        payment = next((p for p in bill.payments if p.id == payment_id), None)
        if payment is None:
            raise NotFoundError("Payment not found")
        bill.payments.remove(payment)
        await BillLedgerService._commit(db, "delete payment")

    @staticmethod
    async def set_analysis(
        db: AsyncSession, bill_id: UUID, user_id: UUID, analysis: AiAnalysis
    ) -> MedicalBill:
        """Replace the bill's analysis snapshot wholesale."""
        bill = await BillLedgerService.get_bill_or_404(db, bill_id, user_id)
        bill.ai_analysis = analysis.model_dump(mode="json")
        await BillLedgerService._commit(db, "save analysis")
        return bill
