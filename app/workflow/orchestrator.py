"""
Bill Orchestrator - one editing session over a single bill.

Coordinates staging, extraction, review, save, analysis and payment. Every
await is a suspension point; responses are applied only if the session
generation captured before the call is still current, so a late response
can never clobber a newer draft after open/reset/close.

Errors from the clients are caught here and written to one message slot per
region; nothing is left half-applied.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from pydantic import ValidationError as SchemaValidationError

from app.client.ai import AnalysisClient, ExtractionClient
from app.client.bills import BillsClient
from app.client.payments import PaymentsClient
from app.core.exceptions import MedicalBillError, ValidationError
from app.core.logging import get_logger
from app.models.enums import PaymentMethod
from app.schemas.ai import AiAnalysis
from app.schemas.medical_bill import BillResponse, PaymentCreate, PaymentIntentResponse
from app.utils.files import guess_mime_type, validate_bill_upload
from app.utils.money import ZERO, remaining_balance
from app.workflow import state as st
from app.workflow.draft import DraftBill
from app.workflow.stage_store import DocumentStageStore, LocalFile, StagedDocument

logger = get_logger(__name__)

REFRESH_NOTICE = "Saved, but the bill could not be reloaded. Reopen it to see the latest."


class Region(str, Enum):
    DRAFT = "draft"
    DOCUMENTS = "documents"
    PAYMENTS = "payments"


class BillOrchestrator:
    def __init__(
        self,
        bills: BillsClient,
        extraction: ExtractionClient,
        analysis: AnalysisClient,
        payments: PaymentsClient,
        stage_store: Optional[DocumentStageStore] = None,
    ):
        self.bills = bills
        self.extraction = extraction
        self.analysis_client = analysis
        self.payments = payments
        self.stage = stage_store or DocumentStageStore(bills)

        self.state: st.State = st.Idle()
        self.generation = 0
        self.draft = DraftBill()
        self.bill: Optional[BillResponse] = None
        self.analysis: Optional[AiAnalysis] = None
        self.analysis_failed = False
        self.errors: Dict[Region, Optional[str]] = {region: None for region in Region}

    # --- session ---
    def _new_session(self) -> int:
        self.generation += 1
        self.stage.close()
        self.state = st.transition(self.state, st.Reset())
        self.draft = DraftBill()
        self.bill = None
        self.analysis = None
        self.analysis_failed = False
        self.errors = {region: None for region in Region}
        return self.generation

    def _is_stale(self, generation: int, action: str) -> bool:
        if generation != self.generation:
            logger.debug(
                "Dropping stale response",
                extra={"action": action, "generation": generation, "current": self.generation},
            )
            return True
        return False

    def _fail(self, region: Region, error: MedicalBillError) -> None:
        logger.info("Workflow error", extra={"region": region.value, "error_code": error.code})
        self.errors[region] = error.message

    def dismiss_error(self, region: Region) -> None:
        self.errors[region] = None

    def open_new(self, family_member_id: Optional[UUID] = None) -> None:
        self._new_session()
        self.draft = DraftBill(family_member_id=family_member_id)
        self.state = st.transition(self.state, st.OpenNew())

    async def open_existing(self, bill_id: UUID) -> Optional[BillResponse]:
        generation = self._new_session()
        try:
            bill = await self.bills.get_bill(bill_id)
        except MedicalBillError as e:
            if not self._is_stale(generation, "open"):
                self._fail(Region.DRAFT, e)
            return None
        if self._is_stale(generation, "open"):
            return None

        self._load(bill)
        self.state = st.transition(self.state, st.OpenExisting())
        return bill

    def reset(self) -> None:
        self._new_session()

    close = reset

    def _load(self, bill: BillResponse) -> None:
        self.bill = bill
        self.draft = DraftBill.from_bill(bill)
        self.analysis = bill.ai_analysis

    @property
    def staged_documents(self) -> List[StagedDocument]:
        return self.stage.documents

    @property
    def remaining(self) -> Decimal:
        if self.bill is None:
            return ZERO
        return remaining_balance(
            self.bill.totals.patient_responsibility, (p.amount for p in self.bill.payments)
        )

    # --- staging & extraction ---
    async def stage_files(self, files: Sequence[LocalFile]) -> List[StagedDocument]:
        self.state = st.transition(self.state, st.StageStarted())
        generation = self.generation
        staged, errors = await self.stage.stage_many(files)
        if self._is_stale(generation, "stage"):
            return []
        if errors:
            self._fail(Region.DRAFT, errors[0])
        return staged

    def unstage(self, index: int) -> None:
        self.stage.unstage(index)

    def edit(self, changes: Dict[str, Any]) -> bool:
        """
        Apply user edits, e.g. {"biller": {"name": "Acme"}, "notes": None}.
        An invalid value leaves the draft unchanged and fills the draft slot.
        """
        try:
            self.draft = self.draft.with_edits(changes)
        except SchemaValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            field = ".".join(str(part) for part in first.get("loc", ()))
            message = first.get("msg", "Invalid value")
            self._fail(Region.DRAFT, ValidationError(f"{field}: {message}" if field else message))
            return False
        self.errors[Region.DRAFT] = None
        return True

    async def extract(self) -> bool:
        """Extract staged pages into the draft, then analyze the first page."""
        documents = self.stage.documents
        self.state = st.transition(self.state, st.ExtractRequested(len(documents)))
        generation = self.generation
        self.errors[Region.DRAFT] = None

        try:
            fields = await self.extraction.extract([d.to_ref() for d in documents])
        except MedicalBillError as e:
            if self._is_stale(generation, "extract"):
                return False
            self.state = st.transition(self.state, st.ExtractFailed())
            self._fail(Region.DRAFT, e)
            return False
        if self._is_stale(generation, "extract"):
            return False

        self.draft = self.draft.merge_extracted(fields)
        self.state = st.transition(self.state, st.ExtractSucceeded())

        await self.analyze_document(documents[0], region=None)
        return True

    # --- analysis ---
    async def analyze_document(
        self, document: Any, region: Optional[Region] = Region.DOCUMENTS
    ) -> Optional[AiAnalysis]:
        """
        Analyze one document (staged or saved). On a saved bill the snapshot
        replaces the stored one; on a draft it is kept for the save.
        Failures leave ``analysis`` as None with ``analysis_failed`` set.
        """
        generation = self.generation
        storage_key = getattr(document, "storage_key", None)
        display_name = getattr(document, "display_name", None)
        try:
            analysis = await self.analysis_client.analyze(storage_key, display_name)
            if self._is_stale(generation, "analyze"):
                return None
            if self.bill is not None:
                self.bill = await self.bills.set_analysis(self.bill.id, analysis)
        except MedicalBillError as e:
            if self._is_stale(generation, "analyze"):
                return None
            self.analysis = None
            self.analysis_failed = True
            if region is not None:
                self._fail(region, e)
            else:
                logger.info("Analysis unavailable", extra={"error_code": e.code})
            return None
        if self._is_stale(generation, "analyze"):
            return None

        self.analysis = analysis
        self.analysis_failed = False
        return analysis

    # --- save ---
    async def save(self) -> Optional[BillResponse]:
        """
        Create or update the bill together with every staged page in one request.
        A blank biller name fails before any request.
        """
        self.state = st.transition(self.state, st.SaveRequested())
        if not self.draft.has_biller_name:
            self.state = st.transition(self.state, st.SaveFailed())
            self._fail(Region.DRAFT, ValidationError("Biller name is required"))
            return None

        generation = self.generation
        documents = [d.to_document() for d in self.stage.documents]
        try:
            if self.bill is None:
                bill = await self.bills.create_bill(self.draft.to_create(documents, self.analysis))
            else:
                bill = await self.bills.update_bill(self.bill.id, self.draft.to_update(documents))
        except MedicalBillError as e:
            if self._is_stale(generation, "save"):
                return None
            self.state = st.transition(self.state, st.SaveFailed())
            self._fail(Region.DRAFT, e)
            return None
        if self._is_stale(generation, "save"):
            return None

        self.stage.clear()
        self._load(bill)
        self.errors[Region.DRAFT] = None
        self.state = st.transition(self.state, st.SaveSucceeded())
        return bill

    def select_tab(self, tab: st.Tab) -> None:
        self.state = st.transition(self.state, st.TabSelected(tab))

    # --- saved-bill documents ---
    def _saved_bill(self, region: Region) -> Optional[BillResponse]:
        if self.bill is None:
            self._fail(region, ValidationError("Save the bill first"))
        return self.bill

    async def _refresh(
        self, generation: int, region: Region, applied: Callable[[BillResponse], BillResponse]
    ) -> None:
        """
        Reload the bill after a successful write. If the reload fails the write
        still stands: apply it locally and leave a notice in the region slot.
        """
        try:
            bill = await self.bills.get_bill(self.bill.id)
        except MedicalBillError as e:
            if self._is_stale(generation, "refresh"):
                return
            logger.warning(
                "Bill refresh failed after write",
                extra={"bill_id": str(self.bill.id), "error_code": e.code},
            )
            self.bill = applied(self.bill)
            if self.errors[region] is None:
                self.errors[region] = REFRESH_NOTICE
            return
        if not self._is_stale(generation, "refresh"):
            self.bill = bill

    async def add_documents(self, files: Sequence[LocalFile]) -> bool:
        bill = self._saved_bill(Region.DOCUMENTS)
        if bill is None:
            return False
        generation = self.generation
        uploaded = []
        failed = False
        for file in files:
            try:
                mime_type = guess_mime_type(file.filename, file.mime_type)
                validate_bill_upload(file.filename, mime_type, file.size)
                document = await self.bills.upload_document(bill.id, file.filename, file.content, mime_type)
            except MedicalBillError as e:
                if self._is_stale(generation, "add document"):
                    return False
                self._fail(Region.DOCUMENTS, e)
                failed = True
                break
            if self._is_stale(generation, "add document"):
                return False
            uploaded.append(document)
        if uploaded:
            await self._refresh(
                generation,
                Region.DOCUMENTS,
                lambda b: b.model_copy(update={"documents": [*b.documents, *uploaded]}),
            )
        return not failed

    async def remove_document(self, document_id: UUID) -> bool:
        bill = self._saved_bill(Region.DOCUMENTS)
        if bill is None:
            return False
        generation = self.generation
        try:
            await self.bills.remove_document(bill.id, document_id)
        except MedicalBillError as e:
            if not self._is_stale(generation, "remove document"):
                self._fail(Region.DOCUMENTS, e)
            return False
        if self._is_stale(generation, "remove document"):
            return False
        await self._refresh(
            generation,
            Region.DOCUMENTS,
            lambda b: b.model_copy(
                update={"documents": [d for d in b.documents if d.id != document_id]}
            ),
        )
        return True

    # --- payments ---
    async def add_payment(self, payment: PaymentCreate) -> bool:
        """Record a payment. Status is never changed here."""
        bill = self._saved_bill(Region.PAYMENTS)
        if bill is None:
            return False
        generation = self.generation
        try:
            recorded = await self.bills.add_payment(bill.id, payment)
        except MedicalBillError as e:
            if not self._is_stale(generation, "add payment"):
                self._fail(Region.PAYMENTS, e)
            return False
        if self._is_stale(generation, "add payment"):
            return False
        await self._refresh(
            generation,
            Region.PAYMENTS,
            lambda b: b.model_copy(update={"payments": [*b.payments, recorded]}),
        )
        return True

    async def remove_payment(self, payment_id: UUID) -> bool:
        bill = self._saved_bill(Region.PAYMENTS)
        if bill is None:
            return False
        generation = self.generation
        try:
            await self.bills.remove_payment(bill.id, payment_id)
        except MedicalBillError as e:
            if not self._is_stale(generation, "remove payment"):
                self._fail(Region.PAYMENTS, e)
            return False
        if self._is_stale(generation, "remove payment"):
            return False
        await self._refresh(
            generation,
            Region.PAYMENTS,
            lambda b: b.model_copy(
                update={"payments": [p for p in b.payments if p.id != payment_id]}
            ),
        )
        return True

    def open_amount_picker(self) -> Decimal:
        """Suggest the remaining balance; the user may pay any positive amount."""
        if self._saved_bill(Region.PAYMENTS) is None:
            return ZERO
        suggested = self.remaining
        self.state = st.transition(self.state, st.PayRequested(suggested))
        return suggested

    async def create_intent(self, amount: Decimal) -> Optional[PaymentIntentResponse]:
        self.state = st.transition(self.state, st.IntentRequested(amount))
        generation = self.generation
        try:
            intent = await self.payments.create_intent(self.bill.id, amount)
        except MedicalBillError as e:
            if self._is_stale(generation, "create intent"):
                return None
            self.state = st.transition(self.state, st.IntentFailed())
            self._fail(Region.PAYMENTS, e)
            return None
        if self._is_stale(generation, "create intent"):
            return None

        self.errors[Region.PAYMENTS] = None
        self.state = st.transition(self.state, st.IntentCreated(intent))
        return intent

    def cancel_payment(self) -> None:
        self.state = st.transition(self.state, st.PaymentCancelled())

    async def on_payment_captured(self) -> bool:
        """
        Success callback from the payment processor. Records the payment,
        re-fetches the bill and always lands on the payments tab.
        """
        self.state = st.transition(self.state, st.PaymentSucceeded())
        intent = self.state.intent
        recorded = await self.add_payment(
            PaymentCreate(
                amount=intent.amount,
                method=PaymentMethod.STRIPE,
                reference_number=intent.payment_intent_id,
                payment_intent_id=intent.payment_intent_id,
                notes="Paid online",
            )
        )
        if isinstance(self.state, st.PaymentCaptured):
            self.state = st.transition(self.state, st.PaymentRecorded())
        return recorded
