"""Medical bill Pydantic Schemas"""

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from app.models.enums import BillStatus, PaymentMethod
from app.schemas.ai import AiAnalysis
from app.utils.files import ALLOWED_BILL_MIME_TYPES
from app.utils.money import ZERO, coerce_amount, remaining_balance, total_paid


# --- Sub-objects (each replaced as a unit on update) ---
class BillerInfo(BaseModel):
    name: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    payment_portal_url: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> str:
        return v.strip() if isinstance(v, str) else (v or "")


class AccountInfo(BaseModel):
    guarantor_name: Optional[str] = None
    guarantor_id: Optional[str] = None
    portal_code: Optional[str] = None


class BillTotals(BaseModel):
    """Bill amounts; blanks and NaN coerce to 0, negatives are rejected"""
    amount_billed: Decimal = ZERO
    insurance_paid: Decimal = ZERO
    insurance_adjusted: Decimal = ZERO
    patient_responsibility: Decimal = ZERO

    @field_validator("*", mode="before")
    @classmethod
    def coerce(cls, v: Any) -> Decimal:
        return coerce_amount(v)

    @field_validator("*")
    @classmethod
    def non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Amounts cannot be negative")
        return v


# --- Documents ---
class DocumentCreate(BaseModel):
    """Metadata for bytes that are already in storage (a staged page)"""
    storage_key: str = Field(..., min_length=1)
    filename: str
    original_name: Optional[str] = None
    mime_type: str
    size: int = Field(0, ge=0)

    @field_validator("mime_type")
    @classmethod
    def allowed_type(cls, v: str) -> str:
        if v not in ALLOWED_BILL_MIME_TYPES:
            raise ValueError("File type not allowed. Use JPG, PNG, GIF, WebP, or PDF.")
        return v


class DocumentResponse(BaseModel):
    id: UUID
    filename: str
    original_name: Optional[str] = None
    mime_type: str
    size: int
    storage_key: str
    uploaded_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def display_name(self) -> str:
        return self.original_name or self.filename


class DownloadUrlResponse(BaseModel):
    download_url: str


# --- Payments ---
class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    date: Optional[dt.date] = None
    method: PaymentMethod = PaymentMethod.OTHER
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    payment_intent_id: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce(cls, v: Any) -> Decimal:
        return coerce_amount(v)


class PaymentResponse(BaseModel):
    id: UUID
    amount: Decimal
    date: dt.date
    method: PaymentMethod
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    payment_intent_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentIntentCreate(BaseModel):
    amount: Optional[Decimal] = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce(cls, v: Any) -> Optional[Decimal]:
        return None if v is None else coerce_amount(v)


class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: Decimal


# --- Bills ---
class BillCreate(BaseModel):
    biller: BillerInfo
    account: AccountInfo = Field(default_factory=AccountInfo)
    date_of_service: Optional[dt.date] = None
    date_received: Optional[dt.date] = None
    statement_date: Optional[dt.date] = None
    due_date: Optional[dt.date] = None
    totals: BillTotals = Field(default_factory=BillTotals)
    status: BillStatus = BillStatus.UNPAID
    notes: Optional[str] = None
    family_member_id: Optional[UUID] = None
    documents: List[DocumentCreate] = []
    ai_analysis: Optional[AiAnalysis] = None


class BillUpdate(BaseModel):
    """
    Partial update. biller/account/totals replace the stored sub-object
    wholesale; ``new_documents`` are appended in the same transaction.
    """
    biller: Optional[BillerInfo] = None
    account: Optional[AccountInfo] = None
    date_of_service: Optional[dt.date] = None
    date_received: Optional[dt.date] = None
    statement_date: Optional[dt.date] = None
    due_date: Optional[dt.date] = None
    totals: Optional[BillTotals] = None
    status: Optional[BillStatus] = None
    notes: Optional[str] = None
    new_documents: List[DocumentCreate] = []


class BillResponse(BaseModel):
    id: UUID
    user_id: UUID
    family_member_id: Optional[UUID] = None
    biller: BillerInfo
    account: AccountInfo = Field(default_factory=AccountInfo)
    date_of_service: Optional[dt.date] = None
    date_received: Optional[dt.date] = None
    statement_date: Optional[dt.date] = None
    due_date: Optional[dt.date] = None
    totals: BillTotals
    status: BillStatus
    notes: Optional[str] = None
    documents: List[DocumentResponse] = []
    payments: List[PaymentResponse] = []
    ai_analysis: Optional[AiAnalysis] = None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("account", mode="before")
    @classmethod
    def empty_account(cls, v: Any) -> Any:
        return v or {}

    @computed_field
    @property
    def amount_paid(self) -> Decimal:
        return total_paid(p.amount for p in self.payments)

    @computed_field
    @property
    def remaining(self) -> Decimal:
        return remaining_balance(self.totals.patient_responsibility, (p.amount for p in self.payments))


class BillSummary(BaseModel):
    total_bills: int = 0
    total_billed: Decimal = ZERO
    total_insurance_paid: Decimal = ZERO
    total_patient_responsibility: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_owed: Decimal = ZERO
    total_ai_savings: Decimal = ZERO
    by_status: Dict[BillStatus, int] = Field(
        default_factory=lambda: {status: 0 for status in BillStatus}
    )
