"""Schemas exchanged with the extraction and analysis collaborators"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.enums import ErrorFindingType
from app.utils.money import ZERO, coerce_amount
from app.utils.time import get_utc_now


# --- Extraction (sparse: a field the model could not read stays None and is dropped) ---
class ExtractedBiller(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    payment_portal_url: Optional[str] = None


class ExtractedAccount(BaseModel):
    guarantor_name: Optional[str] = None
    guarantor_id: Optional[str] = None
    portal_code: Optional[str] = Field(None, description="Patient portal / MyChart activation code")


class ExtractedTotals(BaseModel):
    amount_billed: Optional[Decimal] = None
    insurance_paid: Optional[Decimal] = None
    insurance_adjusted: Optional[Decimal] = None
    patient_responsibility: Optional[Decimal] = None

    @field_validator("*", mode="before")
    @classmethod
    def parse_amount(cls, v: Any) -> Optional[Decimal]:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return coerce_amount(v)


class DraftBillFields(BaseModel):
    """
    Structured fields read from one or more bill pages.

    Only include a value when it is printed on the bill; leave everything
    else empty.
    """
    biller: Optional[ExtractedBiller] = None
    account: Optional[ExtractedAccount] = None
    date_of_service: Optional[date] = None
    date_received: Optional[date] = None
    statement_date: Optional[date] = None
    due_date: Optional[date] = None
    totals: Optional[ExtractedTotals] = None
    notes: Optional[str] = None

    def sparse(self) -> Dict[str, Any]:
        """Nested dict of only the fields that were read"""
        data = self.model_dump(exclude_none=True)
        return {k: v for k, v in data.items() if v != {}}


class StagedDocumentRef(BaseModel):
    storage_key: str
    mime_type: str
    filename: Optional[str] = None
    original_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.original_name or self.filename or "document"


class ExtractRequest(BaseModel):
    documents: List[StagedDocumentRef] = []


# --- Analysis ---
class ErrorFinding(BaseModel):
    type: ErrorFindingType = ErrorFindingType.OTHER
    description: str = ""
    line_item_index: Optional[int] = None
    estimated_overcharge: Decimal = ZERO

    @field_validator("estimated_overcharge", mode="before")
    @classmethod
    def parse_overcharge(cls, v: Any) -> Decimal:
        return coerce_amount(v)


class AnalysisTotals(BaseModel):
    amount_billed: Decimal = ZERO
    insurance_paid: Decimal = ZERO
    adjustments: Decimal = ZERO
    fair_price_total: Decimal = ZERO
    patient_balance: Decimal = ZERO
    estimated_savings: Decimal = ZERO
    recommended_patient_offer: Decimal = ZERO

    @field_validator("*", mode="before")
    @classmethod
    def parse_amount(cls, v: Any) -> Decimal:
        return coerce_amount(v)


class BillAnalysisResult(BaseModel):
    """Review of a medical bill for billing errors and overcharges"""
    summary: str = ""
    errors_found: List[ErrorFinding] = []
    totals: AnalysisTotals = Field(default_factory=AnalysisTotals)
    dispute_letter_text: Optional[str] = None


class AiAnalysis(BillAnalysisResult):
    """Snapshot stored on a bill; each analysis replaces the previous one"""
    analyzed_at: datetime = Field(default_factory=get_utc_now)

    @property
    def estimated_savings(self) -> Decimal:
        return self.totals.estimated_savings


class AnalyzeRequest(BaseModel):
    storage_key: Optional[str] = None
    filename: Optional[str] = None
