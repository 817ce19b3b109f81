"""The bill form being edited, and how extraction results merge into it"""

import datetime as dt
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.enums import BillStatus
from app.schemas.ai import AiAnalysis, DraftBillFields
from app.schemas.medical_bill import (
    AccountInfo, BillCreate, BillerInfo, BillResponse, BillTotals, BillUpdate, DocumentCreate,
)

GROUPS = ("biller", "account", "totals")


def merge_leaves(base: Dict[str, Any], patch: Dict[str, Any], *, skip_none: bool) -> Dict[str, Any]:
    """
    Leaf-level merge: present leaves in ``patch`` overwrite, absent ones keep
    ``base``. With ``skip_none`` a None leaf counts as absent.
    """
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_leaves(merged[key], value, skip_none=skip_none)
        elif value is None and skip_none:
            continue
        else:
            merged[key] = value
    return merged


class DraftBill(BaseModel):
    biller: BillerInfo = Field(default_factory=BillerInfo)
    account: AccountInfo = Field(default_factory=AccountInfo)
    date_of_service: Optional[dt.date] = None
    date_received: Optional[dt.date] = None
    statement_date: Optional[dt.date] = None
    due_date: Optional[dt.date] = None
    totals: BillTotals = Field(default_factory=BillTotals)
    status: BillStatus = BillStatus.UNPAID
    notes: Optional[str] = None
    family_member_id: Optional[UUID] = None

    @classmethod
    def from_bill(cls, bill: BillResponse) -> "DraftBill":
        return cls(
            biller=bill.biller,
            account=bill.account,
            date_of_service=bill.date_of_service,
            date_received=bill.date_received,
            statement_date=bill.statement_date,
            due_date=bill.due_date,
            totals=bill.totals,
            status=bill.status,
            notes=bill.notes,
            family_member_id=bill.family_member_id,
        )

    def merge_extracted(self, fields: DraftBillFields) -> "DraftBill":
        """Extraction wins for every field it read; everything else is kept."""
        patch = fields.sparse()
        # A negative amount was misread (credits are not totals); treat it as unread
        if "totals" in patch:
            patch["totals"] = {k: v for k, v in patch["totals"].items() if v >= 0}
        merged = merge_leaves(self.model_dump(), patch, skip_none=True)
        return DraftBill.model_validate(merged)

    def with_edits(self, changes: Dict[str, Any]) -> "DraftBill":
        """Apply user edits; here None is a value (the user cleared the field)."""
        merged = merge_leaves(self.model_dump(), changes, skip_none=False)
        return DraftBill.model_validate(merged)

    @property
    def has_biller_name(self) -> bool:
        return bool(self.biller.name.strip())

    def _fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"family_member_id"})

    def to_create(
        self, documents: List[DocumentCreate], analysis: Optional[AiAnalysis] = None
    ) -> BillCreate:
        return BillCreate(
            **self._fields(),
            family_member_id=self.family_member_id,
            documents=documents,
            ai_analysis=analysis,
        )

    def to_update(self, new_documents: List[DocumentCreate]) -> BillUpdate:
        return BillUpdate(**self._fields(), new_documents=new_documents)
