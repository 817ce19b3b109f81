"""Persistence API client for /medical-bills"""

from typing import List, Optional
from uuid import UUID

from app.client.base import ApiClient
from app.core.exceptions import StorageError
from app.schemas.ai import AiAnalysis
from app.schemas.medical_bill import (
    BillCreate, BillResponse, BillSummary, BillUpdate,
    DocumentCreate, DocumentResponse, PaymentCreate, PaymentResponse,
)

BILLS_PATH = "/medical-bills"


class BillsClient(ApiClient):
    async def list_bills(self, family_member_id: Optional[UUID] = None) -> List[BillResponse]:
        params = {"familyMemberId": str(family_member_id)} if family_member_id else None
        data = await self.request("GET", BILLS_PATH, params=params)
        return [BillResponse.model_validate(b) for b in data]

    async def get_summary(self, family_member_id: Optional[UUID] = None) -> BillSummary:
        params = {"familyMemberId": str(family_member_id)} if family_member_id else None
        data = await self.request("GET", f"{BILLS_PATH}/summary", params=params)
        return BillSummary.model_validate(data)

    async def get_bill(self, bill_id: UUID) -> BillResponse:
        data = await self.request("GET", f"{BILLS_PATH}/{bill_id}")
        return BillResponse.model_validate(data)

    async def create_bill(self, bill: BillCreate) -> BillResponse:
        data = await self.request("POST", BILLS_PATH, json=bill.model_dump(mode="json"))
        return BillResponse.model_validate(data)

    async def update_bill(self, bill_id: UUID, changes: BillUpdate) -> BillResponse:
        data = await self.request(
            "PUT",
            f"{BILLS_PATH}/{bill_id}",
            json=changes.model_dump(mode="json", exclude_unset=True),
        )
        return BillResponse.model_validate(data)

    async def delete_bill(self, bill_id: UUID) -> None:
        await self.request("DELETE", f"{BILLS_PATH}/{bill_id}")

    async def stage_upload(self, filename: str, content: bytes, mime_type: str) -> DocumentCreate:
        """Upload one page before the bill exists"""
        data = await self.request(
            "POST",
            f"{BILLS_PATH}/stage",
            files={"file": (filename, content, mime_type)},
            error_cls=StorageError,
        )
        return DocumentCreate.model_validate(data)

    async def add_document(self, bill_id: UUID, document: DocumentCreate) -> DocumentResponse:
        data = await self.request(
            "POST", f"{BILLS_PATH}/{bill_id}/documents", json=document.model_dump(mode="json")
        )
        return DocumentResponse.model_validate(data)

    async def remove_document(self, bill_id: UUID, document_id: UUID) -> None:
        await self.request("DELETE", f"{BILLS_PATH}/{bill_id}/documents/{document_id}")

    async def get_download_url(self, bill_id: UUID, document_id: UUID) -> str:
        data = await self.request(
            "GET", f"{BILLS_PATH}/{bill_id}/documents/{document_id}/download-url"
        )
        return data["download_url"]

    async def add_payment(self, bill_id: UUID, payment: PaymentCreate) -> PaymentResponse:
        data = await self.request(
            "POST",
            f"{BILLS_PATH}/{bill_id}/payments",
            json=payment.model_dump(mode="json", exclude_none=True),
        )
        return PaymentResponse.model_validate(data)

    async def remove_payment(self, bill_id: UUID, payment_id: UUID) -> None:
        await self.request("DELETE", f"{BILLS_PATH}/{bill_id}/payments/{payment_id}")

    async def set_analysis(self, bill_id: UUID, analysis: AiAnalysis) -> BillResponse:
        data = await self.request(
            "PUT", f"{BILLS_PATH}/{bill_id}/analysis", json=analysis.model_dump(mode="json")
        )
        return BillResponse.model_validate(data)

    async def upload_document(
        self, bill_id: UUID, filename: str, content: bytes, mime_type: str
    ) -> DocumentResponse:
        """Upload a page straight onto a saved bill"""
        data = await self.request(
            "POST",
            f"{BILLS_PATH}/{bill_id}/documents/upload",
            files={"file": (filename, content, mime_type)},
            error_cls=StorageError,
        )
        return DocumentResponse.model_validate(data)
