"""Medical bill ledger models"""

from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, ENUM, JSONB
from sqlalchemy.orm import relationship

from app.models.base import BaseModel, OwnerScopedMixin
from app.models.enums import BillStatus, PaymentMethod
from app.utils.money import remaining_balance, total_paid
from app.utils.time import get_utc_now


class MedicalBill(BaseModel, OwnerScopedMixin):
    """
    One medical statement and its lifecycle.

    Biller and account details are stored as whole JSON sub-objects because
    updates replace them as a unit. Totals are real columns so summaries can
    be computed in SQL. ``ai_analysis`` holds the latest snapshot only.
    """
    __tablename__ = "medical_bills"

    biller = Column(JSONB, nullable=False, default=dict)
    account = Column(JSONB, nullable=False, default=dict)

    date_of_service = Column(Date, nullable=True, index=True)
    date_received = Column(Date, nullable=True)
    statement_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)

    amount_billed = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    insurance_paid = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    insurance_adjusted = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    patient_responsibility = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    status = Column(ENUM(BillStatus, name="bill_status", values_callable=lambda x: [e.value for e in x]), default=BillStatus.UNPAID, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    ai_analysis = Column(JSONB, nullable=True)

    documents = relationship(
        "BillDocument",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillDocument.position",
    )
    payments = relationship(
        "BillPayment",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillPayment.created_at",
    )

    @property
    def biller_name(self) -> str:
        return (self.biller or {}).get("name", "")

    @property
    def totals(self) -> dict:
        return {
            "amount_billed": self.amount_billed or Decimal("0"),
            "insurance_paid": self.insurance_paid or Decimal("0"),
            "insurance_adjusted": self.insurance_adjusted or Decimal("0"),
            "patient_responsibility": self.patient_responsibility or Decimal("0"),
        }

    @property
    def amount_paid(self) -> Decimal:
        return total_paid(p.amount for p in self.payments)

    @property
    def remaining(self) -> Decimal:
        return remaining_balance(self.patient_responsibility, (p.amount for p in self.payments))

    def __repr__(self) -> str:
        return f"<MedicalBill {self.biller_name} - {self.status}>"


class BillDocument(BaseModel):
    """A stored page of a bill. The storage key is unique, so no two bills share a document."""
    __tablename__ = "bill_documents"

    bill_id = Column(UUID(as_uuid=True), ForeignKey("medical_bills.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=True)
    mime_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False, default=0)
    storage_key = Column(String(500), nullable=False, unique=True)
    uploaded_at = Column(DateTime, nullable=False, default=get_utc_now)
    position = Column(Integer, nullable=False, default=0)

    bill = relationship("MedicalBill", back_populates="documents")

    def __repr__(self) -> str:
        return f"<BillDocument {self.position}: {self.original_name or self.filename}>"


class BillPayment(BaseModel):
    __tablename__ = "bill_payments"
    __table_args__ = (
        UniqueConstraint("bill_id", "payment_intent_id", name="uq_bill_payments_intent"),
    )

    bill_id = Column(UUID(as_uuid=True), ForeignKey("medical_bills.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    date = Column(Date, nullable=False)
    method = Column(ENUM(PaymentMethod, name="payment_method", values_callable=lambda x: [e.value for e in x]), default=PaymentMethod.OTHER, nullable=False)
    reference_number = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    payment_intent_id = Column(String(255), nullable=True)

    bill = relationship("MedicalBill", back_populates="payments")

    def __repr__(self) -> str:
        return f"<BillPayment {self.amount} via {self.method}>"
