"""Models Package - Export all models for easy imports"""

from app.models.base import BaseModel, OwnerScopedMixin
from app.models.enums import BillStatus, PaymentMethod, ErrorFindingType
from app.models.user import User, FamilyMember
from app.models.medical_bill import MedicalBill, BillDocument, BillPayment


__all__ = [
    # Base classes
    "BaseModel",
    "OwnerScopedMixin",

    # Enums
    "BillStatus",
    "PaymentMethod",
    "ErrorFindingType",

    # Owners
    "User",
    "FamilyMember",

    # Bills
    "MedicalBill",
    "BillDocument",
    "BillPayment",
]
