"""Centralized Enum Definitions"""

import enum


class BillStatus(str, enum.Enum):
    """Bill lifecycle status (set by the user, never derived from the balance)"""
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    DISPUTED = "disputed"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"


class PaymentMethod(str, enum.Enum):
    """How a recorded payment was made"""
    CASH = "cash"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    ONLINE_PORTAL = "online_portal"
    MONEY_ORDER = "money_order"
    STRIPE = "stripe"
    OTHER = "other"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class ErrorFindingType(str, enum.Enum):
    """Kinds of billing problems the analysis service reports"""
    DUPLICATE_CHARGE = "duplicate_charge"
    UPCODING = "upcoding"
    UNBUNDLING = "unbundling"
    PRICING = "pricing"
    CODING_ERROR = "coding_error"
    BALANCE_BILLING = "balance_billing"
    INSURANCE_PROCESSING = "insurance_processing"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value):
        # The model occasionally invents categories; keep the finding, lose the label
        if isinstance(value, str):
            normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.OTHER
