"""Domain errors for the medical bill workflow.

Every error carries a stable ``code`` and the HTTP status the API renders it
with, so the backend exception handler and the HTTP clients can translate
in both directions without a lookup table per endpoint.
"""

from typing import Dict, Optional, Type


class MedicalBillError(Exception):
    """Base class for all bill workflow errors"""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ValidationError(MedicalBillError):
    """Bad input: missing biller name, unsupported file type, oversized file..."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(MedicalBillError):
    code = "RESOURCE_NOT_FOUND"
    status_code = 404


class ExtractionError(MedicalBillError):
    code = "EXTRACTION_FAILED"
    status_code = 502


class AnalysisError(MedicalBillError):
    code = "ANALYSIS_FAILED"
    status_code = 502


class AnalysisPreconditionError(AnalysisError):
    """Analysis requested for a document that has no durable storage key"""

    code = "ANALYSIS_PRECONDITION_FAILED"
    status_code = 400


class PaymentError(MedicalBillError):
    code = "PAYMENT_FAILED"
    status_code = 402


class PersistenceError(MedicalBillError):
    code = "PERSISTENCE_FAILED"
    status_code = 500


class StorageError(PersistenceError):
    code = "STORAGE_FAILED"
    status_code = 503


ERRORS_BY_CODE: Dict[str, Type[MedicalBillError]] = {
    cls.code: cls
    for cls in (
        ValidationError,
        NotFoundError,
        ExtractionError,
        AnalysisError,
        AnalysisPreconditionError,
        PaymentError,
        PersistenceError,
        StorageError,
    )
}
