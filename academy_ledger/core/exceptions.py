# academy_ledger/core/exceptions.py - Ledger error taxonomy
"""
Errors raised by the ledger services.

Every error is reported to the caller; services raise before committing so a
failed operation never leaves a partially applied payment behind. The API
layer maps each class to an HTTP status through ``http_status``.
"""
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all ledger errors"""

    http_status: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "success": False,
            "error": self.__class__.__name__,
            "detail": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    """Rejected input; nothing was persisted"""

    http_status = 422


class InvalidAmountError(ValidationError):
    """Payment or fee amount is not strictly positive"""


class NotFoundError(LedgerError):
    """Unknown course, registration, plan row or transaction"""

    http_status = 404


class DuplicatePlanError(LedgerError):
    """Plan rows already exist for the student, course and month"""

    http_status = 409


class DuplicateRegistrationFeeError(LedgerError):
    """The one-off registration fee was already paid"""

    http_status = 409


class ConcurrencyConflictError(LedgerError):
    """
    A plan row or wallet changed between read and write.

    The caller must refetch the current figures and confirm the payment again;
    the ledger never retries financial writes on its own.
    """

    http_status = 409


__all__ = [
    "LedgerError",
    "ValidationError",
    "InvalidAmountError",
    "NotFoundError",
    "DuplicatePlanError",
    "DuplicateRegistrationFeeError",
    "ConcurrencyConflictError",
]
