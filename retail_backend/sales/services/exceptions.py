# sales/services/exceptions.py

"""
LEDGER SERVICE ERRORS

Centralized domain errors for the installment ledger.

Every error carries a stable machine `code`, an operator-facing `message`
and optional `details`, so the API layer can render
{"error": {"code", "message", "details"}} without string parsing.
"""


class LedgerError(Exception):
    """Base exception for all installment ledger failures."""

    default_code = "LEDGER_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details=None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


class LedgerValidationError(LedgerError):
    """Raised on malformed operator input, before anything is written."""

    default_code = "VALIDATION_ERROR"


class PreconditionError(LedgerError):
    """Raised when the current sale/receivable state does not allow the mutation."""

    default_code = "PRECONDITION_FAILED"


class StockConflictError(PreconditionError):
    """Raised when the catalog cannot supply the requested quantities."""

    default_code = "INSUFFICIENT_STOCK"


class ConsistencyViolation(LedgerError):
    """Raised when a ledger sum invariant fails. Always aborts the transaction."""

    default_code = "LEDGER_INCONSISTENT"
