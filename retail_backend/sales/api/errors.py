# sales/api/errors.py

"""
API ERROR NORMALIZATION

Canonical error body: {"error": {"code", "message", "details"}}

LedgerValidationError -> 400
PreconditionError     -> 409 (includes stale version, stock conflicts)
ConsistencyViolation  -> 500 (logged with traceback; never expected)
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response

from sales.services.exceptions import (
    ConsistencyViolation,
    LedgerError,
    LedgerValidationError,
    PreconditionError,
)

logger = logging.getLogger("sales.ledger")


def error_response(*, code: str, message: str, http_status: int, details=None):
    """
    Canonical API error response.
    """
    return Response(
        {"error": {"code": code, "message": message, "details": details or {}}},
        status=http_status,
    )


def ledger_error_response(exc: LedgerError):
    if isinstance(exc, LedgerValidationError):
        http_status = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, PreconditionError):
        http_status = status.HTTP_409_CONFLICT
    elif isinstance(exc, ConsistencyViolation):
        logger.exception("Ledger consistency violation", extra={"code": exc.code})
        http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        http_status = status.HTTP_400_BAD_REQUEST

    return error_response(
        code=exc.code,
        message=exc.message,
        http_status=http_status,
        details=exc.details,
    )
