"""
SALE + RECEIVABLE LIFECYCLE DOMAIN RULES

This module defines the ONLY allowed lifecycle transitions
for Sale and Receivable entities.

DESIGN PRINCIPLES:
- No database writes
- No stock mutation
- No side effects
- Single source of truth
"""

from sales.models import Receivable, Sale
from sales.services.exceptions import PreconditionError

# ============================================================
# DOMAIN ERRORS
# ============================================================


class InvalidTransitionError(PreconditionError):
    default_code = "INVALID_TRANSITION"


# ============================================================
# STATE DEFINITIONS
# ============================================================

SALE_TERMINAL_STATES = {
    Sale.STATUS_CANCELLED,
}

SALE_TRANSITIONS = {
    Sale.STATUS_PENDING: {
        Sale.STATUS_COMPLETED,
        Sale.STATUS_CANCELLED,
    },
    Sale.STATUS_COMPLETED: {
        Sale.STATUS_CANCELLED,
    },
}

RECEIVABLE_TERMINAL_STATES = {
    Receivable.STATUS_PAID,
    Receivable.STATUS_CANCELLED,
}

RECEIVABLE_TRANSITIONS = {
    Receivable.STATUS_PENDING: {
        Receivable.STATUS_PARTIAL,
        Receivable.STATUS_PAID,
        Receivable.STATUS_CANCELLED,
    },
    Receivable.STATUS_PARTIAL: {
        Receivable.STATUS_PARTIAL,
        Receivable.STATUS_PAID,
        Receivable.STATUS_CANCELLED,
    },
}


# ============================================================
# DOMAIN RULES
# ============================================================


def can_transition(*, from_status: str, to_status: str) -> bool:
    if from_status in SALE_TERMINAL_STATES:
        return False

    return to_status in SALE_TRANSITIONS.get(from_status, set())


def validate_transition(*, sale: Sale, target_status: str):
    if not can_transition(
        from_status=sale.status,
        to_status=target_status,
    ):
        raise InvalidTransitionError(
            f"Sale {sale.id} cannot transition from "
            f"'{sale.status}' to '{target_status}'",
            details={"from": sale.status, "to": target_status},
        )


def can_transition_receivable(*, from_status: str, to_status: str) -> bool:
    if from_status in RECEIVABLE_TERMINAL_STATES:
        return False

    return to_status in RECEIVABLE_TRANSITIONS.get(from_status, set())


def validate_receivable_transition(*, receivable: Receivable, target_status: str):
    if not can_transition_receivable(
        from_status=receivable.status,
        to_status=target_status,
    ):
        raise InvalidTransitionError(
            f"Installment {receivable.installment} cannot transition from "
            f"'{receivable.status}' to '{target_status}'",
            details={"from": receivable.status, "to": target_status},
        )


def require_pending_sale(sale: Sale, *, action: str) -> None:
    if sale.status != Sale.STATUS_PENDING:
        raise PreconditionError(
            f"Cannot {action}: sale {sale.invoice_no} is {sale.status}.",
            code="SALE_NOT_PENDING",
            details={"status": sale.status},
        )
