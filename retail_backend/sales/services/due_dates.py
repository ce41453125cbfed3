# sales/services/due_dates.py

"""
DUE-DATE CALCULATOR

Monthly cadence on a fixed day-of-month:
- base month = explicit start month/year, or the reference month
  (moved to next month when the due day has already been reached)
- slice i is due i months after the base month (year carry both ways)
- day is clamped to the month length (day 31 in February -> 28/29)
"""

from __future__ import annotations

import calendar
from datetime import date

from sales.services.exceptions import LedgerValidationError


def _validate_day(payment_day: int) -> int:
    try:
        day = int(payment_day)
    except (TypeError, ValueError) as exc:
        raise LedgerValidationError("payment_day must be an integer between 1 and 31.") from exc
    if day < 1 or day > 31:
        raise LedgerValidationError(
            "payment_day must be between 1 and 31.",
            details={"payment_day": payment_day},
        )
    return day


def shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    """Move (year, month) by `offset` months. Month is 1-12; offset may be negative."""
    y, m0 = divmod(year * 12 + (month - 1) + offset, 12)
    return y, m0 + 1


def clamp_day(year: int, month: int, day: int) -> date:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def compute_due_date(
    *,
    reference_date: date,
    payment_day: int,
    index: int,
    start_month: int | None = None,
    start_year: int | None = None,
) -> date:
    day = _validate_day(payment_day)

    if start_month is not None:
        if not 1 <= int(start_month) <= 12:
            raise LedgerValidationError(
                "start_month must be between 1 and 12.",
                details={"start_month": start_month},
            )
        base_year = int(start_year) if start_year is not None else reference_date.year
        base_month = int(start_month)
    else:
        base_year, base_month = reference_date.year, reference_date.month
        # Compared against the requested day, not the clamped one.
        if reference_date.day >= day:
            base_year, base_month = shift_month(base_year, base_month, 1)

    year, month = shift_month(base_year, base_month, int(index))
    return clamp_day(year, month, day)


def due_date_after(anchor: date, *, months: int, payment_day: int | None = None) -> date:
    """`months`-th monthly due date after `anchor`, on `payment_day` (or the anchor's day)."""
    day = _validate_day(payment_day) if payment_day else anchor.day
    year, month = shift_month(anchor.year, anchor.month, int(months))
    return clamp_day(year, month, day)
