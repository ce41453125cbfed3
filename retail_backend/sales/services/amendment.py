# sales/services/amendment.py

"""
SALE AMENDMENT ENGINE

Reshapes an open sale's receivable schedule after items are added.

Modes (tagged variant, dispatched once in plan_amendment):
- AppendFixed   ("increase_installments")
    keep the per-installment value, append ceil(dT / A) installments
- InflateAll    ("increase_value")
    keep the open installment count, spread dT over every open installment
- InflateFrom   ("increase_value_from_installment")
    installments >= k absorb dT (evenly, or at an operator target value)
- Recalculate   ("recalculate")
    replace the trailing run of untouched installments with a new run
    (target_count or target_amount, never both)

Pure:
- Reads Receivable instances, never writes. The sale service applies the
  returned AmendmentPlan inside its transaction.
- Open = PENDING or PARTIAL. Amounts of open installments never drop
  below what was already paid on them.
- Derived installment counts respect LEDGER_MAX_INSTALLMENTS.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Union

from sales.models import Receivable
from sales.services.due_dates import compute_due_date, due_date_after
from sales.services.exceptions import (
    ConsistencyViolation,
    LedgerValidationError,
    PreconditionError,
)
from sales.services.money import (
    ZERO,
    ceil_div,
    clamp_slice_count,
    fixed_slices,
    split_evenly,
    to_money,
)
from sales.services.schedule import InstallmentSlice, ensure_installment_limit

# ============================================================
# MODES
# ============================================================


@dataclass(frozen=True)
class AppendFixed:
    pass


@dataclass(frozen=True)
class InflateAll:
    pass


@dataclass(frozen=True)
class InflateFrom:
    start_installment: int
    target_amount: Decimal | None = None


@dataclass(frozen=True)
class Recalculate:
    target_amount: Decimal | None = None
    target_count: int | None = None
    start_from: int | None = None


AmendMode = Union[AppendFixed, InflateAll, InflateFrom, Recalculate]

MODE_INCREASE_INSTALLMENTS = "increase_installments"
MODE_INCREASE_VALUE = "increase_value"
MODE_INCREASE_VALUE_FROM_INSTALLMENT = "increase_value_from_installment"
MODE_RECALCULATE = "recalculate"

MODE_CHOICES = (
    MODE_INCREASE_INSTALLMENTS,
    MODE_INCREASE_VALUE,
    MODE_INCREASE_VALUE_FROM_INSTALLMENT,
    MODE_RECALCULATE,
)


def _optional_money(value, *, name: str) -> Decimal | None:
    if value in (None, ""):
        return None
    amount = to_money(value)
    if amount <= ZERO:
        raise LedgerValidationError(
            f"{name} must be greater than zero.", details={name: str(value)}
        )
    return amount


def _optional_positive_int(value, *, name: str) -> int | None:
    if value in (None, ""):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise LedgerValidationError(f"{name} must be an integer.") from exc
    if number < 1:
        raise LedgerValidationError(
            f"{name} must be at least 1.", details={name: value}
        )
    return number


def build_amend_mode(
    name: str,
    *,
    start_installment=None,
    target_amount=None,
    target_count=None,
    start_from=None,
) -> AmendMode:
    """Build the amend mode from its API name and parameters."""
    name = (name or "").strip()

    if name == MODE_INCREASE_INSTALLMENTS:
        return AppendFixed()

    if name == MODE_INCREASE_VALUE:
        return InflateAll()

    if name == MODE_INCREASE_VALUE_FROM_INSTALLMENT:
        k = _optional_positive_int(start_installment, name="start_installment")
        if k is None:
            raise LedgerValidationError(
                "start_installment is required for increase_value_from_installment."
            )
        return InflateFrom(
            start_installment=k,
            target_amount=_optional_money(target_amount, name="target_amount"),
        )

    if name == MODE_RECALCULATE:
        return Recalculate(
            target_amount=_optional_money(target_amount, name="target_amount"),
            target_count=_optional_positive_int(target_count, name="target_count"),
            start_from=_optional_positive_int(start_from, name="start_from"),
        )

    raise LedgerValidationError(
        f"Unknown amend mode '{name}'.",
        code="UNKNOWN_MODE",
        details={"allowed": list(MODE_CHOICES)},
    )


# ============================================================
# PLAN
# ============================================================


@dataclass
class AmendmentPlan:
    new_slices: list[InstallmentSlice] = field(default_factory=list)
    amount_updates: dict = field(default_factory=dict)
    deleted_ids: list = field(default_factory=list)
    updated_plan_count: int = 0
    updated_fixed_amount: Decimal | None = None


@dataclass(frozen=True)
class _Context:
    receivables: list
    added_amount: Decimal
    fixed_installment_amount: Decimal | None
    payment_day: int | None
    reference_date: date
    max_installments: int | None

    @property
    def open(self) -> list:
        return [r for r in self.receivables if r.status in Receivable.OPEN_STATUSES]

    @property
    def last_due_date(self) -> date | None:
        dates = [r.due_date for r in self.receivables]
        return max(dates) if dates else None

    @property
    def next_installment(self) -> int:
        return max((r.installment for r in self.receivables), default=0) + 1


def _outstanding(r) -> Decimal:
    return to_money(r.amount) - to_money(r.paid_amount)


def _slices_after(
    ctx: _Context, *, anchor: date | None, first_installment: int, amounts: list
) -> list[InstallmentSlice]:
    out = []
    for i, amount in enumerate(amounts):
        if anchor is None:
            due = compute_due_date(
                reference_date=ctx.reference_date,
                payment_day=ctx.payment_day or ctx.reference_date.day,
                index=i,
            )
        else:
            due = due_date_after(anchor, months=i + 1, payment_day=ctx.payment_day)
        out.append(
            InstallmentSlice(installment=first_installment + i, amount=amount, due_date=due)
        )
    return out


def _append_single(ctx: _Context, plan: AmendmentPlan) -> AmendmentPlan:
    plan.new_slices = _slices_after(
        ctx,
        anchor=ctx.last_due_date,
        first_installment=ctx.next_installment,
        amounts=[ctx.added_amount],
    )
    return plan


def _redistribute(ctx: _Context, plan: AmendmentPlan, affected: list) -> list:
    """Spread (outstanding + dT) evenly; each amount becomes paid + slice."""
    pool = sum((_outstanding(r) for r in affected), ZERO) + ctx.added_amount
    slices = split_evenly(pool, clamp_slice_count(pool, len(affected)))
    new_amounts = []
    for r, slice_ in zip(affected, slices):
        amount = to_money(r.paid_amount) + slice_
        plan.amount_updates[r.id] = amount
        new_amounts.append(amount)
    return new_amounts


# ------------------------------------------------------------
# Mode handlers
# ------------------------------------------------------------


def _plan_append_fixed(ctx: _Context, mode: AppendFixed) -> AmendmentPlan:
    plan = AmendmentPlan(updated_fixed_amount=ctx.fixed_installment_amount)
    unit = ctx.fixed_installment_amount

    if not unit or unit <= ZERO:
        return _append_single(ctx, plan)

    count = ceil_div(ctx.added_amount, unit)
    ensure_installment_limit(count, ctx.max_installments, source="increase_installments")
    amounts = split_evenly(ctx.added_amount, clamp_slice_count(ctx.added_amount, count))
    plan.new_slices = _slices_after(
        ctx,
        anchor=ctx.last_due_date,
        first_installment=ctx.next_installment,
        amounts=amounts,
    )
    return plan


def _plan_inflate_all(ctx: _Context, mode: InflateAll) -> AmendmentPlan:
    plan = AmendmentPlan(updated_fixed_amount=ctx.fixed_installment_amount)
    affected = ctx.open

    if not affected:
        return _append_single(ctx, plan)

    new_amounts = _redistribute(ctx, plan, affected)
    if ctx.fixed_installment_amount:
        plan.updated_fixed_amount = new_amounts[0]
    return plan


def _plan_inflate_from(ctx: _Context, mode: InflateFrom) -> AmendmentPlan:
    plan = AmendmentPlan(updated_fixed_amount=ctx.fixed_installment_amount)
    affected = [r for r in ctx.open if r.installment >= mode.start_installment]

    if not affected:
        return _append_single(ctx, plan)

    if mode.target_amount is None:
        _redistribute(ctx, plan, affected)
        return plan

    target = mode.target_amount
    cover = sum((to_money(r.amount) for r in affected), ZERO) + ctx.added_amount
    last_amount = cover - target * (len(affected) - 1)
    if last_amount <= ZERO:
        raise LedgerValidationError(
            f"Target amount {target} over {len(affected)} installments exceeds {cover}.",
            code="TARGET_TOO_HIGH",
            details={"target_amount": str(target), "amount_to_cover": str(cover)},
        )

    amounts = [target] * (len(affected) - 1) + [last_amount]
    for r, amount in zip(affected, amounts):
        if amount < to_money(r.paid_amount):
            raise LedgerValidationError(
                f"Installment {r.installment} already has {r.paid_amount} paid; "
                f"it cannot be reduced to {amount}.",
                code="BELOW_PAID_AMOUNT",
                details={"installment": r.installment},
            )
        plan.amount_updates[r.id] = amount

    plan.updated_fixed_amount = target
    return plan


def _untouched_tail(receivables: list) -> list:
    """Trailing run of PENDING installments with nothing paid."""
    tail = []
    for r in reversed(receivables):
        if r.status != Receivable.STATUS_PENDING or to_money(r.paid_amount) > ZERO:
            break
        tail.append(r)
    tail.reverse()
    return tail


def _plan_recalculate(ctx: _Context, mode: Recalculate) -> AmendmentPlan:
    if mode.target_count is not None and mode.target_amount is not None:
        raise LedgerValidationError(
            "Recalculate takes target_count or target_amount, not both.",
            code="CONFLICTING_TARGETS",
            details={
                "target_count": mode.target_count,
                "target_amount": str(mode.target_amount),
            },
        )

    plan = AmendmentPlan(updated_fixed_amount=ctx.fixed_installment_amount)
    tail = _untouched_tail(ctx.receivables)
    tail_ids = {r.id for r in tail}

    if mode.start_from is None:
        replaced = tail
    else:
        history = [
            r
            for r in ctx.receivables
            if r.installment >= mode.start_from and r.id not in tail_ids
        ]
        if history:
            raise PreconditionError(
                f"Cannot recalculate from installment {mode.start_from}: "
                f"installment {history[0].installment} already has payments.",
                code="INSTALLMENT_HAS_PAYMENTS",
                details={"start_from": mode.start_from},
            )
        replaced = [r for r in tail if r.installment >= mode.start_from]

    replaced_ids = {r.id for r in replaced}
    kept = [r for r in ctx.receivables if r.id not in replaced_ids]
    cover = sum((to_money(r.amount) for r in replaced), ZERO) + ctx.added_amount

    if mode.target_count is not None:
        if ctx.max_installments and mode.target_count > ctx.max_installments:
            raise LedgerValidationError(
                f"target_count cannot exceed {ctx.max_installments}.",
                details={"target_count": mode.target_count},
            )
        amounts = split_evenly(cover, clamp_slice_count(cover, mode.target_count))
        if ctx.fixed_installment_amount:
            plan.updated_fixed_amount = amounts[0]
    elif mode.target_amount is not None:
        ensure_installment_limit(
            ceil_div(cover, mode.target_amount), ctx.max_installments, source="target_amount"
        )
        amounts = fixed_slices(cover, mode.target_amount)
        plan.updated_fixed_amount = mode.target_amount
    else:
        amounts = split_evenly(cover, clamp_slice_count(cover, len(replaced) or 1))

    anchor = kept[-1].due_date if kept else ctx.last_due_date
    plan.deleted_ids = [r.id for r in replaced]
    plan.new_slices = _slices_after(
        ctx,
        anchor=anchor,
        first_installment=max((r.installment for r in kept), default=0) + 1,
        amounts=amounts,
    )
    return plan


_HANDLERS = {
    AppendFixed: _plan_append_fixed,
    InflateAll: _plan_inflate_all,
    InflateFrom: _plan_inflate_from,
    Recalculate: _plan_recalculate,
}


# ============================================================
# POST-CHECK
# ============================================================


def _check_plan(ctx: _Context, plan: AmendmentPlan) -> None:
    before = sum((_outstanding(r) for r in ctx.open), ZERO)

    deleted = set(plan.deleted_ids)
    after = ZERO
    for r in ctx.open:
        if r.id in deleted:
            continue
        amount = plan.amount_updates.get(r.id, to_money(r.amount))
        if amount < to_money(r.paid_amount):
            raise ConsistencyViolation(
                f"Installment {r.installment} amount {amount} is below paid {r.paid_amount}."
            )
        after += amount - to_money(r.paid_amount)

    for s in plan.new_slices:
        if s.amount <= ZERO:
            raise ConsistencyViolation(f"Installment {s.installment} has non-positive amount.")
        after += s.amount

    expected = before + ctx.added_amount
    if after != expected:
        raise ConsistencyViolation(
            f"Amended schedule covers {after}, expected {expected}.",
            details={"after": str(after), "expected": str(expected)},
        )


def plan_amendment(
    *,
    receivables,
    added_amount,
    mode: AmendMode,
    fixed_installment_amount=None,
    payment_day: int | None = None,
    reference_date: date,
    max_installments: int | None = None,
) -> AmendmentPlan:
    """
    Compute how the schedule absorbs `added_amount` (already discounted).

    `receivables` are the sale's current rows; CANCELLED ones are ignored.
    Returns the rows to create, the amounts to rewrite, the ids to delete and
    the new installment_plan / fixed_installment_amount.
    """
    added = to_money(added_amount)
    if added <= ZERO:
        raise LedgerValidationError(
            "Added amount must be greater than zero.",
            details={"added_amount": str(added_amount)},
        )

    handler = _HANDLERS.get(type(mode))
    if handler is None:
        raise LedgerValidationError(f"Unknown amend mode {mode!r}.", code="UNKNOWN_MODE")

    fixed = to_money(fixed_installment_amount) if fixed_installment_amount else None
    active = sorted(
        (r for r in receivables if r.status != Receivable.STATUS_CANCELLED),
        key=lambda r: r.installment,
    )

    ctx = _Context(
        receivables=active,
        added_amount=added,
        fixed_installment_amount=fixed,
        payment_day=payment_day,
        reference_date=reference_date,
        max_installments=max_installments,
    )

    plan = handler(ctx, mode)
    _check_plan(ctx, plan)

    deleted = set(plan.deleted_ids)
    remaining = [r.installment for r in active if r.id not in deleted]
    remaining += [s.installment for s in plan.new_slices]
    plan.updated_plan_count = max(remaining, default=0)
    return plan
