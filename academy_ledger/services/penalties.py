# academy_ledger/services/penalties.py - Late payment penalty calculation
"""
Penalty Calculator.

Penalties are never stored: they are recomputed from the plan row, its
confirmed allocations, the evaluation date and the penalty policy, so the
result is deterministic for a fixed ``as_of``.

Tiers are cumulative. A tier is charged when ``due_date + step_day`` is
reached, on the base amount still unpaid at that moment (``base="remaining"``)
or on the full outstanding base (``base="original"``). Payments are applied
to the base before any penalty, and only payments dated before the crossing
day reduce that tier. A row settled before a crossing accrues nothing more.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Tuple

from academy_ledger.core.money import ZERO, EPSILON, to_money, percent_of, clamp_zero
from academy_ledger.models.payment_plan import PaymentPlanRow
from academy_ledger.services.settings_service import PenaltyPolicy


@dataclass(frozen=True)
class PenaltyResult:
    penalty_amount: Decimal
    days_overdue: int
    tiers_applied: int = 0


NO_PENALTY = PenaltyResult(penalty_amount=ZERO, days_overdue=0, tiers_applied=0)


def confirmed_payments(plan: PaymentPlanRow) -> List[Tuple[date, Decimal]]:
    """(paid_date, amount) of every confirmed allocation funding the row"""
    return [
        (allocation.payment.paid_date, to_money(allocation.amount_allocated))
        for allocation in plan.allocations
        if allocation.payment is not None and allocation.payment.is_confirmed
    ]


def _paid_before(payments: Iterable[Tuple[date, Decimal]], day: date) -> Decimal:
    return sum((amount for paid_on, amount in payments if paid_on < day), ZERO)


def compute_penalty(plan: PaymentPlanRow, as_of: date, policy: PenaltyPolicy) -> PenaltyResult:
    """
    Compute the accrued penalty of a plan row.

    Args:
        plan: Plan row; its ``allocations`` supply payment dates
        as_of: Evaluation date
        policy: Penalty policy in force

    Returns:
        PenaltyResult with the accrued penalty and whole days overdue
        (0 when not yet due, penalties disabled, or the row is settled)
    """
    if not policy.enabled or as_of <= plan.due_date:
        return NO_PENALTY

    outstanding = to_money(plan.base_amount) - to_money(plan.discount_amount)
    paid_total = to_money(plan.paid_total)
    if outstanding <= ZERO:
        return NO_PENALTY

    days = (as_of - plan.due_date).days
    payments = confirmed_payments(plan)

    penalty = ZERO
    tiers = 0
    for step_day, step_percent in policy.tiers:
        if days < step_day:
            break

        crossing = plan.due_date + timedelta(days=step_day)
        paid_before = _paid_before(payments, crossing)
        owed_at_crossing = outstanding + penalty - paid_before
        if owed_at_crossing < EPSILON:
            break

        if policy.base == "original":
            tier_base = outstanding
        else:
            tier_base = clamp_zero(outstanding - paid_before)

        if tier_base > ZERO:
            penalty += percent_of(tier_base, step_percent)
            tiers += 1

    remaining = outstanding + penalty - paid_total
    return PenaltyResult(
        penalty_amount=penalty,
        days_overdue=days if remaining >= EPSILON else 0,
        tiers_applied=tiers,
    )
