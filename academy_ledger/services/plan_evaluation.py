# academy_ledger/services/plan_evaluation.py - Derived figures of a plan row
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from academy_ledger.core.money import to_money, clamp_zero
from academy_ledger.models.payment_plan import PaymentPlanRow
from academy_ledger.services.penalties import compute_penalty
from academy_ledger.services.settings_service import PenaltyPolicy
from academy_ledger.services.status_classifier import PaymentStatus, classify


@dataclass(frozen=True)
class PlanEvaluation:
    """
    Computed view of a plan row for one evaluation date.

    total_expected = base_amount - discount_amount + penalty_amount
    remaining = total_expected - paid_total (never negative)
    """
    plan: PaymentPlanRow
    as_of: date
    outstanding_base: Decimal
    penalty_amount: Decimal
    days_overdue: int
    total_expected: Decimal
    paid_total: Decimal
    remaining: Decimal
    status: PaymentStatus

    @property
    def base_remaining(self) -> Decimal:
        """Unpaid part of the base, with payments applied to the base first"""
        return clamp_zero(self.outstanding_base - self.paid_total)


def evaluate_plan(plan: PaymentPlanRow, as_of: date, policy: PenaltyPolicy) -> PlanEvaluation:
    """Compute penalty, totals and status of ``plan`` as of ``as_of``"""
    outstanding = to_money(plan.base_amount) - to_money(plan.discount_amount)
    paid_total = to_money(plan.paid_total)
    penalty = compute_penalty(plan, as_of, policy)

    total_expected = outstanding + penalty.penalty_amount
    remaining = clamp_zero(total_expected - paid_total)

    return PlanEvaluation(
        plan=plan,
        as_of=as_of,
        outstanding_base=outstanding,
        penalty_amount=penalty.penalty_amount,
        days_overdue=penalty.days_overdue,
        total_expected=total_expected,
        paid_total=paid_total,
        remaining=remaining,
        status=classify(
            remaining=remaining,
            paid_total=paid_total,
            due_date=plan.due_date,
            as_of=as_of,
        ),
    )
