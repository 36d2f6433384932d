# academy_ledger/services/finance_summary.py - Student finance overview
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional
import uuid

from sqlalchemy.orm import Session

from academy_ledger.core.exceptions import NotFoundError
from academy_ledger.core.money import ZERO
from academy_ledger.models.course_fee import CourseFeeConfig
from academy_ledger.models.payment import PaymentTransaction
from academy_ledger.models.registration import CourseRegistration
from academy_ledger.services.course_fees import CourseFeeService
from academy_ledger.services.payment_allocator import PaymentAllocator
from academy_ledger.services.payment_plans import PaymentPlanService
from academy_ledger.services.plan_evaluation import PlanEvaluation
from academy_ledger.services.registrations import RegistrationService
from academy_ledger.services.settings_service import InstitutionConfig
from academy_ledger.services.status_classifier import PaymentStatus

RECENT_PAYMENTS_LIMIT = 10


@dataclass
class FinanceSummary:
    student_id: uuid.UUID
    course_id: str
    as_of: date
    total_expected: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_pending: Decimal = ZERO
    total_overdue: Decimal = ZERO
    total_penalties: Decimal = ZERO
    overdue_count: int = 0
    wallet_balance: Decimal = ZERO
    registration_fee_paid: bool = False
    course: Optional[CourseFeeConfig] = None
    registration: Optional[CourseRegistration] = None
    plans: List[PlanEvaluation] = field(default_factory=list)
    recent_payments: List[PaymentTransaction] = field(default_factory=list)


def build_finance_summary(
    db: Session,
    config: InstitutionConfig,
    student_id: uuid.UUID,
    course_id: str,
    as_of: Optional[date] = None,
) -> FinanceSummary:
    """
    Totals over every plan row of a student in a course.

    total_pending is everything still owed, total_overdue the part of it that
    is past due; total_paid counts tuition applied to plan rows.
    """
    as_of = as_of or date.today()
    registration = RegistrationService(db).find(student_id, course_id)
    plans = PaymentPlanService(db, config).list_plans(student_id=student_id, course_id=course_id, as_of=as_of)
    if registration is None and not plans:
        raise NotFoundError(f"Student {student_id} has no registration or plan in course '{course_id}'")

    allocator = PaymentAllocator(db, config)
    summary = FinanceSummary(
        student_id=student_id,
        course_id=course_id,
        as_of=as_of,
        course=CourseFeeService(db).find_config(course_id),
        registration=registration,
        plans=plans,
        wallet_balance=allocator.get_wallet_balance(student_id, course_id),
    )

    for evaluation in plans:
        summary.total_expected += evaluation.total_expected
        summary.total_paid += evaluation.paid_total
        summary.total_pending += evaluation.remaining
        summary.total_penalties += evaluation.penalty_amount
        if evaluation.status == PaymentStatus.OVERDUE:
            summary.total_overdue += evaluation.remaining
            summary.overdue_count += 1

    history = allocator.list_transactions(student_id=student_id, course_id=course_id)
    summary.registration_fee_paid = any(
        t.kind == "REGISTRATION_FEE" and t.is_confirmed for t in history
    )
    summary.recent_payments = history[:RECENT_PAYMENTS_LIMIT]
    return summary
