# academy_ledger/api/routers/finance.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from academy_ledger.api.deps.ledger import get_ledger_config
from academy_ledger.core.db import get_db
from academy_ledger.core.exceptions import ValidationError
from academy_ledger.schemas.course_fee import CourseFeeOut
from academy_ledger.schemas.finance import FinanceSummaryOut
from academy_ledger.schemas.payment import PaymentTransactionOut
from academy_ledger.schemas.payment_plan import PaymentPlanOut
from academy_ledger.schemas.registration import RegistrationOut
from academy_ledger.services.finance_summary import build_finance_summary
from academy_ledger.services.settings_service import InstitutionConfig

router = APIRouter()


@router.get("", response_model=FinanceSummaryOut)
async def get_student_finance(
    student_id: UUID = Query(...),
    curso_id: Optional[str] = Query(None),
    course_id: Optional[str] = Query(None),
    as_of: Optional[date] = Query(None),
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    """Totals, plan rows and recent payments of a student in a course"""
    course = curso_id or course_id
    if not course:
        raise ValidationError("curso_id is required")

    summary = build_finance_summary(db, config, student_id, course, as_of=as_of)
    return FinanceSummaryOut(
        student_id=summary.student_id,
        course_id=summary.course_id,
        as_of=summary.as_of,
        currency=config.currency,
        total_expected=summary.total_expected,
        total_paid=summary.total_paid,
        total_pending=summary.total_pending,
        total_overdue=summary.total_overdue,
        total_penalties=summary.total_penalties,
        overdue_count=summary.overdue_count,
        wallet_balance=summary.wallet_balance,
        registration_fee_paid=summary.registration_fee_paid,
        course=CourseFeeOut.model_validate(summary.course) if summary.course else None,
        registration=RegistrationOut.model_validate(summary.registration) if summary.registration else None,
        plans=[PaymentPlanOut.from_evaluation(e) for e in summary.plans],
        recent_payments=[PaymentTransactionOut.model_validate(t) for t in summary.recent_payments],
        penalty_policy=config.penalty.to_dict(),
    )
