# academy_ledger/api/routers/payment_plans.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from academy_ledger.api.deps.ledger import get_ledger_config
from academy_ledger.core.db import get_db
from academy_ledger.schemas.payment_plan import (
    DiscountUpdate, GenerateAllResult, PaymentPlanOut, PlanGenerateRequest, PlanGenerateResult
)
from academy_ledger.services.payment_plans import PaymentPlanService
from academy_ledger.services.plan_evaluation import evaluate_plan
from academy_ledger.services.plan_generator import PlanGenerator
from academy_ledger.services.settings_service import InstitutionConfig
from academy_ledger.services.status_classifier import PaymentStatus

router = APIRouter()


@router.get("", response_model=List[PaymentPlanOut])
async def list_payment_plans(
    student_id: Optional[UUID] = Query(None),
    curso_id: Optional[str] = Query(None, alias="curso_id"),
    course_id: Optional[str] = Query(None),
    status: Optional[PaymentStatus] = Query(None),
    month_reference: Optional[str] = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    as_of: Optional[date] = Query(None, description="Evaluation date, defaults to today"),
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    """Plan rows with penalty, remaining and status computed for the requested date"""
    evaluations = PaymentPlanService(db, config).list_plans(
        student_id=student_id,
        course_id=curso_id or course_id,
        status=status,
        month_reference=month_reference,
        as_of=as_of,
    )
    return [PaymentPlanOut.from_evaluation(e) for e in evaluations]


@router.post("/generate", response_model=PlanGenerateResult, status_code=status.HTTP_201_CREATED)
async def generate_payment_plan(
    data: PlanGenerateRequest,
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    """Generate the monthly plan of a registration (all-or-nothing)"""
    rows = PlanGenerator(db, config).generate_for_registration(data.registration_id)
    db.commit()

    today = date.today()
    return PlanGenerateResult(
        created=len(rows),
        plans=[PaymentPlanOut.from_evaluation(evaluate_plan(row, today, config.penalty)) for row in rows],
    )


@router.post("/generate-all", response_model=GenerateAllResult)
async def generate_all_payment_plans(
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    """Generate plans for every active registration that has none yet"""
    result = PlanGenerator(db, config).generate_all()
    db.commit()
    return GenerateAllResult(**result)


@router.patch("/{plan_id}/discount", response_model=PaymentPlanOut)
async def apply_plan_discount(
    plan_id: UUID,
    data: DiscountUpdate,
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    evaluation = PaymentPlanService(db, config).apply_discount(
        plan_id, data.discount_amount, observations=data.observations
    )
    db.commit()
    return PaymentPlanOut.from_evaluation(evaluation)
