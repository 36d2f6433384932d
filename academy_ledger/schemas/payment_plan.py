# academy_ledger/schemas/payment_plan.py
from pydantic import AliasChoices, BaseModel, Field
from typing import Dict, List, Optional
from datetime import date
from decimal import Decimal
from uuid import UUID

from academy_ledger.services.plan_evaluation import PlanEvaluation
from academy_ledger.services.status_classifier import PaymentStatus


class PaymentPlanOut(BaseModel):
    """Plan row with the figures derived for ``as_of``"""
    id: UUID
    registration_id: Optional[UUID] = None
    student_id: UUID
    course_id: str
    month_reference: str
    due_date: date
    base_amount: Decimal
    discount_amount: Decimal
    penalty_amount: Decimal
    days_overdue: int
    total_expected: Decimal
    paid_total: Decimal
    remaining: Decimal
    status: PaymentStatus
    observations: Optional[str] = None
    as_of: date

    @classmethod
    def from_evaluation(cls, evaluation: PlanEvaluation) -> "PaymentPlanOut":
        plan = evaluation.plan
        return cls(
            id=plan.id,
            registration_id=plan.registration_id,
            student_id=plan.student_id,
            course_id=plan.course_id,
            month_reference=plan.month_reference,
            due_date=plan.due_date,
            base_amount=plan.base_amount,
            discount_amount=plan.discount_amount,
            penalty_amount=evaluation.penalty_amount,
            days_overdue=evaluation.days_overdue,
            total_expected=evaluation.total_expected,
            paid_total=evaluation.paid_total,
            remaining=evaluation.remaining,
            status=evaluation.status,
            observations=plan.observations,
            as_of=evaluation.as_of,
        )


class PlanGenerateRequest(BaseModel):
    registration_id: UUID


class PlanGenerateResult(BaseModel):
    success: bool = True
    created: int
    plans: List[PaymentPlanOut] = []


class GenerateAllResult(BaseModel):
    success: bool = True
    created: int
    registrations: List[str] = []
    errors: List[Dict[str, str]] = []


class DiscountUpdate(BaseModel):
    discount_amount: Decimal = Field(..., decimal_places=2)
    observations: Optional[str] = Field(None, validation_alias=AliasChoices("observations", "observacoes"))
