# academy_ledger/services/payment_plans.py - Plan row queries and administrative edits
from datetime import date
from decimal import Decimal
from typing import List, Optional
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from academy_ledger.core.exceptions import ConcurrencyConflictError, NotFoundError, ValidationError
from academy_ledger.core.money import ZERO, to_money
from academy_ledger.models.payment_plan import PaymentPlanRow
from academy_ledger.services.plan_evaluation import PlanEvaluation, evaluate_plan
from academy_ledger.services.settings_service import InstitutionConfig
from academy_ledger.services.status_classifier import PaymentStatus

logger = logging.getLogger(__name__)


class PaymentPlanService:
    """Reads plan rows with their derived figures; applies discounts"""

    def __init__(self, db: Session, config: InstitutionConfig):
        self.db = db
        self.config = config

    def list_plans(
        self,
        student_id: Optional[uuid.UUID] = None,
        course_id: Optional[str] = None,
        status: Optional[PaymentStatus] = None,
        month_reference: Optional[str] = None,
        as_of: Optional[date] = None,
    ) -> List[PlanEvaluation]:
        """
        Plan rows evaluated for ``as_of`` (default today), oldest first.

        ``status`` filters on the derived status, so it is applied after
        evaluation rather than in SQL.
        """
        as_of = as_of or date.today()
        query = select(PaymentPlanRow)
        if student_id:
            query = query.where(PaymentPlanRow.student_id == student_id)
        if course_id:
            query = query.where(PaymentPlanRow.course_id == course_id)
        if month_reference:
            query = query.where(PaymentPlanRow.month_reference == month_reference)
        query = query.order_by(PaymentPlanRow.student_id, PaymentPlanRow.course_id, PaymentPlanRow.month_reference)

        evaluations = [
            evaluate_plan(plan, as_of, self.config.penalty)
            for plan in self.db.execute(query).scalars().all()
        ]
        if status is not None:
            evaluations = [e for e in evaluations if e.status == PaymentStatus(status)]
        return evaluations

    def get_plan(self, plan_id: uuid.UUID) -> PaymentPlanRow:
        plan = self.db.get(PaymentPlanRow, plan_id)
        if plan is None:
            raise NotFoundError(f"Plan row {plan_id} not found")
        return plan

    def evaluate(self, plan_id: uuid.UUID, as_of: Optional[date] = None) -> PlanEvaluation:
        return evaluate_plan(self.get_plan(plan_id), as_of or date.today(), self.config.penalty)

    def apply_discount(
        self,
        plan_id: uuid.UUID,
        discount_amount: Decimal,
        observations: Optional[str] = None,
        as_of: Optional[date] = None,
    ) -> PlanEvaluation:
        """
        Set the discount of a plan row.

        Raises:
            NotFoundError: unknown plan row
            ValidationError: discount negative, above the base amount, or
                below what the student already paid for the row
        """
        as_of = as_of or date.today()
        plan = self.get_plan(plan_id)
        discount = to_money(discount_amount)

        if discount < ZERO:
            raise ValidationError("Discount cannot be negative")
        if discount > to_money(plan.base_amount):
            raise ValidationError(
                "Discount cannot exceed the base amount",
                {"base_amount": str(plan.base_amount), "discount_amount": str(discount)},
            )

        previous = to_money(plan.discount_amount)
        plan.discount_amount = discount
        evaluation = evaluate_plan(plan, as_of, self.config.penalty)
        if evaluation.total_expected < evaluation.paid_total:
            plan.discount_amount = previous
            raise ValidationError(
                "Discount would leave the row overpaid; reverse a payment first",
                {"paid_total": str(evaluation.paid_total), "total_expected": str(evaluation.total_expected)},
            )

        if observations is not None:
            plan.observations = observations

        try:
            self.db.flush()
        except StaleDataError as e:
            self.db.rollback()
            raise ConcurrencyConflictError("The plan row changed while the discount was being applied") from e

        logger.info(f"Discount on {plan.student_id}/{plan.course_id} {plan.month_reference}: {previous} -> {discount}")
        return evaluation
