# academy_ledger/services/plan_generator.py - Monthly payment plan generation
from datetime import date
from typing import Any, Dict, List, Optional, Tuple
import calendar
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from academy_ledger.core.exceptions import DuplicatePlanError, LedgerError, ValidationError
from academy_ledger.core.money import ZERO, to_money
from academy_ledger.models.course_fee import CourseFeeConfig
from academy_ledger.models.payment_plan import PaymentPlanRow
from academy_ledger.models.registration import CourseRegistration
from academy_ledger.services.course_fees import CourseFeeService
from academy_ledger.services.payment_allocator import PaymentAllocator
from academy_ledger.services.registrations import RegistrationService
from academy_ledger.services.settings_service import InstitutionConfig

logger = logging.getLogger(__name__)


def format_month_reference(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def add_months(year: int, month: int, offset: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def due_date_for(year: int, month: int, due_day: int) -> date:
    """Due date in the given month, clamped to the month's last day"""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last_day))


def build_plan_rows(
    student_id: uuid.UUID,
    course_id: str,
    registration_date: date,
    fee_config: CourseFeeConfig,
    config: InstitutionConfig,
    registration_id: Optional[uuid.UUID] = None,
) -> List[PaymentPlanRow]:
    """
    Build (without persisting) one plan row per billed month.

    Months are consecutive, starting with the registration month or the
    following one depending on ``config.plan_start_policy``. Every row bills
    the course's monthly fee; the registration fee is not part of the plan.
    """
    if fee_config.duration_months is None or fee_config.duration_months < 1:
        raise ValidationError(f"Course '{course_id}' must have a duration of at least one month")
    if not isinstance(registration_date, date):
        raise ValidationError("registration_date must be a valid date")

    start_offset = 1 if config.plan_start_policy == "next_month" else 0
    monthly_fee = to_money(fee_config.monthly_fee)

    rows = []
    for offset in range(start_offset, start_offset + fee_config.duration_months):
        year, month = add_months(registration_date.year, registration_date.month, offset)
        rows.append(PaymentPlanRow(
            registration_id=registration_id,
            student_id=student_id,
            course_id=course_id,
            month_reference=format_month_reference(year, month),
            due_date=due_date_for(year, month, config.due_day),
            base_amount=monthly_fee,
            discount_amount=ZERO,
            paid_total=ZERO,
        ))
    return rows


class PlanGenerator:
    """Creates the monthly plan rows of a registration"""

    def __init__(self, db: Session, config: InstitutionConfig):
        self.db = db
        self.config = config

    def generate_plan(
        self,
        student_id: uuid.UUID,
        course_id: str,
        registration_date: date,
        fee_config: CourseFeeConfig,
        registration_id: Optional[uuid.UUID] = None,
        apply_wallet: bool = True,
        as_of: Optional[date] = None,
    ) -> List[PaymentPlanRow]:
        """
        Generate and persist the plan rows of a student in a course.

        All-or-nothing: if any month already has a row, nothing is written.
        Existing wallet credit is then spent on the new rows, oldest first.

        Raises:
            ValidationError: invalid duration or date
            DuplicatePlanError: a row already exists for one of the months
        """
        rows = build_plan_rows(student_id, course_id, registration_date, fee_config, self.config, registration_id)
        references = [row.month_reference for row in rows]

        existing = self.db.execute(
            select(PaymentPlanRow.month_reference).where(
                PaymentPlanRow.student_id == student_id,
                PaymentPlanRow.course_id == course_id,
                PaymentPlanRow.month_reference.in_(references),
            )
        ).scalars().all()
        if existing:
            logger.warning(f"Plan generation refused for student {student_id} in {course_id}: {sorted(existing)} exist")
            raise DuplicatePlanError(
                f"Payment plan already exists for student {student_id} in course '{course_id}'",
                {"months": sorted(existing)},
            )

        self.db.add_all(rows)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicatePlanError(
                f"Payment plan already exists for student {student_id} in course '{course_id}'"
            ) from e

        logger.info(
            f"Generated {len(rows)} plan rows for student {student_id} in {course_id}: "
            f"{references[0]}..{references[-1]} at {fee_config.monthly_fee}/month"
        )

        if apply_wallet:
            PaymentAllocator(self.db, self.config).apply_wallet_credit(student_id, course_id, as_of=as_of)

        return rows

    def generate_for_registration(self, registration_id: uuid.UUID, as_of: Optional[date] = None) -> List[PaymentPlanRow]:
        """Generate the plan of a registration from its course fee configuration"""
        registration = RegistrationService(self.db).get(registration_id)
        if registration.status != "ACTIVE":
            raise ValidationError(f"Registration {registration_id} is {registration.status.lower()}")

        fee_config = CourseFeeService(self.db).get_config(registration.course_id, require_active=True)
        rows = self.generate_plan(
            student_id=registration.student_id,
            course_id=registration.course_id,
            registration_date=registration.registration_date,
            fee_config=fee_config,
            registration_id=registration.id,
            as_of=as_of,
        )
        registration.plan_generated = True
        self.db.flush()
        return rows

    def generate_all(self, as_of: Optional[date] = None) -> Dict[str, Any]:
        """
        Generate plans for every active registration that has none yet.

        Registrations that fail validation are reported and skipped; they do
        not prevent the others from being generated.
        """
        registrations = self.db.execute(
            select(CourseRegistration).where(
                CourseRegistration.status == "ACTIVE",
                CourseRegistration.plan_generated.is_(False),
            ).order_by(CourseRegistration.registration_date)
        ).scalars().all()

        created = 0
        generated: List[str] = []
        errors: List[Dict[str, str]] = []
        for registration in registrations:
            try:
                rows = self.generate_for_registration(registration.id, as_of=as_of)
            except LedgerError as e:
                logger.warning(f"Skipping registration {registration.id}: {e.message}")
                errors.append({
                    "registration_id": str(registration.id),
                    "error": e.__class__.__name__,
                    "detail": e.message,
                })
                continue
            created += len(rows)
            generated.append(str(registration.id))

        logger.info(f"Bulk plan generation: {created} rows for {len(generated)} registrations, {len(errors)} errors")
        return {"created": created, "registrations": generated, "errors": errors}
