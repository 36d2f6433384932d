# academy_ledger/services/course_fees.py - Course fee configuration
from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from academy_ledger.core.exceptions import NotFoundError, ValidationError
from academy_ledger.core.money import ZERO, to_money
from academy_ledger.models.course_fee import CourseFeeConfig

logger = logging.getLogger(__name__)


class CourseFeeService:
    """Service class for per-course fee configuration"""

    def __init__(self, db: Session):
        self.db = db

    def list_configs(self, active_only: bool = False) -> List[CourseFeeConfig]:
        query = select(CourseFeeConfig)
        if active_only:
            query = query.where(CourseFeeConfig.is_active.is_(True))
        return list(self.db.execute(query.order_by(CourseFeeConfig.course_id)).scalars().all())

    def find_config(self, course_id: str) -> Optional[CourseFeeConfig]:
        return self.db.execute(
            select(CourseFeeConfig).where(CourseFeeConfig.course_id == course_id)
        ).scalar_one_or_none()

    def get_config(self, course_id: str, require_active: bool = False) -> CourseFeeConfig:
        """
        Get the fee configuration of a course.

        Raises:
            NotFoundError: If the course has no configuration
            ValidationError: If ``require_active`` and the configuration is disabled
        """
        config = self.find_config(course_id)
        if config is None:
            raise NotFoundError(f"No fee configuration for course '{course_id}'")
        if require_active and not config.is_active:
            raise ValidationError(f"Fee configuration for course '{course_id}' is inactive")
        return config

    def upsert_config(
        self,
        course_id: str,
        registration_fee: Decimal,
        monthly_fee: Decimal,
        duration_months: int,
        course_name: Optional[str] = None,
        is_active: bool = True,
    ) -> CourseFeeConfig:
        """
        Create or replace the fee configuration of a course.

        Existing plan rows keep the amounts they were generated with.
        """
        course_id = (course_id or "").strip()
        if not course_id:
            raise ValidationError("course_id is required")

        registration_fee = to_money(registration_fee)
        monthly_fee = to_money(monthly_fee)
        if registration_fee < ZERO or monthly_fee < ZERO:
            raise ValidationError("Fees cannot be negative")
        if duration_months is None or int(duration_months) < 1:
            raise ValidationError("duration_months must be at least 1")

        config = self.find_config(course_id)
        created = config is None
        if created:
            config = CourseFeeConfig(course_id=course_id)
            self.db.add(config)

        config.registration_fee = registration_fee
        config.monthly_fee = monthly_fee
        config.duration_months = int(duration_months)
        config.is_active = is_active
        if course_name is not None:
            config.course_name = course_name.strip() or None

        self.db.flush()
        logger.info(
            f"Course fee {'created' if created else 'updated'}: {course_id} "
            f"monthly={monthly_fee} registration={registration_fee} months={config.duration_months}"
        )
        return config
