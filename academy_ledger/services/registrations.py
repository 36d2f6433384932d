# academy_ledger/services/registrations.py - Student course registrations
from datetime import date
from typing import Optional
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from academy_ledger.core.exceptions import NotFoundError, ValidationError
from academy_ledger.models.registration import CourseRegistration
from academy_ledger.services.course_fees import CourseFeeService

logger = logging.getLogger(__name__)


class RegistrationService:
    def __init__(self, db: Session):
        self.db = db

    def register(
        self,
        student_id: uuid.UUID,
        course_id: str,
        registration_date: Optional[date] = None,
        student_name: Optional[str] = None,
    ) -> CourseRegistration:
        """Register a student in a course that has a fee configuration"""
        CourseFeeService(self.db).get_config(course_id, require_active=True)

        if self.find(student_id, course_id) is not None:
            raise ValidationError(f"Student {student_id} is already registered in course '{course_id}'")

        registration = CourseRegistration(
            student_id=student_id,
            course_id=course_id,
            student_name=student_name,
            registration_date=registration_date or date.today(),
            status="ACTIVE",
        )
        self.db.add(registration)
        self.db.flush()

        logger.info(f"Registered student {student_id} in {course_id} from {registration.registration_date}")
        return registration

    def find(self, student_id: uuid.UUID, course_id: str) -> Optional[CourseRegistration]:
        return self.db.execute(
            select(CourseRegistration).where(
                CourseRegistration.student_id == student_id,
                CourseRegistration.course_id == course_id,
            )
        ).scalar_one_or_none()

    def get(self, registration_id: uuid.UUID) -> CourseRegistration:
        registration = self.db.get(CourseRegistration, registration_id)
        if registration is None:
            raise NotFoundError(f"Registration {registration_id} not found")
        return registration
