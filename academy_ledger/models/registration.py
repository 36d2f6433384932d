# academy_ledger/models/registration.py - Student registration in a course
from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import String, Date, DateTime, Boolean, CheckConstraint, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academy_ledger.models.base import Base, utcnow


class CourseRegistration(Base):
    """
    Registration links a student to a course from a start date.
    This is where plan generation is triggered.
    """
    __tablename__ = "course_registrations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    student_name: Mapped[str | None] = mapped_column(String(128))
    course_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    registration_date: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")
    plan_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    plans: Mapped[list["PaymentPlanRow"]] = relationship("PaymentPlanRow", back_populates="registration")

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="student_course"),
        CheckConstraint("status IN ('ACTIVE','CANCELLED','COMPLETED')", name="registration_status"),
    )
