# academy_ledger/models/course_fee.py - Per-course fee configuration
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Integer, Boolean, Numeric, DateTime, CheckConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from academy_ledger.models.base import Base, utcnow


class CourseFeeConfig(Base):
    """
    Fee configuration of one course: one-off registration fee, monthly fee
    and number of billed months. Exactly one row per course.
    """
    __tablename__ = "course_fees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    course_name: Mapped[str | None] = mapped_column(String(128))
    registration_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    monthly_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    duration_months: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("registration_fee >= 0", name="registration_fee_positive"),
        CheckConstraint("monthly_fee >= 0", name="monthly_fee_positive"),
        CheckConstraint("duration_months >= 1", name="duration_min"),
    )

    def __repr__(self):
        return f"<CourseFeeConfig(course_id={self.course_id}, monthly_fee={self.monthly_fee}, months={self.duration_months})>"
