# academy_ledger/models/payment_plan.py - Monthly tuition obligations
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String, Integer, Numeric, Date, DateTime, Text, ForeignKey,
    CheckConstraint, UniqueConstraint, Index, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academy_ledger.models.base import Base, utcnow


class PaymentPlanRow(Base):
    """
    One month's tuition obligation for one student in one course.

    Only ``paid_total`` and ``discount_amount`` change after creation. Penalty,
    remaining balance and status are derived on every read. ``version_id``
    guards the read-modify-write of ``paid_total`` against concurrent payments.
    """
    __tablename__ = "payment_plans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    registration_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("course_registrations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    month_reference: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    base_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    paid_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    observations: Mapped[str | None] = mapped_column(Text)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    registration: Mapped[Optional["CourseRegistration"]] = relationship("CourseRegistration", back_populates="plans")
    allocations: Mapped[list["PaymentAllocation"]] = relationship(
        "PaymentAllocation", back_populates="plan", lazy="selectin"
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", "month_reference", name="student_course_month"),
        CheckConstraint("base_amount >= 0", name="base_amount_positive"),
        CheckConstraint("paid_total >= 0", name="paid_total_positive"),
        CheckConstraint("discount_amount >= 0 AND discount_amount <= base_amount", name="discount_range"),
        Index("ix_payment_plans_student_course_due", "student_id", "course_id", "due_date"),
    )

    @property
    def outstanding_base(self) -> Decimal:
        """Billed amount after discount, before penalties"""
        return self.base_amount - self.discount_amount

    def __repr__(self):
        return f"<PaymentPlanRow(student_id={self.student_id}, course_id={self.course_id}, month={self.month_reference})>"
