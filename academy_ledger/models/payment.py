# academy_ledger/models/payment.py - Payment transactions and their allocations
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Numeric, Date, DateTime, Text, ForeignKey, CheckConstraint, Index, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academy_ledger.models.base import Base, utcnow

PAYMENT_METHODS = ("cash", "mpesa", "transfer", "card", "other")
TRANSACTION_KINDS = ("TUITION", "REGISTRATION_FEE", "WALLET_APPLICATION")


class PaymentTransaction(Base):
    """
    Money received from (or credit consumed for) a student.

    Append-only: the only permitted change is confirmed -> reversed.
    """
    __tablename__ = "payment_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(24), nullable=False, default="TUITION")
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    credit_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False, default="cash")
    alloc_mode: Mapped[str | None] = mapped_column(String(24))
    paid_date: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    receipt_number: Mapped[str | None] = mapped_column(String(32), unique=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="confirmed")
    observations: Mapped[str | None] = mapped_column(Text)

    reversed_at: Mapped[datetime | None] = mapped_column(DateTime)
    reversal_reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    allocations: Mapped[list["PaymentAllocation"]] = relationship(
        "PaymentAllocation", back_populates="payment", cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint("amount_paid > 0", name="amount_paid_positive"),
        CheckConstraint("credit_amount >= 0", name="credit_amount_positive"),
        CheckConstraint("payment_method IN ('cash','mpesa','transfer','card','other')", name="payment_method"),
        CheckConstraint("status IN ('confirmed','reversed')", name="transaction_status"),
        CheckConstraint("kind IN ('TUITION','REGISTRATION_FEE','WALLET_APPLICATION')", name="transaction_kind"),
        Index("ix_payment_transactions_student_course", "student_id", "course_id", "paid_date"),
    )

    @property
    def is_confirmed(self) -> bool:
        return self.status == "confirmed"

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.amount_allocated for a in self.allocations), Decimal('0.00'))


class PaymentAllocation(Base):
    """Portion of one transaction applied to one plan row"""
    __tablename__ = "payment_allocations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payment_transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("payment_plans.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    month_reference: Mapped[str] = mapped_column(String(7), nullable=False)
    amount_allocated: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    payment: Mapped["PaymentTransaction"] = relationship("PaymentTransaction", back_populates="allocations", lazy="joined")
    plan: Mapped["PaymentPlanRow"] = relationship("PaymentPlanRow", back_populates="allocations")

    __table_args__ = (
        CheckConstraint("amount_allocated > 0", name="amount_allocated_positive"),
    )
