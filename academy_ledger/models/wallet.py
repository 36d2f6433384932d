# academy_ledger/models/wallet.py - Prepaid credit per student and course
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Integer, Numeric, DateTime, ForeignKey, CheckConstraint, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academy_ledger.models.base import Base, utcnow


class WalletBalance(Base):
    __tablename__ = "wallet_balances"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    course_id: Mapped[str] = mapped_column(String(64), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    entries: Mapped[list["WalletEntry"]] = relationship(
        "WalletEntry", back_populates="wallet", cascade="all, delete-orphan", order_by="WalletEntry.created_at"
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="wallet_student_course"),
        CheckConstraint("balance >= 0", name="balance_positive"),
    )


class WalletEntry(Base):
    """Journal line: positive amounts credit the wallet, negative ones debit it"""
    __tablename__ = "wallet_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    wallet_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("wallet_balances.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("payment_transactions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)  # OVERPAYMENT|APPLIED|REVERSAL

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    wallet: Mapped["WalletBalance"] = relationship("WalletBalance", back_populates="entries")
    payment: Mapped[Optional["PaymentTransaction"]] = relationship("PaymentTransaction")
