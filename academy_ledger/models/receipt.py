# academy_ledger/models/receipt.py - Per-year receipt counter
from sqlalchemy import Integer
from sqlalchemy.orm import Mapped, mapped_column

from academy_ledger.models.base import Base


class ReceiptCounter(Base):
    __tablename__ = "receipt_counters"

    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
