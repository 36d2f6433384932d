# academy_ledger/services/receipts.py - Receipt number issuing
from datetime import date
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from academy_ledger.models.receipt import ReceiptCounter

logger = logging.getLogger(__name__)


def format_receipt_number(prefix: str, year: int, number: int) -> str:
    """REC-2025-0001"""
    return f"{prefix}-{year}-{number:04d}"


def issue_receipt_number(db: Session, prefix: str, on_date: date) -> str:
    """
    Reserve the next receipt number of the payment's year.

    The counter row is locked for the rest of the transaction so two payments
    cannot draw the same number.
    """
    year = on_date.year
    counter = db.execute(
        select(ReceiptCounter).where(ReceiptCounter.year == year).with_for_update()
    ).scalar_one_or_none()

    if counter is None:
        counter = ReceiptCounter(year=year, last_number=0)
        db.add(counter)

    counter.last_number += 1
    db.flush()

    receipt_number = format_receipt_number(prefix, year, counter.last_number)
    logger.debug(f"Issued receipt {receipt_number}")
    return receipt_number
