# academy_ledger/services/status_classifier.py - Plan row status derivation
from datetime import date
from decimal import Decimal
from enum import Enum

from academy_ledger.core.money import ZERO, is_settled


class PaymentStatus(str, Enum):
    """Display status of a plan row; only ``classify`` produces one"""
    PENDING = "pending"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    PAID = "paid"


def classify(*, remaining: Decimal, paid_total: Decimal, due_date: date, as_of: date) -> PaymentStatus:
    """
    Derive the status of a plan row.

    - paid: remaining below one cent
    - overdue: something left and the due date has passed
    - partial: something paid, something left, not yet past due
    - pending: nothing paid, not yet past due
    """
    if is_settled(remaining):
        return PaymentStatus.PAID
    if as_of > due_date:
        return PaymentStatus.OVERDUE
    if paid_total > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING
