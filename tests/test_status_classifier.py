from datetime import date
from decimal import Decimal

import pytest

from academy_ledger.services.status_classifier import PaymentStatus, classify

DUE = date(2025, 3, 10)


class TestClassify:

    def test_paid_when_nothing_remains(self):
        assert classify(remaining=Decimal("0.00"), paid_total=Decimal("3500"), due_date=DUE, as_of=date(2025, 4, 1)) == PaymentStatus.PAID

    def test_sub_cent_remainder_counts_as_paid(self):
        assert classify(remaining=Decimal("0.009"), paid_total=Decimal("3500"), due_date=DUE, as_of=DUE) == PaymentStatus.PAID

    def test_overdue_from_the_day_after_due_date(self):
        assert classify(remaining=Decimal("1"), paid_total=Decimal("0"), due_date=DUE, as_of=DUE) == PaymentStatus.PENDING
        assert classify(remaining=Decimal("1"), paid_total=Decimal("0"), due_date=DUE, as_of=date(2025, 3, 11)) == PaymentStatus.OVERDUE

    def test_partial_before_due_date(self):
        assert classify(remaining=Decimal("500"), paid_total=Decimal("3000"), due_date=DUE, as_of=date(2025, 3, 1)) == PaymentStatus.PARTIAL

    def test_partially_paid_row_past_due_is_overdue(self):
        assert classify(remaining=Decimal("500"), paid_total=Decimal("3000"), due_date=DUE, as_of=date(2025, 3, 20)) == PaymentStatus.OVERDUE

    def test_pending(self):
        assert classify(remaining=Decimal("3500"), paid_total=Decimal("0"), due_date=DUE, as_of=date(2025, 2, 1)) == PaymentStatus.PENDING

    @pytest.mark.parametrize("status,value", [
        (PaymentStatus.PENDING, "pending"),
        (PaymentStatus.PARTIAL, "partial"),
        (PaymentStatus.OVERDUE, "overdue"),
        (PaymentStatus.PAID, "paid"),
    ])
    def test_wire_values(self, status, value):
        assert status.value == value
        assert PaymentStatus(value) is status
