import uuid
from datetime import date
from decimal import Decimal

import pytest

from academy_ledger.core.exceptions import NotFoundError, ValidationError
from academy_ledger.services.payment_allocator import PaymentAllocator
from academy_ledger.services.payment_plans import PaymentPlanService
from academy_ledger.services.status_classifier import PaymentStatus

COURSE = "ENG-A1"


class TestListPlans:

    def test_filters_on_derived_status(self, db, config, enrolled, student_id):
        PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("3500"), "cash", paid_date=date(2025, 2, 5), target="2025-02"
        )
        db.commit()
        service = PaymentPlanService(db, config)

        overdue = service.list_plans(student_id=student_id, status=PaymentStatus.OVERDUE, as_of=date(2025, 4, 1))
        assert [e.plan.month_reference for e in overdue] == ["2025-03"]
        paid = service.list_plans(student_id=student_id, status="paid", as_of=date(2025, 4, 1))
        assert [e.plan.month_reference for e in paid] == ["2025-02"]
        pending = service.list_plans(student_id=student_id, course_id=COURSE, status=PaymentStatus.PENDING, as_of=date(2025, 4, 1))
        assert len(pending) == 4

    def test_month_filter(self, db, config, enrolled, student_id):
        rows = PaymentPlanService(db, config).list_plans(student_id=student_id, month_reference="2025-05")
        assert len(rows) == 1
        assert rows[0].plan.due_date == date(2025, 5, 10)

    def test_unknown_plan(self, db, config):
        with pytest.raises(NotFoundError):
            PaymentPlanService(db, config).get_plan(uuid.uuid4())


class TestDiscount:

    def test_discount_lowers_total(self, db, config, enrolled):
        evaluation = PaymentPlanService(db, config).apply_discount(
            enrolled[0].id, Decimal("500"), observations="Sibling discount", as_of=date(2025, 2, 1)
        )
        db.commit()

        assert evaluation.total_expected == Decimal("3000.00")
        assert enrolled[0].observations == "Sibling discount"

    @pytest.mark.parametrize("amount", ["-1", "3500.01"])
    def test_out_of_range(self, db, config, enrolled, amount):
        with pytest.raises(ValidationError):
            PaymentPlanService(db, config).apply_discount(enrolled[0].id, Decimal(amount))

    def test_cannot_undercut_payments(self, db, config, enrolled, student_id):
        PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("3200"), "cash", paid_date=date(2025, 2, 5), target="2025-02"
        )
        db.commit()

        with pytest.raises(ValidationError):
            PaymentPlanService(db, config).apply_discount(enrolled[0].id, Decimal("500"), as_of=date(2025, 2, 5))
        assert enrolled[0].discount_amount == Decimal("0.00")

    def test_full_discount_settles_row(self, db, config, enrolled):
        evaluation = PaymentPlanService(db, config).apply_discount(enrolled[0].id, Decimal("3500"), as_of=date(2025, 3, 1))
        assert evaluation.status == PaymentStatus.PAID
        assert evaluation.penalty_amount == Decimal("0.00")
