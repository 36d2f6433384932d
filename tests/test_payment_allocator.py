"""
Tests for payment allocation, wallet credit and reversal.

All payments are dated before the first due date unless a test is about
penalties, so remaining amounts equal the base amounts.
"""
import uuid
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select, text

from academy_ledger.core.exceptions import (
    ConcurrencyConflictError,
    DuplicateRegistrationFeeError,
    InvalidAmountError,
    NotFoundError,
    ValidationError,
)
from academy_ledger.models import PaymentAllocation, PaymentPlanRow, PaymentTransaction, WalletEntry
from academy_ledger.services import payment_allocator as allocator_module
from academy_ledger.services.payment_allocator import PaymentAllocator, method_from_payment_type
from academy_ledger.services.payment_plans import PaymentPlanService
from academy_ledger.services.plan_evaluation import evaluate_plan
from academy_ledger.services.receipts import issue_receipt_number
from academy_ledger.services.status_classifier import PaymentStatus

COURSE = "ENG-A1"
PAID_ON = date(2025, 1, 5)


def remainings(rows, config, as_of=PAID_ON):
    return [evaluate_plan(row, as_of, config.penalty).remaining for row in rows]


def transaction_count(db):
    return db.execute(select(func.count()).select_from(PaymentTransaction)).scalar_one()


def tomorrow():
    return date.today() + timedelta(days=1)


class TestOldestFirst:

    def test_exact_exhaustion(self, db, config, make_plans, student_id):
        rows = make_plans(student_id, [50, 100, 30])
        outcome = PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("120"), "cash", paid_date=PAID_ON, alloc_mode="oldest_first"
        )
        db.commit()

        assert remainings(rows, config) == [Decimal("0.00"), Decimal("30.00"), Decimal("30.00")]
        assert outcome.credit_amount == Decimal("0.00")
        assert [a.amount_allocated for a in outcome.allocations] == [Decimal("50.00"), Decimal("70.00")]
        assert outcome.allocations[0].evaluation.status == PaymentStatus.PAID
        assert outcome.allocations[1].evaluation.status == PaymentStatus.PARTIAL

    def test_surplus_goes_to_wallet(self, db, config, make_plans, student_id):
        rows = make_plans(student_id, [50, 100, 30])
        allocator = PaymentAllocator(db, config)
        outcome = allocator.record_payment(
            student_id, COURSE, Decimal("200"), "cash", paid_date=PAID_ON, alloc_mode="oldest_first"
        )
        db.commit()

        assert remainings(rows, config) == [Decimal("0.00")] * 3
        assert outcome.credit_amount == Decimal("20.00")
        assert outcome.wallet_balance == Decimal("20.00")
        assert outcome.wallet_transaction is None
        assert allocator.get_wallet_balance(student_id, COURSE) == Decimal("20.00")

    def test_conservation(self, db, config, make_plans, student_id):
        make_plans(student_id, [50, 100, 30])
        outcome = PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("137.45"), "mpesa", paid_date=PAID_ON, alloc_mode="oldest_first"
        )
        transaction = outcome.transaction
        assert transaction.allocated_total + transaction.credit_amount == transaction.amount_paid

    def test_skips_settled_rows(self, db, config, make_plans, student_id):
        rows = make_plans(student_id, [50, 100])
        allocator = PaymentAllocator(db, config)
        allocator.record_payment(student_id, COURSE, Decimal("50"), "cash", paid_date=PAID_ON, alloc_mode="oldest_first")
        outcome = allocator.record_payment(student_id, COURSE, Decimal("40"), "cash", paid_date=PAID_ON, alloc_mode="oldest_first")
        db.commit()

        assert [a.month_reference for a in outcome.allocations] == [rows[1].month_reference]

    def test_penalty_is_part_of_remaining(self, db, config, make_plans, student_id):
        rows = make_plans(student_id, [1000], start=date(2025, 1, 1))
        outcome = PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("1200"), "cash", paid_date=date(2025, 1, 15), alloc_mode="oldest_first"
        )
        assert outcome.allocations[0].amount_allocated == Decimal("1100.00")
        assert outcome.credit_amount == Decimal("100.00")
        assert remainings(rows, config, as_of=date(2025, 3, 1)) == [Decimal("0.00")]


class TestSingleMonth:

    def test_partial_payment(self, db, config, enrolled, student_id):
        outcome = PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("2000"), "cash",
            paid_date=date(2025, 2, 5), alloc_mode="single_month", target="2025-02",
        )
        db.commit()

        assert outcome.transaction.status == "confirmed"
        assert outcome.transaction.receipt_number == "REC-2025-0001"
        assert len(outcome.allocations) == 1
        assert outcome.allocations[0].evaluation.remaining == Decimal("1500.00")
        assert outcome.allocations[0].evaluation.status == PaymentStatus.PARTIAL
        assert enrolled[0].paid_total == Decimal("2000.00")

    def test_excess_becomes_credit_and_funds_next_month(self, db, config, enrolled, student_id):
        allocator = PaymentAllocator(db, config)
        outcome = allocator.record_payment(
            student_id, COURSE, Decimal("5000"), "cash",
            paid_date=date(2025, 2, 5), alloc_mode="single_month", target="2025-02",
        )
        db.commit()

        assert outcome.allocations[0].amount_allocated == Decimal("3500.00")
        assert outcome.credit_amount == Decimal("1500.00")
        assert outcome.wallet_transaction.kind == "WALLET_APPLICATION"
        assert [(a.month_reference, a.amount_allocated) for a in outcome.wallet_allocations] == [
            ("2025-03", Decimal("1500.00"))
        ]
        assert outcome.wallet_balance == Decimal("0.00")

        entries = sorted(
            (e.amount, e.reason, e.payment_id) for e in db.execute(select(WalletEntry)).scalars()
        )
        assert entries == [
            (Decimal("-1500.00"), "APPLIED", outcome.wallet_transaction.id),
            (Decimal("1500.00"), "OVERPAYMENT", outcome.transaction.id),
        ]
        assert enrolled[1].paid_total == Decimal("1500.00")
        assert enrolled[2].paid_total == Decimal("0.00")

    def test_paid_month_routes_everything_to_wallet(self, db, config, enrolled, student_id):
        allocator = PaymentAllocator(db, config)
        allocator.record_payment(student_id, COURSE, Decimal("3500"), "cash", paid_date=date(2025, 2, 5), target="2025-02")
        outcome = allocator.record_payment(student_id, COURSE, Decimal("100"), "cash", paid_date=date(2025, 2, 6), target="2025-02")

        assert outcome.allocations == []
        assert outcome.credit_amount == Decimal("100.00")

    def test_receipts_are_sequential(self, db, config, enrolled, student_id):
        allocator = PaymentAllocator(db, config)
        first = allocator.record_payment(student_id, COURSE, Decimal("10"), "cash", paid_date=date(2025, 2, 5), target="2025-02")
        second = allocator.record_payment(student_id, COURSE, Decimal("10"), "cash", paid_date=date(2025, 2, 6), target="2025-02")
        assert (first.transaction.receipt_number, second.transaction.receipt_number) == ("REC-2025-0001", "REC-2025-0002")

    def test_unknown_month(self, db, config, enrolled, student_id):
        with pytest.raises(NotFoundError):
            PaymentAllocator(db, config).record_payment(student_id, COURSE, Decimal("10"), "cash", target="2026-01")

    def test_month_reference_required(self, db, config, enrolled, student_id):
        with pytest.raises(ValidationError):
            PaymentAllocator(db, config).record_payment(student_id, COURSE, Decimal("10"), "cash", target="Feb")


class TestValidation:

    @pytest.mark.parametrize("amount", ["0", "-5", "0.001"])
    def test_amount_must_be_positive(self, db, config, enrolled, student_id, amount):
        with pytest.raises(InvalidAmountError):
            PaymentAllocator(db, config).record_payment(student_id, COURSE, Decimal(amount), "cash", target="2025-02")
        assert transaction_count(db) == 0

    def test_invalid_amount_is_a_validation_error(self):
        assert issubclass(InvalidAmountError, ValidationError)

    def test_unknown_method(self, db, config, enrolled, student_id):
        with pytest.raises(ValidationError):
            PaymentAllocator(db, config).record_payment(student_id, COURSE, Decimal("10"), "cheque", target="2025-02")

    def test_unknown_mode(self, db, config, enrolled, student_id):
        with pytest.raises(ValidationError):
            PaymentAllocator(db, config).record_payment(student_id, COURSE, Decimal("10"), "cash", alloc_mode="newest_first")

    def test_student_without_plan(self, db, config):
        with pytest.raises(NotFoundError):
            PaymentAllocator(db, config).record_payment(uuid.uuid4(), COURSE, Decimal("10"), "cash", alloc_mode="oldest_first")

    def test_future_paid_date(self, db, config, enrolled, student_id):
        with pytest.raises(ValidationError) as exc_info:
            PaymentAllocator(db, config).record_payment(
                student_id, COURSE, Decimal("5000"), "cash", paid_date=tomorrow(), target="2025-02"
            )
        assert "paid_date" in exc_info.value.details
        assert transaction_count(db) == 0
        assert enrolled[0].paid_total == Decimal("0.00")

    @pytest.mark.parametrize("type_id,method", [(1, "cash"), (2, "mpesa"), (3, "transfer"), (4, "card"), (5, "other"), (99, "cash"), (None, "cash")])
    def test_payment_type_ids(self, type_id, method):
        assert method_from_payment_type(type_id) == method


class TestSelectedMonths:

    def test_applied_in_list_order(self, db, config, enrolled, student_id):
        feb, mar, apr = enrolled[:3]
        outcome = PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("5000"), "transfer",
            paid_date=date(2025, 2, 5), alloc_mode="selected_months", target=[apr.id, feb.id],
        )
        db.commit()

        assert [(a.month_reference, a.amount_allocated) for a in outcome.allocations] == [
            ("2025-04", Decimal("3500.00")), ("2025-02", Decimal("1500.00"))
        ]
        assert mar.paid_total == Decimal("0.00")
        assert outcome.credit_amount == Decimal("0.00")

    def test_surplus_beyond_selection(self, db, config, enrolled, student_id):
        outcome = PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("4000"), "cash",
            paid_date=date(2025, 2, 5), alloc_mode="selected_months", target=[str(enrolled[0].id)],
        )
        assert outcome.credit_amount == Decimal("500.00")
        assert [a.month_reference for a in outcome.wallet_allocations] == ["2025-03"]

    def test_reject_shortfall_policy(self, db, config, enrolled, student_id):
        strict = replace(config, selected_months_shortfall="reject")
        with pytest.raises(ValidationError) as exc_info:
            PaymentAllocator(db, strict).record_payment(
                student_id, COURSE, Decimal("5000"), "cash",
                paid_date=date(2025, 2, 5), alloc_mode="selected_months", target=[enrolled[0].id, enrolled[1].id],
            )
        assert exc_info.value.details["required"] == "7000.00"
        assert transaction_count(db) == 0

    def test_repeated_ids(self, db, config, enrolled, student_id):
        with pytest.raises(ValidationError):
            PaymentAllocator(db, config).record_payment(
                student_id, COURSE, Decimal("10"), "cash", alloc_mode="selected_months", target=[enrolled[0].id, enrolled[0].id]
            )

    def test_foreign_plan_id(self, db, config, enrolled, student_id):
        with pytest.raises(NotFoundError):
            PaymentAllocator(db, config).record_payment(
                student_id, COURSE, Decimal("10"), "cash", alloc_mode="selected_months", target=[uuid.uuid4()]
            )

    def test_empty_selection(self, db, config, enrolled, student_id):
        with pytest.raises(ValidationError):
            PaymentAllocator(db, config).record_payment(student_id, COURSE, Decimal("10"), "cash", alloc_mode="selected_months", target=[])


class TestReversal:

    def test_round_trip_restores_rows(self, db, config, enrolled, student_id):
        as_of = date(2025, 2, 5)
        before = [(e.paid_total, e.status) for e in (evaluate_plan(r, as_of, config.penalty) for r in enrolled)]

        allocator = PaymentAllocator(db, config)
        outcome = allocator.record_payment(
            student_id, COURSE, Decimal("5000"), "cash", paid_date=as_of, alloc_mode="oldest_first"
        )
        db.commit()
        reversal = allocator.reverse_transaction(outcome.transaction.id, reason="Bounced transfer", as_of=as_of)
        db.commit()

        after = [(e.paid_total, e.status) for e in (evaluate_plan(r, as_of, config.penalty) for r in enrolled)]
        assert after == before
        assert reversal.transaction.status == "reversed"
        assert reversal.transaction.reversal_reason == "Bounced transfer"
        assert reversal.transaction.reversed_at is not None
        assert [e.status for e in reversal.restored] == [PaymentStatus.PENDING, PaymentStatus.PENDING]
        # History is kept
        assert len(reversal.transaction.allocations) == 2

    def test_reverse_twice(self, db, config, enrolled, student_id):
        allocator = PaymentAllocator(db, config)
        outcome = allocator.record_payment(student_id, COURSE, Decimal("100"), "cash", paid_date=date(2025, 2, 5), target="2025-02")
        allocator.reverse_transaction(outcome.transaction.id)
        with pytest.raises(ValidationError):
            allocator.reverse_transaction(outcome.transaction.id)

    def test_unknown_transaction(self, db, config):
        with pytest.raises(NotFoundError):
            PaymentAllocator(db, config).reverse_transaction(uuid.uuid4())

    def test_reversal_unwinds_spent_credit(self, db, config, enrolled, student_id):
        allocator = PaymentAllocator(db, config)
        outcome = allocator.record_payment(student_id, COURSE, Decimal("4000"), "cash", paid_date=date(2025, 2, 5), target="2025-02")
        db.commit()
        assert enrolled[1].paid_total == Decimal("500.00")

        reversal = allocator.reverse_transaction(outcome.transaction.id, as_of=date(2025, 2, 5))
        db.commit()

        assert reversal.wallet_balance == Decimal("0.00")
        assert [t.id for t in reversal.unwound] == [outcome.wallet_transaction.id]
        assert outcome.wallet_transaction.status == "reversed"
        assert (enrolled[0].paid_total, enrolled[1].paid_total) == (Decimal("0.00"), Decimal("0.00"))
        assert {e.plan.month_reference for e in reversal.restored} == {"2025-02", "2025-03"}
        reasons = sorted(e.reason for e in db.execute(select(WalletEntry)).scalars())
        assert reasons == ["APPLIED", "OVERPAYMENT", "REVERSAL", "REVERSAL"]

    def test_reversed_application_leaves_credit_in_wallet(self, db, config, enrolled, student_id):
        allocator = PaymentAllocator(db, config)
        payment = allocator.record_payment(student_id, COURSE, Decimal("5000"), "cash", paid_date=date(2025, 2, 5), target="2025-02")
        db.commit()

        allocator.reverse_transaction(payment.wallet_transaction.id, as_of=date(2025, 2, 5))
        assert allocator.get_wallet_balance(student_id, COURSE) == Decimal("1500.00")
        assert enrolled[1].paid_total == Decimal("0.00")

        reversal = allocator.reverse_transaction(payment.transaction.id, as_of=date(2025, 2, 5))
        db.commit()
        assert reversal.unwound == []
        assert allocator.get_wallet_balance(student_id, COURSE) == Decimal("0.00")
        assert enrolled[0].paid_total == Decimal("0.00")

    def test_reversal_spends_idle_credit(self, db, config, make_plans, student_id):
        rows = make_plans(student_id, [100, 100])
        allocator = PaymentAllocator(db, config)
        first = allocator.record_payment(student_id, COURSE, Decimal("100"), "cash", paid_date=PAID_ON, target="2025-01")
        allocator.record_payment(student_id, COURSE, Decimal("150"), "cash", paid_date=PAID_ON, target="2025-02")
        assert allocator.get_wallet_balance(student_id, COURSE) == Decimal("50.00")

        reversal = allocator.reverse_transaction(first.transaction.id, as_of=PAID_ON)
        db.commit()

        assert reversal.wallet_balance == Decimal("0.00")
        assert rows[0].paid_total == Decimal("50.00")
        assert reversal.restored[0].remaining == Decimal("50.00")


class TestWallet:

    def test_credit_is_spent_oldest_first(self, db, config, enrolled, student_id):
        allocator = PaymentAllocator(db, config)
        payment = allocator.record_payment(student_id, COURSE, Decimal("8000"), "cash", paid_date=date(2025, 2, 5), target="2025-02")
        db.commit()

        assert payment.wallet_transaction.receipt_number is None
        assert [(a.month_reference, a.amount_allocated) for a in payment.wallet_allocations] == [
            ("2025-03", Decimal("3500.00")), ("2025-04", Decimal("1000.00"))
        ]
        assert payment.wallet_balance == Decimal("0.00")
        assert allocator.apply_wallet_credit(student_id, COURSE, as_of=date(2025, 2, 5)) is None

    def test_apply_after_reversed_application(self, db, config, enrolled, student_id):
        allocator = PaymentAllocator(db, config)
        payment = allocator.record_payment(student_id, COURSE, Decimal("8000"), "cash", paid_date=date(2025, 2, 5), target="2025-02")
        allocator.reverse_transaction(payment.wallet_transaction.id, as_of=date(2025, 2, 5))
        assert allocator.get_wallet_balance(student_id, COURSE) == Decimal("4500.00")

        outcome = allocator.apply_wallet_credit(student_id, COURSE, as_of=date(2025, 2, 5))
        db.commit()

        assert outcome.transaction.kind == "WALLET_APPLICATION"
        assert outcome.transaction.receipt_number is None
        assert [(a.month_reference, a.amount_allocated) for a in outcome.allocations] == [
            ("2025-03", Decimal("3500.00")), ("2025-04", Decimal("1000.00"))
        ]
        assert outcome.wallet_balance == Decimal("0.00")

    def test_credit_keeps_later_months_out_of_arrears(self, db, config, enrolled, student_id):
        PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("7000"), "cash", paid_date=date(2025, 2, 5), target="2025-02"
        )
        db.commit()

        march = PaymentPlanService(db, config).list_plans(
            student_id=student_id, month_reference="2025-03", as_of=date(2025, 4, 5)
        )[0]
        assert march.status == PaymentStatus.PAID
        assert march.penalty_amount == Decimal("0.00")
        assert march.remaining == Decimal("0.00")

    def test_nothing_to_apply(self, db, config, enrolled, student_id):
        assert PaymentAllocator(db, config).apply_wallet_credit(student_id, COURSE) is None

    def test_credit_kept_when_all_rows_paid(self, db, config, make_plans, student_id):
        make_plans(student_id, [100])
        allocator = PaymentAllocator(db, config)
        allocator.record_payment(student_id, COURSE, Decimal("150"), "cash", paid_date=PAID_ON, alloc_mode="oldest_first")

        assert allocator.apply_wallet_credit(student_id, COURSE, as_of=PAID_ON) is None
        assert allocator.get_wallet_balance(student_id, COURSE) == Decimal("50.00")

    def test_future_as_of_rejected(self, db, config, enrolled, student_id):
        with pytest.raises(ValidationError):
            PaymentAllocator(db, config).apply_wallet_credit(student_id, COURSE, as_of=tomorrow())


class TestStoredLedger:
    """Everything is read back through a second session after commit"""

    def test_allocations_are_stored(self, db, config, make_plans, student_id, new_session):
        make_plans(student_id, [50, 100, 30])
        PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("120"), "cash", paid_date=PAID_ON, alloc_mode="oldest_first"
        )
        db.commit()

        with new_session() as session:
            stored = session.execute(
                select(PaymentAllocation).order_by(PaymentAllocation.month_reference)
            ).scalars().all()
            assert [(a.month_reference, a.amount_allocated) for a in stored] == [
                ("2025-01", Decimal("50.00")), ("2025-02", Decimal("70.00"))
            ]

    def test_reversal_round_trip(self, db, config, make_plans, student_id, new_session):
        make_plans(student_id, [50, 100, 30])
        outcome = PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("120"), "cash", paid_date=PAID_ON, alloc_mode="oldest_first"
        )
        db.commit()
        payment_id = outcome.transaction.id

        with new_session() as session:
            PaymentAllocator(session, config).reverse_transaction(payment_id, as_of=PAID_ON)
            session.commit()

        with new_session() as session:
            plans = session.execute(
                select(PaymentPlanRow).where(PaymentPlanRow.student_id == student_id).order_by(PaymentPlanRow.month_reference)
            ).scalars().all()
            assert [p.paid_total for p in plans] == [Decimal("0.00")] * 3
            assert session.get(PaymentTransaction, payment_id).status == "reversed"

    def test_early_partial_payment_reduces_penalty(self, db, config, make_plans, student_id, new_session):
        make_plans(student_id, [1000], start=date(2025, 1, 10))
        PaymentAllocator(db, config).record_payment(
            student_id, COURSE, Decimal("600"), "cash", paid_date=date(2025, 1, 15), target="2025-01"
        )
        db.commit()

        with new_session() as session:
            plan = session.execute(select(PaymentPlanRow).where(PaymentPlanRow.student_id == student_id)).scalar_one()
            evaluation = evaluate_plan(plan, date(2025, 1, 25), config.penalty)
            # 10% of the 400 still owed when the first step is crossed
            assert evaluation.penalty_amount == Decimal("40.00")
            assert evaluation.remaining == Decimal("440.00")

    def test_history_by_month(self, db, config, enrolled, student_id, new_session):
        allocator = PaymentAllocator(db, config)
        allocator.record_payment(student_id, COURSE, Decimal("2000"), "cash", paid_date=date(2025, 2, 5), target="2025-02")
        allocator.record_payment(student_id, COURSE, Decimal("2000"), "cash", paid_date=date(2025, 2, 6), target="2025-03")
        db.commit()

        with new_session() as session:
            march = PaymentAllocator(session, config).list_transactions(student_id=student_id, month_reference="2025-03")
            assert [t.receipt_number for t in march] == ["REC-2025-0002"]
            assert [(a.month_reference, a.amount_allocated) for a in march[0].allocations] == [
                ("2025-03", Decimal("2000.00"))
            ]


class TestRegistrationFee:

    def test_paid_once(self, db, config, make_registration, student_id):
        make_registration(student_id=student_id, registration_fee="1000")
        allocator = PaymentAllocator(db, config)
        transaction = allocator.record_registration_fee(student_id, COURSE, "cash", paid_date=date(2025, 2, 1))
        db.commit()

        assert transaction.kind == "REGISTRATION_FEE"
        assert transaction.amount_paid == Decimal("1000.00")
        assert transaction.allocations == []
        assert transaction.receipt_number == "REC-2025-0001"

        with pytest.raises(DuplicateRegistrationFeeError):
            allocator.record_registration_fee(student_id, COURSE, "cash")

    def test_can_pay_again_after_reversal(self, db, config, make_registration, student_id):
        make_registration(student_id=student_id)
        allocator = PaymentAllocator(db, config)
        first = allocator.record_registration_fee(student_id, COURSE, "cash")
        allocator.reverse_transaction(first.id)
        second = allocator.record_registration_fee(student_id, COURSE, "card")
        assert second.status == "confirmed"

    def test_zero_fee_rejected(self, db, config, make_registration, student_id):
        make_registration(student_id=student_id, registration_fee="0")
        with pytest.raises(InvalidAmountError):
            PaymentAllocator(db, config).record_registration_fee(student_id, COURSE, "cash")

    def test_requires_registration(self, db, config, make_course, student_id):
        make_course()
        with pytest.raises(NotFoundError):
            PaymentAllocator(db, config).record_registration_fee(student_id, COURSE, "cash")

    def test_future_paid_date(self, db, config, make_registration, student_id):
        make_registration(student_id=student_id)
        with pytest.raises(ValidationError):
            PaymentAllocator(db, config).record_registration_fee(student_id, COURSE, "cash", paid_date=tomorrow())
        assert transaction_count(db) == 0


class TestConcurrency:

    def test_stale_plan_row_is_a_conflict(self, db, config, enrolled, student_id, monkeypatch):
        def issue_after_concurrent_write(session, prefix, on_date):
            # Another writer bumps the row between our read and our write
            session.execute(text("UPDATE payment_plans SET version_id = version_id + 1"))
            return issue_receipt_number(session, prefix, on_date)

        monkeypatch.setattr(allocator_module, "issue_receipt_number", issue_after_concurrent_write)

        with pytest.raises(ConcurrencyConflictError):
            PaymentAllocator(db, config).record_payment(
                student_id, COURSE, Decimal("100"), "cash", paid_date=date(2025, 2, 5), target="2025-02"
            )
        assert transaction_count(db) == 0
