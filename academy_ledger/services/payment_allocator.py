# academy_ledger/services/payment_allocator.py - Payment recording, allocation and reversal
"""
Payment Allocator.

A payment is distributed over a student's plan rows according to an
allocation mode, producing one confirmed ``PaymentTransaction`` with one
``PaymentAllocation`` per funded row. Whatever the targeted rows cannot absorb
is credited to the student's wallet; money is never dropped and no row is
ever funded beyond its remaining balance.

Wallet credit does not sit idle while rows are open: after every payment,
every reversal of a payment and every plan generation, the wallet is spent
on open rows oldest first as a ``WALLET_APPLICATION`` transaction. Reversing
a payment whose credit was spent this way unwinds those applications first.

Plan rows and wallets carry a ``version_id`` column: a concurrent writer that
changed a row between our read and our flush makes the flush fail with
``ConcurrencyConflictError`` instead of overwriting the other allocation.
Nothing here commits; the caller commits once the whole operation succeeded.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, Union
import logging
import re
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from academy_ledger.core.exceptions import (
    ConcurrencyConflictError,
    DuplicateRegistrationFeeError,
    InvalidAmountError,
    NotFoundError,
    ValidationError,
)
from academy_ledger.core.money import ZERO, to_money, is_settled
from academy_ledger.models.base import utcnow
from academy_ledger.models.payment import PAYMENT_METHODS, PaymentAllocation, PaymentTransaction
from academy_ledger.models.payment_plan import PaymentPlanRow
from academy_ledger.models.wallet import WalletBalance, WalletEntry
from academy_ledger.services.course_fees import CourseFeeService
from academy_ledger.services.plan_evaluation import PlanEvaluation, evaluate_plan
from academy_ledger.services.receipts import issue_receipt_number
from academy_ledger.services.registrations import RegistrationService
from academy_ledger.services.settings_service import InstitutionConfig

logger = logging.getLogger(__name__)

SINGLE_MONTH = "single_month"
OLDEST_FIRST = "oldest_first"
SELECTED_MONTHS = "selected_months"
ALLOC_MODES = (SINGLE_MONTH, OLDEST_FIRST, SELECTED_MONTHS)

# payment_type_id values used by the existing front office
PAYMENT_TYPE_METHODS = {1: "cash", 2: "mpesa", 3: "transfer", 4: "card", 5: "other"}

MONTH_REFERENCE_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

AllocationTarget = Union[None, str, Sequence[Union[str, uuid.UUID]]]


def method_from_payment_type(payment_type_id: Optional[int]) -> str:
    """Map a legacy payment_type_id to a payment method (unknown ids mean cash)"""
    return PAYMENT_TYPE_METHODS.get(payment_type_id, "cash")


@dataclass
class AllocationResult:
    plan: PaymentPlanRow
    month_reference: str
    amount_allocated: Decimal
    evaluation: PlanEvaluation


@dataclass
class PaymentOutcome:
    transaction: PaymentTransaction
    allocations: List[AllocationResult] = field(default_factory=list)
    credit_amount: Decimal = ZERO
    wallet_balance: Decimal = ZERO
    # Credit spent on other rows right after the payment
    wallet_transaction: Optional[PaymentTransaction] = None
    wallet_allocations: List[AllocationResult] = field(default_factory=list)


@dataclass
class ReversalOutcome:
    transaction: PaymentTransaction
    restored: List[PlanEvaluation] = field(default_factory=list)
    wallet_balance: Decimal = ZERO
    unwound: List[PaymentTransaction] = field(default_factory=list)


class PaymentAllocator:
    """Service class for money entering and leaving the plan rows"""

    def __init__(self, db: Session, config: InstitutionConfig):
        self.db = db
        self.config = config

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def record_payment(
        self,
        student_id: uuid.UUID,
        course_id: str,
        amount: Decimal,
        method: str,
        paid_date: Optional[date] = None,
        alloc_mode: str = SINGLE_MONTH,
        target: AllocationTarget = None,
        observations: Optional[str] = None,
    ) -> PaymentOutcome:
        """
        Record a tuition payment and allocate it to plan rows.

        Args:
            student_id: Paying student
            course_id: Course the plan rows belong to
            amount: Amount received, must be > 0
            method: cash, mpesa, transfer, card or other
            paid_date: Date the money was received (defaults to today)
            alloc_mode: single_month, oldest_first or selected_months
            target: month reference (single_month) or ordered plan ids (selected_months)
            observations: Free text stored on the transaction

        Returns:
            PaymentOutcome with the transaction, per-row allocations and wallet credit

        Raises:
            InvalidAmountError: amount <= 0
            ValidationError: bad method, mode or target
            NotFoundError: no plan, unknown month or plan id
            ConcurrencyConflictError: a targeted row changed concurrently
        """
        amount = to_money(amount)
        if amount <= ZERO:
            raise InvalidAmountError("Payment amount must be greater than zero", {"amount": str(amount)})
        method = self._validate_method(method)
        if alloc_mode not in ALLOC_MODES:
            raise ValidationError(f"alloc_mode must be one of: {', '.join(ALLOC_MODES)}")
        paid_date = self._not_in_future(paid_date or date.today(), "paid_date")

        plans = self._load_plans(student_id, course_id)
        if not plans:
            raise NotFoundError(f"No payment plan for student {student_id} in course '{course_id}'")

        targets = self._select_targets(plans, alloc_mode, target)
        open_rows = [
            evaluation for evaluation in (evaluate_plan(plan, paid_date, self.config.penalty) for plan in targets)
            if not is_settled(evaluation.remaining)
        ]

        if alloc_mode == SELECTED_MONTHS and self.config.selected_months_shortfall == "reject":
            needed = sum((e.remaining for e in open_rows), ZERO)
            if amount < needed:
                logger.warning(
                    f"Rejected selected-months payment for student {student_id}: {amount} < {needed}"
                )
                raise ValidationError(
                    "Amount does not cover the selected months",
                    {"amount": str(amount), "required": str(needed)},
                )

        shares, credit = self._distribute(open_rows, amount)

        transaction = PaymentTransaction(
            student_id=student_id,
            course_id=course_id,
            kind="TUITION",
            amount_paid=amount,
            credit_amount=credit,
            payment_method=method,
            alloc_mode=alloc_mode,
            paid_date=paid_date,
            receipt_number=issue_receipt_number(self.db, self.config.receipt_prefix, paid_date),
            status="confirmed",
            observations=observations,
        )
        self.db.add(transaction)
        self._attach_allocations(transaction, shares)

        wallet = self._wallet(student_id, course_id, create=credit > ZERO)
        if credit > ZERO:
            self._move_wallet(wallet, credit, "OVERPAYMENT", transaction)

        self._flush(f"payment for student {student_id} in {course_id}")

        outcome = PaymentOutcome(
            transaction=transaction,
            allocations=self._results(shares, paid_date),
            credit_amount=credit,
        )
        logger.info(
            f"Payment {transaction.receipt_number} recorded: student={student_id} course={course_id} "
            f"amount={amount} mode={alloc_mode} rows={[r.month_reference for r in outcome.allocations]} "
            f"credit={credit}"
        )

        if wallet is not None:
            application = self._spend_wallet(wallet, paid_date)
            if application is not None:
                outcome.wallet_transaction = application.transaction
                outcome.wallet_allocations = application.allocations
            outcome.wallet_balance = to_money(wallet.balance)
        return outcome

    def record_registration_fee(
        self,
        student_id: uuid.UUID,
        course_id: str,
        method: str,
        amount: Optional[Decimal] = None,
        paid_date: Optional[date] = None,
        observations: Optional[str] = None,
    ) -> PaymentTransaction:
        """
        Record the one-off registration fee of a course (no plan rows involved).

        Raises:
            NotFoundError: course not configured or student not registered
            InvalidAmountError: amount (or configured fee) not > 0
            DuplicateRegistrationFeeError: already paid and not reversed
        """
        fee_config = CourseFeeService(self.db).get_config(course_id)
        if RegistrationService(self.db).find(student_id, course_id) is None:
            raise NotFoundError(f"Student {student_id} is not registered in course '{course_id}'")

        amount = to_money(fee_config.registration_fee if amount is None else amount)
        if amount <= ZERO:
            raise InvalidAmountError("Registration fee amount must be greater than zero", {"amount": str(amount)})
        method = self._validate_method(method)
        paid_date = self._not_in_future(paid_date or date.today(), "paid_date")

        existing = self.db.execute(
            select(PaymentTransaction.id).where(
                PaymentTransaction.student_id == student_id,
                PaymentTransaction.course_id == course_id,
                PaymentTransaction.kind == "REGISTRATION_FEE",
                PaymentTransaction.status == "confirmed",
            )
        ).first()
        if existing is not None:
            raise DuplicateRegistrationFeeError(
                f"Registration fee for course '{course_id}' was already paid by student {student_id}"
            )

        transaction = PaymentTransaction(
            student_id=student_id,
            course_id=course_id,
            kind="REGISTRATION_FEE",
            amount_paid=amount,
            payment_method=method,
            paid_date=paid_date,
            receipt_number=issue_receipt_number(self.db, self.config.receipt_prefix, paid_date),
            status="confirmed",
            observations=observations,
        )
        self.db.add(transaction)
        self._flush(f"registration fee for student {student_id} in {course_id}")

        logger.info(f"Registration fee {transaction.receipt_number} recorded: student={student_id} course={course_id} amount={amount}")
        return transaction

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------

    def get_wallet_balance(self, student_id: uuid.UUID, course_id: str) -> Decimal:
        wallet = self._wallet(student_id, course_id)
        return to_money(wallet.balance) if wallet else ZERO

    def apply_wallet_credit(
        self,
        student_id: uuid.UUID,
        course_id: str,
        as_of: Optional[date] = None,
    ) -> Optional[PaymentOutcome]:
        """
        Spend wallet credit on open plan rows, oldest first.

        Returns:
            The WALLET_APPLICATION outcome, or None when there was nothing to apply

        Raises:
            ValidationError: as_of lies in the future
        """
        as_of = self._not_in_future(as_of or date.today(), "as_of")
        wallet = self._wallet(student_id, course_id)
        if wallet is None:
            return None
        return self._spend_wallet(wallet, as_of)

    def _spend_wallet(self, wallet: WalletBalance, as_of: date) -> Optional[PaymentOutcome]:
        if to_money(wallet.balance) <= ZERO:
            return None

        student_id, course_id = wallet.student_id, wallet.course_id
        open_rows = [
            evaluation
            for evaluation in (evaluate_plan(plan, as_of, self.config.penalty) for plan in self._load_plans(student_id, course_id))
            if not is_settled(evaluation.remaining)
        ]
        shares, _ = self._distribute(open_rows, to_money(wallet.balance))
        applied = sum((share for _, share in shares), ZERO)
        if applied <= ZERO:
            return None

        transaction = PaymentTransaction(
            student_id=student_id,
            course_id=course_id,
            kind="WALLET_APPLICATION",
            amount_paid=applied,
            payment_method="other",
            alloc_mode=OLDEST_FIRST,
            paid_date=as_of,
            status="confirmed",
            observations="Wallet credit applied",
        )
        self.db.add(transaction)
        self._attach_allocations(transaction, shares)
        self._move_wallet(wallet, -applied, "APPLIED", transaction)

        self._flush(f"wallet application for student {student_id} in {course_id}")

        logger.info(f"Applied wallet credit {applied} for student {student_id} in {course_id}")
        return PaymentOutcome(
            transaction=transaction,
            allocations=self._results(shares, as_of),
            credit_amount=ZERO,
            wallet_balance=to_money(wallet.balance),
        )

    # ------------------------------------------------------------------
    # Reversal and history
    # ------------------------------------------------------------------

    def reverse_transaction(
        self,
        transaction_id: uuid.UUID,
        reason: Optional[str] = None,
        as_of: Optional[date] = None,
    ) -> ReversalOutcome:
        """
        Reverse a confirmed transaction.

        Each funded row gets its allocation back out of ``paid_total`` (never
        below zero); the transaction and its allocations stay for audit.
        Wallet credit the payment produced is taken back. When that credit was
        already spent, the wallet applications made since the payment are
        reversed first, newest first, until the wallet covers it. A reversed
        wallet application returns its amount to the wallet and stays there;
        after any other reversal the wallet is spent again on open rows.

        Raises:
            NotFoundError: unknown transaction
            ValidationError: already reversed, or its wallet credit cannot be recovered
        """
        transaction = self.get_transaction(transaction_id)
        if not transaction.is_confirmed:
            raise ValidationError(f"Payment {transaction_id} is already reversed")

        as_of = as_of or date.today()
        wallet = self._wallet(transaction.student_id, transaction.course_id)
        credit = to_money(transaction.credit_amount)
        plans = {plan.id: plan for plan in self._load_plans(transaction.student_id, transaction.course_id)}
        touched: List[PaymentPlanRow] = []
        unwound: List[PaymentTransaction] = []

        if credit > ZERO:
            available = to_money(wallet.balance) if wallet else ZERO
            if available < credit:
                unwound = self._applications_to_unwind(transaction, credit - available)
                for application in unwound:
                    self._move_wallet(wallet, to_money(application.amount_paid), "REVERSAL", application)
                    touched.extend(self._restore_rows(application, plans))
                    self._mark_reversed(application, f"Unwound by reversal of payment {transaction.receipt_number}")
                    logger.info(f"Wallet application {application.id} unwound for payment {transaction.receipt_number}")
            self._move_wallet(wallet, -credit, "REVERSAL", transaction)

        if transaction.kind == "WALLET_APPLICATION":
            wallet = wallet or self._wallet(transaction.student_id, transaction.course_id, create=True)
            self._move_wallet(wallet, to_money(transaction.amount_paid), "REVERSAL", transaction)

        touched.extend(self._restore_rows(transaction, plans))
        self._mark_reversed(transaction, reason)

        self._flush(f"reversal of payment {transaction_id}")

        logger.info(
            f"Payment {transaction.receipt_number or transaction.id} reversed: kind={transaction.kind} "
            f"amount={transaction.amount_paid} rows={[p.month_reference for p in touched]} reason={reason!r}"
        )

        if wallet is not None and transaction.kind != "WALLET_APPLICATION":
            self._spend_wallet(wallet, as_of)

        restored = []
        for plan in touched:
            if plan not in restored:
                restored.append(plan)
        return ReversalOutcome(
            transaction=transaction,
            restored=[evaluate_plan(plan, as_of, self.config.penalty) for plan in restored],
            wallet_balance=to_money(wallet.balance) if wallet else ZERO,
            unwound=unwound,
        )

    def _applications_to_unwind(self, transaction: PaymentTransaction, shortfall: Decimal) -> List[PaymentTransaction]:
        """Newest wallet applications made since ``transaction`` that together cover ``shortfall``"""
        candidates = self.db.execute(
            select(PaymentTransaction)
            .where(
                PaymentTransaction.student_id == transaction.student_id,
                PaymentTransaction.course_id == transaction.course_id,
                PaymentTransaction.kind == "WALLET_APPLICATION",
                PaymentTransaction.status == "confirmed",
                PaymentTransaction.created_at >= transaction.created_at,
            )
            .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.paid_date.desc())
        ).scalars().all()

        selected: List[PaymentTransaction] = []
        covered = ZERO
        for application in candidates:
            if covered >= shortfall:
                break
            selected.append(application)
            covered += to_money(application.amount_paid)

        if covered < shortfall:
            logger.warning(
                f"Cannot reverse payment {transaction.receipt_number}: wallet credit short by {shortfall}, "
                f"recoverable {covered}"
            )
            raise ValidationError(
                "The wallet credit from this payment was already used and cannot be recovered",
                {"credit_amount": str(to_money(transaction.credit_amount)), "missing": str(shortfall - covered)},
            )
        return selected

    def _restore_rows(self, transaction: PaymentTransaction, plans: dict) -> List[PaymentPlanRow]:
        touched = []
        for allocation in transaction.allocations:
            plan = plans.get(allocation.plan_id)
            if plan is None:
                raise NotFoundError(f"Plan row {allocation.plan_id} of payment {transaction.id} not found")
            plan.paid_total = max(ZERO, to_money(plan.paid_total) - to_money(allocation.amount_allocated))
            touched.append(plan)
        return touched

    @staticmethod
    def _mark_reversed(transaction: PaymentTransaction, reason: Optional[str]):
        transaction.status = "reversed"
        transaction.reversed_at = utcnow()
        transaction.reversal_reason = reason

    def get_transaction(self, transaction_id: uuid.UUID) -> PaymentTransaction:
        transaction = self.db.get(PaymentTransaction, transaction_id)
        if transaction is None:
            raise NotFoundError(f"Payment {transaction_id} not found")
        return transaction

    def list_transactions(
        self,
        student_id: Optional[uuid.UUID] = None,
        course_id: Optional[str] = None,
        month_reference: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[PaymentTransaction]:
        """Transaction history, newest first"""
        query = select(PaymentTransaction)
        if student_id:
            query = query.where(PaymentTransaction.student_id == student_id)
        if course_id:
            query = query.where(PaymentTransaction.course_id == course_id)
        if status:
            query = query.where(PaymentTransaction.status == status)
        if month_reference:
            query = query.where(
                PaymentTransaction.id.in_(
                    select(PaymentAllocation.payment_id).where(PaymentAllocation.month_reference == month_reference)
                )
            )
        query = query.order_by(PaymentTransaction.paid_date.desc(), PaymentTransaction.created_at.desc())
        if limit:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars().all())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate_method(self, method: str) -> str:
        method = (method or "").strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
        return method

    @staticmethod
    def _not_in_future(day: date, field_name: str) -> date:
        if day > date.today():
            raise ValidationError(f"{field_name} cannot be in the future", {field_name: day.isoformat()})
        return day

    def _load_plans(self, student_id: uuid.UUID, course_id: str) -> List[PaymentPlanRow]:
        """Current plan rows, oldest first, locked for update where supported"""
        return list(self.db.execute(
            select(PaymentPlanRow)
            .where(PaymentPlanRow.student_id == student_id, PaymentPlanRow.course_id == course_id)
            .order_by(PaymentPlanRow.month_reference, PaymentPlanRow.due_date)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all())

    def _select_targets(
        self,
        plans: List[PaymentPlanRow],
        alloc_mode: str,
        target: AllocationTarget,
    ) -> List[PaymentPlanRow]:
        if alloc_mode == OLDEST_FIRST:
            return plans

        if alloc_mode == SINGLE_MONTH:
            if not isinstance(target, str) or not MONTH_REFERENCE_RE.match(target):
                raise ValidationError("single_month payments need a month_reference in YYYY-MM format")
            for plan in plans:
                if plan.month_reference == target:
                    return [plan]
            raise NotFoundError(f"No plan row for month {target}")

        if not target or isinstance(target, str):
            raise ValidationError("selected_months payments need a non-empty list of plan ids")
        try:
            plan_ids = [item if isinstance(item, uuid.UUID) else uuid.UUID(str(item)) for item in target]
        except ValueError as e:
            raise ValidationError(f"Invalid plan id in selection: {e}") from e
        if len(set(plan_ids)) != len(plan_ids):
            raise ValidationError("Selected plan ids must not repeat")

        by_id = {plan.id: plan for plan in plans}
        missing = [str(plan_id) for plan_id in plan_ids if plan_id not in by_id]
        if missing:
            raise NotFoundError("Selected plan rows not found for this student and course", {"plan_ids": missing})
        return [by_id[plan_id] for plan_id in plan_ids]

    @staticmethod
    def _distribute(open_rows: List[PlanEvaluation], amount: Decimal) -> Tuple[List[Tuple[PaymentPlanRow, Decimal]], Decimal]:
        """Fill rows in order until the funds run out; returns shares and leftover"""
        funds = amount
        shares: List[Tuple[PaymentPlanRow, Decimal]] = []
        for evaluation in open_rows:
            if funds <= ZERO:
                break
            share = min(funds, evaluation.remaining)
            if share <= ZERO:
                continue
            shares.append((evaluation.plan, share))
            funds -= share
        return shares, funds

    def _attach_allocations(self, transaction: PaymentTransaction, shares: List[Tuple[PaymentPlanRow, Decimal]]):
        for plan, share in shares:
            # Appended through the transaction so the save cascades from it
            transaction.allocations.append(PaymentAllocation(
                plan=plan,
                month_reference=plan.month_reference,
                amount_allocated=share,
            ))
            plan.paid_total = to_money(plan.paid_total) + share

    def _results(self, shares: List[Tuple[PaymentPlanRow, Decimal]], as_of: date) -> List[AllocationResult]:
        return [
            AllocationResult(
                plan=plan,
                month_reference=plan.month_reference,
                amount_allocated=share,
                evaluation=evaluate_plan(plan, as_of, self.config.penalty),
            )
            for plan, share in shares
        ]

    def _wallet(self, student_id: uuid.UUID, course_id: str, create: bool = False) -> Optional[WalletBalance]:
        wallet = self.db.execute(
            select(WalletBalance)
            .where(WalletBalance.student_id == student_id, WalletBalance.course_id == course_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if wallet is None and create:
            wallet = WalletBalance(student_id=student_id, course_id=course_id, balance=ZERO)
            self.db.add(wallet)
        return wallet

    def _move_wallet(self, wallet: WalletBalance, amount: Decimal, reason: str, transaction: PaymentTransaction):
        new_balance = to_money(wallet.balance) + amount
        if new_balance < ZERO:
            raise ValidationError("Wallet balance cannot become negative")
        wallet.balance = new_balance
        wallet.entries.append(WalletEntry(amount=amount, reason=reason, payment=transaction))
        logger.info(f"Wallet {wallet.student_id}/{wallet.course_id} {reason}: {amount:+} -> {new_balance}")

    def _flush(self, what: str):
        try:
            self.db.flush()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"Concurrent update detected during {what}: {e}")
            raise ConcurrencyConflictError(
                "The student's balance changed while this payment was being recorded; "
                "reload the current amounts and confirm again"
            ) from e
