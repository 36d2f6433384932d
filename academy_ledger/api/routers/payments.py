# academy_ledger/api/routers/payments.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Literal, Optional
from uuid import UUID

from academy_ledger.api.deps.ledger import get_ledger_config
from academy_ledger.core.db import get_db
from academy_ledger.schemas.payment import (
    AllocatedRowOut,
    PaymentCreate,
    PaymentResult,
    PaymentTransactionOut,
    RegistrationFeeCreate,
    ReversalRequest,
    ReversalResult,
)
from academy_ledger.schemas.payment_plan import PaymentPlanOut
from academy_ledger.services.payment_allocator import (
    SELECTED_MONTHS,
    AllocationResult,
    PaymentAllocator,
    method_from_payment_type,
)
from academy_ledger.services.settings_service import InstitutionConfig

router = APIRouter()


def _resolve_method(payment_method: Optional[str], payment_type_id: Optional[int]) -> str:
    return payment_method or method_from_payment_type(payment_type_id)


def allocated_rows(results: List[AllocationResult]) -> List[AllocatedRowOut]:
    return [
        AllocatedRowOut(
            plan_id=r.plan.id,
            month_reference=r.month_reference,
            amount_allocated=r.amount_allocated,
            remaining=r.evaluation.remaining,
            status=r.evaluation.status,
        )
        for r in results
    ]


@router.post("/create", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
async def create_payment(
    data: PaymentCreate,
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    """
    Record a tuition payment.

    Single-month payments target ``month_reference``; oldest-first payments
    need no target; selected-months payments fund ``plan_ids`` in order.
    Whatever the targeted rows cannot absorb is credited to the wallet,
    which is then spent on the remaining open rows, oldest first.
    """
    target = data.plan_ids if data.alloc_mode == SELECTED_MONTHS else data.month_reference

    outcome = PaymentAllocator(db, config).record_payment(
        student_id=data.student_id,
        course_id=data.course_id,
        amount=data.amount_paid,
        method=_resolve_method(data.payment_method, data.payment_type_id),
        paid_date=data.paid_date,
        alloc_mode=data.alloc_mode,
        target=target,
        observations=data.observations,
    )
    db.commit()

    return PaymentResult(
        receipt_number=outcome.transaction.receipt_number,
        transaction=PaymentTransactionOut.model_validate(outcome.transaction),
        allocations=allocated_rows(outcome.allocations),
        credit_amount=outcome.credit_amount,
        wallet_balance=outcome.wallet_balance,
        wallet_allocations=allocated_rows(outcome.wallet_allocations),
    )


@router.post("/registration-fee", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
async def pay_registration_fee(
    data: RegistrationFeeCreate,
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    """Record the one-off registration fee of a course"""
    allocator = PaymentAllocator(db, config)
    transaction = allocator.record_registration_fee(
        student_id=data.student_id,
        course_id=data.course_id,
        method=_resolve_method(data.payment_method, data.payment_type_id),
        amount=data.amount_paid,
        paid_date=data.paid_date,
        observations=data.observations,
    )
    db.commit()

    return PaymentResult(
        receipt_number=transaction.receipt_number,
        transaction=PaymentTransactionOut.model_validate(transaction),
        wallet_balance=allocator.get_wallet_balance(data.student_id, data.course_id),
    )


@router.post("/{payment_id}/reverse", response_model=ReversalResult)
async def reverse_payment(
    payment_id: UUID,
    data: Optional[ReversalRequest] = None,
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    """
    Reverse a confirmed payment; its history is kept.

    Wallet applications that spent this payment's credit are reversed with it.
    """
    outcome = PaymentAllocator(db, config).reverse_transaction(
        payment_id, reason=data.reason if data else None
    )
    db.commit()

    return ReversalResult(
        transaction=PaymentTransactionOut.model_validate(outcome.transaction),
        restored=[PaymentPlanOut.from_evaluation(e) for e in outcome.restored],
        wallet_balance=outcome.wallet_balance,
        unwound=[t.id for t in outcome.unwound],
    )


@router.get("", response_model=List[PaymentTransactionOut])
async def list_payments(
    student_id: Optional[UUID] = Query(None),
    curso_id: Optional[str] = Query(None),
    course_id: Optional[str] = Query(None),
    month_reference: Optional[str] = Query(None),
    status: Optional[Literal["confirmed", "reversed"]] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    """Transaction history with allocations, newest first"""
    transactions = PaymentAllocator(db, config).list_transactions(
        student_id=student_id,
        course_id=curso_id or course_id,
        month_reference=month_reference,
        status=status,
        limit=limit,
    )
    return [PaymentTransactionOut.model_validate(t) for t in transactions]


@router.get("/{payment_id}", response_model=PaymentTransactionOut)
async def get_payment(
    payment_id: UUID,
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    return PaymentTransactionOut.model_validate(PaymentAllocator(db, config).get_transaction(payment_id))
