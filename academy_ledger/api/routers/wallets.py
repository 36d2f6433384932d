# academy_ledger/api/routers/wallets.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from academy_ledger.api.deps.ledger import get_ledger_config
from academy_ledger.api.routers.payments import allocated_rows
from academy_ledger.core.db import get_db
from academy_ledger.core.exceptions import ValidationError
from academy_ledger.schemas.finance import WalletApplyRequest, WalletApplyResult, WalletOut
from academy_ledger.schemas.payment import PaymentTransactionOut
from academy_ledger.services.payment_allocator import PaymentAllocator
from academy_ledger.services.settings_service import InstitutionConfig

router = APIRouter()


@router.get("", response_model=WalletOut)
async def get_wallet(
    student_id: UUID = Query(...),
    curso_id: Optional[str] = Query(None),
    course_id: Optional[str] = Query(None),
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    course = curso_id or course_id
    if not course:
        raise ValidationError("curso_id is required")

    balance = PaymentAllocator(db, config).get_wallet_balance(student_id, course)
    return WalletOut(student_id=student_id, course_id=course, balance=balance, currency=config.currency)


@router.post("/apply", response_model=WalletApplyResult)
async def apply_wallet(
    data: WalletApplyRequest,
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    """Spend wallet credit on open plan rows, oldest first"""
    allocator = PaymentAllocator(db, config)
    outcome = allocator.apply_wallet_credit(data.student_id, data.course_id, as_of=data.as_of)
    if outcome is None:
        return WalletApplyResult(wallet_balance=allocator.get_wallet_balance(data.student_id, data.course_id))

    db.commit()
    return WalletApplyResult(
        applied=outcome.transaction.amount_paid,
        transaction=PaymentTransactionOut.model_validate(outcome.transaction),
        allocations=allocated_rows(outcome.allocations),
        wallet_balance=outcome.wallet_balance,
    )
