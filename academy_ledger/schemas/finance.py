# academy_ledger/schemas/finance.py
from pydantic import AliasChoices, BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import date
from decimal import Decimal
from uuid import UUID

from academy_ledger.schemas.course_fee import CourseFeeOut
from academy_ledger.schemas.payment import AllocatedRowOut, PaymentTransactionOut
from academy_ledger.schemas.payment_plan import PaymentPlanOut
from academy_ledger.schemas.registration import RegistrationOut


class FinanceSummaryOut(BaseModel):
    student_id: UUID
    course_id: str
    as_of: date
    currency: str
    total_expected: Decimal
    total_paid: Decimal
    total_pending: Decimal
    total_overdue: Decimal
    total_penalties: Decimal
    overdue_count: int
    wallet_balance: Decimal
    registration_fee_paid: bool
    course: Optional[CourseFeeOut] = None
    registration: Optional[RegistrationOut] = None
    plans: List[PaymentPlanOut] = []
    recent_payments: List[PaymentTransactionOut] = []
    penalty_policy: Dict[str, Any] = {}


class WalletOut(BaseModel):
    student_id: UUID
    course_id: str
    balance: Decimal
    currency: str


class WalletApplyRequest(BaseModel):
    student_id: UUID
    course_id: str = Field(..., min_length=1, max_length=64, validation_alias=AliasChoices("course_id", "curso_id"))
    as_of: Optional[date] = None


class WalletApplyResult(BaseModel):
    success: bool = True
    applied: Decimal = Decimal('0.00')
    transaction: Optional[PaymentTransactionOut] = None
    allocations: List[AllocatedRowOut] = []
    wallet_balance: Decimal = Decimal('0.00')
