# academy_ledger/schemas/payment.py
from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import List, Literal, Optional
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from academy_ledger.schemas.payment_plan import PaymentPlanOut
from academy_ledger.services.status_classifier import PaymentStatus

PaymentMethod = Literal["cash", "mpesa", "transfer", "card", "other"]


class PaymentCreate(BaseModel):
    """
    Payment entry from the front office.

    ``payment_type_id`` is the legacy numeric method; ``payment_method`` wins
    when both are sent. ``month_reference`` targets single_month payments,
    ``plan_ids`` selected_months payments.
    """
    student_id: UUID
    course_id: str = Field(..., min_length=1, max_length=64, validation_alias=AliasChoices("course_id", "curso_id"))
    amount_paid: Decimal = Field(..., decimal_places=2)
    alloc_mode: Literal["single_month", "oldest_first", "selected_months"] = "single_month"
    month_reference: Optional[str] = Field(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    plan_ids: Optional[List[UUID]] = None
    payment_method: Optional[PaymentMethod] = None
    payment_type_id: Optional[int] = None
    paid_date: Optional[date] = None
    observations: Optional[str] = Field(None, validation_alias=AliasChoices("observations", "observacoes"))

    @field_validator('payment_method', mode='before')
    @classmethod
    def normalize_method(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class RegistrationFeeCreate(BaseModel):
    student_id: UUID
    course_id: str = Field(..., min_length=1, max_length=64, validation_alias=AliasChoices("course_id", "curso_id"))
    amount_paid: Optional[Decimal] = Field(None, decimal_places=2)  # Defaults to the configured fee
    payment_method: Optional[PaymentMethod] = None
    payment_type_id: Optional[int] = None
    paid_date: Optional[date] = None
    observations: Optional[str] = Field(None, validation_alias=AliasChoices("observations", "observacoes"))


class ReversalRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AllocationOut(BaseModel):
    id: UUID
    plan_id: UUID
    month_reference: str
    amount_allocated: Decimal

    class Config:
        from_attributes = True


class PaymentTransactionOut(BaseModel):
    id: UUID
    student_id: UUID
    course_id: str
    kind: str
    amount_paid: Decimal
    credit_amount: Decimal
    payment_method: str
    alloc_mode: Optional[str] = None
    paid_date: date
    receipt_number: Optional[str] = None
    status: str
    observations: Optional[str] = None
    reversed_at: Optional[datetime] = None
    reversal_reason: Optional[str] = None
    created_at: datetime
    allocations: List[AllocationOut] = []

    class Config:
        from_attributes = True


class AllocatedRowOut(BaseModel):
    """One funded plan row and its state right after the payment"""
    plan_id: UUID
    month_reference: str
    amount_allocated: Decimal
    remaining: Decimal
    status: PaymentStatus


class PaymentResult(BaseModel):
    success: bool = True
    receipt_number: Optional[str] = None
    transaction: PaymentTransactionOut
    allocations: List[AllocatedRowOut] = []
    credit_amount: Decimal = Decimal('0.00')
    wallet_balance: Decimal = Decimal('0.00')
    # Wallet credit spent on other rows right after the payment
    wallet_allocations: List[AllocatedRowOut] = []


class ReversalResult(BaseModel):
    success: bool = True
    transaction: PaymentTransactionOut
    restored: List[PaymentPlanOut] = []
    wallet_balance: Decimal = Decimal('0.00')
    unwound: List[UUID] = []  # Wallet applications reversed along with the payment
