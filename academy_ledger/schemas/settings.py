# academy_ledger/schemas/settings.py
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional
from decimal import Decimal


class PenaltyPolicyOut(BaseModel):
    enabled: bool
    step1_day: int
    step1_percent: Decimal
    step2_day: int
    step2_percent: Decimal
    base: Literal["remaining", "original"]


class PenaltyPolicyUpdate(BaseModel):
    """Partial update; cross-field rules are checked against the stored policy"""
    enabled: Optional[bool] = None
    step1_day: Optional[int] = Field(None, ge=1, le=365)
    step1_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    step2_day: Optional[int] = Field(None, ge=1, le=365)
    step2_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    base: Optional[Literal["remaining", "original"]] = None


class InstitutionSettingsOut(BaseModel):
    due_day: int
    plan_start_policy: Literal["registration_month", "next_month"]
    selected_months_shortfall: Literal["partial", "reject"]
    receipt_prefix: str
    currency: str
    penalty: PenaltyPolicyOut


class InstitutionSettingsUpdate(BaseModel):
    due_day: Optional[int] = Field(None, ge=1, le=31)
    plan_start_policy: Optional[Literal["registration_month", "next_month"]] = None
    selected_months_shortfall: Optional[Literal["partial", "reject"]] = None
    receipt_prefix: Optional[str] = Field(None, min_length=1, max_length=8)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    @field_validator('receipt_prefix', 'currency')
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v
