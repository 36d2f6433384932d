# academy_ledger/schemas/course_fee.py
from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID


class CourseFeeUpsert(BaseModel):
    course_id: str = Field(..., min_length=1, max_length=64, validation_alias=AliasChoices("course_id", "curso_id"))
    course_name: Optional[str] = Field(None, max_length=128)
    registration_fee: Decimal = Field(Decimal('0.00'), ge=0, decimal_places=2)
    monthly_fee: Decimal = Field(..., ge=0, decimal_places=2)
    duration_months: int = Field(..., ge=1, le=120)
    is_active: bool = True

    @field_validator('course_id')
    @classmethod
    def validate_course_id(cls, v: str) -> str:
        """Course codes are stored trimmed"""
        if not v.strip():
            raise ValueError('course_id cannot be empty or whitespace')
        return v.strip()


class CourseFeeOut(BaseModel):
    id: UUID
    course_id: str
    course_name: Optional[str] = None
    registration_fee: Decimal
    monthly_fee: Decimal
    duration_months: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
