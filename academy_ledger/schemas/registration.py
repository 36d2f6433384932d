# academy_ledger/schemas/registration.py
from pydantic import AliasChoices, BaseModel, Field
from typing import Optional
from datetime import date, datetime
from uuid import UUID


class RegistrationCreate(BaseModel):
    student_id: UUID
    course_id: str = Field(..., min_length=1, max_length=64, validation_alias=AliasChoices("course_id", "curso_id"))
    registration_date: Optional[date] = None  # Defaults to today
    student_name: Optional[str] = Field(None, max_length=128)
    generate_plan: bool = False


class RegistrationOut(BaseModel):
    id: UUID
    student_id: UUID
    student_name: Optional[str] = None
    course_id: str
    registration_date: date
    status: str
    plan_generated: bool
    created_at: datetime

    class Config:
        from_attributes = True
