# academy_ledger/api/routers/course_fees.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from academy_ledger.core.db import get_db
from academy_ledger.schemas.course_fee import CourseFeeOut, CourseFeeUpsert
from academy_ledger.services.course_fees import CourseFeeService

router = APIRouter()


@router.get("", response_model=List[CourseFeeOut])
async def list_course_fees(
    active_only: bool = Query(False),
    db: Session = Depends(get_db)
):
    """List fee configurations of every course"""
    configs = CourseFeeService(db).list_configs(active_only=active_only)
    return [CourseFeeOut.model_validate(c) for c in configs]


@router.get("/{course_id}", response_model=CourseFeeOut)
async def get_course_fee(course_id: str, db: Session = Depends(get_db)):
    return CourseFeeOut.model_validate(CourseFeeService(db).get_config(course_id))


@router.post("", response_model=CourseFeeOut, status_code=status.HTTP_200_OK)
async def upsert_course_fee(data: CourseFeeUpsert, db: Session = Depends(get_db)):
    """Create or replace the fee configuration of a course"""
    config = CourseFeeService(db).upsert_config(
        course_id=data.course_id,
        registration_fee=data.registration_fee,
        monthly_fee=data.monthly_fee,
        duration_months=data.duration_months,
        course_name=data.course_name,
        is_active=data.is_active,
    )
    db.commit()
    db.refresh(config)
    return CourseFeeOut.model_validate(config)
