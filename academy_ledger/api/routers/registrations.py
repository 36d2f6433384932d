# academy_ledger/api/routers/registrations.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from uuid import UUID

from academy_ledger.api.deps.ledger import get_ledger_config
from academy_ledger.core.db import get_db
from academy_ledger.schemas.registration import RegistrationCreate, RegistrationOut
from academy_ledger.services.plan_generator import PlanGenerator
from academy_ledger.services.registrations import RegistrationService
from academy_ledger.services.settings_service import InstitutionConfig

router = APIRouter()


@router.post("", response_model=RegistrationOut, status_code=status.HTTP_201_CREATED)
async def create_registration(
    data: RegistrationCreate,
    config: InstitutionConfig = Depends(get_ledger_config),
    db: Session = Depends(get_db)
):
    """Register a student in a course, optionally generating the plan right away"""
    registration = RegistrationService(db).register(
        student_id=data.student_id,
        course_id=data.course_id,
        registration_date=data.registration_date,
        student_name=data.student_name,
    )
    if data.generate_plan:
        PlanGenerator(db, config).generate_for_registration(registration.id)

    db.commit()
    db.refresh(registration)
    return RegistrationOut.model_validate(registration)


@router.get("/{registration_id}", response_model=RegistrationOut)
async def get_registration(registration_id: UUID, db: Session = Depends(get_db)):
    return RegistrationOut.model_validate(RegistrationService(db).get(registration_id))
