# academy_ledger/api/routers/settings.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from academy_ledger.core.db import get_db
from academy_ledger.schemas.settings import (
    InstitutionSettingsOut,
    InstitutionSettingsUpdate,
    PenaltyPolicyOut,
    PenaltyPolicyUpdate,
)
from academy_ledger.services.settings_service import InstitutionConfig, ledger_config

router = APIRouter()


def _institution_out(config: InstitutionConfig) -> InstitutionSettingsOut:
    return InstitutionSettingsOut(
        **config.institution_dict(),
        penalty=PenaltyPolicyOut(**config.penalty.to_dict()),
    )


@router.get("/penalty-policy", response_model=PenaltyPolicyOut)
async def get_penalty_policy(db: Session = Depends(get_db)):
    config = ledger_config.reload(db)
    return PenaltyPolicyOut(**config.penalty.to_dict())


@router.put("/penalty-policy", response_model=PenaltyPolicyOut)
async def update_penalty_policy(data: PenaltyPolicyUpdate, db: Session = Depends(get_db)):
    """Change the late payment policy; penalties are recomputed on the next read"""
    config = ledger_config.update_penalty_policy(db, data.model_dump(exclude_none=True))
    db.commit()
    return PenaltyPolicyOut(**config.penalty.to_dict())


@router.get("/institution", response_model=InstitutionSettingsOut)
async def get_institution_settings(db: Session = Depends(get_db)):
    return _institution_out(ledger_config.reload(db))


@router.put("/institution", response_model=InstitutionSettingsOut)
async def update_institution_settings(data: InstitutionSettingsUpdate, db: Session = Depends(get_db)):
    config = ledger_config.update_institution(db, data.model_dump(exclude_none=True))
    db.commit()
    return _institution_out(config)


@router.post("/reload", response_model=InstitutionSettingsOut)
async def reload_settings(db: Session = Depends(get_db)):
    """Re-read persisted settings into the running process"""
    return _institution_out(ledger_config.reload(db))
