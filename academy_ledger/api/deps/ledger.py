from fastapi import Depends
from sqlalchemy.orm import Session

from academy_ledger.core.db import get_db
from academy_ledger.services.settings_service import InstitutionConfig, ledger_config


def get_ledger_config(db: Session = Depends(get_db)) -> InstitutionConfig:
    """
    Resolve the institution configuration for the request.

    Persisted settings are read once per process; later changes are picked up
    through the settings endpoints, which reload explicitly.
    """
    if not ledger_config.is_loaded:
        return ledger_config.reload(db)
    return ledger_config.current()
