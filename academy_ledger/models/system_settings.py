# academy_ledger/models/system_settings.py
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from academy_ledger.models.base import Base

PENALTY_POLICY_KEY = "penalty_policy"
INSTITUTION_KEY = "institution"


class SystemSetting(Base):
    """
    Administrator-edited configuration document.

    One row per document key; ``value`` holds the whole document as JSON
    (``penalty_policy`` or ``institution``). Rows override the environment
    defaults and are only read on startup or explicit reload.
    """
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    updated_by: Mapped[Optional[str]] = mapped_column(String(128))
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return f"<SystemSetting(key={self.key}, updated_by={self.updated_by})>"
