# academy_ledger/services/settings_service.py - Institution billing configuration
"""
Penalty policy and institution billing settings.

Values are seeded from ``Settings`` (environment / .env) and overlaid with the
documents administrators save in the ``system_settings`` table. The resolved
configuration is an immutable value object that callers pass explicitly to
the plan generator, penalty calculator and allocator; it only changes when
``reload()`` is called.
"""
from dataclasses import dataclass, field, asdict, replace
from decimal import Decimal
from typing import Any, Dict, Optional
import logging
import threading

from sqlalchemy import select
from sqlalchemy.orm import Session

from academy_ledger.core.config import Settings, settings
from academy_ledger.core.exceptions import ValidationError
from academy_ledger.models.system_settings import INSTITUTION_KEY, PENALTY_POLICY_KEY, SystemSetting

logger = logging.getLogger(__name__)

PENALTY_BASES = ("remaining", "original")
PLAN_START_POLICIES = ("registration_month", "next_month")
SHORTFALL_POLICIES = ("partial", "reject")


@dataclass(frozen=True)
class PenaltyPolicy:
    """Two-tier late payment surcharge, in days after the due date"""
    enabled: bool = True
    step1_day: int = 10
    step1_percent: Decimal = Decimal("10")
    step2_day: int = 20
    step2_percent: Decimal = Decimal("10")
    base: str = "remaining"

    def __post_init__(self):
        # Normalize percents so float/str inputs compare and serialize consistently
        object.__setattr__(self, "step1_percent", Decimal(str(self.step1_percent)))
        object.__setattr__(self, "step2_percent", Decimal(str(self.step2_percent)))

        if self.step1_day < 1:
            raise ValidationError("step1_day must be at least 1")
        if self.step2_day <= self.step1_day:
            raise ValidationError("step2_day must be greater than step1_day")
        for name in ("step1_percent", "step2_percent"):
            value = getattr(self, name)
            if value < 0 or value > 100:
                raise ValidationError(f"{name} must be between 0 and 100")
        if self.base not in PENALTY_BASES:
            raise ValidationError(f"base must be one of: {', '.join(PENALTY_BASES)}")

    @property
    def tiers(self):
        """(days after due date, percent) pairs in ascending order"""
        return ((self.step1_day, self.step1_percent), (self.step2_day, self.step2_percent))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["step1_percent"] = float(self.step1_percent)
        data["step2_percent"] = float(self.step2_percent)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PenaltyPolicy":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass(frozen=True)
class InstitutionConfig:
    """Billing rules of the institution, including its penalty policy"""
    due_day: int = 10
    plan_start_policy: str = "registration_month"
    selected_months_shortfall: str = "partial"
    receipt_prefix: str = "REC"
    currency: str = "MZN"
    penalty: PenaltyPolicy = field(default_factory=PenaltyPolicy)

    def __post_init__(self):
        if not 1 <= self.due_day <= 31:
            raise ValidationError("due_day must be between 1 and 31")
        if self.plan_start_policy not in PLAN_START_POLICIES:
            raise ValidationError(f"plan_start_policy must be one of: {', '.join(PLAN_START_POLICIES)}")
        if self.selected_months_shortfall not in SHORTFALL_POLICIES:
            raise ValidationError(f"selected_months_shortfall must be one of: {', '.join(SHORTFALL_POLICIES)}")
        if not self.receipt_prefix:
            raise ValidationError("receipt_prefix cannot be empty")

    def institution_dict(self) -> Dict[str, Any]:
        return {
            "due_day": self.due_day,
            "plan_start_policy": self.plan_start_policy,
            "selected_months_shortfall": self.selected_months_shortfall,
            "receipt_prefix": self.receipt_prefix,
            "currency": self.currency,
        }


class LedgerConfigService:
    """Loads, caches and updates the institution configuration"""

    PENALTY_KEY = PENALTY_POLICY_KEY
    INSTITUTION_KEY = INSTITUTION_KEY

    def __init__(self, base_settings: Settings = settings):
        self._settings = base_settings
        self._config: Optional[InstitutionConfig] = None
        self._lock = threading.Lock()

    def defaults(self) -> InstitutionConfig:
        """Configuration built from environment settings only"""
        s = self._settings
        return InstitutionConfig(
            due_day=s.PAYMENT_DUE_DAY,
            plan_start_policy=s.PLAN_START_POLICY,
            selected_months_shortfall=s.SELECTED_MONTHS_SHORTFALL,
            receipt_prefix=s.RECEIPT_PREFIX,
            currency=s.CURRENCY,
            penalty=PenaltyPolicy(
                enabled=s.PENALTY_ENABLED,
                step1_day=s.PENALTY_STEP1_DAY,
                step1_percent=Decimal(str(s.PENALTY_STEP1_PERCENT)),
                step2_day=s.PENALTY_STEP2_DAY,
                step2_percent=Decimal(str(s.PENALTY_STEP2_PERCENT)),
                base=s.PENALTY_BASE,
            ),
        )

    @property
    def is_loaded(self) -> bool:
        return self._config is not None

    def current(self) -> InstitutionConfig:
        """Last loaded configuration (environment defaults before the first reload)"""
        return self._config or self.defaults()

    def reload(self, db: Session) -> InstitutionConfig:
        """
        Rebuild the configuration from settings plus persisted documents.

        Args:
            db: Session used to read ``system_settings``

        Returns:
            The freshly resolved configuration
        """
        rows = db.execute(
            select(SystemSetting).where(SystemSetting.key.in_([self.PENALTY_KEY, self.INSTITUTION_KEY]))
        ).scalars().all()
        stored = {row.key: row.value or {} for row in rows}

        base = self.defaults()
        try:
            penalty = base.penalty
            if self.PENALTY_KEY in stored:
                penalty = PenaltyPolicy.from_dict({**penalty.to_dict(), **stored[self.PENALTY_KEY]})

            institution = {**base.institution_dict(), **stored.get(self.INSTITUTION_KEY, {})}
            institution = {k: v for k, v in institution.items() if k in base.institution_dict()}
            config = InstitutionConfig(penalty=penalty, **institution)
        except (TypeError, ValidationError) as e:
            logger.error(f"Stored ledger settings are invalid, keeping previous configuration: {e}")
            raise

        with self._lock:
            self._config = config

        logger.info(
            f"Ledger configuration loaded: due_day={config.due_day}, "
            f"penalty_enabled={config.penalty.enabled}, "
            f"tiers={config.penalty.step1_day}d/{config.penalty.step1_percent}% "
            f"{config.penalty.step2_day}d/+{config.penalty.step2_percent}%"
        )
        return config

    def update_penalty_policy(self, db: Session, changes: Dict[str, Any], updated_by: Optional[str] = None) -> InstitutionConfig:
        """Validate and persist a partial penalty policy update, then reload"""
        current = self.reload(db).penalty
        merged = PenaltyPolicy.from_dict({**current.to_dict(), **changes})
        self._save(db, self.PENALTY_KEY, merged.to_dict(), "Late payment penalty policy", updated_by)
        return self.reload(db)

    def update_institution(self, db: Session, changes: Dict[str, Any], updated_by: Optional[str] = None) -> InstitutionConfig:
        """Validate and persist a partial institution settings update, then reload"""
        current = self.reload(db)
        allowed = current.institution_dict()
        unknown = set(changes) - set(allowed)
        if unknown:
            raise ValidationError(f"Unknown institution settings: {', '.join(sorted(unknown))}")
        merged = replace(current, **changes)
        self._save(db, self.INSTITUTION_KEY, merged.institution_dict(), "Institution billing settings", updated_by)
        return self.reload(db)

    def reset(self):
        """Forget the cached configuration"""
        with self._lock:
            self._config = None

    def _save(self, db: Session, key: str, value: Dict[str, Any], description: str, updated_by: Optional[str]):
        row = db.get(SystemSetting, key)
        if row is None:
            row = SystemSetting(key=key, value=value, description=description, updated_by=updated_by)
            db.add(row)
        else:
            row.value = value
            row.updated_by = updated_by
        db.flush()
        logger.info(f"System setting '{key}' updated by {updated_by or 'unknown'}")


# Process-wide service; request handlers obtain the config through a dependency
ledger_config = LedgerConfigService()

__all__ = [
    "PenaltyPolicy",
    "InstitutionConfig",
    "LedgerConfigService",
    "ledger_config",
]
