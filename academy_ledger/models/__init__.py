# academy_ledger/models/__init__.py - Import all models so SQLAlchemy can discover them

from academy_ledger.models.base import Base

from academy_ledger.models.course_fee import CourseFeeConfig
from academy_ledger.models.registration import CourseRegistration
from academy_ledger.models.payment_plan import PaymentPlanRow
from academy_ledger.models.payment import PaymentTransaction, PaymentAllocation
from academy_ledger.models.wallet import WalletBalance, WalletEntry
from academy_ledger.models.receipt import ReceiptCounter
from academy_ledger.models.system_settings import SystemSetting

__all__ = [
    "Base",
    "CourseFeeConfig",
    "CourseRegistration",
    "PaymentPlanRow",
    "PaymentTransaction",
    "PaymentAllocation",
    "WalletBalance",
    "WalletEntry",
    "ReceiptCounter",
    "SystemSetting",
]
