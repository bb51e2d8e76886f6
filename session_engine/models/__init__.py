from .base import Base
from .error_code import ErrorCode
from .institution import Institution
from .session_pool import SessionPool
from .session_allocation import ALLOCATION_TYPES, SessionAllocation
from .session_request import REQUEST_STATUSES, SessionRequest
from .pricing import PRICING_SETTINGS_ID, PricingOverride, PricingSettings
from .price_change import AFFECTS_ALL, CHANGE_STATUSES, CHANGE_TYPES, ScheduledPriceChange
from .session_purchase import SessionPurchase

__all__ = [
    "Base",
    "ErrorCode",
    "Institution",
    "SessionPool",
    "ALLOCATION_TYPES",
    "SessionAllocation",
    "REQUEST_STATUSES",
    "SessionRequest",
    "PRICING_SETTINGS_ID",
    "PricingOverride",
    "PricingSettings",
    "AFFECTS_ALL",
    "CHANGE_STATUSES",
    "CHANGE_TYPES",
    "ScheduledPriceChange",
    "SessionPurchase",
]
