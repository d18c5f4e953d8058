# Importing this package registers every table with Base.metadata
from app.models.user import User
from app.models.brand import Brand, BrandAccess
from app.models.commission import BrandCommission, CommissionTier, GenreCommission
from app.models.affiliate import Affiliate, AffiliateStatus
from app.models.order import Order
from app.models.referral import PlatformReferral, PlatformReferralLink, ReferralStatus
from app.models.payout import PaymentMethod, PayoutRecord, PayoutStatus
from app.models.audit_log import ActivityLog
from app.models.role import Role

__all__ = [
    "User",
    "Brand",
    "BrandAccess",
    "BrandCommission",
    "CommissionTier",
    "GenreCommission",
    "Affiliate",
    "AffiliateStatus",
    "Order",
    "PlatformReferral",
    "PlatformReferralLink",
    "ReferralStatus",
    "PaymentMethod",
    "PayoutRecord",
    "PayoutStatus",
    "ActivityLog",
    "Role",
]
