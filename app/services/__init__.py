# Services module
from app.services.audit_service import AuditService
from app.services.attribution_service import AttributionService, Attribution
from app.services.commission_service import CommissionService, CommissionSplit
from app.services.ledger_service import LedgerService
from app.services.brand_access_service import BrandAccessService
from app.services.payment_rail import PaymentRail, RazorpayPaymentRail, TransferResult
from app.services.payout_service import PayoutService
from app.services.affiliate_service import AffiliateService
from app.services.referral_service import ReferralService

__all__ = [
    "AuditService",
    "AttributionService",
    "Attribution",
    "CommissionService",
    "CommissionSplit",
    "LedgerService",
    "BrandAccessService",
    # Payouts
    "PaymentRail",
    "RazorpayPaymentRail",
    "TransferResult",
    "PayoutService",
    # Affiliates & referrals
    "AffiliateService",
    "ReferralService",
]
