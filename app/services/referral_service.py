"""
Platform Referral Links

A user shares a sign-up code; users who join with it become their referred
users, and the referrer earns a share of the referred user's brand earnings
from then on (credited by LedgerService on each order).
"""

import logging
import random
import string
import uuid
from decimal import Decimal
from typing import List

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ConflictError, NotFound, ValidationError
from app.models.referral import PlatformReferral, PlatformReferralLink, ReferralStatus
from app.models.user import User
from app.schemas.events import ReferralJoined
from app.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class ReferralService:
    """Service for platform referral links and sign-ups through them"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def generate_code(self, name: str) -> str:
        """Globally unique code: first 4 letters of the name + 6 random."""
        prefix = ''.join(c for c in (name or "").upper() if c.isalpha())[:4]
        if len(prefix) < 4:
            prefix = prefix.ljust(4, 'X')

        while True:
            suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))
            code = f"{prefix}{suffix}"
            result = await self.db.execute(
                select(PlatformReferralLink.id).where(PlatformReferralLink.code == code)
            )
            if not result.scalar_one_or_none():
                return code

    async def count_active(self, owner_email: str) -> int:
        result = await self.db.execute(
            select(func.count(PlatformReferralLink.id)).where(
                PlatformReferralLink.owner_email == owner_email,
                PlatformReferralLink.is_active == True,  # noqa: E712
            )
        )
        return result.scalar() or 0

    async def create_link(self, user: User) -> PlatformReferralLink:
        active = await self.count_active(user.email)
        if active >= settings.MAX_ACTIVE_REFERRAL_LINKS:
            raise ValidationError(
                f"At most {settings.MAX_ACTIVE_REFERRAL_LINKS} active referral links are allowed",
                context={"user": user.email, "active": active},
            )

        link = PlatformReferralLink(
            id=uuid.uuid4(),
            owner_email=user.email,
            code=await self.generate_code(user.name or user.email),
            is_active=True,
        )
        self.db.add(link)
        await self.db.commit()

        logger.info(f"Referral link {link.code} created for {user.email}")
        return link

    async def list_links(self, user: User) -> List[dict]:
        """The user's links, newest first, each with the users who joined through it."""
        result = await self.db.execute(
            select(PlatformReferralLink)
            .where(PlatformReferralLink.owner_email == user.email)
            .order_by(PlatformReferralLink.created_at.desc())
        )
        links = list(result.scalars().all())

        referrals_by_code = {link.code: [] for link in links}
        if links:
            referrals = await self.db.execute(
                select(PlatformReferral)
                .where(
                    PlatformReferral.referrer_email == user.email,
                    PlatformReferral.referral_link_id.in_(list(referrals_by_code)),
                )
                .order_by(PlatformReferral.created_at)
                .execution_options(populate_existing=True)
            )
            for referral in referrals.scalars().all():
                referrals_by_code[referral.referral_link_id].append(referral)

        return [
            {
                "id": link.id,
                "code": link.code,
                "is_active": link.is_active,
                "created_at": link.created_at,
                "referrals": referrals_by_code[link.code],
                "total_earnings": sum((r.earnings for r in referrals_by_code[link.code]), Decimal("0")),
            }
            for link in links
        ]

    async def deactivate_link(self, user: User, link_id: uuid.UUID) -> None:
        """Stop new sign-ups through the link; existing referrals keep earning."""
        result = await self.db.execute(
            select(PlatformReferralLink).where(
                PlatformReferralLink.id == link_id,
                PlatformReferralLink.owner_email == user.email,
            )
        )
        link = result.scalar_one_or_none()
        if not link:
            raise NotFound("Referral link not found", context={"link_id": str(link_id)})

        link.is_active = False
        await self.db.commit()
        logger.info(f"Referral link {link.code} of {user.email} deactivated")

    async def join_with_link(self, user: User, code: str) -> PlatformReferral:
        """
        Record that the user signed up through a referral link.

        Sets the user's referrer and opens a PENDING referral that completes on
        the first order credited to the referrer.
        """
        email = user.email
        result = await self.db.execute(
            select(PlatformReferralLink).where(
                PlatformReferralLink.code == code,
                PlatformReferralLink.is_active == True,  # noqa: E712
            )
        )
        link = result.scalar_one_or_none()
        if not link:
            raise NotFound("Referral link not found or inactive", context={"code": code})

        if link.owner_email == user.email:
            raise ValidationError("You cannot use your own referral link", context={"code": code})

        if user.referred_by_email:
            raise ConflictError("User was already referred", context={"user": user.email})

        referral = PlatformReferral(
            id=uuid.uuid4(),
            referrer_email=link.owner_email,
            referred_email=user.email,
            referral_link_id=link.code,
            earnings=Decimal("0"),
            status=ReferralStatus.PENDING.value,
        )
        try:
            async with self.db.begin_nested():
                user.referred_by_email = link.owner_email
                self.db.add(referral)
                await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("User was already referred", context={"user": email})

        await self.audit.record(
            ReferralJoined(
                user_id=user.id,
                referrer_email=link.owner_email,
                referred_email=user.email,
                link_code=link.code,
            ),
            actor_email=user.email,
        )
        await self.db.commit()

        logger.info(f"{user.email} joined through referral link {link.code} of {link.owner_email}")
        return referral
