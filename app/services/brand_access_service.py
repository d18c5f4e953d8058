"""
Brand Access & Ownership Manager

Owns the BrandAccess join entity:
- Brand creation together with its single OWNER row
- Grant / revoke / role change for managers
- Ownership transfer with the brand row locked
- Visibility and earnings authorization gates for read paths
"""

import logging
import uuid
from typing import Optional, List

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, Forbidden, NotFound
from app.core.permissions import PermissionChecker, parse_role
from app.models.brand import Brand, BrandAccess
from app.models.role import Role, BRAND_ROLES
from app.models.user import User, normalize_email
from app.schemas.events import AccessGranted, AccessRevoked, RoleChanged, OwnershipTransferred
from app.services.audit_service import AuditService
from app.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


class BrandAccessService:
    """Service for brand ownership and team access"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # ========================================================================
    # Lookups
    # ========================================================================

    async def get_brand(self, brand_id: uuid.UUID, lock: bool = False) -> Brand:
        query = select(Brand).where(Brand.id == brand_id, Brand.is_deleted == False)  # noqa: E712
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        brand = result.scalar_one_or_none()
        if not brand:
            raise NotFound("Brand not found", context={"brand_id": str(brand_id)})
        return brand

    async def get_access(self, brand_id: uuid.UUID, email: str) -> Optional[BrandAccess]:
        result = await self.db.execute(
            select(BrandAccess).where(
                BrandAccess.brand_id == brand_id,
                BrandAccess.user_email == normalize_email(email),
            )
        )
        return result.scalar_one_or_none()

    async def get_owner_access(self, brand_id: uuid.UUID) -> Optional[BrandAccess]:
        result = await self.db.execute(
            select(BrandAccess).where(
                BrandAccess.brand_id == brand_id,
                BrandAccess.role == Role.OWNER.name,
            )
        )
        return result.scalar_one_or_none()

    async def checker_for(self, brand_id: uuid.UUID, user: Optional[User]) -> PermissionChecker:
        access = await self.get_access(brand_id, user.email) if user else None
        return PermissionChecker(user, access)

    async def _require_user(self, email: str) -> User:
        result = await self.db.execute(select(User).where(User.email == normalize_email(email)))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFound("User not found", context={"email": email})
        return user

    async def list_access(self, brand_id: uuid.UUID, viewer: User) -> List[BrandAccess]:
        await self.get_brand(brand_id)
        checker = await self.checker_for(brand_id, viewer)
        checker.require(Role.MANAGER, "Only brand members can view the team")

        result = await self.db.execute(
            select(BrandAccess)
            .where(BrandAccess.brand_id == brand_id)
            .order_by(BrandAccess.role.desc(), BrandAccess.created_at)
        )
        return list(result.scalars().all())

    async def owned_brand_ids(self, email: str) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(BrandAccess.brand_id)
            .join(Brand, Brand.id == BrandAccess.brand_id)
            .where(
                BrandAccess.user_email == normalize_email(email),
                BrandAccess.role == Role.OWNER.name,
                Brand.is_deleted == False,  # noqa: E712
            )
        )
        return list(result.scalars().all())

    # ========================================================================
    # Gates
    # ========================================================================

    async def can_view(self, brand: Brand, user: Optional[User]) -> bool:
        checker = await self.checker_for(brand.id, user)
        return checker.can_view_brand(brand)

    async def get_brand_for_viewer(self, brand_id: uuid.UUID, user: Optional[User]) -> Brand:
        """Brand if visible to the caller; hidden brands look missing to outsiders."""
        result = await self.db.execute(select(Brand).where(Brand.id == brand_id))
        brand = result.scalar_one_or_none()
        if not brand or not await self.can_view(brand, user):
            raise NotFound("Brand not found", context={"brand_id": str(brand_id)})
        return brand

    async def authorize_earnings(self, brand_id: uuid.UUID, user: User, withdraw: bool = False) -> PermissionChecker:
        """Viewing brand earnings requires MANAGER; withdrawing requires OWNER."""
        await self.get_brand(brand_id)
        checker = await self.checker_for(brand_id, user)
        if withdraw:
            if not checker.is_owner():
                raise Forbidden(
                    "Only the brand owner can withdraw brand earnings",
                    context={"brand_id": str(brand_id), "user": user.email},
                )
        else:
            checker.require(Role.MANAGER, "Only brand members can view brand earnings")
        return checker

    # ========================================================================
    # Mutations
    # ========================================================================

    async def create_brand(
        self,
        creator: User,
        name: str,
        slug: str,
        genre_id: Optional[uuid.UUID] = None,
    ) -> Brand:
        """Create a brand and its OWNER row in one transaction."""
        existing = await self.db.execute(select(Brand.id).where(Brand.slug == slug))
        if existing.scalar_one_or_none():
            raise ConflictError(f"Brand slug '{slug}' already exists", context={"slug": slug})

        brand = Brand(id=uuid.uuid4(), name=name, slug=slug, genre_id=genre_id)
        self.db.add(brand)
        self.db.add(BrandAccess(
            id=uuid.uuid4(),
            brand_id=brand.id,
            user_email=creator.email,
            role=Role.OWNER.name,
        ))

        try:
            await self.audit.record(
                AccessGranted(brand_id=brand.id, user_email=creator.email, role=Role.OWNER.name),
                actor_email=creator.email,
                description=f"Created brand {name}",
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(f"Brand slug '{slug}' already exists", context={"slug": slug})

        logger.info(f"Brand {brand.id} ({slug}) created by {creator.email}")
        return brand

    async def grant_access(
        self,
        brand_id: uuid.UUID,
        granter: User,
        invitee_email: str,
        role: Role = Role.MANAGER,
    ) -> BrandAccess:
        role = parse_role(role)
        if role not in BRAND_ROLES:
            raise Forbidden(f"Role {role.name} cannot be granted on a brand")

        await self.get_brand(brand_id, lock=True)
        checker = await self.checker_for(brand_id, granter)
        if not checker.can_grant(role):
            raise Forbidden(
                f"Insufficient role to grant {role.name}",
                context={"brand_id": str(brand_id), "user": granter.email},
            )

        invitee = await self._require_user(invitee_email)
        if await self.get_access(brand_id, invitee.email):
            raise ConflictError(
                "User already has access to this brand",
                context={"brand_id": str(brand_id), "email": invitee.email},
            )

        try:
            if role == Role.OWNER:
                access = await self._hand_over(brand_id, invitee.email, granter)
            else:
                access = BrandAccess(
                    id=uuid.uuid4(),
                    brand_id=brand_id,
                    user_email=invitee.email,
                    role=role.name,
                )
                self.db.add(access)

            await self.audit.record(
                AccessGranted(brand_id=brand_id, user_email=invitee.email, role=role.name),
                actor_email=granter.email,
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"{granter.email} granted {role.name} on brand {brand_id} to {invitee.email}")
        return access

    async def revoke_access(self, brand_id: uuid.UUID, remover: User, target_email: str) -> None:
        await self.get_brand(brand_id, lock=True)

        target = await self.get_access(brand_id, target_email)
        if not target:
            raise NotFound("Access entry not found", context={"brand_id": str(brand_id), "email": target_email})

        target_role = parse_role(target.role)
        checker = await self.checker_for(brand_id, remover)
        if not checker.is_member() and not checker.is_admin():
            raise Forbidden("Only brand members can remove access", context={"brand_id": str(brand_id)})
        if not checker.can_revoke(target_role):
            raise Forbidden(
                f"Cannot remove a {target_role.name} with a lower role",
                context={"brand_id": str(brand_id), "user": remover.email},
            )
        if target_role == Role.OWNER:
            raise ConflictError(
                "Cannot remove the last owner; transfer ownership first",
                context={"brand_id": str(brand_id)},
            )

        await self.db.delete(target)
        await self.audit.record(
            AccessRevoked(brand_id=brand_id, user_email=target.user_email, role=target.role),
            actor_email=remover.email,
        )
        await self.db.commit()
        logger.info(f"{remover.email} removed {target.user_email} from brand {brand_id}")

    async def change_role(
        self,
        brand_id: uuid.UUID,
        actor: User,
        target_email: str,
        role: Role,
    ) -> BrandAccess:
        role = parse_role(role)
        await self.get_brand(brand_id, lock=True)

        checker = await self.checker_for(brand_id, actor)
        checker.require(Role.OWNER, "Only the owner can change roles")

        target = await self.get_access(brand_id, target_email)
        if not target:
            raise NotFound("Access entry not found", context={"brand_id": str(brand_id), "email": target_email})

        current = parse_role(target.role)
        if current == role:
            return target
        if current == Role.OWNER:
            raise ConflictError(
                "Cannot demote the owner; transfer ownership instead",
                context={"brand_id": str(brand_id)},
            )
        if role == Role.OWNER:
            return await self.transfer_ownership(brand_id, actor, target.user_email)
        if role != Role.MANAGER:
            raise Forbidden(f"Role {role.name} cannot be granted on a brand")

        target.role = role.name
        await self.audit.record(
            RoleChanged(brand_id=brand_id, user_email=target.user_email, old_role=current.name, new_role=role.name),
            actor_email=actor.email,
        )
        await self.db.commit()
        return target

    async def transfer_ownership(self, brand_id: uuid.UUID, actor: User, new_owner_email: str) -> BrandAccess:
        """
        Move ownership to another user.

        The previous owner stays on as MANAGER. Demotion and promotion commit
        together so the brand never has zero or two owners.
        """
        await self.get_brand(brand_id, lock=True)

        checker = await self.checker_for(brand_id, actor)
        if not checker.is_owner() and not checker.is_admin():
            raise Forbidden(
                "Only the brand owner can transfer ownership",
                context={"brand_id": str(brand_id), "user": actor.email},
            )

        new_owner = await self._require_user(new_owner_email)
        current_owner = await self.get_owner_access(brand_id)
        if current_owner and current_owner.user_email == new_owner.email:
            raise ConflictError("User is already the owner", context={"brand_id": str(brand_id)})

        try:
            access = await self._hand_over(brand_id, new_owner.email, actor)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Ownership of brand {brand_id} transferred to {new_owner.email} by {actor.email}")
        return access

    async def _hand_over(self, brand_id: uuid.UUID, new_owner_email: str, actor: User) -> BrandAccess:
        """Demote the current owner and promote (or create) the new one. Caller commits."""
        current_owner = await self.get_owner_access(brand_id)
        previous_email = current_owner.user_email if current_owner else None
        if current_owner:
            current_owner.role = Role.MANAGER.name
            await self.db.flush()

        access = await self.get_access(brand_id, new_owner_email)
        if access:
            access.role = Role.OWNER.name
        else:
            access = BrandAccess(
                id=uuid.uuid4(),
                brand_id=brand_id,
                user_email=new_owner_email,
                role=Role.OWNER.name,
            )
            self.db.add(access)
        await self.db.flush()

        ledger = LedgerService(self.db)
        await ledger.refresh_user_earnings(new_owner_email)
        if previous_email:
            await ledger.refresh_user_earnings(previous_email)

        await self.audit.record(
            OwnershipTransferred(
                brand_id=brand_id,
                previous_owner_email=previous_email or "",
                new_owner_email=new_owner_email,
            ),
            actor_email=actor.email,
        )
        return access

    async def count_owners(self, brand_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(BrandAccess.id)).where(
                BrandAccess.brand_id == brand_id,
                BrandAccess.role == Role.OWNER.name,
            )
        )
        return result.scalar() or 0
