"""Commission rate selection, order splitting and schedule administration."""
import uuid
from decimal import Decimal

import pytest

from app.config import settings
from app.core.exceptions import Forbidden, NotFound, ValidationError
from app.models.commission import BrandCommission, CommissionTier
from app.schemas.commission import BrandCommissionUpdate, CommissionTierIn
from app.services.commission_service import (
    CommissionService,
    calculate_split,
    clamp_rate,
    select_brand_rate,
)

from tests.conftest import make_brand, make_tiered_commission, make_user


def _schedule(base="0.50", tiers=(), automatic=True, min_rate=None, max_rate=None):
    return BrandCommission(
        base_rate=Decimal(base),
        is_automatic=automatic,
        min_rate=Decimal(min_rate) if min_rate else None,
        max_rate=Decimal(max_rate) if max_rate else None,
        tiers=[
            CommissionTier(name=name, min_sales=Decimal(min_sales), rate=Decimal(rate))
            for name, min_sales, rate in tiers
        ],
    )


TIERS = (("Base", "0", "0.50"), ("Silver", "10000", "0.55"), ("Gold", "50000", "0.60"))


# ==================== Rate selection ====================

def test_tier_selected_by_prior_sales():
    decision = select_brand_rate(_schedule(tiers=TIERS), prior_sales=Decimal("12000"))
    assert decision.rate == Decimal("0.55")
    assert decision.source == "TIER"
    assert decision.tier_name == "Silver"


def test_tier_threshold_is_inclusive():
    decision = select_brand_rate(_schedule(tiers=TIERS), prior_sales=Decimal("50000"))
    assert decision.rate == Decimal("0.60")


def test_manual_schedule_ignores_tiers():
    decision = select_brand_rate(_schedule(base="0.45", tiers=TIERS, automatic=False), Decimal("99999"))
    assert decision.rate == Decimal("0.45")
    assert decision.source == "BRAND"


def test_below_lowest_tier_uses_base_rate():
    schedule = _schedule(base="0.40", tiers=(("Silver", "10000", "0.55"),))
    decision = select_brand_rate(schedule, Decimal("500"))
    assert decision.rate == Decimal("0.40")
    assert decision.source == "BRAND"


def test_genre_rate_then_platform_default():
    assert select_brand_rate(None, Decimal("0"), genre_rate=Decimal("0.65")).source == "GENRE"
    decision = select_brand_rate(None, Decimal("0"))
    assert decision.rate == Decimal("0.50")
    assert decision.source == "DEFAULT"


def test_brand_bounds_clamp_tier_rate():
    schedule = _schedule(tiers=TIERS, max_rate="0.52")
    assert select_brand_rate(schedule, Decimal("60000")).rate == Decimal("0.52")


def test_clamp_rate():
    assert clamp_rate(Decimal("0.2"), Decimal("0.3"), None) == Decimal("0.3")
    assert clamp_rate(Decimal("0.9"), None, Decimal("0.8")) == Decimal("0.8")
    assert clamp_rate(Decimal("0.5"), None, None) == Decimal("0.5")


# ==================== Split ====================

def test_split_with_all_carve_outs():
    split = calculate_split(Decimal("100.00"), Decimal("0.55"), affiliate_rate=Decimal("0.20"), has_referrer=True)
    assert split.brand_earnings == Decimal("55.00")
    assert split.platform_share == Decimal("45.00")
    assert split.affiliate_due == Decimal("11.00")
    assert split.referral_earnings == Decimal("2.75")


@pytest.mark.parametrize("total,rate", [
    ("0.01", "0.50"),
    ("33.33", "0.5555"),
    ("19.99", "0.3333"),
    ("1234.57", "1"),
    ("10.00", "0"),
])
def test_split_conserves_total(total, rate):
    split = calculate_split(Decimal(total), Decimal(rate))
    assert split.platform_share + split.brand_earnings == Decimal(total)
    assert split.platform_share >= 0
    assert split.brand_earnings >= 0


def test_split_rounds_half_up():
    split = calculate_split(Decimal("0.05"), Decimal("0.50"))
    assert split.brand_earnings == Decimal("0.03")
    assert split.platform_share == Decimal("0.02")


@pytest.mark.parametrize("total", ["0", "-5.00"])
def test_split_rejects_non_positive_total(total):
    with pytest.raises(ValidationError):
        calculate_split(Decimal(total), Decimal("0.50"))


def test_split_rejects_rate_out_of_range():
    with pytest.raises(ValidationError):
        calculate_split(Decimal("10"), Decimal("1.2"))


def test_carve_outs_capped_at_brand_earnings():
    split = calculate_split(Decimal("100"), Decimal("0.50"), affiliate_rate=Decimal("0.98"), has_referrer=True)
    assert split.affiliate_due == Decimal("49.00")
    assert split.referral_earnings == Decimal("1.00")
    assert split.affiliate_due + split.referral_earnings <= split.brand_earnings


def test_carve_out_cap_can_be_disabled():
    split = calculate_split(
        Decimal("100"), Decimal("0.50"),
        affiliate_rate=Decimal("1"), has_referrer=True, cap_carve_outs=False,
    )
    assert split.affiliate_due + split.referral_earnings == Decimal("52.50")


# ==================== Service ====================

async def test_resolve_rate_uses_brand_prior_sales(db):
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "tiered")
    await make_tiered_commission(db, brand.id, [("Base", "0", "0.50"), ("Silver", "10000", "0.55")])

    brand.total_sales = Decimal("12000")
    await db.commit()

    preview = await CommissionService(db).preview_rate(brand.id)
    assert preview["brand_rate"] == Decimal("0.55")
    assert preview["tier_name"] == "Silver"


async def test_resolve_rate_falls_back_to_genre(db):
    admin = await make_user(db, "admin@example.com", role="PLATFORM_ADMIN")
    owner = await make_user(db, "owner@example.com")
    genre_id = uuid.uuid4()
    brand = await make_brand(db, owner, "genre-brand", genre_id=genre_id)

    service = CommissionService(db)
    await service.set_genre_commission(genre_id, Decimal("0.65"), admin)

    decision = await service.resolve_rate(brand)
    assert decision.rate == Decimal("0.65")
    assert decision.source == "GENRE"


async def test_default_rate_without_schedule(db):
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "plain")

    decision = await CommissionService(db).resolve_rate(brand)
    assert decision.rate == settings.DEFAULT_BRAND_RATE
    assert decision.source == "DEFAULT"


async def test_only_admins_change_commissions(db):
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "mine")

    with pytest.raises(Forbidden):
        await CommissionService(db).upsert_brand_commission(
            brand.id, BrandCommissionUpdate(base_rate=Decimal("0.90")), owner
        )


async def test_upsert_validates_bounds(db):
    admin = await make_user(db, "admin@example.com", role="SUPER_ADMIN")
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "bounded")
    service = CommissionService(db)

    commission = await service.upsert_brand_commission(
        brand.id, BrandCommissionUpdate(base_rate=Decimal("0.60"), min_rate=Decimal("0.40")), admin
    )
    assert commission.base_rate == Decimal("0.60")
    assert commission.min_rate == Decimal("0.40")

    with pytest.raises(ValidationError):
        await service.upsert_brand_commission(
            brand.id, BrandCommissionUpdate(max_rate=Decimal("0.30")), admin
        )


async def test_replace_tiers(db):
    admin = await make_user(db, "admin@example.com", role="PLATFORM_ADMIN")
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "tiers")
    await make_tiered_commission(db, brand.id, [("Old", "0", "0.50"), ("Older", "500", "0.52")])

    commission = await CommissionService(db).replace_tiers(
        brand.id,
        [
            CommissionTierIn(name="Gold", min_sales=Decimal("50000"), rate=Decimal("0.60")),
            CommissionTierIn(name="Starter", min_sales=Decimal("0"), rate=Decimal("0.50")),
        ],
        admin,
    )
    assert [t.name for t in commission.tiers] == ["Starter", "Gold"]


async def test_replace_tiers_rejects_duplicate_thresholds(db):
    admin = await make_user(db, "admin@example.com", role="PLATFORM_ADMIN")
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "dupes")
    await make_tiered_commission(db, brand.id, [("Base", "0", "0.50")])

    with pytest.raises(ValidationError):
        await CommissionService(db).replace_tiers(
            brand.id,
            [
                CommissionTierIn(name="A", min_sales=Decimal("100"), rate=Decimal("0.5")),
                CommissionTierIn(name="B", min_sales=Decimal("100"), rate=Decimal("0.6")),
            ],
            admin,
        )


async def test_replace_tiers_requires_schedule(db):
    admin = await make_user(db, "admin@example.com", role="PLATFORM_ADMIN")
    owner = await make_user(db, "owner@example.com")
    brand = await make_brand(db, owner, "unset")

    with pytest.raises(NotFound):
        await CommissionService(db).replace_tiers(brand.id, [], admin)
