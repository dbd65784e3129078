# glowglitch/api/v1/creators.py
from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.creators import require_creator
from glowglitch.api.v1.auth import get_current_user
from glowglitch.core.clock import utcnow
from glowglitch.core.commission import to_cents
from glowglitch.core.errors import APIError, ConflictError
from glowglitch.core.responses import ok
from glowglitch.crud.creators import allocate_unique_creator_code, get_creator_by_user
from glowglitch.db.session import get_db
from glowglitch.models.commission import CommissionTransaction
from glowglitch.models.creator import Creator
from glowglitch.models.referral import ReferralClick, ReferralLink
from glowglitch.models.user import ROLE_CREATOR, ROLE_CUSTOMER, User
from glowglitch.schemas.creators import CreatorApply, CreatorOut
from glowglitch.schemas.referrals import LinkOut
from glowglitch.services.referrals import daily_series

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/creators", tags=["creators"])

MAX_CREATE_RETRIES = 3


@router.post("/apply", status_code=status.HTTP_201_CREATED)
async def apply(
    payload: CreatorApply,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if await get_creator_by_user(db, user.id) is not None:
        raise ConflictError("CREATOR_EXISTS", "You already have a creator profile")

    # The unique index on creator_code is the final guard; retry on a lost race.
    for _ in range(MAX_CREATE_RETRIES):
        creator = Creator(
            user_id=user.id,
            creator_code=await allocate_unique_creator_code(db),
            display_name=payload.display_name,
            email=user.email,
            bio=payload.bio,
            profile_image=payload.profile_image,
            social_links=payload.social_links,
            payment_method=payload.payment_method,
            payment_details=payload.encoded_payment_details(),
            status="pending",
        )
        db.add(creator)
        if user.role == ROLE_CUSTOMER:
            user.role = ROLE_CREATOR
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            if await get_creator_by_user(db, user.id) is not None:
                raise ConflictError("CREATOR_EXISTS", "You already have a creator profile")
            continue
        logger.info("Creator application %s received from user %s", creator.creator_code, user.id)
        return ok({"creator": CreatorOut.model_validate(creator), "message": "Application submitted for review"})

    raise APIError("CODE_ALLOCATION_FAILED", "Could not allocate unique creator code", 500)


@router.get("/me")
async def my_profile(creator: Creator = Depends(require_creator)):
    return ok({"creator": CreatorOut.model_validate(creator)})


@router.get("/conversions")
async def conversion_stats(
    period: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    creator: Creator = Depends(require_creator),
):
    """Click, conversion and commission stats for the last `period` days."""
    now = utcnow()
    since = now - timedelta(days=period)

    clicks = (
        await db.execute(
            select(ReferralClick.clicked_at, ReferralClick.converted).where(
                ReferralClick.creator_id == creator.id,
                ReferralClick.clicked_at >= since,
            )
        )
    ).all()

    transactions = (
        await db.execute(
            select(CommissionTransaction).where(
                CommissionTransaction.creator_id == creator.id,
                CommissionTransaction.created_at >= since,
            )
        )
    ).scalars().all()

    click_days: Counter = Counter()
    conversion_days: Counter = Counter()
    for clicked_at, converted in clicks:
        day = clicked_at.date().isoformat()
        click_days[day] += 1
        if converted:
            conversion_days[day] += 1

    commission_days: dict[str, Decimal] = {}
    by_status: dict[str, dict] = {}
    for tx in transactions:
        day = tx.created_at.date().isoformat()
        commission_days[day] = commission_days.get(day, Decimal("0")) + Decimal(tx.commission_amount)
        bucket = by_status.setdefault(tx.status, {"count": 0, "total": Decimal("0")})
        bucket["count"] += 1
        bucket["total"] += Decimal(tx.commission_amount)

    total_clicks = len(clicks)
    total_conversions = sum(conversion_days.values())

    top_links = (
        await db.execute(
            select(ReferralLink)
            .where(ReferralLink.creator_id == creator.id)
            .order_by(ReferralLink.conversion_count.desc(), ReferralLink.click_count.desc())
            .limit(5)
        )
    ).scalars().all()

    active_links = (
        await db.execute(
            select(func.count())
            .select_from(ReferralLink)
            .where(ReferralLink.creator_id == creator.id, ReferralLink.is_active.is_(True))
        )
    ).scalar_one()

    return ok(
        {
            "period": period,
            "totals": {
                "clicks": total_clicks,
                "conversions": total_conversions,
                "conversionRate": round(total_conversions / total_clicks * 100, 2) if total_clicks else 0,
                "activeLinks": int(active_links or 0),
            },
            "commissions": {
                status_: {"count": v["count"], "total": float(to_cents(v["total"]))}
                for status_, v in by_status.items()
            },
            "daily": [
                {
                    "date": day,
                    "clicks": click_days.get(day, 0),
                    "conversions": conversion_days.get(day, 0),
                    "commission": float(to_cents(commission_days.get(day, Decimal("0")))),
                }
                for day in daily_series(since, period + 1)
            ],
            "topLinks": [LinkOut.model_validate(link) for link in top_links],
        }
    )
