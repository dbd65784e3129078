# glowglitch/crud/creators.py
from __future__ import annotations

import secrets
import string
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.core.clock import utcnow
from glowglitch.core.errors import APIError, NotFoundError
from glowglitch.models.commission import CommissionTransaction
from glowglitch.models.creator import Creator
from glowglitch.models.referral import ReferralLink

CREATOR_CODE_ALPHABET = string.ascii_uppercase + string.digits
CREATOR_CODE_LENGTH = 8
MAX_CODE_RETRIES = 10

# (name, min 30-day sales, exclusive max)
CREATOR_TIERS = (
    ("bronze", Decimal("0"), Decimal("1000")),
    ("silver", Decimal("1000"), Decimal("5000")),
    ("gold", Decimal("5000"), Decimal("10000")),
    ("platinum", Decimal("10000"), None),
)


def tier_for_sales(sales: Decimal) -> str:
    sales = Decimal(sales or 0)
    for name, low, high in CREATOR_TIERS:
        if sales >= low and (high is None or sales < high):
            return name
    return "bronze"


def _gen_creator_code() -> str:
    return "".join(secrets.choice(CREATOR_CODE_ALPHABET) for _ in range(CREATOR_CODE_LENGTH))


async def allocate_unique_creator_code(db: AsyncSession) -> str:
    """
    Collision-safe allocator.
    Pre-checks to reduce collisions; the unique constraint still guards commit time.
    """
    for _ in range(MAX_CODE_RETRIES):
        code = _gen_creator_code()
        exists = (await db.execute(select(Creator.id).where(Creator.creator_code == code))).first()
        if exists:
            continue
        return code
    raise APIError("CODE_ALLOCATION_FAILED", "Could not allocate unique creator code", 500)


async def get_creator_by_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[Creator]:
    return (await db.execute(select(Creator).where(Creator.user_id == user_id))).scalar_one_or_none()


async def get_creator_or_404(db: AsyncSession, creator_id: uuid.UUID) -> Creator:
    creator = await db.get(Creator, creator_id)
    if creator is None:
        raise NotFoundError("CREATOR_NOT_FOUND", "Creator not found")
    return creator


async def sales_last_30_days(db: AsyncSession) -> dict[uuid.UUID, Decimal]:
    """creator_id -> approved/paid order volume over the last 30 days."""
    since = utcnow() - timedelta(days=30)
    rows = (
        await db.execute(
            select(CommissionTransaction.creator_id, func.sum(CommissionTransaction.order_amount))
            .where(
                CommissionTransaction.created_at >= since,
                CommissionTransaction.status.in_(("approved", "paid")),
            )
            .group_by(CommissionTransaction.creator_id)
        )
    ).all()
    return {creator_id: Decimal(total or 0) for creator_id, total in rows}


async def set_links_active(db: AsyncSession, creator_ids: Iterable[uuid.UUID], active: bool) -> None:
    ids = list(creator_ids)
    if not ids:
        return
    await db.execute(
        update(ReferralLink)
        .where(ReferralLink.creator_id.in_(ids))
        .values(is_active=active, updated_at=utcnow())
    )
