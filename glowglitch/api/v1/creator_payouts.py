# glowglitch/api/v1/creator_payouts.py
from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.creators import require_approved_creator, require_creator
from glowglitch.core.errors import NotFoundError
from glowglitch.core.pagination import PageParams, page_params
from glowglitch.core.payouts import cancel_payout, check_payout_eligibility, process_payout_request, raise_for_failed_payout
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.commission import CreatorPayout
from glowglitch.models.creator import Creator
from glowglitch.schemas.payouts import PayoutActionRequest, PayoutOut, PayoutRequest

router = APIRouter(prefix="/creators/payouts", tags=["creator-payouts"])

PayoutStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]


@router.get("")
async def payouts_overview(
    status_filter: Optional[PayoutStatus] = Query(None, alias="status"),
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
    creator: Creator = Depends(require_creator),
):
    filters = [CreatorPayout.creator_id == creator.id]
    if status_filter is not None:
        filters.append(CreatorPayout.status == status_filter)

    total = (await db.execute(select(func.count()).select_from(CreatorPayout).where(*filters))).scalar_one()
    payouts = (
        await db.execute(
            select(CreatorPayout)
            .where(*filters)
            .order_by(CreatorPayout.created_at.desc())
            .offset(paging.offset)
            .limit(paging.limit)
        )
    ).scalars().all()

    eligibility = await check_payout_eligibility(db, creator)
    return ok(
        {
            "eligibility": eligibility.as_dict(),
            "payouts": [PayoutOut.model_validate(p) for p in payouts],
            "pagination": paging.describe(total),
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def request_payout(
    payload: PayoutRequest,
    db: AsyncSession = Depends(get_db),
    creator: Creator = Depends(require_approved_creator),
):
    payout = await process_payout_request(
        db,
        creator,
        amount=payload.amount,
        transaction_ids=payload.transaction_ids,
        payment_method=payload.payment_method,
        payment_details=payload.encoded_payment_details(),
    )
    # A failed payout is still committed so the attempt is on record.
    await db.commit()
    raise_for_failed_payout(payout)
    return ok({"payout": PayoutOut.model_validate(payout), "message": "Payout processed"})


@router.put("/{payout_id}")
async def update_payout(
    payout_id: uuid.UUID,
    payload: PayoutActionRequest,
    db: AsyncSession = Depends(get_db),
    creator: Creator = Depends(require_creator),
):
    payout = (
        await db.execute(
            select(CreatorPayout).where(CreatorPayout.id == payout_id, CreatorPayout.creator_id == creator.id)
        )
    ).scalar_one_or_none()
    if payout is None:
        raise NotFoundError("PAYOUT_NOT_FOUND", "Payout not found")

    await cancel_payout(db, payout)
    await db.commit()
    return ok({"payout": PayoutOut.model_validate(payout), "message": "Payout cancelled"})
