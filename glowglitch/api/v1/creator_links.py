# glowglitch/api/v1/creator_links.py
from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.creators import require_approved_creator, require_creator
from glowglitch.core.errors import NotFoundError
from glowglitch.core.pagination import PageParams, page_params
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.creator import Creator
from glowglitch.models.referral import ReferralLink
from glowglitch.schemas.referrals import LinkCreate, LinkOut, LinkUpdate
from glowglitch.services.referrals import create_link

router = APIRouter(prefix="/creators/links", tags=["creator-links"])


async def _own_link(db: AsyncSession, creator: Creator, link_id: uuid.UUID) -> ReferralLink:
    link = (
        await db.execute(
            select(ReferralLink).where(ReferralLink.id == link_id, ReferralLink.creator_id == creator.id)
        )
    ).scalar_one_or_none()
    if link is None:
        raise NotFoundError("LINK_NOT_FOUND", "Referral link not found")
    return link


@router.get("")
async def list_links(
    status_filter: Optional[Literal["active", "inactive"]] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=200),
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
    creator: Creator = Depends(require_creator),
):
    filters = [ReferralLink.creator_id == creator.id]
    if status_filter is not None:
        filters.append(ReferralLink.is_active.is_(status_filter == "active"))
    if search:
        term = f"%{search.strip()}%"
        filters.append(or_(ReferralLink.title.ilike(term), ReferralLink.original_url.ilike(term)))

    total = (await db.execute(select(func.count()).select_from(ReferralLink).where(*filters))).scalar_one()
    links = (
        await db.execute(
            select(ReferralLink)
            .where(*filters)
            .order_by(ReferralLink.created_at.desc())
            .offset(paging.offset)
            .limit(paging.limit)
        )
    ).scalars().all()

    return ok({"links": [LinkOut.model_validate(link) for link in links], "pagination": paging.describe(total)})


@router.post("", status_code=status.HTTP_201_CREATED)
async def create(
    payload: LinkCreate,
    db: AsyncSession = Depends(get_db),
    creator: Creator = Depends(require_approved_creator),
):
    link = await create_link(
        db,
        creator,
        target_url=payload.target_url,
        title=payload.title,
        description=payload.description,
        custom_alias=payload.custom_alias,
        utm=payload.utm.model_dump() if payload.utm else None,
        product_id=payload.product_id,
        expires_at=payload.expires_at,
    )
    await db.commit()
    return ok({"link": LinkOut.model_validate(link)})


@router.put("/{link_id}")
async def update(
    link_id: uuid.UUID,
    payload: LinkUpdate,
    db: AsyncSession = Depends(get_db),
    creator: Creator = Depends(require_creator),
):
    link = await _own_link(db, creator, link_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(link, field, value)
    await db.commit()
    return ok({"link": LinkOut.model_validate(link)})


@router.delete("/{link_id}")
async def delete(
    link_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    creator: Creator = Depends(require_creator),
):
    link = await _own_link(db, creator, link_id)
    await db.delete(link)
    await db.commit()
    return ok({"message": "Referral link deleted"})
