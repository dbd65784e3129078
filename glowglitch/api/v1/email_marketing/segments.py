# glowglitch/api/v1/email_marketing/segments.py
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.admin import require_admin
from glowglitch.core.errors import APIError, ConflictError, NotFoundError
from glowglitch.core.pagination import PageParams, page_params
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.marketing import CustomerSegment, EmailCampaign
from glowglitch.models.user import User
from glowglitch.schemas.marketing import SegmentCreate, SegmentOut, SegmentType, SegmentUpdate
from glowglitch.services import segmentation
from glowglitch.services.email_analytics import segment_summary

router = APIRouter(prefix="/admin/email-marketing/segments", tags=["email-segments"])

SAMPLE_SIZE = 10


async def _get_segment_or_404(db: AsyncSession, segment_id: uuid.UUID) -> CustomerSegment:
    segment = await db.get(CustomerSegment, segment_id)
    if segment is None:
        raise NotFoundError("SEGMENT_NOT_FOUND", "Segment not found")
    return segment


def _checked_rules(rules) -> list[dict[str, Any]]:
    data = [r.model_dump(exclude_none=True) for r in rules]
    try:
        segmentation.validate_rules(data)
    except segmentation.RuleError as exc:
        raise APIError("INVALID_RULES", str(exc))
    return data


def _sample(user: User) -> dict[str, Any]:
    return {
        "id": str(user.id),
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "totalSpent": float(user.total_spent or 0),
        "orderCount": user.order_count,
        "lastPurchaseAt": user.last_purchase_at,
        "createdAt": user.created_at,
    }


@router.get("")
async def list_segments(
    segment_type: Optional[SegmentType] = Query(None, alias="type"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    filters = []
    if segment_type is not None:
        filters.append(CustomerSegment.segment_type == segment_type)
    if is_active is not None:
        filters.append(CustomerSegment.is_active.is_(is_active))

    total = (await db.execute(select(func.count()).select_from(CustomerSegment).where(*filters))).scalar_one()
    segments = (
        await db.execute(
            select(CustomerSegment)
            .where(*filters)
            .order_by(CustomerSegment.created_at.desc(), CustomerSegment.id)
            .offset(paging.offset)
            .limit(paging.limit)
        )
    ).scalars().all()

    return ok(
        {
            "segments": [SegmentOut.model_validate(s) for s in segments],
            "summary": await segment_summary(db),
            "pagination": paging.describe(total),
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_segment(
    payload: SegmentCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    rules = _checked_rules(payload.rules)
    segment = CustomerSegment(
        name=payload.name.strip(),
        description=payload.description,
        segment_type=payload.type,
        rules=rules,
        conditions=segmentation.conditions_text(rules),
        is_active=payload.is_active,
        created_by=str(admin.id),
    )
    await segmentation.recalculate(db, segment)
    db.add(segment)
    await db.commit()
    return ok({"segment": SegmentOut.model_validate(segment), "message": "Segment created successfully"})


@router.get("/{segment_id}")
async def get_segment(
    segment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    segment = await _get_segment_or_404(db, segment_id)
    members = await segmentation.segment_members(db, segment.rules or [], limit=SAMPLE_SIZE)
    return ok({"segment": SegmentOut.model_validate(segment), "sampleCustomers": [_sample(u) for u in members]})


@router.put("/{segment_id}")
async def update_segment(
    segment_id: uuid.UUID,
    payload: SegmentUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    segment = await _get_segment_or_404(db, segment_id)
    changes = payload.model_dump(exclude_unset=True)

    if changes.get("name"):
        segment.name = changes["name"].strip()
    if changes.get("description") is not None:
        segment.description = changes["description"]
    if changes.get("type"):
        segment.segment_type = changes["type"]
    if changes.get("is_active") is not None:
        segment.is_active = changes["is_active"]
    if payload.rules is not None:
        rules = _checked_rules(payload.rules)
        segment.rules = rules
        segment.conditions = segmentation.conditions_text(rules)
        await segmentation.recalculate(db, segment)

    await db.commit()
    return ok({"segment": SegmentOut.model_validate(segment), "message": "Segment updated successfully"})


@router.delete("/{segment_id}")
async def delete_segment(
    segment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    segment = await _get_segment_or_404(db, segment_id)

    live = (
        await db.execute(select(EmailCampaign.segment_ids).where(EmailCampaign.status.in_(("active", "scheduled"))))
    ).scalars().all()
    if any(str(segment.id) in (ids or []) for ids in live):
        raise ConflictError("SEGMENT_IN_USE", "Cannot delete segment that is being used in active campaigns")

    await db.delete(segment)
    await db.commit()
    return ok({"message": "Segment deleted successfully", "deletedId": str(segment_id)})


@router.post("/{segment_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_segment(
    segment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    source = await _get_segment_or_404(db, segment_id)
    copy = CustomerSegment(
        name=f"{source.name} (Copy)",
        description=source.description,
        segment_type=source.segment_type,
        rules=[dict(r) for r in source.rules or []],
        conditions=source.conditions,
        is_active=False,
        customer_count=source.customer_count,
        last_calculated=source.last_calculated,
        created_by=str(admin.id),
    )
    db.add(copy)
    await db.commit()
    return ok({"segment": SegmentOut.model_validate(copy), "message": "Segment duplicated successfully"})


@router.post("/{segment_id}/refresh")
async def refresh_segment(
    segment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    segment = await _get_segment_or_404(db, segment_id)
    await segmentation.recalculate(db, segment)
    await db.commit()
    return ok({"segment": SegmentOut.model_validate(segment), "message": "Segment refreshed successfully"})
