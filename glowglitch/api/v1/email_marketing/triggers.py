# glowglitch/api/v1/email_marketing/triggers.py
from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.admin import require_admin
from glowglitch.core.errors import APIError, NotFoundError
from glowglitch.core.pagination import PageParams, page_params
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.marketing import EmailTemplate, EmailTrigger
from glowglitch.models.user import User
from glowglitch.schemas.marketing import (
    TriggerCreate,
    TriggerOut,
    TriggerProcessRequest,
    TriggerStatus,
    TriggerType,
    TriggerUpdate,
)
from glowglitch.services import segmentation
from glowglitch.services.email_analytics import overall_stats, period_range, trigger_row, trigger_summary
from glowglitch.services.triggers import effective_delay, process_triggers

router = APIRouter(prefix="/admin/email-marketing/triggers", tags=["email-triggers"])


async def _get_trigger_or_404(db: AsyncSession, trigger_id: uuid.UUID) -> EmailTrigger:
    trigger = await db.get(EmailTrigger, trigger_id)
    if trigger is None:
        raise NotFoundError("TRIGGER_NOT_FOUND", "Trigger not found")
    return trigger


async def _check_references(db: AsyncSession, template_id, segment_ids) -> None:
    if template_id is not None and await db.get(EmailTemplate, template_id) is None:
        raise APIError("INVALID_INPUT", "Template not found", details={"templateId": str(template_id)})
    if segment_ids:
        unknown = await segmentation.unknown_segment_ids(db, segment_ids)
        if unknown:
            raise APIError("INVALID_INPUT", "Some segments do not exist", details={"segmentIds": unknown})


def _out(trigger: EmailTrigger) -> dict:
    return {
        **TriggerOut.model_validate(trigger).model_dump(mode="json", by_alias=True),
        "effectiveDelayMinutes": effective_delay(trigger),
    }


@router.get("")
async def list_triggers(
    status_filter: Optional[TriggerStatus] = Query(None, alias="status"),
    trigger_type: Optional[TriggerType] = Query(None, alias="type"),
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    filters = []
    if status_filter is not None:
        filters.append(EmailTrigger.status == status_filter)
    if trigger_type is not None:
        filters.append(EmailTrigger.trigger_type == trigger_type)

    total = (await db.execute(select(func.count()).select_from(EmailTrigger).where(*filters))).scalar_one()
    triggers = (
        await db.execute(
            select(EmailTrigger)
            .where(*filters)
            .order_by(EmailTrigger.created_at.desc(), EmailTrigger.id)
            .offset(paging.offset)
            .limit(paging.limit)
        )
    ).scalars().all()

    return ok(
        {
            "triggers": [_out(t) for t in triggers],
            "summary": await trigger_summary(db),
            "pagination": paging.describe(total),
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_trigger(
    payload: TriggerCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    await _check_references(db, payload.template_id, payload.segment_ids)

    trigger = EmailTrigger(
        name=payload.name.strip(),
        description=payload.description,
        trigger_type=payload.type,
        event=payload.event,
        status=payload.status,
        delay_minutes=payload.delay_minutes,
        template_id=payload.template_id,
        subject=payload.subject,
        segment_ids=[str(s) for s in dict.fromkeys(payload.segment_ids)],
        max_frequency=payload.max_frequency.model_dump() if payload.max_frequency else None,
        created_by=str(admin.id),
    )
    db.add(trigger)
    if trigger.template_id is not None:
        template = await db.get(EmailTemplate, trigger.template_id)
        template.usage_triggers = (template.usage_triggers or 0) + 1
    await db.commit()
    return ok({"trigger": _out(trigger), "message": "Trigger created successfully"})


@router.post("/process")
async def process(
    payload: Optional[TriggerProcessRequest] = None,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Run every active trigger once over its pending events."""
    payload = payload or TriggerProcessRequest()
    result = await process_triggers(
        db,
        trigger_type=payload.trigger_type,
        max_processing=payload.max_processing,
        dry_run=payload.dry_run,
    )
    await db.commit()
    return ok(result)


@router.get("/{trigger_id}")
async def get_trigger(
    trigger_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    trigger = await _get_trigger_or_404(db, trigger_id)
    return ok({"trigger": _out(trigger)})


@router.get("/{trigger_id}/analytics")
async def trigger_analytics(
    trigger_id: uuid.UUID,
    period: Literal["7d", "30d", "90d", "1y"] = "30d",
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    trigger = await _get_trigger_or_404(db, trigger_id)
    period, start, end = period_range(period)
    return ok(
        {
            "trigger": trigger_row(trigger),
            "overview": await overall_stats(db, start, end, trigger_id=trigger.id),
            "period": period,
        }
    )


@router.put("/{trigger_id}")
async def update_trigger(
    trigger_id: uuid.UUID,
    payload: TriggerUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    trigger = await _get_trigger_or_404(db, trigger_id)
    changes = payload.model_dump(exclude_unset=True)
    await _check_references(db, changes.get("template_id"), changes.get("segment_ids"))

    if changes.get("name"):
        trigger.name = changes["name"].strip()
    if changes.get("type"):
        trigger.trigger_type = changes["type"]
    for field in ("description", "event", "status", "subject"):
        if changes.get(field) is not None:
            setattr(trigger, field, changes[field])
    # explicit null restores the per-event default delay
    if "delay_minutes" in changes:
        trigger.delay_minutes = changes["delay_minutes"]
    if "template_id" in changes:
        trigger.template_id = changes["template_id"]
    if changes.get("segment_ids") is not None:
        trigger.segment_ids = [str(s) for s in dict.fromkeys(changes["segment_ids"])]
    if "max_frequency" in changes:
        trigger.max_frequency = changes["max_frequency"]

    await db.commit()
    return ok({"trigger": _out(trigger), "message": "Trigger updated successfully"})


@router.delete("/{trigger_id}")
async def delete_trigger(
    trigger_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    trigger = await _get_trigger_or_404(db, trigger_id)
    await db.delete(trigger)
    await db.commit()
    return ok({"message": "Trigger deleted successfully", "deletedId": str(trigger_id)})


@router.post("/{trigger_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_trigger(
    trigger_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    source = await _get_trigger_or_404(db, trigger_id)
    copy = EmailTrigger(
        name=f"{source.name} (Copy)",
        description=source.description,
        trigger_type=source.trigger_type,
        event=source.event,
        status="draft",
        delay_minutes=source.delay_minutes,
        template_id=source.template_id,
        subject=source.subject,
        segment_ids=list(source.segment_ids or []),
        max_frequency=dict(source.max_frequency) if source.max_frequency else None,
        created_by=str(admin.id),
    )
    db.add(copy)
    await db.commit()
    return ok({"trigger": _out(copy), "message": "Trigger duplicated successfully"})
