# glowglitch/api/v1/email_marketing/campaigns.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.admin import require_admin
from glowglitch.core.clock import utcnow
from glowglitch.core.errors import APIError, ConflictError, NotFoundError
from glowglitch.core.pagination import PageParams, page_params
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.marketing import EmailCampaign, EmailTemplate
from glowglitch.models.user import User
from glowglitch.schemas.marketing import CampaignCreate, CampaignOut, CampaignStatus, CampaignType, CampaignUpdate
from glowglitch.services import segmentation, templates
from glowglitch.services.email import EmailDeliveryError, send_email
from glowglitch.services.email_analytics import campaign_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/email-marketing/campaigns", tags=["email-campaigns"])

READ_ONLY_STATUSES = ("completed", "cancelled")
DELETABLE_STATUSES = ("draft", "cancelled")


async def _get_campaign_or_404(db: AsyncSession, campaign_id: uuid.UUID) -> EmailCampaign:
    campaign = await db.get(EmailCampaign, campaign_id)
    if campaign is None:
        raise NotFoundError("CAMPAIGN_NOT_FOUND", "Campaign not found")
    return campaign


async def _check_references(
    db: AsyncSession,
    template_id: Optional[uuid.UUID],
    segment_ids: Optional[list[uuid.UUID]],
) -> Optional[EmailTemplate]:
    template = None
    if template_id is not None:
        template = await db.get(EmailTemplate, template_id)
        if template is None:
            raise APIError("INVALID_INPUT", "Template not found", details={"templateId": str(template_id)})
    if segment_ids:
        unknown = await segmentation.unknown_segment_ids(db, segment_ids)
        if unknown:
            raise APIError("INVALID_INPUT", "Some segments do not exist", details={"segmentIds": unknown})
    return template


@router.get("")
async def list_campaigns(
    status_filter: Optional[CampaignStatus] = Query(None, alias="status"),
    campaign_type: Optional[CampaignType] = Query(None, alias="type"),
    search: Optional[str] = Query(None, max_length=200),
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    filters = []
    if status_filter is not None:
        filters.append(EmailCampaign.status == status_filter)
    if campaign_type is not None:
        filters.append(EmailCampaign.campaign_type == campaign_type)
    if search:
        term = f"%{search.strip()}%"
        filters.append(or_(EmailCampaign.name.ilike(term), EmailCampaign.subject.ilike(term)))

    total = (await db.execute(select(func.count()).select_from(EmailCampaign).where(*filters))).scalar_one()
    campaigns = (
        await db.execute(
            select(EmailCampaign)
            .where(*filters)
            .order_by(EmailCampaign.updated_at.desc(), EmailCampaign.id)
            .offset(paging.offset)
            .limit(paging.limit)
        )
    ).scalars().all()

    return ok(
        {
            "campaigns": [CampaignOut.model_validate(c) for c in campaigns],
            "summary": await campaign_summary(db),
            "pagination": paging.describe(total),
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_campaign(
    payload: CampaignCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    template = await _check_references(db, payload.template_id, payload.segment_ids)

    campaign = EmailCampaign(
        name=payload.name.strip(),
        campaign_type=payload.type,
        status="scheduled" if payload.scheduled_at else "draft",
        subject=payload.subject,
        template_id=payload.template_id,
        segment_ids=[str(s) for s in dict.fromkeys(payload.segment_ids)],
        content=payload.content.model_dump(),
        scheduled_at=payload.scheduled_at,
        created_by=str(admin.id),
    )
    db.add(campaign)
    if template is not None:
        template.usage_campaigns = (template.usage_campaigns or 0) + 1
    await db.commit()
    return ok({"campaign": CampaignOut.model_validate(campaign)})


@router.get("/{campaign_id}")
async def get_campaign(
    campaign_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    campaign = await _get_campaign_or_404(db, campaign_id)
    return ok({"campaign": CampaignOut.model_validate(campaign)})


@router.put("/{campaign_id}")
async def update_campaign(
    campaign_id: uuid.UUID,
    payload: CampaignUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    campaign = await _get_campaign_or_404(db, campaign_id)
    if campaign.status in READ_ONLY_STATUSES:
        raise ConflictError("CAMPAIGN_READ_ONLY", f"Cannot modify a {campaign.status} campaign")

    changes = payload.model_dump(exclude_unset=True)
    await _check_references(db, changes.get("template_id"), changes.get("segment_ids"))

    if "segment_ids" in changes:
        changes["segment_ids"] = [str(s) for s in dict.fromkeys(changes["segment_ids"] or [])]
    if "content" in changes:
        changes["content"] = {**(campaign.content or {}), **(changes["content"] or {})}
    for field, value in changes.items():
        setattr(campaign, field, value)

    await db.commit()
    return ok({"campaign": CampaignOut.model_validate(campaign)})


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    campaign = await _get_campaign_or_404(db, campaign_id)
    if campaign.status not in DELETABLE_STATUSES:
        raise ConflictError("CAMPAIGN_NOT_DELETABLE", "Only draft or cancelled campaigns can be deleted")
    await db.delete(campaign)
    await db.commit()
    return ok({"message": "Campaign deleted successfully"})


@router.post("/{campaign_id}/send")
async def send_campaign(
    campaign_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    campaign = await _get_campaign_or_404(db, campaign_id)
    if campaign.status in READ_ONLY_STATUSES:
        raise ConflictError("CAMPAIGN_READ_ONLY", f"Cannot send a {campaign.status} campaign")

    template = await db.get(EmailTemplate, campaign.template_id) if campaign.template_id else None
    body = template.html if template is not None else (campaign.content or {}).get("html", "")
    if not body:
        raise APIError("INVALID_INPUT", "Campaign has no content to send")

    if campaign.segment_ids:
        recipients = list((await segmentation.users_in_segments(db, campaign.segment_ids)).values())
    else:
        recipients = await segmentation.audience(db)

    base_data = dict(template.preview_data or {}) if template is not None else {}
    sent = 0
    failed = 0
    for user in recipients:
        data = {
            **base_data,
            "firstName": user.first_name or "there",
            "lastName": user.last_name or "",
            "email": user.email,
        }
        if template is not None:
            data = templates.with_defaults(template.variables or [], data)
        try:
            await send_email(
                db,
                to=user.email,
                subject=templates.render(campaign.subject, data, escape=False),
                html=templates.render(body, data),
                source="campaign",
                campaign_id=campaign.id,
                recipient_id=user.id,
            )
        except EmailDeliveryError as exc:
            logger.warning("Campaign %s: delivery to %s failed: %s", campaign.id, user.email, exc)
            failed += 1
            continue
        sent += 1

    now = utcnow()
    campaign.sent = (campaign.sent or 0) + sent
    campaign.status = "completed"
    campaign.sent_at = now
    if template is not None:
        template.last_used_at = now

    await db.commit()
    logger.info("Campaign %s sent to %s recipient(s), %s failed", campaign.id, sent, failed)
    return ok(
        {
            "campaign": CampaignOut.model_validate(campaign),
            "recipients": len(recipients),
            "sent": sent,
            "failed": failed,
        }
    )
