# glowglitch/api/v1/email_marketing/analytics.py
from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.admin import require_admin
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.user import User
from glowglitch.services.email_analytics import dashboard_overview, email_analytics

router = APIRouter(prefix="/admin/email-marketing", tags=["email-analytics"])


@router.get("/analytics")
async def analytics(
    period: Literal["7d", "30d", "90d", "1y"] = "30d",
    campaign_id: Optional[uuid.UUID] = Query(None, alias="campaignId"),
    trigger_id: Optional[uuid.UUID] = Query(None, alias="triggerId"),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return ok(await email_analytics(db, period, campaign_id, trigger_id))


@router.get("/overview")
async def overview(db: AsyncSession = Depends(get_db), admin: User = Depends(require_admin)):
    """Campaign, segment, trigger and template panels plus the 30-day overview in one call."""
    return ok(await dashboard_overview(db))
