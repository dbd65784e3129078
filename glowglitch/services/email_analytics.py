# glowglitch/services/email_analytics.py
from __future__ import annotations

import uuid
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.core.clock import utcnow
from glowglitch.models.marketing import (
    CustomerSegment,
    EmailCampaign,
    EmailEvent,
    EmailTemplate,
    EmailTrigger,
)

PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
DEFAULT_PERIOD = "30d"

TIME_SERIES_TYPES = ("sent", "opened", "clicked", "bounced")


def _rate(numerator: int | float, denominator: int | float) -> float:
    return round(numerator / denominator * 100, 2) if denominator else 0


def period_range(period: str, now: Optional[datetime] = None) -> tuple[str, datetime, datetime]:
    """Unknown periods fall back to 30 days."""
    if period not in PERIODS:
        period = DEFAULT_PERIOD
    end = now or utcnow()
    return period, end - timedelta(days=PERIODS[period]), end


def _campaign_row(c: EmailCampaign) -> dict[str, Any]:
    return {
        "id": str(c.id),
        "name": c.name,
        "type": c.campaign_type,
        "status": c.status,
        "subject": c.subject,
        "sentAt": c.sent_at.isoformat() if c.sent_at else None,
        "analytics": {
            "sent": c.sent,
            "delivered": c.delivered,
            "opened": c.opened,
            "clicked": c.clicked,
            "revenue": float(c.revenue or 0),
        },
        "openRate": c.open_rate,
        "clickRate": c.click_rate,
    }


def trigger_row(t: EmailTrigger) -> dict[str, Any]:
    revenue = float(t.revenue or 0)
    return {
        "id": str(t.id),
        "name": t.name,
        "type": t.trigger_type,
        "status": t.status,
        "analytics": {
            "triggered": t.triggered,
            "sent": t.sent,
            "converted": t.converted,
            "revenue": revenue,
            "lastTriggered": t.last_triggered.isoformat() if t.last_triggered else None,
        },
        "conversionRate": _rate(t.converted, t.sent),
        "revenuePerEmail": round(revenue / t.sent, 2) if t.sent else 0,
    }


async def overall_stats(
    db: AsyncSession,
    start: datetime,
    end: datetime,
    campaign_id: Optional[uuid.UUID] = None,
    trigger_id: Optional[uuid.UUID] = None,
) -> dict[str, Any]:
    """
    Event totals for the window. Opens and clicks are counted once per
    recipient; everything else is a raw event count.
    """
    stmt = (
        select(EmailEvent.event_type, func.count(), func.count(distinct(EmailEvent.recipient_email)))
        .where(EmailEvent.occurred_at >= start, EmailEvent.occurred_at <= end)
        .group_by(EmailEvent.event_type)
    )
    if campaign_id is not None:
        stmt = stmt.where(EmailEvent.campaign_id == campaign_id)
    if trigger_id is not None:
        stmt = stmt.where(EmailEvent.trigger_id == trigger_id)

    counts: dict[str, int] = {}
    uniques: dict[str, int] = {}
    for event_type, count, unique in (await db.execute(stmt)).all():
        counts[event_type] = int(count)
        uniques[event_type] = int(unique)

    sent = counts.get("sent", 0)
    delivered = counts.get("delivered", 0)
    opened = uniques.get("opened", 0)
    clicked = uniques.get("clicked", 0)
    bounced = counts.get("bounced", 0)
    unsubscribed = counts.get("unsubscribed", 0)

    return {
        "sent": sent,
        "delivered": delivered,
        "opened": opened,
        "clicked": clicked,
        "bounced": bounced,
        "unsubscribed": unsubscribed,
        "deliveryRate": _rate(delivered, sent),
        "openRate": _rate(opened, delivered),
        "clickRate": _rate(clicked, delivered),
        "clickToOpenRate": _rate(clicked, opened),
        "bounceRate": _rate(bounced, sent),
        "unsubscribeRate": _rate(unsubscribed, delivered),
    }


async def campaign_stats(db: AsyncSession, start: datetime, end: datetime) -> list[dict[str, Any]]:
    rows = (
        await db.execute(
            select(EmailCampaign)
            .where(EmailCampaign.sent_at >= start, EmailCampaign.sent_at <= end)
            .order_by(EmailCampaign.sent.desc())
            .limit(10)
        )
    ).scalars().all()
    return [_campaign_row(c) for c in rows]


async def trigger_stats(db: AsyncSession, start: datetime, end: datetime) -> list[dict[str, Any]]:
    rows = (
        await db.execute(
            select(EmailTrigger)
            .where(EmailTrigger.last_triggered >= start, EmailTrigger.last_triggered <= end)
            .order_by(EmailTrigger.triggered.desc())
            .limit(10)
        )
    ).scalars().all()
    return [trigger_row(t) for t in rows]


async def time_series(db: AsyncSession, start: datetime, end: datetime) -> list[dict[str, Any]]:
    """Daily counts per event type, one entry per calendar day in the window."""
    rows = (
        await db.execute(
            select(EmailEvent.occurred_at, EmailEvent.event_type).where(
                EmailEvent.occurred_at >= start,
                EmailEvent.occurred_at <= end,
                EmailEvent.event_type.in_(TIME_SERIES_TYPES),
            )
        )
    ).all()

    buckets: dict[str, Counter] = defaultdict(Counter)
    for occurred_at, event_type in rows:
        buckets[occurred_at.date().isoformat()][event_type] += 1

    series = []
    day = start.date()
    while day <= end.date():
        key = day.isoformat()
        counts = buckets.get(key, Counter())
        series.append({"date": key, **{t: counts.get(t, 0) for t in TIME_SERIES_TYPES}})
        day += timedelta(days=1)
    return series


async def top_content(db: AsyncSession, start: datetime, end: datetime) -> dict[str, Any]:
    campaigns = (
        await db.execute(
            select(EmailCampaign).where(
                EmailCampaign.sent_at >= start,
                EmailCampaign.sent_at <= end,
                EmailCampaign.sent > 0,
            )
        )
    ).scalars().all()
    scored = sorted(campaigns, key=lambda c: c.opened * 2 + c.clicked * 5, reverse=True)[:5]

    used_templates = (
        await db.execute(
            select(EmailTemplate)
            .where(EmailTemplate.last_used_at >= start, EmailTemplate.last_used_at <= end)
            .order_by((EmailTemplate.usage_campaigns + EmailTemplate.usage_triggers).desc())
            .limit(5)
        )
    ).scalars().all()

    return {
        "campaigns": [{**_campaign_row(c), "engagementScore": c.opened * 2 + c.clicked * 5} for c in scored],
        "templates": [
            {
                "id": str(t.id),
                "name": t.name,
                "category": t.category,
                "usage": {"campaigns": t.usage_campaigns, "triggers": t.usage_triggers},
            }
            for t in used_templates
        ],
    }


async def audience_insights(db: AsyncSession, start: datetime, end: datetime) -> dict[str, Any]:
    segments = (
        await db.execute(
            select(CustomerSegment)
            .where(CustomerSegment.last_calculated >= start, CustomerSegment.last_calculated <= end)
            .order_by(CustomerSegment.customer_count.desc())
            .limit(10)
        )
    ).scalars().all()

    engagement = (
        await db.execute(
            select(EmailEvent.occurred_at).where(
                EmailEvent.occurred_at >= start,
                EmailEvent.occurred_at <= end,
                EmailEvent.event_type.in_(("opened", "clicked")),
            )
        )
    ).scalars().all()
    # isoweekday: Monday=1 .. Sunday=7
    slots = Counter((ts.hour, ts.isoweekday()) for ts in engagement)

    return {
        "topSegments": [
            {
                "id": str(s.id),
                "name": s.name,
                "type": s.segment_type,
                "customerCount": s.customer_count,
                "isActive": s.is_active,
            }
            for s in segments
        ],
        "engagementTimes": [
            {"hour": hour, "dayOfWeek": dow, "count": count} for (hour, dow), count in slots.most_common(5)
        ],
        "insights": {
            "totalSubscribers": sum(s.customer_count for s in segments),
            "activeSegments": sum(1 for s in segments if s.is_active),
        },
    }


def reputation(bounced: int, complained: int) -> dict[str, Any]:
    problems = bounced + complained
    if problems < 5:
        label = "Good"
    elif problems < 15:
        label = "Fair"
    else:
        label = "Poor"
    return {"score": max(0, 100 - (bounced + complained * 2)), "status": label}


async def deliverability(db: AsyncSession, start: datetime, end: datetime) -> dict[str, Any]:
    rows = (
        await db.execute(
            select(EmailEvent.event_type, func.count())
            .where(
                EmailEvent.occurred_at >= start,
                EmailEvent.occurred_at <= end,
                EmailEvent.event_type.in_(("sent", "delivered", "bounced", "complained")),
            )
            .group_by(EmailEvent.event_type)
        )
    ).all()
    counts = {event_type: int(count) for event_type, count in rows}
    sent = counts.get("sent", 0)
    delivered = counts.get("delivered", 0)
    bounced = counts.get("bounced", 0)
    complained = counts.get("complained", 0)

    return {
        "sent": sent,
        "delivered": delivered,
        "bounced": bounced,
        "complained": complained,
        "deliveryRate": _rate(delivered, sent),
        "bounceRate": _rate(bounced, sent),
        "complaintRate": _rate(complained, delivered),
        "reputation": reputation(bounced, complained),
    }


async def email_analytics(
    db: AsyncSession,
    period: str = DEFAULT_PERIOD,
    campaign_id: Optional[uuid.UUID] = None,
    trigger_id: Optional[uuid.UUID] = None,
) -> dict[str, Any]:
    period, start, end = period_range(period)
    return {
        "overview": await overall_stats(db, start, end, campaign_id, trigger_id),
        "campaigns": await campaign_stats(db, start, end),
        "triggers": await trigger_stats(db, start, end),
        "timeSeries": await time_series(db, start, end),
        "topContent": await top_content(db, start, end),
        "audience": await audience_insights(db, start, end),
        "deliverability": await deliverability(db, start, end),
        "period": period,
        "dateRange": {"start": start.isoformat(), "end": end.isoformat()},
    }


# ---------------------------------------------------------
# Dashboard summaries (list pages + overview)
# ---------------------------------------------------------
async def campaign_summary(db: AsyncSession) -> dict[str, Any]:
    rows = (
        await db.execute(
            select(
                EmailCampaign.status,
                func.count(),
                func.coalesce(func.sum(EmailCampaign.sent), 0),
                func.coalesce(func.sum(EmailCampaign.delivered), 0),
                func.coalesce(func.sum(EmailCampaign.opened), 0),
                func.coalesce(func.sum(EmailCampaign.clicked), 0),
                func.coalesce(func.sum(EmailCampaign.revenue), 0),
            ).group_by(EmailCampaign.status)
        )
    ).all()

    by_status = {status: int(count) for status, count, *_ in rows}
    sent = sum(int(r[2]) for r in rows)
    delivered = sum(int(r[3]) for r in rows)
    opened = sum(int(r[4]) for r in rows)
    clicked = sum(int(r[5]) for r in rows)
    revenue = sum((Decimal(r[6] or 0) for r in rows), Decimal("0"))

    return {
        "total": sum(by_status.values()),
        "byStatus": by_status,
        "active": by_status.get("active", 0),
        "scheduled": by_status.get("scheduled", 0),
        "totalSent": sent,
        "totalRevenue": float(revenue),
        "avgOpenRate": _rate(opened, delivered),
        "avgClickRate": _rate(clicked, delivered),
    }


async def segment_summary(db: AsyncSession) -> dict[str, Any]:
    rows = (
        await db.execute(
            select(
                CustomerSegment.segment_type,
                func.count(),
                func.coalesce(func.sum(CustomerSegment.customer_count), 0),
            ).group_by(CustomerSegment.segment_type)
        )
    ).all()
    active = (
        await db.execute(
            select(func.count()).select_from(CustomerSegment).where(CustomerSegment.is_active.is_(True))
        )
    ).scalar_one()
    return {
        "total": sum(int(r[1]) for r in rows),
        "active": int(active or 0),
        "totalCustomers": sum(int(r[2]) for r in rows),
        "byType": {segment_type: int(count) for segment_type, count, _ in rows},
    }


async def trigger_summary(db: AsyncSession) -> dict[str, Any]:
    rows = (
        await db.execute(
            select(
                EmailTrigger.status,
                func.count(),
                func.coalesce(func.sum(EmailTrigger.triggered), 0),
                func.coalesce(func.sum(EmailTrigger.sent), 0),
                func.coalesce(func.sum(EmailTrigger.converted), 0),
                func.coalesce(func.sum(EmailTrigger.revenue), 0),
            ).group_by(EmailTrigger.status)
        )
    ).all()
    sent = sum(int(r[3]) for r in rows)
    converted = sum(int(r[4]) for r in rows)
    return {
        "total": sum(int(r[1]) for r in rows),
        "byStatus": {status: int(count) for status, count, *_ in rows},
        "active": next((int(r[1]) for r in rows if r[0] == "active"), 0),
        "totalTriggered": sum(int(r[2]) for r in rows),
        "totalSent": sent,
        "totalConverted": converted,
        "totalRevenue": float(sum((Decimal(r[5] or 0) for r in rows), Decimal("0"))),
        "conversionRate": _rate(converted, sent),
    }


async def template_summary(db: AsyncSession) -> dict[str, Any]:
    rows = (
        await db.execute(
            select(EmailTemplate.category, func.count()).group_by(EmailTemplate.category)
        )
    ).all()
    active = (
        await db.execute(
            select(func.count()).select_from(EmailTemplate).where(EmailTemplate.is_active.is_(True))
        )
    ).scalar_one()
    return {
        "total": sum(int(c) for _, c in rows),
        "active": int(active or 0),
        "byCategory": {category: int(count) for category, count in rows},
    }


async def dashboard_overview(db: AsyncSession) -> dict[str, Any]:
    """One round trip for the email-marketing landing page."""
    _, start, end = period_range(DEFAULT_PERIOD)
    return {
        "campaigns": await campaign_summary(db),
        "segments": await segment_summary(db),
        "triggers": await trigger_summary(db),
        "templates": await template_summary(db),
        "analytics": await overall_stats(db, start, end),
    }
