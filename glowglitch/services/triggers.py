# glowglitch/services/triggers.py
"""
Lifecycle email processing.

Meant to be driven by a scheduler hitting POST .../triggers/process. For
each active trigger the pending source records for its event are looked up
(carts, users, orders), filtered by segment and frequency cap, emailed, and
flagged so the next run does not pick them up again.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.core.clock import utcnow
from glowglitch.models.cart import Cart
from glowglitch.models.marketing import EmailEvent, EmailTemplate, EmailTrigger
from glowglitch.models.order import Order
from glowglitch.models.user import User
from glowglitch.services import segmentation, templates
from glowglitch.services.email import EmailDeliveryError, send_email

logger = logging.getLogger(__name__)

# minutes; used when a trigger does not set its own delay
DEFAULT_DELAYS = {
    "cart_abandoned": 60,
    "user_registered": 0,
    "order_completed": 1440,
    "order_delivered": 10080,
    "user_birthday": 0,
    "last_purchase_30_days": 0,
}

WINBACK_DAYS = 30

FREQUENCY_PERIODS = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


@dataclass
class PendingEvent:
    source_id: uuid.UUID
    user: Optional[User]
    email: str
    first_name: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> Optional[uuid.UUID]:
        return self.user.id if self.user is not None else None


@dataclass
class ProcessingResult:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def merge(self, other: "ProcessingResult") -> None:
        self.processed += other.processed
        self.sent += other.sent
        self.failed += other.failed
        self.skipped += other.skipped
        self.errors.extend(other.errors)


def effective_delay(trigger: EmailTrigger) -> int:
    if trigger.delay_minutes is not None:
        return trigger.delay_minutes
    return DEFAULT_DELAYS.get(trigger.event, 0)


def _opted_in(user: User) -> bool:
    return bool(user.is_active and user.email_verified and user.marketing_opt_in)


async def _abandoned_carts(db: AsyncSession, cutoff: datetime, limit: int) -> list[PendingEvent]:
    rows = (
        await db.execute(
            select(Cart, User)
            .join(User, User.id == Cart.user_id)
            .where(
                Cart.status == "abandoned",
                Cart.updated_at < cutoff,
                Cart.email_sent.is_(False),
                User.email_verified.is_(True),
                User.marketing_opt_in.is_(True),
            )
            .order_by(Cart.updated_at.asc())
            .limit(limit)
        )
    ).all()
    return [
        PendingEvent(
            source_id=cart.id,
            user=user,
            email=user.email,
            first_name=user.first_name,
            context={"cartValue": float(cart.total or 0), "itemCount": len(cart.items or [])},
        )
        for cart, user in rows
    ]


async def _new_users(db: AsyncSession, cutoff: datetime, limit: int) -> list[User]:
    return list(
        (
            await db.execute(
                select(User)
                .where(
                    User.email_verified.is_(True),
                    User.marketing_opt_in.is_(True),
                    User.welcome_email_sent.is_(False),
                    User.created_at < cutoff,
                )
                .order_by(User.created_at.asc())
                .limit(limit)
            )
        ).scalars().all()
    )


async def _orders(db: AsyncSession, where: list, order_by, limit: int) -> list[PendingEvent]:
    rows = (
        await db.execute(
            select(Order, User)
            .outerjoin(User, User.id == Order.user_id)
            .where(*where)
            .order_by(order_by)
            .limit(limit)
        )
    ).all()
    events = []
    for order, user in rows:
        first_name = user.first_name if user is not None else None
        events.append(
            PendingEvent(
                source_id=order.id,
                user=user,
                email=user.email if user is not None else order.email,
                first_name=first_name or (order.shipping_address or {}).get("firstName"),
                context={"orderNumber": order.order_number, "orderTotal": float(order.total or 0)},
            )
        )
    return events


async def _birthdays(db: AsyncSession, today: str, now: datetime, limit: int) -> list[User]:
    return list(
        (
            await db.execute(
                select(User)
                .where(
                    User.birthday.is_not(None),
                    User.email_verified.is_(True),
                    User.marketing_opt_in.is_(True),
                    func.coalesce(User.birthday_email_sent, "") != today,
                    extract("month", User.birthday) == now.month,
                    extract("day", User.birthday) == now.day,
                )
                .limit(limit)
            )
        ).scalars().all()
    )


async def _lapsed_customers(db: AsyncSession, cutoff: datetime, limit: int) -> list[User]:
    return list(
        (
            await db.execute(
                select(User)
                .where(
                    User.email_verified.is_(True),
                    User.marketing_opt_in.is_(True),
                    User.last_purchase_at.is_not(None),
                    User.last_purchase_at < cutoff,
                    User.winback_email_sent.is_(False),
                )
                .order_by(User.last_purchase_at.asc())
                .limit(limit)
            )
        ).scalars().all()
    )


def _user_event(user: User, **context: Any) -> PendingEvent:
    return PendingEvent(source_id=user.id, user=user, email=user.email, first_name=user.first_name, context=context)


async def find_pending_events(db: AsyncSession, trigger: EmailTrigger, limit: int) -> list[PendingEvent]:
    now = utcnow()
    cutoff = now - timedelta(minutes=effective_delay(trigger))
    event = trigger.event

    if event == "cart_abandoned":
        return await _abandoned_carts(db, cutoff, limit)
    if event == "user_registered":
        return [_user_event(u) for u in await _new_users(db, cutoff, limit)]
    if event == "order_completed":
        return await _orders(
            db,
            [Order.payment_status == "completed", Order.updated_at < cutoff, Order.followup_email_sent.is_(False)],
            Order.updated_at.asc(),
            limit,
        )
    if event == "order_delivered":
        return await _orders(
            db,
            [
                Order.status == "delivered",
                Order.delivered_at.is_not(None),
                Order.delivered_at < cutoff,
                Order.review_request_sent.is_(False),
            ],
            Order.delivered_at.asc(),
            limit,
        )
    if event == "user_birthday":
        today = now.date().isoformat()
        return [_user_event(u, birthday=u.birthday.isoformat()) for u in await _birthdays(db, today, now, limit)]
    if event == "last_purchase_30_days":
        lapsed = await _lapsed_customers(db, now - timedelta(days=WINBACK_DAYS), limit)
        return [_user_event(u, totalSpent=float(u.total_spent or 0)) for u in lapsed]

    logger.warning("Unknown trigger event type: %s", event)
    return []


async def matches_targeting(db: AsyncSession, trigger: EmailTrigger, event: PendingEvent) -> bool:
    if not trigger.segment_ids:
        return True
    if event.user is None:
        return False
    return await segmentation.user_in_segments(db, event.user, trigger.segment_ids)


async def exceeds_frequency_limit(db: AsyncSession, trigger: EmailTrigger, event: PendingEvent) -> bool:
    cap = trigger.max_frequency or {}
    window = FREQUENCY_PERIODS.get(cap.get("period"))
    if window is None or not cap.get("count"):
        return False

    recipient = (
        EmailEvent.recipient_id == event.user_id
        if event.user_id is not None
        else EmailEvent.recipient_email == event.email
    )
    recent = (
        await db.execute(
            select(func.count())
            .select_from(EmailEvent)
            .where(
                EmailEvent.trigger_id == trigger.id,
                recipient,
                EmailEvent.event_type == "sent",
                EmailEvent.occurred_at >= utcnow() - window,
            )
        )
    ).scalar_one()
    return recent >= int(cap["count"])


async def _send(db: AsyncSession, trigger: EmailTrigger, template: Optional[EmailTemplate], event: PendingEvent) -> None:
    data = {"firstName": event.first_name or "there", "email": event.email, **event.context}
    if template is not None:
        merged = templates.with_defaults(template.variables or [], {**(template.preview_data or {}), **data})
        html = templates.render(template.html, merged)
        template.last_used_at = utcnow()
    else:
        html = f"<p>Hi {data['firstName']},</p>"
    subject = templates.render(trigger.subject or trigger.name, data, escape=False)

    await send_email(
        db,
        to=event.email,
        subject=subject,
        html=html,
        source="trigger",
        trigger_id=trigger.id,
        recipient_id=event.user_id,
        metadata={"triggerEvent": trigger.event, "sourceId": str(event.source_id)},
    )


async def mark_processed(db: AsyncSession, trigger: EmailTrigger, event: PendingEvent) -> None:
    now = utcnow()
    if trigger.event == "cart_abandoned":
        cart = await db.get(Cart, event.source_id)
        if cart is not None:
            cart.email_sent = True
    elif trigger.event in ("order_completed", "order_delivered"):
        order = await db.get(Order, event.source_id)
        if order is not None:
            if trigger.event == "order_completed":
                order.followup_email_sent = True
            else:
                order.review_request_sent = True
    elif event.user is not None:
        if trigger.event == "user_registered":
            event.user.welcome_email_sent = True
        elif trigger.event == "user_birthday":
            event.user.birthday_email_sent = now.date().isoformat()
        elif trigger.event == "last_purchase_30_days":
            event.user.winback_email_sent = True


async def process_trigger(
    db: AsyncSession,
    trigger: EmailTrigger,
    max_processing: int,
    dry_run: bool,
) -> ProcessingResult:
    result = ProcessingResult()
    template = await db.get(EmailTemplate, trigger.template_id) if trigger.template_id else None

    for event in await find_pending_events(db, trigger, max_processing):
        result.processed += 1

        if not await matches_targeting(db, trigger, event):
            result.skipped += 1
            continue
        if await exceeds_frequency_limit(db, trigger, event):
            result.skipped += 1
            continue

        if dry_run:
            result.sent += 1
            continue

        try:
            await _send(db, trigger, template, event)
        except EmailDeliveryError as exc:
            result.failed += 1
            result.errors.append(f"Failed to send email for event {event.source_id}: {exc}")
            continue

        result.sent += 1
        trigger.triggered = (trigger.triggered or 0) + 1
        trigger.sent = (trigger.sent or 0) + 1
        trigger.last_triggered = utcnow()
        await mark_processed(db, trigger, event)
        await db.flush()

    return result


async def process_triggers(
    db: AsyncSession,
    *,
    trigger_type: Optional[str] = None,
    max_processing: int = 100,
    dry_run: bool = False,
) -> dict[str, Any]:
    stmt = select(EmailTrigger).where(EmailTrigger.status == "active").order_by(EmailTrigger.created_at.asc())
    if trigger_type:
        stmt = stmt.where(EmailTrigger.trigger_type == trigger_type)
    active = list((await db.execute(stmt)).scalars().all())

    totals = ProcessingResult()
    for trigger in active:
        totals.merge(await process_trigger(db, trigger, max_processing, dry_run))

    if totals.errors:
        logger.warning("Trigger run finished with %s error(s)", len(totals.errors))
    logger.info(
        "Processed %s trigger(s): %s event(s), %s sent, %s skipped%s",
        len(active),
        totals.processed,
        totals.sent,
        totals.skipped,
        " (dry run)" if dry_run else "",
    )

    return {
        "summary": {
            "triggersProcessed": len(active),
            "eventsProcessed": totals.processed,
            "emailsSent": totals.sent,
            "failed": totals.failed,
            "skipped": totals.skipped,
        },
        "errors": totals.errors,
        "dryRun": dry_run,
        "processedAt": utcnow().isoformat(),
    }
