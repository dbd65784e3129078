# glowglitch/services/email.py
"""
Outbound email.

Every message that leaves the system is appended to the email_events log
as a `sent` event; analytics and trigger frequency caps are computed from
that log. Delivery itself goes through a transport; the default transport
only logs, which is what runs outside production and in tests.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.models.marketing import EmailEvent
from glowglitch.models.order import Order

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EmailDeliveryError(Exception):
    pass


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    html: str
    text: str = ""


class EmailTransport(Protocol):
    async def deliver(self, message: OutboundEmail) -> None: ...


class LoggingTransport:
    async def deliver(self, message: OutboundEmail) -> None:
        if not _EMAIL_RE.match(message.to or ""):
            raise EmailDeliveryError(f"Invalid recipient address: {message.to!r}")
        logger.info("email -> %s: %s", message.to, message.subject)


transport: EmailTransport = LoggingTransport()


async def send_email(
    db: AsyncSession,
    *,
    to: str,
    subject: str,
    html: str,
    source: str = "transactional",
    campaign_id: Optional[uuid.UUID] = None,
    trigger_id: Optional[uuid.UUID] = None,
    recipient_id: Optional[uuid.UUID] = None,
    metadata: Optional[Mapping[str, Any]] = None,
) -> EmailEvent:
    """Deliver one message and record it. Raises EmailDeliveryError when the transport rejects it."""
    await transport.deliver(OutboundEmail(to=to, subject=subject, html=html))

    event = EmailEvent(
        campaign_id=campaign_id,
        trigger_id=trigger_id,
        recipient_id=recipient_id,
        recipient_email=to,
        event_type="sent",
        source=source,
        subject=subject,
        event_metadata=dict(metadata or {}),
    )
    db.add(event)
    return event


ORDER_NOTIFICATION_SUBJECTS = {
    "status-update": "Your order {order_number} is now {status}",
    "shipping": "Your order {order_number} has shipped",
    "refund": "Refund issued for order {order_number}",
    "cancellation": "Your order {order_number} has been cancelled",
}


async def send_order_notification(
    db: AsyncSession,
    order: Order,
    kind: str,
    context: Optional[Mapping[str, Any]] = None,
) -> bool:
    """
    Customer-facing order email. Returns False (and logs) when delivery
    fails; order administration never fails because of the email.
    """
    ctx = {"order_number": order.order_number, "status": order.status, **(context or {})}
    subject = ORDER_NOTIFICATION_SUBJECTS[kind].format(**ctx)
    lines = "".join(f"<li>{k}: {v}</li>" for k, v in ctx.items() if v is not None)
    html = f"<p>{subject}</p><ul>{lines}</ul>"

    try:
        await send_email(
            db,
            to=order.email,
            subject=subject,
            html=html,
            source="transactional",
            recipient_id=order.user_id,
            metadata={"orderId": str(order.id), "kind": kind},
        )
    except EmailDeliveryError:
        logger.exception("Failed to send %s email for order %s", kind, order.order_number)
        return False
    return True


LOGIN_CODE_SUBJECT = "Your GlowGlitch sign-in code"


async def send_login_code(
    db: AsyncSession,
    *,
    to: str,
    code: str,
    expires_in_minutes: int,
    recipient_id: Optional[uuid.UUID] = None,
) -> EmailEvent:
    """Magic-code email. The code goes into the body only, never into the event log."""
    html = (
        f"<p>Your sign-in code is <strong>{code}</strong>.</p>"
        f"<p>It expires in {expires_in_minutes} minutes. If you did not ask for it, ignore this email.</p>"
    )
    return await send_email(
        db,
        to=to,
        subject=LOGIN_CODE_SUBJECT,
        html=html,
        source="transactional",
        recipient_id=recipient_id,
        metadata={"kind": "login-code"},
    )
