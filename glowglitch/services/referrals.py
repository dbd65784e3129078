# glowglitch/services/referrals.py
from __future__ import annotations

import ipaddress
import logging
import re
import secrets
import string
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.core.clock import utcnow
from glowglitch.core.commission import calculate_commission, create_sale_transaction, monthly_sales_for
from glowglitch.core.config import settings
from glowglitch.core.errors import APIError, ConflictError, NotFoundError
from glowglitch.models.commission import CommissionTransaction
from glowglitch.models.creator import Creator
from glowglitch.models.order import Order
from glowglitch.models.referral import ReferralClick, ReferralLink

logger = logging.getLogger(__name__)

LINK_CODE_ALPHABET = string.ascii_letters + string.digits
LINK_CODE_LENGTH = 12
MAX_CODE_RETRIES = 10

CUSTOM_ALIAS_RE = re.compile(r"^[a-zA-Z0-9_-]{3,50}$")
UTM_KEYS = ("source", "medium", "campaign", "term", "content")

_TABLET_RE = re.compile(r"ipad|tablet|kindle|silk|playbook", re.IGNORECASE)
_MOBILE_RE = re.compile(r"mobile|iphone|ipod|android|blackberry|opera mini|iemobile", re.IGNORECASE)


def _gen_link_code() -> str:
    return "".join(secrets.choice(LINK_CODE_ALPHABET) for _ in range(LINK_CODE_LENGTH))


async def allocate_unique_link_code(db: AsyncSession) -> str:
    for _ in range(MAX_CODE_RETRIES):
        code = _gen_link_code()
        exists = (await db.execute(select(ReferralLink.id).where(ReferralLink.link_code == code))).first()
        if not exists:
            return code
    raise APIError("CODE_ALLOCATION_FAILED", "Could not allocate unique link code", status.HTTP_500_INTERNAL_SERVER_ERROR)


def detect_device(user_agent: str) -> str:
    ua = user_agent or ""
    if _TABLET_RE.search(ua) or ("android" in ua.lower() and "mobile" not in ua.lower()):
        return "tablet"
    if _MOBILE_RE.search(ua):
        return "mobile"
    return "desktop"


def mask_ip(ip: str) -> str:
    """Hide the last IPv4 octet or the last IPv6 hextet."""
    raw = (ip or "").strip()
    try:
        addr = ipaddress.ip_address(raw)
    except ValueError:
        return re.sub(r"\.\d+$", ".***", raw)
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is None:
        return addr.compressed.rsplit(":", 1)[0] + ":***"
    v4 = addr.ipv4_mapped if isinstance(addr, ipaddress.IPv6Address) else addr
    return str(v4).rsplit(".", 1)[0] + ".***"


def truncate_user_agent(user_agent: str, limit: int = 50) -> str:
    ua = user_agent or ""
    return ua[:limit] + "..." if len(ua) > limit else ua


def build_target_url(target: str, creator_code: str, utm: Optional[Mapping[str, Optional[str]]] = None) -> str:
    """
    Absolute storefront URL with the creator's ref code and any UTM params merged
    into the existing query string.
    """
    target = (target or "").strip()
    if not target:
        raise APIError("INVALID_INPUT", "Target URL is required")
    if target.startswith("/"):
        target = f"{settings.PUBLIC_BASE_URL}{target}"

    parts = urlsplit(target)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise APIError("INVALID_INPUT", "Target URL must be an absolute http(s) URL or a site path")

    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key in UTM_KEYS:
        value = (utm or {}).get(key)
        if value:
            params[f"utm_{key}"] = value
    params["ref"] = creator_code

    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment))


async def create_link(
    db: AsyncSession,
    creator: Creator,
    *,
    target_url: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    custom_alias: Optional[str] = None,
    utm: Optional[Mapping[str, Optional[str]]] = None,
    product_id: Optional[uuid.UUID] = None,
    expires_at: Optional[datetime] = None,
) -> ReferralLink:
    if creator.status != "approved":
        raise APIError("CREATOR_NOT_APPROVED", "Only approved creators can create referral links", status.HTTP_403_FORBIDDEN)

    if custom_alias:
        if not CUSTOM_ALIAS_RE.match(custom_alias):
            raise APIError(
                "INVALID_INPUT",
                "Custom alias must be 3-50 characters: letters, numbers, hyphens and underscores",
            )
        taken = (
            await db.execute(
                select(ReferralLink.id).where(
                    or_(ReferralLink.custom_alias == custom_alias, ReferralLink.link_code == custom_alias)
                )
            )
        ).first()
        if taken:
            raise ConflictError("ALIAS_TAKEN", "Custom alias is already in use")

    original_url = build_target_url(target_url, creator.creator_code, utm)
    link_code = await allocate_unique_link_code(db)
    utm_clean = {k: v for k, v in (utm or {}).items() if k in UTM_KEYS and v}

    link = ReferralLink(
        creator_id=creator.id,
        product_id=product_id,
        link_code=link_code,
        custom_alias=custom_alias or None,
        original_url=original_url,
        short_url=f"{settings.SHORT_LINK_BASE_URL}/{custom_alias or link_code}",
        title=title,
        description=description,
        utm=utm_clean,
        is_active=True,
        expires_at=expires_at,
    )
    db.add(link)
    await db.flush()
    return link


async def resolve_link(db: AsyncSession, code: str) -> ReferralLink:
    """Active, unexpired link by alias or code."""
    link = (
        await db.execute(
            select(ReferralLink).where(or_(ReferralLink.custom_alias == code, ReferralLink.link_code == code))
        )
    ).scalars().first()
    if link is None or not link.is_active:
        raise NotFoundError("LINK_NOT_FOUND", "Referral link not found")
    if link.expires_at is not None and link.expires_at <= utcnow():
        raise NotFoundError("LINK_NOT_FOUND", "Referral link has expired")
    return link


async def record_click(
    db: AsyncSession,
    link: ReferralLink,
    *,
    ip_address: str,
    user_agent: str,
    session_id: Optional[str] = None,
    referrer: Optional[str] = None,
    utm: Optional[Mapping[str, Optional[str]]] = None,
) -> ReferralClick:
    """
    Log a click and bump the link counters.

    A click is unique when neither its session id nor its IP address has
    clicked this link before.
    """
    identity = [ReferralClick.ip_address == ip_address]
    if session_id:
        identity.append(ReferralClick.session_id == session_id)
    seen = (
        await db.execute(
            select(func.count()).select_from(ReferralClick).where(ReferralClick.link_id == link.id, or_(*identity))
        )
    ).scalar_one()

    utm = {**(link.utm or {}), **{k: v for k, v in (utm or {}).items() if v}}
    click = ReferralClick(
        link_id=link.id,
        creator_id=link.creator_id,
        ip_address=ip_address or "",
        user_agent=user_agent or "",
        session_id=session_id,
        referrer=referrer,
        device_type=detect_device(user_agent),
        utm_source=utm.get("source"),
        utm_medium=utm.get("medium"),
        utm_campaign=utm.get("campaign"),
        utm_term=utm.get("term"),
        utm_content=utm.get("content"),
        clicked_at=utcnow(),
    )
    db.add(click)

    link.click_count = (link.click_count or 0) + 1
    if not seen:
        link.unique_click_count = (link.unique_click_count or 0) + 1
    link.last_clicked_at = click.clicked_at

    creator = await db.get(Creator, link.creator_id)
    if creator is not None:
        creator.total_clicks = (creator.total_clicks or 0) + 1

    await db.flush()
    return click


async def record_conversion(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    click_id: Optional[uuid.UUID] = None,
    link_code: Optional[str] = None,
    custom_rate: Optional[Decimal] = None,
) -> dict[str, Any]:
    """
    Attribute a placed order to a referral click and book the commission.

    Idempotent per order: a second call returns the existing transaction.
    """
    order = await db.get(Order, order_id)
    if order is None:
        raise NotFoundError("ORDER_NOT_FOUND", "Order not found")

    existing = (
        await db.execute(
            select(CommissionTransaction).where(
                CommissionTransaction.order_id == order.id,
                CommissionTransaction.transaction_type == "sale",
            )
        )
    ).scalar_one_or_none()
    if existing is not None:
        return {"transaction": existing, "created": False, "calculation": None}

    click: Optional[ReferralClick] = None
    link: Optional[ReferralLink] = None
    if click_id is not None:
        click = await db.get(ReferralClick, click_id)
        if click is None:
            raise NotFoundError("CLICK_NOT_FOUND", "Referral click not found")
        link = await db.get(ReferralLink, click.link_id)
    elif link_code:
        link = (
            await db.execute(
                select(ReferralLink).where(or_(ReferralLink.custom_alias == link_code, ReferralLink.link_code == link_code))
            )
        ).scalars().first()
        if link is None:
            raise NotFoundError("LINK_NOT_FOUND", "Referral link not found")
        # most recent unconverted click on this link
        click = (
            await db.execute(
                select(ReferralClick)
                .where(ReferralClick.link_id == link.id, ReferralClick.converted.is_(False))
                .order_by(ReferralClick.clicked_at.desc())
                .limit(1)
            )
        ).scalars().first()
    else:
        raise APIError("INVALID_INPUT", "clickId or linkCode is required")

    if link is None:
        raise NotFoundError("LINK_NOT_FOUND", "Referral link not found")

    creator = await db.get(Creator, link.creator_id)
    if creator is None:
        raise NotFoundError("CREATOR_NOT_FOUND", "Creator not found")

    order_amount = Decimal(order.total or 0)
    monthly = await monthly_sales_for(db, creator.id)
    calculation = calculate_commission(creator, order_amount, monthly, custom_rate)
    if not calculation.is_eligible:
        logger.info("Order %s not eligible for commission: %s", order.order_number, calculation.reason)
        return {"transaction": None, "created": False, "calculation": calculation}

    tx, created = await create_sale_transaction(
        db,
        creator=creator,
        order_id=order.id,
        calculation=calculation,
        order_amount=order_amount,
        link_id=link.id,
        click_id=click.id if click is not None else None,
    )

    if created:
        if click is not None:
            click.converted = True
            click.order_id = order.id
            click.conversion_value = order_amount
        link.conversion_count = (link.conversion_count or 0) + 1
        await db.flush()
        logger.info(
            "Attributed order %s to creator %s (%s%% -> %s)",
            order.order_number,
            creator.creator_code,
            calculation.rate,
            calculation.amount,
        )

    return {"transaction": tx, "created": created, "calculation": calculation}


def daily_series(start: datetime, days: int) -> list[str]:
    return [(start + timedelta(days=i)).date().isoformat() for i in range(days)]
